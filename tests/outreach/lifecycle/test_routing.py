"""Tests for outreach.lifecycle.routing — tier handlers, opt-outs, replies."""
from datetime import datetime, timezone

import pytest

from outreach.lifecycle.base import (
    AutoAction, InvalidChannelError, LeadSnapshot, NotificationRequest, ScoreTier, Suppression,
)
from outreach.lifecycle.persistence import apply_transition, get_ledger
from outreach.lifecycle.routing import handle_opt_out, handle_reply, is_opt_out_message, route
from outreach.models.suppression import SuppressionEntry

NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)


def snapshot(**overrides):
    values = dict(
        id=7, status='new', score=30, score_tier='warm', sequence_id=1, current_step=1,
        sequence_status='active', phone='+15555550101', email='dana@example.com',
        first_name='Dana', last_name='Whitfield', company_name='Whitfield Plumbing',
    )
    values.update(overrides)
    return LeadSnapshot(**values)


class TestRouteDead:

    def test_bad_data_without_opt_out(self):
        t = route(snapshot(score=-5, score_tier='dead'), 'cold', 'dead', now=NOW)
        assert t.action == 'stopped'
        assert t.lead.status == 'bad_data'
        assert t.lead.sequence_status == 'stopped'

    def test_do_not_call_with_opt_out(self):
        t = route(snapshot(score=-5, call_opt_out=True), 'cold', ScoreTier.DEAD, now=NOW)
        assert t.lead.status == 'do_not_call'

    def test_suppresses_phone_and_email(self):
        t = route(snapshot(score=-5), 'cold', 'dead', now=NOW)
        assert set(t.suppressions) == {
            Suppression('phone', '+15555550101', 'dead_score'),
            Suppression('email', 'dana@example.com', 'dead_score'),
        }

    def test_missing_contact_not_suppressed(self):
        t = route(snapshot(score=-5, email=None), 'cold', 'dead', now=NOW)
        assert [s.identifier_type for s in t.suppressions] == ['phone']


class TestRouteOtherTiers:

    def test_cold_continues_unchanged(self):
        lead = snapshot(score=10, score_tier='cold')
        t = route(lead, 'warm', 'cold', now=NOW)
        assert t.action == 'continue'
        assert t.changes == {}
        assert t.ledger_entries[0].type == 'stage_change'

    def test_warm_promotes_new_lead(self):
        t = route(snapshot(status='new'), 'cold', 'warm', now=NOW)
        assert t.action == 'continue_priority'
        assert t.lead.status == 'lead'

    def test_warm_keeps_later_status(self):
        t = route(snapshot(status='discovery'), 'hot', 'warm', now=NOW)
        assert t.lead.status == 'discovery'

    def test_hot_moves_to_front_of_queue(self):
        t = route(snapshot(score=45, score_tier='hot'), 'warm', 'hot', now=NOW)
        assert t.action == 'prioritize'
        assert t.lead.status == 'discovery'
        assert t.lead.next_action_at == NOW
        alert, = t.notifications
        assert alert.type == 'ops_alert'
        assert 'Dana Whitfield' in alert.message
        assert 'Score: 45' in alert.message

    def test_qualified_pauses_and_requests_followups(self):
        t = route(snapshot(score=65, score_tier='qualified'), 'hot', 'qualified', now=NOW)
        assert t.action == 'qualifying'
        assert t.lead.status == 'qualifying'
        assert t.lead.sequence_status == 'paused'
        notification, = t.notifications
        assert notification.type == 'qualifying'
        assert notification.payload == {'score': 65, 'score_tier': 'qualified'}
        assert t.auto_actions == [AutoAction('send_meeting_link', 7), AutoAction('send_app_link', 7)]

    def test_unknown_tier_is_noop(self):
        lead = snapshot()
        t = route(lead, 'warm', 'lukewarm', now=NOW)
        assert t.action == 'none'
        assert t.lead is lead
        assert t.effects == ()

    def test_routing_is_pure(self):
        lead = snapshot()
        route(lead, 'warm', 'qualified', now=NOW)
        assert lead.status == 'new'
        assert lead.sequence_status == 'active'


class TestRoutePersisted:

    def test_rerouting_dead_keeps_one_suppression_per_identifier(self, db_session, make_lead):
        row = make_lead(score=-5, score_tier='dead')
        for _ in range(2):
            t = route(LeadSnapshot.from_model(row), 'cold', 'dead', now=NOW)
            apply_transition(db_session, row, t)
        db_session.commit()

        assert row.status == 'bad_data'
        assert row.sequence_status == 'stopped'
        entries = db_session.query(SuppressionEntry).order_by(SuppressionEntry.identifier_type).all()
        assert [(e.identifier_type, e.identifier) for e in entries] == [
            ('email', 'dana@example.com'),
            ('phone', '+15555550101'),
        ]

    def test_qualified_persists_note_not_notification(self, db_session, make_lead):
        row = make_lead(score=65, score_tier='qualified')
        apply_transition(db_session, row, route(LeadSnapshot.from_model(row), 'hot', 'qualified', now=NOW))
        db_session.commit()
        assert [e.type for e in get_ledger(db_session, row.id)] == ['stage_change']


class TestHandleOptOut:

    def test_sms_also_opts_out_of_calls(self):
        t = handle_opt_out(snapshot(), 'sms')
        assert t.lead.sms_opt_out is True
        assert t.lead.call_opt_out is True
        assert t.lead.email_opt_out is False
        assert t.action == 'partial_opt_out'
        assert t.suppressions == [Suppression('phone', '+15555550101', 'opt_out_sms')]

    def test_partial_opt_out_keeps_score(self):
        t = handle_opt_out(snapshot(score=30), 'email')
        assert t.lead.score == 30
        assert t.lead.sequence_status == 'active'
        assert t.suppressions == [Suppression('email', 'dana@example.com', 'opt_out_email')]

    def test_call_opt_out_only(self):
        t = handle_opt_out(snapshot(), 'ai_call')
        assert t.lead.call_opt_out is True
        assert t.lead.sms_opt_out is False
        assert t.suppressions == []
        entry, = t.ledger_entries
        assert entry.channel == 'call'

    def test_second_channel_makes_lead_terminal(self):
        t = handle_opt_out(snapshot(score=30, sms_opt_out=True, call_opt_out=True), 'email')
        assert t.action == 'do_not_call'
        assert t.lead.score == -100
        assert t.lead.score_tier == 'dead'
        assert t.lead.status == 'do_not_call'
        assert t.lead.sequence_status == 'stopped'
        entry, = t.ledger_entries
        assert (entry.score_before, entry.score_after) == (30, -100)
        assert entry.direction == 'inbound'

    def test_unknown_channel(self):
        with pytest.raises(InvalidChannelError):
            handle_opt_out(snapshot(), 'fax')


class TestHandleReply:

    def test_pauses_and_moves_to_discovery(self):
        t = handle_reply(snapshot(), 'sms', 'Sounds interesting, call me', now=NOW)
        assert t.action == 'paused'
        assert t.lead.replied is True
        assert t.lead.last_reply_at == NOW
        assert t.lead.status == 'discovery'
        assert t.lead.sequence_status == 'paused'

    def test_ledger_and_rep_alert(self):
        t = handle_reply(snapshot(), 'ai_call', 'yes', now=NOW)
        entry, = t.ledger_entries
        assert (entry.type, entry.channel, entry.direction) == ('call_replied', 'call', 'inbound')
        alert, = t.notifications
        assert isinstance(alert, NotificationRequest)
        assert alert.type == 'rep_alert'
        assert '"yes"' in alert.message

    def test_unknown_channel(self):
        with pytest.raises(InvalidChannelError):
            handle_reply(snapshot(), 'pager', 'hi')


class TestIsOptOutMessage:

    @pytest.mark.parametrize('text', ['STOP', 'stop', ' Stop. ', 'UNSUBSCRIBE!', 'opt out', 'Remove'])
    def test_keywords(self, text):
        assert is_opt_out_message(text) is True

    @pytest.mark.parametrize('text', [None, '', 'please stop by tomorrow', 'Stopwatch', 'call me'])
    def test_not_opt_out(self, text):
        assert is_opt_out_message(text) is False
