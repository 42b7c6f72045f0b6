"""Tests for outreach.lifecycle.persistence."""
from datetime import datetime, timezone

from outreach.lifecycle.base import LeadSnapshot, LedgerEntry, Suppression, Transition
from outreach.lifecycle.persistence import (
    CONTENT_MAX_CHARS, add_suppression, append_activity, apply_transition,
    count_outbound_today, get_ledger, is_suppressed, latest_call_log,
)
from outreach.models.call_log import CallLog
from outreach.models.suppression import SuppressionEntry

MONDAY_10AM = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)


class TestApplyTransition:

    def test_writes_changed_fields_and_ledger(self, db_session, make_lead):
        row = make_lead()
        before = LeadSnapshot.from_model(row)
        t = Transition(
            before=before,
            lead=before.evolve(current_step=1, next_action_at=MONDAY_10AM),
            action='sent',
            effects=(LedgerEntry(type='step_skipped', content='a'), LedgerEntry(type='sequence_completed')),
        )
        apply_transition(db_session, row, t)
        db_session.commit()

        assert row.current_step == 1
        # stored as naive UTC
        assert row.next_action_at == datetime(2026, 10, 19, 14, 0)
        assert [e.type for e in get_ledger(db_session, row.id)] == ['step_skipped', 'sequence_completed']

    def test_contact_fields_never_written(self, db_session, make_lead):
        row = make_lead()
        before = LeadSnapshot.from_model(row)
        apply_transition(db_session, row, Transition(before=before, lead=before.evolve(phone='+19999999999'),
                                                     action='none'))
        assert row.phone == '+15555550101'

    def test_suppressions_applied(self, db_session, make_lead):
        row = make_lead()
        before = LeadSnapshot.from_model(row)
        t = Transition(before=before, lead=before, action='none',
                       effects=(Suppression('email', 'Dana@Example.com ', 'test'),))
        apply_transition(db_session, row, t)
        assert is_suppressed(db_session, email='dana@example.com')


class TestLedger:

    def test_content_truncated(self, db_session, make_lead):
        row = make_lead()
        append_activity(db_session, row.id, LedgerEntry(type='note', content='x' * 2000))
        db_session.flush()
        assert len(get_ledger(db_session, row.id)[0].content) == CONTENT_MAX_CHARS

    def test_details_round_trip(self, db_session, make_lead):
        row = make_lead()
        append_activity(db_session, row.id, LedgerEntry(type='note', details={'template_id': 'sms_1'}))
        db_session.commit()
        assert get_ledger(db_session, row.id)[0].details == {'template_id': 'sms_1'}

    def test_get_ledger_limit(self, db_session, make_lead):
        row = make_lead()
        for i in range(5):
            append_activity(db_session, row.id, LedgerEntry(type='note', content=str(i)))
        db_session.flush()
        assert [e.content for e in get_ledger(db_session, row.id, limit=3)] == ['0', '1', '2']


class TestSuppressionList:

    def test_set_add(self, db_session):
        assert add_suppression(db_session, 'phone', '+15555550101', 'first') is True
        assert add_suppression(db_session, 'phone', '+15555550101', 'second') is False
        entry, = db_session.query(SuppressionEntry).all()
        assert entry.reason == 'first'

    def test_email_normalized(self, db_session):
        add_suppression(db_session, 'email', '  Dana@Example.COM')
        assert is_suppressed(db_session, email='dana@example.com')

    def test_empty_identifier_ignored(self, db_session):
        assert add_suppression(db_session, 'phone', '', 'x') is False
        assert add_suppression(db_session, 'phone', None, 'x') is False
        assert db_session.query(SuppressionEntry).count() == 0

    def test_is_suppressed_checks_either_identifier(self, db_session):
        add_suppression(db_session, 'phone', '+15555550101')
        assert is_suppressed(db_session, phone='+15555550101', email='other@example.com')
        assert not is_suppressed(db_session, phone='+15555550102')
        assert not is_suppressed(db_session)


class TestCountOutboundToday:

    def _entry(self, db_session, lead_id, created_at, channel='sms', direction='outbound'):
        append_activity(db_session, lead_id, LedgerEntry(type=f'{channel}_sent', channel=channel,
                                                         direction=direction), created_at=created_at)

    def test_counts_local_day_only(self, db_session, make_lead):
        row = make_lead()
        self._entry(db_session, row.id, datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc))   # 09:00 EDT
        self._entry(db_session, row.id, datetime(2026, 10, 20, 3, 30, tzinfo=timezone.utc))   # 23:30 EDT
        self._entry(db_session, row.id, datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc))    # Sunday 23:00 EDT
        db_session.flush()
        assert count_outbound_today(db_session, 'sms', now=MONDAY_10AM) == 2

    def test_ignores_other_channels_and_inbound(self, db_session, make_lead):
        row = make_lead()
        self._entry(db_session, row.id, MONDAY_10AM, channel='email')
        self._entry(db_session, row.id, MONDAY_10AM, direction='inbound')
        self._entry(db_session, row.id, MONDAY_10AM)
        db_session.flush()
        assert count_outbound_today(db_session, 'sms', now=MONDAY_10AM) == 1


def test_latest_call_log(db_session, make_lead):
    row = make_lead()
    assert latest_call_log(db_session, row.id) is None
    db_session.add_all([
        CallLog(lead_id=row.id, status='no_answer'),
        CallLog(lead_id=row.id, status='completed', summary='Wants a demo'),
    ])
    db_session.flush()
    assert latest_call_log(db_session, row.id).summary == 'Wants a demo'
