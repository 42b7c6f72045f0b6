"""Tests for outreach.lifecycle.senders — LoggingSender checks and the registry."""
import pytest

from outreach.lifecycle.base import InvalidChannelError
from outreach.lifecycle.persistence import add_suppression, get_ledger
from outreach.lifecycle.senders import (
    ChannelSender, LoggingSender, SendResult, get_sender, get_senders, record_sent, register_sender,
)


class TestSendResult:

    def test_truthiness_follows_ok(self):
        assert SendResult(ok=True)
        assert not SendResult(ok=False, detail='nope')


class TestLoggingSender:

    def test_records_sent_entry(self, db_session, make_lead):
        lead = make_lead()
        result = LoggingSender('sms').send(lead.id, 'sms_1')

        assert result.ok is True
        assert result.provider_id == f'mock-sms-{lead.id}'
        entry, = get_ledger(db_session, lead.id)
        assert (entry.type, entry.channel, entry.direction) == ('sms_sent', 'sms', 'outbound')
        assert entry.details['template_id'] == 'sms_1'

    def test_call_is_initiated_on_call_channel(self, db_session, make_lead):
        lead = make_lead()
        LoggingSender('ai_call').send(lead.id, None)
        entry, = get_ledger(db_session, lead.id)
        assert (entry.type, entry.channel) == ('call_initiated', 'call')

    def test_opted_out(self, db_session, make_lead):
        lead = make_lead(email_opt_out=True)
        result = LoggingSender('email').send(lead.id, 'email_1')
        assert not result
        assert result.detail == 'email opted out'
        assert get_ledger(db_session, lead.id) == []

    def test_suppressed(self, db_session, make_lead):
        lead = make_lead()
        add_suppression(db_session, 'phone', lead.phone, 'test')
        result = LoggingSender('sms').send(lead.id, 'sms_1')
        assert result.detail == 'suppressed'

    def test_missing_contact(self, make_lead):
        lead = make_lead(email=None)
        assert LoggingSender('email').send(lead.id, 'email_1').detail == 'no email contact'

    def test_missing_lead(self):
        assert LoggingSender('sms').send(424242, 'sms_1').detail == 'lead not found'

    def test_unknown_channel(self):
        with pytest.raises(InvalidChannelError):
            LoggingSender('fax')


class TestRegistry:

    def test_defaults_to_logging_sender(self):
        sender = get_sender('email')
        assert isinstance(sender, LoggingSender)
        assert get_sender('email') is sender

    def test_registered_sender_wins(self):
        class Gateway(ChannelSender):
            channel = 'sms'

            def send(self, lead_id, template_id):
                return SendResult(ok=True)

        gateway = Gateway()
        register_sender('sms', gateway)
        assert get_sender('sms') is gateway
        assert set(get_senders()) == {'sms', 'email', 'ai_call'}

    def test_unknown_channel(self):
        with pytest.raises(InvalidChannelError):
            get_sender('fax')
        with pytest.raises(InvalidChannelError):
            register_sender('fax', LoggingSender('sms'))


def test_record_sent_uses_content(db_session, make_lead):
    lead = make_lead()
    record_sent(db_session, lead.id, 'email', 'email_1', provider_id='msg-1', content='Hi Dana')
    db_session.flush()
    entry, = get_ledger(db_session, lead.id)
    assert entry.content == 'Hi Dana'
    assert entry.details == {'template_id': 'email_1', 'provider_id': 'msg-1'}
