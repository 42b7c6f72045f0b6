"""
Channel sender contract.

A sender delivers one templated message to one lead and reports back. The vendor
transports (SMS gateway, email provider, voice agent) live outside this package and
register themselves with register_sender(); channels with nothing registered fall
back to LoggingSender, which logs instead of sending.

Each sender records its own outbound ledger entry (sms_sent, email_sent,
call_initiated). The scheduler only interprets the truthiness of the result and
records `<channel>_failed` itself.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from outreach.config import CHANNELS, LEDGER_CHANNELS
from outreach.database import get_session
from outreach.lifecycle.base import InvalidChannelError, LedgerEntry
from outreach.lifecycle.persistence import append_activity, is_suppressed
from outreach.models.lead import Lead

logger = logging.getLogger('lifecycle.senders')


@dataclass
class SendResult:
    ok: bool
    provider_id: Optional[str] = None
    detail: str = ''

    def __bool__(self):
        return self.ok


class ChannelSender(ABC):
    """Deliver `template_id` to `lead_id`. Falsy result = not sent; raise on transport errors."""

    channel = None

    @abstractmethod
    def send(self, lead_id: int, template_id: Optional[str]) -> Optional[SendResult]:
        ...


class LoggingSender(ChannelSender):
    """
    Dev/test sender: checks opt-out and suppression the way a real transport must,
    then logs instead of sending.
    """

    _OPT_OUT_FIELD = {
        'sms': 'sms_opt_out',
        'email': 'email_opt_out',
        'ai_call': 'call_opt_out',
    }

    def __init__(self, channel: str):
        if channel not in CHANNELS:
            raise InvalidChannelError(channel)
        self.channel = channel

    def send(self, lead_id, template_id):
        session = get_session()
        try:
            lead = session.get(Lead, lead_id)
            if lead is None:
                return SendResult(ok=False, detail='lead not found')
            if getattr(lead, self._OPT_OUT_FIELD[self.channel]):
                return SendResult(ok=False, detail=f'{self.channel} opted out')

            phone = lead.phone if self.channel in ('sms', 'ai_call') else None
            email = lead.email if self.channel == 'email' else None
            if not (phone or email):
                return SendResult(ok=False, detail=f'no {self.channel} contact')
            if is_suppressed(session, phone=phone, email=email):
                return SendResult(ok=False, detail='suppressed')

            provider_id = f'mock-{self.channel}-{lead_id}'
            record_sent(session, lead_id, self.channel, template_id, provider_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("[mock %s] lead #%d template=%s", self.channel, lead_id, template_id)
        return SendResult(ok=True, provider_id=provider_id, detail='logged')


# Outbound ledger type per channel; voice calls are "initiated", not "sent"
SENT_TYPES = {
    'sms': 'sms_sent',
    'email': 'email_sent',
    'ai_call': 'call_initiated',
}


def record_sent(session, lead_id, channel, template_id, provider_id=None, content=''):
    """Append the outbound sent entry for `channel` (persisted by the caller's commit)."""
    ledger_channel = LEDGER_CHANNELS[channel]
    return append_activity(session, lead_id, LedgerEntry(
        type=SENT_TYPES[channel],
        channel=ledger_channel,
        direction='outbound',
        content=content or f'Template {template_id}',
        details={'template_id': template_id, 'provider_id': provider_id},
    ))


# ── Registry ─────────────────────────────────────────────────────────────────

_registry = {}


def register_sender(channel: str, sender: ChannelSender):
    if channel not in CHANNELS:
        raise InvalidChannelError(channel)
    _registry[channel] = sender
    logger.info("Registered %s sender: %s", channel, type(sender).__name__)


def get_sender(channel: str) -> ChannelSender:
    if channel not in CHANNELS:
        raise InvalidChannelError(channel)
    if channel not in _registry:
        logger.warning("No %s sender registered — using LoggingSender", channel)
        _registry[channel] = LoggingSender(channel)
    return _registry[channel]


def get_senders() -> Dict[str, ChannelSender]:
    return {channel: get_sender(channel) for channel in CHANNELS}


def reset_senders():
    _registry.clear()
