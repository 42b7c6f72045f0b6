"""
Tier router — reacts to a tier transition with status/sequence changes and
side-effect requests.

Every function here is pure: it takes a LeadSnapshot and returns a Transition.
Re-routing the same (old_tier, new_tier) leaves status and sequence_status where
the first call put them, and suppression entries are set-adds.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from outreach.config import OPT_OUT_KEYWORDS
from outreach.lifecycle.base import (
    AutoAction, InvalidChannelError, LeadSnapshot, LedgerEntry,
    NotificationRequest, ScoreTier, Suppression, Transition,
)
from outreach.lifecycle.time_window import utcnow

logger = logging.getLogger('lifecycle.routing')

# Ledger channel used for inbound replies / opt-outs per sequence channel
_REPLY_CHANNELS = {'sms': 'sms', 'email': 'email', 'ai_call': 'call', 'call': 'call'}

DEAD_SCORE = -100


def _suppress_contacts(lead: LeadSnapshot, reason: str, phone=True, email=True):
    effects = []
    if phone and lead.phone:
        effects.append(Suppression('phone', lead.phone, reason))
    if email and lead.email:
        effects.append(Suppression('email', lead.email, reason))
    return effects


def _note(content: str) -> LedgerEntry:
    return LedgerEntry(type='stage_change', content=content)


# ── Tier handlers ────────────────────────────────────────────────────────────

def _route_dead(lead: LeadSnapshot, now: datetime) -> Transition:
    dead_status = 'do_not_call' if lead.any_opt_out else 'bad_data'
    new = lead.evolve(status=dead_status, sequence_status='stopped')
    effects = [_note(f"Lead marked as {dead_status.replace('_', ' ')}. All outreach stopped.")]
    effects += _suppress_contacts(lead, 'dead_score')
    return Transition(before=lead, lead=new, action='stopped', effects=tuple(effects), reason=dead_status)


def _route_cold(lead: LeadSnapshot, now: datetime) -> Transition:
    return Transition(
        before=lead, lead=lead, action='continue',
        effects=(_note('Lead is cold. Continuing automated sequence.'),),
    )


def _route_warm(lead: LeadSnapshot, now: datetime) -> Transition:
    new = lead.evolve(status='lead') if lead.status == 'new' else lead
    return Transition(
        before=lead, lead=new, action='continue_priority',
        effects=(_note('Lead is now WARM. Continuing with priority channel steps.'),),
    )


def _route_hot(lead: LeadSnapshot, now: datetime) -> Transition:
    new = lead.evolve(status='discovery', next_action_at=now)
    alert = NotificationRequest(
        type='ops_alert',
        lead_id=lead.id,
        message=f"Hot lead: {lead.display_name} from {lead.company_name or 'unknown company'} (Score: {lead.score})",
    )
    return Transition(
        before=lead, lead=new, action='prioritize',
        effects=(_note('Lead is now HOT → Discovery. Moved to front of the queue.'), alert),
    )


def _route_qualified(lead: LeadSnapshot, now: datetime) -> Transition:
    new = lead.evolve(status='qualifying', sequence_status='paused')
    qualifying = NotificationRequest(
        type='qualifying',
        lead_id=lead.id,
        message=f"NEW QUALIFYING LEAD: {lead.display_name} from {lead.company_name or 'unknown company'}. "
                f"Score: {lead.score}.",
        payload={'score': lead.score, 'score_tier': lead.score_tier},
    )
    effects = (
        _note(f"Lead QUALIFYING. Notification requested. Score: {lead.score}. Sequence paused."),
        qualifying,
        AutoAction('send_meeting_link', lead.id),
        AutoAction('send_app_link', lead.id),
    )
    return Transition(before=lead, lead=new, action='qualifying', effects=effects)


_HANDLERS = {
    ScoreTier.DEAD: _route_dead,
    ScoreTier.COLD: _route_cold,
    ScoreTier.WARM: _route_warm,
    ScoreTier.HOT: _route_hot,
    ScoreTier.QUALIFIED: _route_qualified,
}


def route(lead: LeadSnapshot, old_tier, new_tier, now: datetime = None) -> Transition:
    """Dispatch on `new_tier`. Unknown tiers produce a no-op transition."""
    now = now or utcnow()
    try:
        tier = ScoreTier(new_tier)
    except ValueError:
        logger.warning("Lead #%d: no route for tier %r", lead.id, new_tier)
        return Transition(before=lead, lead=lead, action='none')

    old = getattr(old_tier, 'value', old_tier)
    logger.info("Lead #%d tier changed: %s → %s", lead.id, old, tier.value)
    return _HANDLERS[tier](lead, now)


# ── Opt-outs + replies ───────────────────────────────────────────────────────

def handle_opt_out(lead: LeadSnapshot, channel: str) -> Transition:
    """
    Record an opt-out on `channel`.

    SMS and voice share consent, so an SMS opt-out also sets call_opt_out. Once
    SMS and email are both opted out the lead is terminal: score -100, dead,
    do_not_call, sequence stopped.
    """
    if channel == 'sms':
        new = lead.evolve(sms_opt_out=True, call_opt_out=True)
        suppress = _suppress_contacts(lead, 'opt_out_sms', email=False)
    elif channel == 'email':
        new = lead.evolve(email_opt_out=True)
        suppress = _suppress_contacts(lead, 'opt_out_email', phone=False)
    elif channel in ('ai_call', 'call'):
        new = lead.evolve(call_opt_out=True)
        suppress = []
    else:
        raise InvalidChannelError(channel)

    all_opted_out = new.sms_opt_out and new.email_opt_out
    if all_opted_out:
        new = new.evolve(
            score=DEAD_SCORE,
            score_tier=ScoreTier.DEAD.value,
            status='do_not_call',
            sequence_status='stopped',
        )

    entry = LedgerEntry(
        type='opt_out',
        channel=_REPLY_CHANNELS[channel],
        direction='inbound',
        content=f"Opted out of {channel}. "
                + ('All channels opted out — marked Do Not Call.' if all_opted_out else 'Other channels may continue.'),
        score_before=lead.score if all_opted_out else None,
        score_after=new.score if all_opted_out else None,
    )
    logger.info("Lead #%d opted out of %s%s", lead.id, channel, ' — ALL channels' if all_opted_out else '')
    return Transition(
        before=lead,
        lead=new,
        action='do_not_call' if all_opted_out else 'partial_opt_out',
        effects=(entry, *suppress),
        reason=channel,
    )


def handle_reply(lead: LeadSnapshot, channel: str, content: str, now: datetime = None) -> Transition:
    """Inbound reply: pause automation and hand the lead to a rep (status discovery)."""
    if channel not in _REPLY_CHANNELS:
        raise InvalidChannelError(channel)
    now = now or utcnow()
    content = content or ''
    new = lead.evolve(replied=True, last_reply_at=now, status='discovery', sequence_status='paused')
    ledger_channel = _REPLY_CHANNELS[channel]
    effects = (
        LedgerEntry(type=f'{ledger_channel}_replied', channel=ledger_channel, direction='inbound', content=content),
        NotificationRequest(
            type='rep_alert',
            lead_id=lead.id,
            message=f'{lead.display_name} replied via {channel}: "{content[:100]}"',
        ),
    )
    return Transition(before=lead, lead=new, action='paused', effects=effects, reason=channel)


_KEYWORD_RE = re.compile(
    r'^\s*(' + '|'.join(re.escape(k) for k in OPT_OUT_KEYWORDS) + r')\s*[.!]*\s*$',
    re.IGNORECASE,
)


def is_opt_out_message(text: Optional[str]) -> bool:
    """True if an inbound message is just an opt-out keyword (STOP, UNSUBSCRIBE, ...)."""
    if not text:
        return False
    return bool(_KEYWORD_RE.match(text))
