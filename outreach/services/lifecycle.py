"""
Lead lifecycle operations for webhooks and operators.

Every mutation runs under the per-lead Redis lock inside one transaction:
score → route → persist → commit, then the transition's notifications and
auto-actions are queued. A failure rolls back the whole operation.
"""
import logging
from contextlib import contextmanager
from datetime import datetime

from outreach.config import CHANNELS, LONG_CALL_SECONDS, NO_ANSWER_PENALTY_THRESHOLD
from outreach.database import get_session
from outreach.lifecycle.base import (
    InvalidChannelError, LeadBusyError, LeadNotFoundError, LeadSnapshot, LeadStateError,
    LedgerEntry, ScoreEvent, ScoreTier, Transition,
)
from outreach.lifecycle.persistence import append_activity, apply_transition, get_ledger
from outreach.lifecycle.routing import handle_opt_out, handle_reply, is_opt_out_message, route
from outreach.lifecycle.scheduler import run_scheduler
from outreach.lifecycle.scoring import (
    apply_event, apply_score_decay, find_decay_candidates, load_scoring_config,
)
from outreach.lifecycle.time_window import from_storage, is_within_send_window, to_storage, utcnow
from outreach.models.call_log import CallLog
from outreach.models.lead import Lead
from outreach.services import settings
from outreach.services.circuit_breaker import get_health
from outreach.services.locks import lead_lock
from outreach.services.notifications import notify_scheduler_paused
from outreach.tasks import dispatch_effects

logger = logging.getLogger('services.lifecycle')

# Events that also set a flag on the lead
FLAG_EVENTS = {
    ScoreEvent.MEETING_BOOKED: 'meeting_booked',
    ScoreEvent.APP_DOWNLOADED: 'app_downloaded',
}

CALL_OUTCOME_EVENTS = {
    'qualified': [ScoreEvent.CALL_QUALIFIED],
    'wants_meeting': [ScoreEvent.WANTS_MEETING],
    'wants_app': [ScoreEvent.WANTS_APP],
    'not_interested': [ScoreEvent.NEGATIVE_REPLY],
    'wrong_number': [ScoreEvent.WRONG_NUMBER],
}


@contextmanager
def _lead_transaction(lead_id):
    """Lock the lead, yield (session, row, transitions); commit and dispatch on success."""
    with lead_lock(lead_id) as acquired:
        if not acquired:
            raise LeadBusyError(lead_id)
        session = get_session()
        transitions = []
        try:
            row = session.query(Lead).filter(Lead.id == lead_id).with_for_update().one_or_none()
            if row is None:
                raise LeadNotFoundError(lead_id)
            yield session, row, transitions
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    dispatch_effects(transitions)


def _apply(session, row, transitions, transition: Transition):
    apply_transition(session, row, transition)
    transitions.append(transition)
    return transition


def _score_and_route(session, row, transitions, events, now=None):
    """Apply each (event, bonus) in order, then route once if the tier moved."""
    start_tier = row.score_tier
    results = []
    for event, bonus in events:
        result = apply_event(session, row.id, event, bonus)
        results.append(result)
        flag = FLAG_EVENTS.get(ScoreEvent.parse(event))
        if flag and not getattr(row, flag):
            snapshot = LeadSnapshot.from_model(row)
            _apply(session, row, transitions,
                   Transition(before=snapshot, lead=snapshot.evolve(**{flag: True}), action='flagged'))
    return results, _route_if_moved(session, row, transitions, start_tier, now)


def _route_if_moved(session, row, transitions, start_tier, now=None):
    if row.score_tier == start_tier:
        return None
    return _apply(session, row, transitions,
                  route(LeadSnapshot.from_model(row), start_tier, row.score_tier, now))


def _summary(row, results=(), routed=None, **extra):
    data = {
        'lead_id': row.id,
        'score': row.score,
        'score_tier': row.score_tier,
        'status': row.status,
        'sequence_status': row.sequence_status,
        'events': [r.to_dict() for r in results],
        'action': routed.action if routed else None,
    }
    if routed is not None:
        data['routing'] = routed.to_dict()
    data.update(extra)
    return data


# ── Engagement events ────────────────────────────────────────────────────────

def record_event(lead_id: int, event_type: str, bonus_points: int = 0, now: datetime = None) -> dict:
    """Score one engagement event and route on a tier change."""
    ScoreEvent.parse(event_type)
    with _lead_transaction(lead_id) as (session, row, transitions):
        results, routed = _score_and_route(session, row, transitions, [(event_type, bonus_points)], now)
        summary = _summary(row, results, routed)
    return summary


def record_reply(lead_id: int, channel: str, content: str, now: datetime = None) -> dict:
    """
    Inbound reply. STOP-style messages are opt-outs; anything else pauses the
    sequence, hands the lead to a rep and scores `<channel>_replied`.
    """
    if is_opt_out_message(content):
        return record_opt_out(lead_id, channel)

    now = now or utcnow()
    with _lead_transaction(lead_id) as (session, row, transitions):
        _apply(session, row, transitions, handle_reply(LeadSnapshot.from_model(row), channel, content, now))
        events = [(f'{channel}_replied', 0)] if channel in ('sms', 'email') else []
        results, routed = _score_and_route(session, row, transitions, events, now)
        summary = _summary(row, results, routed, replied=True)
    return summary


def record_opt_out(lead_id: int, channel: str) -> dict:
    with _lead_transaction(lead_id) as (session, row, transitions):
        opted = _apply(session, row, transitions, handle_opt_out(LeadSnapshot.from_model(row), channel))
        summary = _summary(row, action=opted.action)
    return summary


def record_call_outcome(lead_id: int, status: str, outcome: str = None, duration_seconds: int = 0,
                        summary: str = None, interest_level: str = None, next_action: str = None,
                        now: datetime = None) -> dict:
    """
    Store an AI call result and score it.

    no_answer: the no_answer_3x penalty applies once the lead has
    NO_ANSWER_PENALTY_THRESHOLD or more unanswered calls. completed: call_answered,
    call_long for long calls, plus the outcome's own event. A do_not_call outcome
    is a voice opt-out.
    """
    with _lead_transaction(lead_id) as (session, row, transitions):
        session.add(CallLog(
            lead_id=lead_id,
            status=status,
            outcome=outcome,
            duration_seconds=duration_seconds or 0,
            summary=summary,
            interest_level=interest_level,
            next_action=next_action,
        ))
        append_activity(session, lead_id, LedgerEntry(
            type=f'call_{status}',
            channel='call',
            content=summary or outcome or status,
            details={'outcome': outcome, 'duration_seconds': duration_seconds or 0},
        ))
        session.flush()

        events = []
        if status == 'no_answer':
            misses = session.query(CallLog).filter(CallLog.lead_id == lead_id, CallLog.status == 'no_answer').count()
            if misses >= NO_ANSWER_PENALTY_THRESHOLD:
                events.append((ScoreEvent.NO_ANSWER_3X, 0))
        elif status == 'completed':
            events.append((ScoreEvent.CALL_ANSWERED, 0))
            if (duration_seconds or 0) >= LONG_CALL_SECONDS:
                events.append((ScoreEvent.CALL_LONG, 0))
            events += [(e, 0) for e in CALL_OUTCOME_EVENTS.get(outcome, [])]

        if outcome == 'do_not_call':
            _apply(session, row, transitions, handle_opt_out(LeadSnapshot.from_model(row), 'ai_call'))

        results, routed = _score_and_route(session, row, transitions, events, now)
        result = _summary(row, results, routed)
    return result


# ── Operator actions ─────────────────────────────────────────────────────────

def _set_sequence_status(session, row, transitions, new_status, note, **changes):
    before = LeadSnapshot.from_model(row)
    after = before.evolve(sequence_status=new_status, **changes)
    return _apply(session, row, transitions, Transition(
        before=before, lead=after, action=new_status,
        effects=(LedgerEntry(type='stage_change', content=note),),
    ))


def pause_sequence(lead_id: int) -> dict:
    with _lead_transaction(lead_id) as (session, row, transitions):
        if row.sequence_status in ('completed', 'stopped'):
            raise LeadStateError(f"Lead {lead_id} sequence is {row.sequence_status}, nothing to pause")
        _set_sequence_status(session, row, transitions, 'paused', 'Sequence paused by operator')
        summary = _summary(row, action='paused')
    return summary


def resume_sequence(lead_id: int, now: datetime = None) -> dict:
    """Explicit resume: the only way a completed/stopped lead is scheduled again."""
    now = now or utcnow()
    with _lead_transaction(lead_id) as (session, row, transitions):
        if row.status in ('bad_data', 'do_not_call', 'not_a_fit'):
            raise LeadStateError(f"Lead {lead_id} is {row.status} and cannot be resumed")
        if row.sequence_id is None:
            raise LeadStateError(f"Lead {lead_id} has no sequence")
        _set_sequence_status(session, row, transitions, 'active', 'Sequence resumed by operator',
                             next_action_at=now)
        summary = _summary(row, action='active')
    return summary


def mark_qualified(lead_id: int, now: datetime = None) -> dict:
    """
    Lift the score to the qualified floor and run the qualified route.

    A lead already qualifying is left alone, so its notification and link
    auto-actions go out once.
    """
    floor = next(bound for tier, bound in load_scoring_config()['tiers'] if tier == ScoreTier.QUALIFIED)
    with _lead_transaction(lead_id) as (session, row, transitions):
        if row.score_tier == ScoreTier.QUALIFIED.value and row.status == 'qualifying':
            logger.info("Lead #%d is already qualifying", lead_id)
            summary = _summary(row, already_qualified=True)
        else:
            old_tier = row.score_tier
            result = apply_event(session, lead_id, ScoreEvent.MANUAL, max(0, floor - row.score))
            routed = _apply(session, row, transitions,
                            route(LeadSnapshot.from_model(row), old_tier, ScoreTier.QUALIFIED, now))
            summary = _summary(row, [result], routed)
    return summary


def mark_dnc(lead_id: int) -> dict:
    """Operator do-not-call: opt out of SMS (and so voice) and email."""
    with _lead_transaction(lead_id) as (session, row, transitions):
        for channel in ('sms', 'email'):
            _apply(session, row, transitions, handle_opt_out(LeadSnapshot.from_model(row), channel))
        summary = _summary(row, action='do_not_call')
    return summary


def get_activities(lead_id: int, limit: int = 100) -> list:
    session = get_session()
    try:
        if session.get(Lead, lead_id) is None:
            raise LeadNotFoundError(lead_id)
        return [
            {
                'id': a.id,
                'type': a.type,
                'channel': a.channel,
                'direction': a.direction,
                'content': a.content,
                'details': a.details,
                'score_before': a.score_before,
                'score_after': a.score_after,
                'created_at': from_storage(a.created_at).isoformat() if a.created_at else None,
            }
            for a in get_ledger(session, lead_id, limit)
        ]
    finally:
        session.close()


# ── Scheduler controls ───────────────────────────────────────────────────────

def set_system_paused(paused: bool) -> dict:
    session = get_session()
    try:
        settings.set_system_paused(session, paused)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    notify_scheduler_paused(paused)
    return {'system_paused': bool(paused)}


def run_scheduler_now(now: datetime = None) -> dict:
    """Manual trigger: exactly one tick, same pause flag and tick lock as the clock."""
    return run_scheduler(now=now).to_dict()


def get_scheduler_status(now: datetime = None) -> dict:
    now = now or utcnow()
    session = get_session()
    try:
        due = session.query(Lead).filter(
            Lead.sequence_status == 'active',
            Lead.next_action_at <= to_storage(now),
        ).count()
        active = session.query(Lead).filter(Lead.sequence_status == 'active').count()
        return {
            'system_paused': settings.is_system_paused(session),
            'active_leads': active,
            'due_leads': due,
            'channels': get_health(),
            'send_windows_open': {channel: is_within_send_window(channel, now) for channel in CHANNELS},
        }
    finally:
        session.close()


def run_score_decay(now: datetime = None) -> dict:
    """Weekly inactivity decay, one lead transaction at a time."""
    session = get_session()
    try:
        lead_ids = find_decay_candidates(session, now)
    finally:
        session.close()

    decayed, errors = 0, []
    for lead_id in lead_ids:
        try:
            with _lead_transaction(lead_id) as (s, row, transitions):
                start_tier = row.score_tier
                apply_score_decay(s, now, lead_ids=[lead_id])
                _route_if_moved(s, row, transitions, start_tier, now)
            decayed += 1
        except Exception as e:
            logger.error("Score decay failed for lead #%d: %s", lead_id, e, extra={'lead_id': lead_id})
            errors.append({'lead_id': lead_id, 'error': str(e)})
    logger.info("Score decay: %d/%d leads decayed", decayed, len(lead_ids))
    return {'candidates': len(lead_ids), 'decayed': decayed, 'errors': errors}


def validate_channel(channel: str, allow_call: bool = True) -> str:
    valid = set(CHANNELS) | ({'call'} if allow_call else set())
    if channel not in valid:
        raise InvalidChannelError(channel)
    return 'ai_call' if channel == 'call' else channel
