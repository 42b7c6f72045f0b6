"""
Sequence scheduler — the batch tick that moves due leads through their sequences.

One tick:
  0. pause flag            → nothing happens at all
  1. select due leads      → active, next_action_at <= now, not terminal, score desc
  2. resolve next step     → none left: sequence completed
  3. skip checks           → replied / score above / opt-out / suppressed: advance without sending
  4. step window           → defer to the next slot (no advance)
  5. daily channel cap     → defer by at least 12h (no advance)
  6. send                  → success advances; failure leaves the step to retry next tick

Each lead is handled under its own Redis lock and committed on its own, so one bad
lead never aborts the batch. Decisions are pure functions of (LeadSnapshot, step,
SchedulerContext) returning a Transition; lifecycle.persistence writes them.
"""
import concurrent.futures
import logging
from contextlib import nullcontext
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from outreach.config import (
    BATCH_SIZE, CHANNELS, DAILY_LIMITS, DEFAULT_TIMEZONE, LEDGER_CHANNELS,
    SEND_TIMEOUT_SECONDS, SEND_WINDOWS, TERMINAL_STATUSES,
)
from outreach.database import get_session
from outreach.lifecycle.base import (
    LeadNotFoundError, LeadSnapshot, LedgerEntry, LifecycleError, Transition, no_change,
)
from outreach.lifecycle.persistence import (
    CONTENT_MAX_CHARS, apply_transition, count_outbound_today, is_suppressed,
)
from outreach.lifecycle.senders import get_senders
from outreach.lifecycle.time_window import (
    is_within_window, next_step_send_time, next_valid_send_time,
    to_storage, utcnow,
)
from outreach.models.lead import Lead
from outreach.models.sequence import SequenceStep
from outreach.services.circuit_breaker import CircuitOpenError, get_breakers
from outreach.services.locks import lead_lock, tick_lock
from outreach.services.settings import is_system_paused

logger = logging.getLogger('lifecycle.scheduler')

# Minimum push when a channel has hit its daily cap
CAP_DEFER_HOURS = 12

# Channels that cannot send without a template
TEMPLATED_CHANNELS = ('sms', 'email')

SEND_COUNTERS = {
    'sms': 'total_sms_sent',
    'email': 'total_emails_sent',
    'ai_call': 'total_calls_made',
}

_executor = concurrent.futures.ThreadPoolExecutor(max_workers=4, thread_name_prefix='sender')


class SendTimeoutError(LifecycleError):
    def __init__(self, channel, timeout):
        self.channel = channel
        self.timeout = timeout
        super().__init__(f"{channel} send timed out after {timeout}s")


def _no_lock(lead_id):
    return nullcontext(True)


# ── Context + result ─────────────────────────────────────────────────────────

@dataclass
class SchedulerContext:
    """Everything a tick reads from the outside world, injected."""
    now: datetime
    system_paused: bool = False
    batch_size: int = BATCH_SIZE
    daily_limits: Dict[str, int] = field(default_factory=lambda: dict(DAILY_LIMITS))
    timezone: str = DEFAULT_TIMEZONE
    send_windows: Dict[str, Any] = field(default_factory=lambda: dict(SEND_WINDOWS))
    senders: Dict[str, Any] = field(default_factory=dict)
    send_timeout: Optional[float] = SEND_TIMEOUT_SECONDS
    breakers: Dict[str, Any] = field(default_factory=dict)
    lead_lock: Callable = _no_lock

    @classmethod
    def from_settings(cls, session, now: datetime = None, **overrides) -> 'SchedulerContext':
        values = dict(
            now=now or utcnow(),
            system_paused=is_system_paused(session),
            senders=get_senders(),
            breakers=get_breakers(),
            lead_lock=partial(lead_lock, wait=False),
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class BatchResult:
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    deferred: int = 0
    failed: int = 0
    completed: int = 0
    stopped: int = 0
    busy: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    reason: Optional[str] = None

    _COUNTED = {
        'sent': 'sent',
        'skipped': 'skipped',
        'deferred': 'deferred',
        'failed': 'failed',
        'completed': 'completed',
        'stopped': 'stopped',
    }

    def record(self, transition: Transition):
        self.processed += 1
        counter = self._COUNTED.get(transition.action)
        if counter:
            setattr(self, counter, getattr(self, counter) + 1)

    def to_dict(self):
        data = asdict(self)
        if self.reason is None:
            data.pop('reason')
        return data


# ── Pure transitions ─────────────────────────────────────────────────────────

def _note(type_, content, **details) -> LedgerEntry:
    return LedgerEntry(type=type_, content=content, details=details or None)


def complete_transition(lead: LeadSnapshot, content: str = 'Sequence completed') -> Transition:
    new = lead.evolve(sequence_status='completed')
    return Transition(before=lead, lead=new, action='completed',
                      effects=(_note('sequence_completed', content),))


def advance_transition(lead: LeadSnapshot, following: Optional[SequenceStep], ctx: SchedulerContext,
                       action: str) -> Transition:
    """Move the pointer past the current step and schedule the following one from now."""
    new = lead.evolve(current_step=lead.current_step + 1)
    if following is None:
        new = new.evolve(sequence_status='completed')
        return Transition(
            before=lead, lead=new, action=action,
            effects=(_note('sequence_completed', f'All {new.current_step} steps done'),),
        )
    next_at = next_valid_send_time(following.channel, following.delay_hours, now=ctx.now,
                                   tz=ctx.timezone, windows=ctx.send_windows)
    return Transition(before=lead, lead=new.evolve(next_action_at=next_at), action=action)


def skip_transition(lead: LeadSnapshot, step: SequenceStep, reason: str,
                    following: Optional[SequenceStep], ctx: SchedulerContext) -> Transition:
    skipped = Transition(
        before=lead, lead=lead, action='skipped', reason=reason,
        effects=(_note('step_skipped', f'Step {step.step_number} ({step.channel}) skipped: {reason}',
                       step_number=step.step_number, reason=reason),),
    )
    advanced = advance_transition(lead, following, ctx, action='skipped')
    return skipped.then(advanced)


def defer_transition(lead: LeadSnapshot, until: datetime, reason: str) -> Transition:
    return Transition(before=lead, lead=lead.evolve(next_action_at=until), action='deferred', reason=reason)


def failed_transition(lead: LeadSnapshot, step: SequenceStep, error: str) -> Transition:
    ledger_channel = LEDGER_CHANNELS.get(step.channel, 'system')
    entry = LedgerEntry(
        type=f'{ledger_channel}_failed',
        channel=ledger_channel,
        direction='outbound',
        content=(error or 'send failed')[:CONTENT_MAX_CHARS],
        details={'step_number': step.step_number, 'template_id': step.template_id},
    )
    return Transition(before=lead, lead=lead, action='failed', effects=(entry,), reason='send_failed')


def sent_transition(lead: LeadSnapshot, step: SequenceStep, following: Optional[SequenceStep],
                    ctx: SchedulerContext) -> Transition:
    counter = SEND_COUNTERS[step.channel]
    sent = lead.evolve(**{counter: getattr(lead, counter) + 1, 'last_contacted_at': ctx.now})
    return Transition(before=lead, lead=sent, action='sent').then(
        advance_transition(sent, following, ctx, action='sent')
    )


def config_error_transition(lead: LeadSnapshot, step: SequenceStep, problem: str) -> Transition:
    new = lead.evolve(sequence_status='stopped')
    return Transition(
        before=lead, lead=new, action='stopped', reason='config_error',
        effects=(_note('sequence_error', f'Step {step.step_number}: {problem}. Sequence stopped.',
                       step_number=step.step_number),),
    )


# ── Step evaluation ──────────────────────────────────────────────────────────

_OPT_OUT_FIELDS = {
    'sms': 'sms_opt_out',
    'email': 'email_opt_out',
    'ai_call': 'call_opt_out',
}


def skip_reason(session, lead: LeadSnapshot, step: SequenceStep) -> Optional[str]:
    """First matching skip predicate, or None."""
    if step.skip_if_replied and lead.replied:
        return 'replied'
    if step.skip_if_score_above is not None and lead.score > step.skip_if_score_above:
        return 'score_above_threshold'
    if getattr(lead, _OPT_OUT_FIELDS[step.channel]):
        return 'opted_out'
    if step.channel == 'email':
        if is_suppressed(session, email=lead.email):
            return 'suppressed'
    elif is_suppressed(session, phone=lead.phone):
        return 'suppressed'
    return None


def config_problem(step: SequenceStep) -> Optional[str]:
    if step.channel not in CHANNELS:
        return f"unsupported channel '{step.channel}'"
    if step.channel in TEMPLATED_CHANNELS and not step.template_id:
        return f'{step.channel} step has no template'
    return None


def _get_step(session, sequence_id, step_number) -> Optional[SequenceStep]:
    if sequence_id is None:
        return None
    return (
        session.query(SequenceStep)
        .filter(SequenceStep.sequence_id == sequence_id, SequenceStep.step_number == step_number)
        .one_or_none()
    )


def _call_sender(sender, step: SequenceStep, lead_id: int, timeout: Optional[float]):
    if timeout is None:
        return sender.send(lead_id, step.template_id)
    future = _executor.submit(sender.send, lead_id, step.template_id)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise SendTimeoutError(step.channel, timeout) from None


def _send(lead: LeadSnapshot, step: SequenceStep, ctx: SchedulerContext):
    sender = ctx.senders.get(step.channel)
    if sender is None:
        raise LifecycleError(f'No sender registered for {step.channel}')
    breaker = ctx.breakers.get(step.channel)
    if breaker is None:
        return _call_sender(sender, step, lead.id, ctx.send_timeout)
    return breaker.call(_call_sender, sender, step, lead.id, ctx.send_timeout)


def _is_due(lead: LeadSnapshot, ctx: SchedulerContext) -> bool:
    return (
        lead.sequence_status == 'active'
        and lead.status not in TERMINAL_STATUSES
        and lead.next_action_at is not None
        and to_storage(lead.next_action_at) <= to_storage(ctx.now)
    )


def evaluate_step(session, lead: LeadSnapshot, ctx: SchedulerContext) -> Transition:
    """Decide and, where it comes to that, perform the next step for one lead."""
    if not _is_due(lead, ctx):
        return no_change(lead, 'not_due')

    step = _get_step(session, lead.sequence_id, lead.current_step + 1)
    if step is None:
        return complete_transition(lead, f'No step {lead.current_step + 1}; sequence completed')

    if step.channel not in CHANNELS:
        return config_error_transition(lead, step, config_problem(step))

    following = _get_step(session, lead.sequence_id, step.step_number + 1)

    reason = skip_reason(session, lead, step)
    if reason:
        return skip_transition(lead, step, reason, following, ctx)

    # The step's own window decides; the channel rules only shape the deferral target
    if not is_within_window(step.send_window_start, step.send_window_end, step.send_days,
                            now=ctx.now, tz=ctx.timezone):
        until = next_step_send_time(step.channel, step.send_window_start, step.send_window_end, step.send_days,
                                    now=ctx.now, tz=ctx.timezone, windows=ctx.send_windows)
        return defer_transition(lead, until, 'outside_window')

    limit = ctx.daily_limits.get(step.channel)
    if limit is not None:
        sent_today = count_outbound_today(session, LEDGER_CHANNELS[step.channel], ctx.now, ctx.timezone)
        if sent_today >= limit:
            logger.info("%s daily cap reached (%d/%d), deferring lead #%d", step.channel, sent_today, limit, lead.id)
            until = next_valid_send_time(step.channel, CAP_DEFER_HOURS, now=ctx.now, tz=ctx.timezone,
                                         windows=ctx.send_windows)
            return defer_transition(lead, until, 'daily_limit')

    problem = config_problem(step)
    if problem:
        logger.error("Lead #%d: %s", lead.id, problem)
        return config_error_transition(lead, step, problem)

    try:
        result = _send(lead, step, ctx)
    except CircuitOpenError as e:
        delay = (e.retry_after or 0) / 3600.0
        until = next_valid_send_time(step.channel, delay, now=ctx.now, tz=ctx.timezone, windows=ctx.send_windows)
        logger.warning("Lead #%d: %s circuit open, deferring to %s", lead.id, step.channel, until.isoformat())
        return defer_transition(lead, until, 'circuit_open')
    except Exception as e:
        logger.warning("Lead #%d step %d %s send error: %s", lead.id, step.step_number, step.channel, e)
        return failed_transition(lead, step, f'{type(e).__name__}: {e}')

    if not result:
        detail = getattr(result, 'detail', None) or 'sender returned no result'
        logger.info("Lead #%d step %d %s not sent: %s", lead.id, step.step_number, step.channel, detail)
        return failed_transition(lead, step, detail)

    return sent_transition(lead, step, following, ctx)


def process_lead_step(session, lead_id: int, ctx: SchedulerContext) -> Transition:
    """Re-read the lead under its lock, evaluate its step and write the result (flushed)."""
    row = session.get(Lead, lead_id, populate_existing=True)
    if row is None:
        raise LeadNotFoundError(lead_id)
    transition = evaluate_step(session, LeadSnapshot.from_model(row), ctx)
    apply_transition(session, row, transition)
    if transition.action not in ('not_due', 'deferred'):
        logger.info("Lead #%d: %s%s", lead_id, transition.action,
                    f' ({transition.reason})' if transition.reason else '')
    return transition


# ── Tick ─────────────────────────────────────────────────────────────────────

def select_due_leads(session, ctx: SchedulerContext) -> List[int]:
    rows = (
        session.query(Lead.id)
        .filter(
            Lead.sequence_status == 'active',
            Lead.next_action_at <= to_storage(ctx.now),
            Lead.status.notin_(TERMINAL_STATUSES),
        )
        .order_by(Lead.score.desc(), Lead.next_action_at.asc(), Lead.id.asc())
        .limit(ctx.batch_size)
        .all()
    )
    return [r.id for r in rows]


def process_sequence_batch(session, ctx: SchedulerContext) -> BatchResult:
    """Run one tick. Commits per lead; returns counts."""
    result = BatchResult()
    if ctx.system_paused:
        logger.warning("System paused — scheduler tick skipped")
        result.reason = 'system_paused'
        return result

    lead_ids = select_due_leads(session, ctx)
    session.commit()

    for lead_id in lead_ids:
        with ctx.lead_lock(lead_id) as acquired:
            if not acquired:
                result.busy += 1
                continue
            try:
                transition = process_lead_step(session, lead_id, ctx)
                session.commit()
            except Exception as e:
                session.rollback()
                logger.error("Lead #%d failed in scheduler tick: %s", lead_id, e, exc_info=True, extra={'lead_id': lead_id})
                result.processed += 1
                result.failed += 1
                result.errors.append({'lead_id': lead_id, 'error': str(e)[:CONTENT_MAX_CHARS]})
                continue
        result.record(transition)

    if lead_ids:
        logger.info("Scheduler tick: %s", result.to_dict())
    return result


def run_scheduler(now: datetime = None, **overrides) -> BatchResult:
    """One tick with its own session, behind the pause flag and the tick lock."""
    session = get_session()
    try:
        if is_system_paused(session):
            logger.warning("System paused — scheduler tick skipped")
            return BatchResult(reason='system_paused')

        with tick_lock() as acquired:
            if not acquired:
                logger.info("Previous scheduler tick still running — skipping")
                return BatchResult(reason='tick_in_progress')
            ctx = SchedulerContext.from_settings(session, now=now, **overrides)
            return process_sequence_batch(session, ctx)
    finally:
        session.close()
