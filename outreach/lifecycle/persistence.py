"""
Single writer for lifecycle transitions.

apply_transition() copies the changed snapshot fields onto the Lead row, appends
ledger entries in order and set-adds suppression entries. It flushes but never
commits — the caller owns the transaction. Notifications and auto-actions are not
handled here; they are dispatched after commit (see outreach.tasks).
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from outreach.lifecycle.base import LedgerEntry, Transition
from outreach.lifecycle.time_window import local_day_bounds, to_storage
from outreach.models.activity import Activity
from outreach.models.call_log import CallLog
from outreach.models.suppression import SuppressionEntry

logger = logging.getLogger('lifecycle.persistence')

# Ledger content column limit
CONTENT_MAX_CHARS = 500


def apply_transition(session, lead, transition: Transition):
    """Write `transition` onto the `lead` row. Returns the row."""
    for name, value in transition.changes.items():
        if isinstance(value, datetime):
            value = to_storage(value)
        setattr(lead, name, value)

    for entry in transition.ledger_entries:
        append_activity(session, lead.id, entry)

    for suppression in transition.suppressions:
        add_suppression(session, suppression.identifier_type, suppression.identifier, suppression.reason)

    session.flush()
    return lead


def append_activity(session, lead_id: int, entry: LedgerEntry, created_at: datetime = None) -> Activity:
    activity = Activity(
        lead_id=lead_id,
        type=entry.type,
        channel=entry.channel or 'system',
        direction=entry.direction,
        content=(entry.content or '')[:CONTENT_MAX_CHARS],
        details=entry.details,
        score_before=entry.score_before,
        score_after=entry.score_after,
    )
    if created_at is not None:
        activity.created_at = to_storage(created_at)
    session.add(activity)
    return activity


# ── Suppression list ─────────────────────────────────────────────────────────

def _normalize(identifier_type: str, identifier: Optional[str]) -> Optional[str]:
    if not identifier:
        return None
    identifier = identifier.strip()
    if identifier_type == 'email':
        identifier = identifier.lower()
    return identifier or None


def add_suppression(session, identifier_type: str, identifier: str, reason: str = '') -> bool:
    """
    Set-add one identifier. Returns True if a new row was inserted.

    An existing entry keeps its original reason.
    """
    value = _normalize(identifier_type, identifier)
    if value is None:
        return False

    exists = session.query(SuppressionEntry.id).filter_by(
        identifier_type=identifier_type,
        identifier=value,
    ).first()
    if exists:
        return False

    try:
        with session.begin_nested():
            session.add(SuppressionEntry(identifier_type=identifier_type, identifier=value, reason=reason))
    except IntegrityError:
        # Another writer inserted the same identifier first
        logger.debug("Suppression for %s %s already present", identifier_type, value)
        return False

    logger.info("Suppressed %s %s (%s)", identifier_type, value, reason)
    return True


def is_suppressed(session, phone: str = None, email: str = None) -> bool:
    clauses = []
    phone = _normalize('phone', phone)
    email = _normalize('email', email)
    if phone:
        clauses.append((SuppressionEntry.identifier_type == 'phone') & (SuppressionEntry.identifier == phone))
    if email:
        clauses.append((SuppressionEntry.identifier_type == 'email') & (SuppressionEntry.identifier == email))
    if not clauses:
        return False
    return session.query(SuppressionEntry.id).filter(or_(*clauses)).first() is not None


# ── Ledger reads ─────────────────────────────────────────────────────────────

def count_outbound_today(session, ledger_channel: str, now: datetime = None, tz=None) -> int:
    """Outbound ledger entries on `ledger_channel` since local midnight."""
    start, end = local_day_bounds(now, tz)
    return session.query(func.count(Activity.id)).filter(
        Activity.channel == ledger_channel,
        Activity.direction == 'outbound',
        Activity.created_at >= start,
        Activity.created_at < end,
    ).scalar() or 0


def get_ledger(session, lead_id: int, limit: int = 100):
    """Ledger entries for one lead in insertion order."""
    return (
        session.query(Activity)
        .filter(Activity.lead_id == lead_id)
        .order_by(Activity.id.asc())
        .limit(limit)
        .all()
    )


def latest_call_log(session, lead_id: int) -> Optional[CallLog]:
    return (
        session.query(CallLog)
        .filter(CallLog.lead_id == lead_id)
        .order_by(CallLog.id.desc())
        .first()
    )
