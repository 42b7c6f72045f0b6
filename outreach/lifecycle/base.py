"""
Lifecycle contracts shared by the scoring engine, tier router and scheduler.

Each component is a state-transition function: it takes an immutable LeadSnapshot
and returns a Transition (the new snapshot plus the side effects it wants). Only
lifecycle.persistence writes a Transition to the database, so the three components
never race on a shared mutable Lead row.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ── Errors ───────────────────────────────────────────────────────────────────

class LifecycleError(Exception):
    """Base class for lead lifecycle errors."""


class LeadNotFoundError(LifecycleError):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class UnknownEventError(LifecycleError):
    def __init__(self, event_type):
        self.event_type = event_type
        super().__init__(f"Unknown score event '{event_type}'")


class InvalidChannelError(LifecycleError):
    def __init__(self, channel):
        self.channel = channel
        super().__init__(f"Unsupported channel '{channel}'")


class ConfigurationError(LifecycleError):
    """Scoring table, tier thresholds or send windows are malformed."""


class LeadBusyError(LifecycleError):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} is locked by another operation")


class LeadStateError(LifecycleError):
    """Operation not allowed in the lead's current status."""


# ── Enums ────────────────────────────────────────────────────────────────────

class ScoreTier(str, Enum):
    DEAD = 'dead'
    COLD = 'cold'
    WARM = 'warm'
    HOT = 'hot'
    QUALIFIED = 'qualified'


class ScoreEvent(str, Enum):
    SMS_DELIVERED = 'sms_delivered'
    EMAIL_DELIVERED = 'email_delivered'
    EMAIL_OPENED = 'email_opened'
    EMAIL_OPENED_AGAIN = 'email_opened_again'
    EMAIL_CLICKED = 'email_clicked'
    VIDEO_CLICKED = 'video_clicked'
    SMS_REPLIED = 'sms_replied'
    EMAIL_REPLIED = 'email_replied'
    CALL_ANSWERED = 'call_answered'
    CALL_LONG = 'call_long'
    CALL_QUALIFIED = 'call_qualified'
    WANTS_MEETING = 'wants_meeting'
    WANTS_APP = 'wants_app'
    MEETING_BOOKED = 'meeting_booked'
    APP_DOWNLOADED = 'app_downloaded'
    NEGATIVE_REPLY = 'negative_reply'
    OPT_OUT = 'opt_out'
    WRONG_NUMBER = 'wrong_number'
    NO_ANSWER_3X = 'no_answer_3x'
    MANUAL = 'manual'
    INACTIVITY_DECAY = 'inactivity_decay'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownEventError(value) from None


# ── Lead snapshot ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LeadSnapshot:
    """Immutable copy of the Lead columns the lifecycle engine reads or writes."""
    id: int
    status: str = 'new'
    score: int = 0
    score_tier: str = ScoreTier.COLD.value
    sequence_id: Optional[int] = None
    current_step: int = 0
    sequence_status: str = 'pending'
    next_action_at: Optional[datetime] = None
    sms_opt_out: bool = False
    email_opt_out: bool = False
    call_opt_out: bool = False
    replied: bool = False
    meeting_booked: bool = False
    app_downloaded: bool = False
    last_contacted_at: Optional[datetime] = None
    last_reply_at: Optional[datetime] = None
    total_sms_sent: int = 0
    total_emails_sent: int = 0
    total_calls_made: int = 0
    phone: Optional[str] = None
    email: Optional[str] = None
    first_name: str = ''
    last_name: str = ''
    company_name: str = ''

    # Contact fields are owned by ingestion and never written back
    READ_ONLY = ('id', 'phone', 'email', 'first_name', 'last_name', 'company_name')

    @classmethod
    def from_model(cls, lead) -> 'LeadSnapshot':
        values = {}
        for f in fields(cls):
            value = getattr(lead, f.name, None)
            if value is None and f.name not in ('next_action_at', 'last_contacted_at', 'last_reply_at',
                                                 'sequence_id', 'phone', 'email'):
                continue  # fall back to the dataclass default
            values[f.name] = value
        return cls(**values)

    @property
    def any_opt_out(self) -> bool:
        return bool(self.sms_opt_out or self.email_opt_out or self.call_opt_out)

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or f"Lead #{self.id}"

    def evolve(self, **changes) -> 'LeadSnapshot':
        return replace(self, **changes)

    def changes_from(self, previous: 'LeadSnapshot') -> Dict[str, Any]:
        """Writable fields whose value differs from `previous`."""
        diff = {}
        for f in fields(self):
            if f.name in self.READ_ONLY:
                continue
            new_value = getattr(self, f.name)
            if new_value != getattr(previous, f.name):
                diff[f.name] = new_value
        return diff


# ── Side effects ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LedgerEntry:
    """Activity row to append."""
    type: str
    content: str = ''
    channel: str = 'system'
    direction: Optional[str] = None
    score_before: Optional[int] = None
    score_after: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Suppression:
    """Set-add of one contact identifier to the suppression list."""
    identifier_type: str  # phone / email
    identifier: str
    reason: str


@dataclass(frozen=True)
class NotificationRequest:
    """Fire-and-forget notification; delivery failure never undoes the transition."""
    type: str  # qualifying / ops_alert / rep_alert
    lead_id: int
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AutoAction:
    """Follow-up for the channel senders to run asynchronously."""
    type: str  # send_meeting_link / send_app_link
    lead_id: int


@dataclass(frozen=True)
class Transition:
    """New lead state plus the side effects that go with it."""
    before: LeadSnapshot
    lead: LeadSnapshot
    action: str
    effects: Tuple[Any, ...] = ()
    reason: Optional[str] = None

    @property
    def changes(self) -> Dict[str, Any]:
        return self.lead.changes_from(self.before)

    @property
    def ledger_entries(self) -> List[LedgerEntry]:
        return [e for e in self.effects if isinstance(e, LedgerEntry)]

    @property
    def suppressions(self) -> List[Suppression]:
        return [e for e in self.effects if isinstance(e, Suppression)]

    @property
    def notifications(self) -> List[NotificationRequest]:
        return [e for e in self.effects if isinstance(e, NotificationRequest)]

    @property
    def auto_actions(self) -> List[AutoAction]:
        return [e for e in self.effects if isinstance(e, AutoAction)]

    def then(self, other: 'Transition') -> 'Transition':
        """Chain `other` (computed from self.lead) onto this transition."""
        return Transition(
            before=self.before,
            lead=other.lead,
            action=other.action,
            effects=self.effects + other.effects,
            reason=other.reason or self.reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action': self.action,
            'reason': self.reason,
            'changes': {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in self.changes.items()},
            'notifications': [{'type': n.type, 'message': n.message} for n in self.notifications],
            'auto_actions': [{'type': a.type, 'lead_id': a.lead_id} for a in self.auto_actions],
        }


def no_change(lead: LeadSnapshot, action: str = 'none', *effects, reason: str = None) -> Transition:
    return Transition(before=lead, lead=lead, action=action, effects=tuple(effects), reason=reason)
