"""
Scoring engine — applies a named engagement event to a lead's score.

Points come from an enum-keyed table (scoring_config.yaml, hardcoded fallback) and
the tier from an ordered list of (tier, lower bound) pairs. Both are validated at
load time. Every change is written to the ledger with score_before/score_after so
score history can be rebuilt from the activities table alone.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import yaml
from sqlalchemy import or_

from outreach.lifecycle.base import (
    ConfigurationError, LeadNotFoundError, LeadSnapshot, LedgerEntry,
    ScoreEvent, ScoreTier, Transition,
)
from outreach.lifecycle.persistence import apply_transition
from outreach.lifecycle.time_window import to_storage, utcnow
from outreach.models.lead import Lead

logger = logging.getLogger('lifecycle.scoring')


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if the YAML file is missing."""
    return {
        'version': 'default',
        'points': {
            'sms_delivered': 1,
            'email_delivered': 1,
            'email_opened': 3,
            'email_opened_again': 2,
            'email_clicked': 5,
            'video_clicked': 7,
            'sms_replied': 10,
            'email_replied': 10,
            'call_answered': 10,
            'call_long': 5,
            'call_qualified': 20,
            'wants_meeting': 15,
            'wants_app': 10,
            'meeting_booked': 30,
            'app_downloaded': 25,
            'negative_reply': -15,
            'opt_out': -100,
            'wrong_number': -50,
            'no_answer_3x': -10,
            'manual': 0,
            'inactivity_decay': -3,
        },
        'tiers': [
            ['dead', None],
            ['cold', 0],
            ['warm', 21],
            ['hot', 41],
            ['qualified', 61],
        ],
        'decay': {
            'min_score': 10,
            'inactive_days': 7,
        },
    }


def validate_point_table(raw: Dict) -> Dict[ScoreEvent, int]:
    """Every ScoreEvent must have an integer value; unknown keys are rejected."""
    if not isinstance(raw, dict):
        raise ConfigurationError("points must be a mapping of event → integer")

    unknown = sorted(set(raw) - {e.value for e in ScoreEvent})
    if unknown:
        raise ConfigurationError(f"Unknown score events in config: {', '.join(unknown)}")

    table = {}
    for event in ScoreEvent:
        if event.value not in raw:
            raise ConfigurationError(f"No point value configured for '{event.value}'")
        value = raw[event.value]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"Point value for '{event.value}' must be an integer, got {value!r}")
        table[event] = value
    return table


def validate_tier_thresholds(raw) -> List[Tuple[ScoreTier, Optional[int]]]:
    """
    Ordered (tier, lower_bound) pairs. The first tier is unbounded below, every
    other bound is strictly greater than the previous one, and each tier appears
    exactly once — so every integer maps to exactly one tier.
    """
    try:
        pairs = [(ScoreTier(name), bound) for name, bound in raw]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid tier thresholds: {e}") from None

    tiers = [tier for tier, _ in pairs]
    if sorted(tiers, key=lambda t: t.value) != sorted(ScoreTier, key=lambda t: t.value):
        raise ConfigurationError("Tier thresholds must list every tier exactly once")

    if pairs[0][1] is not None:
        raise ConfigurationError(f"Lowest tier '{pairs[0][0].value}' must have no lower bound")

    previous = None
    for tier, bound in pairs[1:]:
        if isinstance(bound, bool) or not isinstance(bound, int):
            raise ConfigurationError(f"Lower bound for '{tier.value}' must be an integer")
        if previous is not None and bound <= previous:
            raise ConfigurationError(
                f"Tier bounds must be strictly ascending ('{tier.value}' starts at {bound} <= {previous})"
            )
        previous = bound

    return pairs


def load_scoring_config():
    """Load + validate scoring config, cached. Missing YAML falls back to defaults."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.path.join(os.path.dirname(__file__), 'scoring_config.yaml')
    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
        logger.info("Scoring config loaded from YAML (version=%s)", raw.get('version', '?'))
    except (OSError, yaml.YAMLError, AttributeError) as e:
        logger.warning("Scoring YAML unavailable (%s), using defaults", e)
        raw = _default_config()

    defaults = _default_config()
    _scoring_config = {
        'version': raw.get('version', 'default'),
        'points': validate_point_table(raw.get('points', defaults['points'])),
        'tiers': validate_tier_thresholds(raw.get('tiers', defaults['tiers'])),
        'decay': {**defaults['decay'], **(raw.get('decay') or {})},
    }
    return _scoring_config


def points_for(event) -> int:
    return load_scoring_config()['points'][ScoreEvent.parse(event)]


def calculate_tier(score: int) -> ScoreTier:
    """Highest tier whose lower bound is <= score."""
    tiers = load_scoring_config()['tiers']
    current = tiers[0][0]
    for tier, bound in tiers[1:]:
        if score >= bound:
            current = tier
        else:
            break
    return current


# ── Transitions ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoreResult:
    lead: LeadSnapshot
    tier_changed: bool
    old_tier: str
    new_tier: str
    points: int
    event: str

    def to_dict(self):
        return {
            'lead_id': self.lead.id,
            'score': self.lead.score,
            'score_tier': self.lead.score_tier,
            'tier_changed': self.tier_changed,
            'old_tier': self.old_tier,
            'new_tier': self.new_tier,
            'points': self.points,
            'event': self.event,
        }


def score_transition(lead: LeadSnapshot, event, bonus_points: int = 0) -> Transition:
    """Pure: the new score/tier for `event` plus its ledger entry."""
    event = ScoreEvent.parse(event)
    points = points_for(event) + int(bonus_points or 0)
    old_score = lead.score
    new_score = old_score + points
    new_tier = calculate_tier(new_score).value

    entry = LedgerEntry(
        type='score_change',
        content=f"Score {old_score} → {new_score} ({event.value}: {points:+d}) [{new_tier}]",
        score_before=old_score,
        score_after=new_score,
        details={'event': event.value, 'points': points, 'bonus_points': int(bonus_points or 0)},
    )
    return Transition(
        before=lead,
        lead=lead.evolve(score=new_score, score_tier=new_tier),
        action='scored',
        effects=(entry,),
        reason=event.value,
    )


def apply_event(session, lead_id: int, event_type, bonus_points: int = 0) -> ScoreResult:
    """
    Apply `event_type` to a lead and persist it (flushed, not committed).

    The lead row is read with SELECT ... FOR UPDATE so concurrent callers on
    Postgres serialize on the row; callers also hold the per-lead Redis lock.
    """
    event = ScoreEvent.parse(event_type)
    row = session.query(Lead).filter(Lead.id == lead_id).with_for_update().one_or_none()
    if row is None:
        raise LeadNotFoundError(lead_id)

    before = LeadSnapshot.from_model(row)
    transition = score_transition(before, event, bonus_points)
    apply_transition(session, row, transition)

    old_tier, new_tier = before.score_tier, transition.lead.score_tier
    tier_changed = old_tier != new_tier
    logger.info(
        "Lead #%d: %d → %d (%s) tier %s → %s%s",
        lead_id, before.score, transition.lead.score, event.value, old_tier, new_tier,
        ' *** CHANGED ***' if tier_changed else '',
    )
    return ScoreResult(
        lead=transition.lead,
        tier_changed=tier_changed,
        old_tier=old_tier,
        new_tier=new_tier,
        points=transition.lead.score - before.score,
        event=event.value,
    )


def find_decay_candidates(session, now: datetime = None) -> List[int]:
    """Active leads above the decay floor with no contact or reply in the inactivity window."""
    decay = load_scoring_config()['decay']
    cutoff = to_storage((now or utcnow()) - timedelta(days=decay['inactive_days']))
    rows = (
        session.query(Lead.id)
        .filter(
            Lead.sequence_status == 'active',
            Lead.score > decay['min_score'],
            or_(Lead.last_contacted_at.is_(None), Lead.last_contacted_at < cutoff),
            or_(Lead.last_reply_at.is_(None), Lead.last_reply_at < cutoff),
        )
        .order_by(Lead.id)
        .all()
    )
    return [r.id for r in rows]


def apply_score_decay(session, now: datetime = None, lead_ids: List[int] = None) -> List[ScoreResult]:
    """Apply inactivity_decay to every decay candidate (flushed, not committed)."""
    if lead_ids is None:
        lead_ids = find_decay_candidates(session, now)
    results = [apply_event(session, lead_id, ScoreEvent.INACTIVITY_DECAY) for lead_id in lead_ids]
    if results:
        logger.info("Score decay applied to %d leads", len(results))
    return results
