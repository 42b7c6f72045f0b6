"""
Send-window arithmetic.

All rules are evaluated in the configured local timezone:
  - Mon–Fri: every channel, inside its own [start, end) window
  - Saturday: email only, fixed 10:00–14:00
  - Sunday: nothing

Timestamps go to the database as naive UTC (to_storage / from_storage).
"""
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Iterable, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from outreach.config import DEFAULT_TIMEZONE, SEND_WINDOWS, SATURDAY_EMAIL_WINDOW
from outreach.lifecycle.base import InvalidChannelError

logger = logging.getLogger('lifecycle.time_window')

DAY_NAMES = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')
WEEKDAYS = frozenset(DAY_NAMES[:5])
SATURDAY = 5
SUNDAY = 6

# Scan horizon for next_valid_send_time
HORIZON_DAYS = 7
# Step windows also try today's weekday one week out
STEP_HORIZON_DAYS = HORIZON_DAYS + 1


@lru_cache(maxsize=16)
def get_zone(name: str = None) -> ZoneInfo:
    return ZoneInfo(name or DEFAULT_TIMEZONE)


def _resolve_tz(tz) -> ZoneInfo:
    if tz is None or isinstance(tz, str):
        return get_zone(tz)
    return tz


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_now(now: Optional[datetime], tz) -> datetime:
    zone = _resolve_tz(tz)
    if now is None:
        now = utcnow()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)  # naive values are stored UTC
    return now.astimezone(zone)


def to_storage(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime → naive UTC for DateTime columns."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC column value → aware UTC datetime."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_days(days: Union[str, Iterable[str], None]) -> frozenset:
    """Normalize 'mon,tue' / ['Mon', 'tue'] into a set of lowercase day names."""
    if days is None:
        return WEEKDAYS
    if isinstance(days, str):
        days = days.split(',')
    return frozenset(d.strip().lower()[:3] for d in days if d and d.strip())


def channel_window(channel: str, windows: Dict[str, Tuple[int, int]] = None) -> Tuple[int, int]:
    windows = windows or SEND_WINDOWS
    if channel not in windows:
        raise InvalidChannelError(channel)
    return windows[channel]


def _day_window(channel: str, weekday: int, windows) -> Optional[Tuple[int, int]]:
    """The [start, end) hours `channel` may send on `weekday`, or None."""
    if weekday == SUNDAY:
        return None
    if weekday == SATURDAY:
        return SATURDAY_EMAIL_WINDOW if channel == 'email' else None
    start, end = channel_window(channel, windows)
    if start >= end:
        return None
    return start, end


def _at_hour(dt: datetime, hour: int) -> datetime:
    return dt.replace(hour=hour, minute=0, second=0, microsecond=0)


def _scan(candidate: datetime, window_for, horizon: int = HORIZON_DAYS) -> Optional[datetime]:
    """First instant >= candidate inside window_for(day), within `horizon` days."""
    for offset in range(horizon):
        day = candidate + timedelta(days=offset)
        window = window_for(day)
        if window is None:
            continue
        win_start, win_end = window

        if offset == 0:
            if win_start <= day.hour < win_end:
                return day
            if day.hour < win_start:
                return _at_hour(day, win_start)
            continue  # past today's window

        return _at_hour(day, win_start)
    return None


def next_valid_send_time(channel: str, delay_hours: float = 0, now: datetime = None,
                         tz=None, windows: Dict[str, Tuple[int, int]] = None) -> datetime:
    """
    Earliest time at or after now + delay_hours when `channel` may send.

    Returns an aware datetime in the configured timezone. If no day in the
    7-day horizon qualifies, falls back to tomorrow at the channel's window start.
    """
    start_hour, _ = channel_window(channel, windows)
    local_now = _local_now(now, tz)
    candidate = local_now + timedelta(hours=delay_hours or 0)

    found = _scan(candidate, lambda day: _day_window(channel, day.weekday(), windows))
    if found is not None:
        return found

    fallback = _at_hour(local_now + timedelta(days=1), start_hour)
    logger.warning(
        "No valid %s send window in the next %d days (windows=%s), falling back to %s",
        channel, HORIZON_DAYS, windows or SEND_WINDOWS, fallback.isoformat(),
    )
    return fallback


def next_step_send_time(channel: str, start_hour: int, end_hour: int, allowed_days=None,
                        delay_hours: float = 0, now: datetime = None, tz=None,
                        windows: Dict[str, Tuple[int, int]] = None) -> datetime:
    """
    Like next_valid_send_time, but also inside a step's own hours and days.

    The usable window on a day is the overlap of the channel rules and the step's
    [start_hour, end_hour). The scan runs through the same weekday next week, so a
    single-day step that missed today's window lands on next week's. If nothing
    overlaps, falls back to the channel's first slot from tomorrow on.
    """
    days = parse_days(allowed_days)
    local_now = _local_now(now, tz)
    candidate = local_now + timedelta(hours=delay_hours or 0)

    def window_for(day):
        if DAY_NAMES[day.weekday()] not in days:
            return None
        channel_hours = _day_window(channel, day.weekday(), windows)
        if channel_hours is None:
            return None
        lo, hi = max(channel_hours[0], start_hour), min(channel_hours[1], end_hour)
        return (lo, hi) if lo < hi else None

    found = _scan(candidate, window_for, horizon=STEP_HORIZON_DAYS)
    if found is not None:
        return found

    tomorrow = _at_hour(local_now + timedelta(days=1), 0)
    fallback = next_valid_send_time(channel, 0, now=tomorrow, tz=tz, windows=windows)
    logger.warning(
        "No %s slot inside step window %d-%d on %s in the next %d days, falling back to %s",
        channel, start_hour, end_hour, ','.join(sorted(days)) or 'no days', STEP_HORIZON_DAYS, fallback.isoformat(),
    )
    return fallback


def is_within_window(start_hour: int, end_hour: int, allowed_days=None,
                     now: datetime = None, tz=None) -> bool:
    """True if now falls on an allowed day inside [start_hour, end_hour)."""
    local = _local_now(now, tz)
    return DAY_NAMES[local.weekday()] in parse_days(allowed_days) and start_hour <= local.hour < end_hour


def is_within_send_window(channel: str, now: datetime = None, tz=None,
                          windows: Dict[str, Tuple[int, int]] = None) -> bool:
    """Global per-channel rules (weekday window, Saturday email, no Sunday)."""
    local = _local_now(now, tz)
    window = _day_window(channel, local.weekday(), windows)
    if window is None:
        return False
    return window[0] <= local.hour < window[1]


def local_day_bounds(now: datetime = None, tz=None) -> Tuple[datetime, datetime]:
    """[local midnight, next local midnight) as naive UTC, for 'today' ledger counts."""
    local = _local_now(now, tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return to_storage(start), to_storage(end)
