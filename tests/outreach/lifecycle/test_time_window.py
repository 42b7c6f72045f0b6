"""Tests for outreach.lifecycle.time_window — send windows across days and timezones."""
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from outreach.lifecycle.base import InvalidChannelError
from outreach.lifecycle.time_window import (
    from_storage, is_within_send_window, is_within_window, local_day_bounds,
    next_step_send_time, next_valid_send_time, parse_days, to_storage,
)

NY = ZoneInfo('America/New_York')


def local(year, month, day, hour, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=NY)


# Oct 2026: Fri 16, Sat 17, Sun 18, Mon 19, Tue 20, Wed 21
FRIDAY = (2026, 10, 16)
SATURDAY = (2026, 10, 17)
SUNDAY = (2026, 10, 18)
MONDAY = (2026, 10, 19)
TUESDAY = (2026, 10, 20)
WEDNESDAY = (2026, 10, 21)


class TestNextValidSendTime:

    def test_inside_window_returns_now_unchanged(self):
        now = local(*MONDAY, 10, 15)
        assert next_valid_send_time('sms', 0, now=now, tz='America/New_York') == now

    def test_before_window_snaps_to_start(self):
        assert next_valid_send_time('sms', 0, now=local(*MONDAY, 7, 30)) == local(*MONDAY, 9)

    def test_after_window_moves_to_next_day(self):
        assert next_valid_send_time('sms', 0, now=local(*MONDAY, 20, 30)) == local(*TUESDAY, 9)

    def test_window_end_is_exclusive(self):
        assert next_valid_send_time('sms', 0, now=local(*MONDAY, 20, 0)) == local(*TUESDAY, 9)

    def test_delay_is_added_before_scanning(self):
        assert next_valid_send_time('sms', 24, now=local(*MONDAY, 10)) == local(*TUESDAY, 10)

    def test_delay_landing_at_night_snaps_to_next_morning(self):
        assert next_valid_send_time('email', 12, now=local(*MONDAY, 10)) == local(*TUESDAY, 8)

    def test_saturday_sms_moves_to_monday(self):
        assert next_valid_send_time('sms', 0, now=local(*SATURDAY, 11)) == local(*MONDAY, 9)

    def test_sunday_sms_moves_to_monday(self):
        assert next_valid_send_time('sms', 0, now=local(*SUNDAY, 15)) == local(*MONDAY, 9)

    def test_saturday_early_email_snaps_to_saturday_ten(self):
        assert next_valid_send_time('email', 0, now=local(*SATURDAY, 9)) == local(*SATURDAY, 10)

    def test_saturday_email_inside_window(self):
        now = local(*SATURDAY, 12, 30)
        assert next_valid_send_time('email', 0, now=now) == now

    def test_saturday_afternoon_email_moves_to_monday(self):
        assert next_valid_send_time('email', 0, now=local(*SATURDAY, 14)) == local(*MONDAY, 8)

    def test_friday_night_email_goes_to_saturday(self):
        assert next_valid_send_time('email', 0, now=local(*FRIDAY, 21, 30)) == local(*SATURDAY, 10)

    def test_friday_evening_call_goes_to_monday(self):
        assert next_valid_send_time('ai_call', 0, now=local(*FRIDAY, 18)) == local(*MONDAY, 10)

    def test_naive_now_is_treated_as_utc(self):
        # 14:00 UTC = 10:00 EDT
        result = next_valid_send_time('sms', 0, now=datetime(2026, 10, 19, 14, 0))
        assert result == local(*MONDAY, 10)

    def test_result_is_in_configured_timezone(self):
        result = next_valid_send_time('sms', 0, now=datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc))
        assert result.utcoffset() == NY.utcoffset(datetime(2026, 10, 19, 10))

    def test_other_timezone(self):
        # 10:00 EDT is 07:00 in Los Angeles → snap to 09:00 PDT
        now = local(*MONDAY, 10)
        result = next_valid_send_time('sms', 0, now=now, tz='America/Los_Angeles')
        assert result == datetime(2026, 10, 19, 9, tzinfo=ZoneInfo('America/Los_Angeles'))

    def test_custom_windows(self):
        windows = {'sms': (12, 13), 'email': (8, 21), 'ai_call': (10, 17)}
        assert next_valid_send_time('sms', 0, now=local(*MONDAY, 10), windows=windows) == local(*MONDAY, 12)

    def test_empty_window_falls_back_to_tomorrow_at_start(self, caplog):
        windows = {'sms': (9, 9), 'email': (8, 21), 'ai_call': (10, 17)}
        with caplog.at_level(logging.WARNING, logger='lifecycle.time_window'):
            result = next_valid_send_time('sms', 0, now=local(*MONDAY, 10, 45), windows=windows)
        assert result == local(*TUESDAY, 9)
        assert 'falling back' in caplog.text

    def test_inverted_window_falls_back(self):
        windows = {'sms': (20, 9), 'email': (8, 21), 'ai_call': (10, 17)}
        assert next_valid_send_time('sms', 0, now=local(*SATURDAY, 11), windows=windows) == local(*SUNDAY, 20)

    def test_unknown_channel_raises(self):
        with pytest.raises(InvalidChannelError):
            next_valid_send_time('fax', 0, now=local(*MONDAY, 10))


class TestNextStepSendTime:

    def test_narrow_step_window_later_today(self):
        result = next_step_send_time('sms', 13, 15, 'mon,tue,wed,thu,fri', now=local(*MONDAY, 10))
        assert result == local(*MONDAY, 13)

    def test_step_days_restrict_channel_days(self):
        result = next_step_send_time('sms', 9, 20, 'wed', now=local(*MONDAY, 10))
        assert result == local(*WEDNESDAY, 9)

    def test_channel_rules_still_apply(self):
        # Step allows Saturday but SMS never sends on Saturday
        result = next_step_send_time('sms', 9, 20, 'sat,mon', now=local(*SATURDAY, 11))
        assert result == local(*MONDAY, 9)

    def test_overlap_uses_later_start(self):
        result = next_step_send_time('ai_call', 8, 12, None, now=local(*MONDAY, 7))
        assert result == local(*MONDAY, 10)

    def test_no_overlap_falls_back_to_channel_slot(self):
        result = next_step_send_time('ai_call', 18, 20, None, now=local(*MONDAY, 11))
        assert result == local(*TUESDAY, 10)

    def test_single_day_step_after_window_waits_a_week(self):
        result = next_step_send_time('email', 10, 14, 'sat', now=local(*SATURDAY, 15))
        assert result == local(2026, 10, 24, 10)

    def test_fallback_never_lands_on_sunday(self):
        # SMS never sends on Sunday, so a Sunday-only SMS step has no slot at all
        result = next_step_send_time('sms', 9, 20, 'sun', now=local(*SATURDAY, 15))
        assert result == local(*MONDAY, 9)
        assert result.weekday() != 6


class TestIsWithinWindow:

    def test_inside(self):
        assert is_within_window(9, 20, {'mon', 'tue'}, now=local(*MONDAY, 10)) is True

    def test_wrong_day(self):
        assert is_within_window(9, 20, 'tue,wed', now=local(*MONDAY, 10)) is False

    def test_end_hour_exclusive(self):
        assert is_within_window(9, 20, 'mon', now=local(*MONDAY, 20)) is False

    def test_start_hour_inclusive(self):
        assert is_within_window(9, 20, ['Mon'], now=local(*MONDAY, 9)) is True

    def test_default_days_are_weekdays(self):
        assert is_within_window(9, 20, None, now=local(*SATURDAY, 10)) is False


class TestIsWithinSendWindow:

    def test_saturday_sms_blocked(self):
        assert is_within_send_window('sms', local(*SATURDAY, 11)) is False

    def test_saturday_email_allowed(self):
        assert is_within_send_window('email', local(*SATURDAY, 11)) is True

    def test_saturday_email_after_two(self):
        assert is_within_send_window('email', local(*SATURDAY, 14)) is False

    def test_sunday_nothing(self):
        assert is_within_send_window('email', local(*SUNDAY, 11)) is False


class TestHelpers:

    def test_parse_days_string(self):
        assert parse_days('Mon, tue ,WEDNESDAY') == frozenset({'mon', 'tue', 'wed'})

    def test_to_storage_is_naive_utc(self):
        assert to_storage(local(*MONDAY, 10)) == datetime(2026, 10, 19, 14, 0)

    def test_from_storage_round_trip(self):
        stored = to_storage(local(*MONDAY, 10))
        assert from_storage(stored) == local(*MONDAY, 10)

    def test_storage_none(self):
        assert to_storage(None) is None
        assert from_storage(None) is None

    def test_local_day_bounds(self):
        start, end = local_day_bounds(local(*MONDAY, 10))
        assert start == datetime(2026, 10, 19, 4, 0)
        assert end == datetime(2026, 10, 20, 4, 0)
