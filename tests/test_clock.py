from __future__ import annotations

from datetime import date, datetime, timezone

from nora_today.core.clock import ReferenceClock, ensure_aware


def test_day_bounds_are_reference_midnights_in_utc():
    clock = ReferenceClock("Asia/Singapore")

    start, end = clock.day_bounds(date(2025, 3, 12))

    assert start == datetime(2025, 3, 11, 16, 0, tzinfo=timezone.utc)
    assert end == datetime(2025, 3, 12, 16, 0, tzinfo=timezone.utc)
    assert clock.is_on_day(start, date(2025, 3, 12)) is True
    assert clock.is_on_day(end, date(2025, 3, 12)) is False
    assert clock.is_on_day(None, date(2025, 3, 12)) is False


def test_naive_timestamps_are_treated_as_utc():
    clock = ReferenceClock("Asia/Singapore")
    naive = datetime(2025, 3, 11, 17, 0)

    assert ensure_aware(naive).tzinfo is timezone.utc
    assert clock.day_of(naive) == date(2025, 3, 12)


def test_calendar_helpers():
    clock = ReferenceClock("America/New_York", now_func=lambda: datetime(2025, 3, 12, 3, 0, tzinfo=timezone.utc))

    assert clock.today() == date(2025, 3, 11)
    assert clock.yesterday(date(2025, 3, 1)) == date(2025, 2, 28)
    assert clock.week_start(date(2025, 3, 16)) == date(2025, 3, 10)
