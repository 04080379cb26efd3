"""Unit Tests: clock and timezone handling."""

from datetime import datetime, timedelta, timezone

from section_pulse.clock import FixedClock, SystemClock, resolve_timezone, to_local


def test_fixed_clock_advances_without_sleeping() -> None:
    clock = FixedClock(datetime(2024, 3, 10, 6, 0))

    assert clock.now() == datetime(2024, 3, 10, 6, 0)
    assert clock.advance(minutes=61) == datetime(2024, 3, 10, 7, 1)
    assert clock.now() == datetime(2024, 3, 10, 7, 1)

    clock.set(datetime(2024, 3, 11, 0, 1))
    assert clock.now().date().day == 11


def test_to_local_converts_aware_and_passes_naive() -> None:
    kolkata = resolve_timezone("Asia/Kolkata")
    aware = datetime(2024, 3, 10, 0, 30, tzinfo=timezone.utc)

    assert to_local(aware, kolkata) == datetime(2024, 3, 10, 6, 0)
    assert to_local(datetime(2024, 3, 10, 6, 0), kolkata) == datetime(2024, 3, 10, 6, 0)


def test_utc_to_local_can_cross_the_day_boundary() -> None:
    """A late-evening UTC collection belongs to the next local day."""
    kolkata = resolve_timezone("Asia/Kolkata")
    aware = datetime(2024, 3, 10, 19, 0, tzinfo=timezone.utc)

    assert to_local(aware, kolkata).date() == datetime(2024, 3, 11).date()


def test_system_clock_returns_naive_local_time() -> None:
    clock = SystemClock("UTC")
    now = clock.now()

    assert now.tzinfo is None
    assert abs(datetime.now(timezone.utc).replace(tzinfo=None) - now) < timedelta(seconds=5)
    assert clock.tz is timezone.utc
