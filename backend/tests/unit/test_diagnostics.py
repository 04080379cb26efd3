"""
Unit Tests: data-quality diagnostics

find_issues is pure, so rows are built directly as PulseView snapshots.
"""

from datetime import date, datetime

from section_pulse.config import PulseConfig
from section_pulse.pulse.diagnostics import find_issues
from section_pulse.schemas import PulseStatus, PulseView

AS_OF = datetime(2024, 3, 10, 12, 0)
TODAY = AS_OF.date()
CONFIG = PulseConfig(pause_after_minutes=5, end_after_minutes=60)


def make_pulse(**kwargs) -> PulseView:
    defaults = {
        "id": 1,
        "society_id": 7,
        "pulse_date": TODAY,
        "pulse_status": PulseStatus.ACTIVE,
        "first_collection_time": datetime(2024, 3, 10, 11, 50),
        "last_collection_time": datetime(2024, 3, 10, 11, 58),
        "section_end_time": None,
        "total_collections": 3,
        "inactive_days": 0,
        "last_checked": AS_OF,
    }
    defaults.update(kwargs)
    return PulseView(**defaults)


def codes(rows) -> list[str]:
    return [issue.code for issue in find_issues(rows, AS_OF, CONFIG)]


def test_healthy_rows_have_no_issues() -> None:
    rows = [
        make_pulse(),
        make_pulse(
            id=2,
            pulse_date=date(2024, 3, 9),
            pulse_status=PulseStatus.ENDED,
            last_collection_time=datetime(2024, 3, 9, 7, 0),
            first_collection_time=datetime(2024, 3, 9, 6, 0),
            section_end_time=datetime(2024, 3, 9, 8, 0),
        ),
        make_pulse(
            id=3,
            pulse_status=PulseStatus.INACTIVE,
            first_collection_time=None,
            last_collection_time=None,
            total_collections=0,
            inactive_days=2,
        ),
    ]

    assert codes(rows) == []


def test_open_section_from_yesterday_is_stale() -> None:
    row = make_pulse(
        pulse_date=date(2024, 3, 9),
        pulse_status=PulseStatus.PAUSED,
        first_collection_time=datetime(2024, 3, 9, 6, 0),
        last_collection_time=datetime(2024, 3, 9, 7, 0),
    )

    assert codes([row]) == ["stale_open"]


def test_end_time_must_agree_with_status() -> None:
    early = datetime(2024, 3, 10, 9, 0)
    ended = make_pulse(
        pulse_status=PulseStatus.ENDED,
        first_collection_time=early,
        last_collection_time=datetime(2024, 3, 10, 10, 0),
    )
    paused = make_pulse(
        pulse_status=PulseStatus.PAUSED,
        first_collection_time=early,
        last_collection_time=datetime(2024, 3, 10, 11, 30),
        section_end_time=datetime(2024, 3, 10, 12, 30),
    )

    assert codes([ended]) == ["ended_without_end_time"]
    assert codes([paused]) == ["end_time_without_ended"]


def test_inactive_streak_must_agree_with_status() -> None:
    inactive_zero = make_pulse(
        pulse_status=PulseStatus.INACTIVE,
        first_collection_time=None,
        last_collection_time=None,
        inactive_days=0,
    )
    active_with_streak = make_pulse(inactive_days=4)

    assert codes([inactive_zero]) == ["inactive_streak_mismatch"]
    assert codes([active_with_streak]) == ["inactive_streak_mismatch"]


def test_first_after_last() -> None:
    row = make_pulse(
        first_collection_time=datetime(2024, 3, 10, 11, 59),
        last_collection_time=datetime(2024, 3, 10, 11, 58),
    )

    assert codes([row]) == ["first_after_last"]


def test_overdue_transitions_for_today() -> None:
    early = datetime(2024, 3, 10, 10, 0)
    overdue_pause = make_pulse(first_collection_time=early, last_collection_time=datetime(2024, 3, 10, 11, 30))
    overdue_end = make_pulse(first_collection_time=early, last_collection_time=datetime(2024, 3, 10, 10, 59))

    issues = find_issues([overdue_pause, overdue_end], AS_OF, CONFIG)

    assert [i.code for i in issues] == ["overdue_pause", "overdue_end"]
    assert "30 minutes" in issues[0].detail
    assert "61 minutes" in issues[1].detail


def test_never_checked_only_for_past_days() -> None:
    today_row = make_pulse(last_checked=None)
    past_row = make_pulse(
        id=2,
        pulse_date=date(2024, 3, 8),
        pulse_status=PulseStatus.ENDED,
        first_collection_time=datetime(2024, 3, 8, 6, 0),
        last_collection_time=datetime(2024, 3, 8, 7, 0),
        section_end_time=datetime(2024, 3, 8, 8, 0),
        last_checked=None,
    )

    issues = find_issues([today_row, past_row], AS_OF, CONFIG)

    assert [(i.pulse_id, i.code) for i in issues] == [(2, "never_checked")]
