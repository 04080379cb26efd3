"""
Integration Tests: Pulse Writer

Test cases:
- First collection of the day creates an active row
- Out-of-order delivery keeps first/last correct
- A collection revives an ended or inactive row
- Aware timestamps land on the tenant-local day
- Collection feed joins separate date and time columns
"""

from datetime import date, datetime, time, timedelta, timezone

from conftest import NORTH, SOUTH, add_society

from section_pulse.schemas import PulseStatus


def test_first_collection_creates_active_row(runtime) -> None:
    society = add_society(runtime.database, NORTH, "alpha")

    pulse = runtime.writer.record_collection(NORTH, society, datetime(2024, 3, 10, 9, 0))

    assert pulse.pulse_status == PulseStatus.ACTIVE
    assert pulse.pulse_date == date(2024, 3, 10)
    assert pulse.first_collection_time == datetime(2024, 3, 10, 9, 0)
    assert pulse.last_collection_time == datetime(2024, 3, 10, 9, 0)
    assert pulse.total_collections == 1
    assert pulse.section_end_time is None
    assert pulse.inactive_days == 0


def test_repeat_collections_update_same_row(runtime, store) -> None:
    writer = runtime.writer
    writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 0))
    pulse = writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 12))

    assert pulse.first_collection_time == datetime(2024, 3, 10, 9, 0)
    assert pulse.last_collection_time == datetime(2024, 3, 10, 9, 12)
    assert pulse.total_collections == 2
    assert store.count_rows(NORTH) == 1


def test_out_of_order_delivery_never_moves_last_backwards(runtime) -> None:
    writer = runtime.writer
    writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 12))
    pulse = writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 0))

    assert pulse.first_collection_time == datetime(2024, 3, 10, 9, 0)
    assert pulse.last_collection_time == datetime(2024, 3, 10, 9, 12)
    assert pulse.total_collections == 2


def test_collection_revives_ended_section(runtime, clock) -> None:
    writer = runtime.writer
    writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 0))
    ended = runtime.reconciler.reconcile(NORTH, datetime(2024, 3, 10, 10, 5))
    assert ended.ended == 1

    pulse = writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 10, 30))

    assert pulse.pulse_status == PulseStatus.ACTIVE
    assert pulse.section_end_time is None
    assert pulse.last_collection_time == datetime(2024, 3, 10, 10, 30)
    assert pulse.total_collections == 2


def test_collection_replaces_inactive_marker(runtime, store) -> None:
    society = add_society(runtime.database, NORTH, "alpha")
    runtime.reconciler.reconcile(NORTH, datetime(2024, 3, 10, 0, 1))
    marker = store.get_pulse(NORTH, society, date(2024, 3, 10))
    assert marker.pulse_status == PulseStatus.INACTIVE

    pulse = runtime.writer.record_collection(NORTH, society, datetime(2024, 3, 10, 9, 0))

    assert pulse.id == marker.id
    assert pulse.pulse_status == PulseStatus.ACTIVE
    assert pulse.inactive_days == 0
    assert pulse.first_collection_time == datetime(2024, 3, 10, 9, 0)
    assert pulse.total_collections == 1


def test_aware_timestamp_is_converted_to_local_day(runtime) -> None:
    ist = timezone(timedelta(hours=5, minutes=30))

    pulse = runtime.writer.record_collection(NORTH, 1, datetime(2024, 3, 11, 2, 0, tzinfo=ist))

    # tenant clock is UTC
    assert pulse.pulse_date == date(2024, 3, 10)
    assert pulse.last_collection_time == datetime(2024, 3, 10, 20, 30)


def test_tenants_are_isolated(runtime, store) -> None:
    runtime.writer.record_collection(NORTH, 1, datetime(2024, 3, 10, 9, 0))

    assert store.count_rows(NORTH) == 1
    assert store.count_rows(SOUTH) == 0


def test_feed_joins_date_and_time(runtime) -> None:
    pulse = runtime.feed.on_collection_inserted(NORTH, 4, date(2024, 3, 10), time(6, 45))

    assert pulse.society_id == 4
    assert pulse.last_collection_time == datetime(2024, 3, 10, 6, 45)
