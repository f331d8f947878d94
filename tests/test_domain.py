from datetime import datetime

import pytest

from conftest import T0, at
from order_timer.domain import (
    Computed,
    ManualOverride,
    OrderPhase,
    WorkOrder,
    decimal_hours,
    start_of_day,
    timing_source_from_hours,
    timing_source_hours,
)


def make_order(**overrides) -> WorkOrder:
    values = dict(id="order-1", number="A-1", date=start_of_day(T0))
    values.update(overrides)
    return WorkOrder(**values)


def test_total_duration_without_start_is_zero():
    order = make_order()
    assert order.total_duration(at(100)) == 0
    assert order.net_work_time(at(100)) == 0
    assert order.live_pause_time(at(100)) == 0
    assert order.phase is OrderPhase.NOT_STARTED


def test_total_duration_uses_end_time_when_set():
    order = make_order(start_time=at(0), end_time=at(90), is_finished=True)
    assert order.total_duration(at(5000)) == 90


def test_total_duration_is_zero_when_end_precedes_start():
    order = make_order(start_time=at(100), end_time=at(50))
    assert order.total_duration(at(200)) == 0


def test_live_setup_time_includes_open_setup_interval():
    order = make_order(
        start_time=at(0),
        setup_accrued=20,
        is_running=True,
        is_in_setup=True,
        last_resume_at=at(60),
    )
    assert order.live_setup_time(at(75)) == 35
    assert order.phase is OrderPhase.SETUP


def test_manual_setup_override_replaces_computed_value():
    order = make_order(
        start_time=at(0),
        end_time=at(7200),
        setup_accrued=10,
        is_finished=True,
        manual_setup=ManualOverride(hours=0.5),
    )
    assert order.live_setup_time(at(7200)) == 1800
    assert order.net_work_time(at(7200)) == 5400


def test_manual_setup_override_is_clamped_to_total_duration():
    order = make_order(
        start_time=at(0),
        end_time=at(600),
        is_finished=True,
        manual_setup=ManualOverride(hours=2),
    )
    assert order.live_setup_time(at(600)) == 600
    assert order.net_work_time(at(600)) == 0


def test_live_pause_time_counts_open_pause():
    order = make_order(start_time=at(0), pause_accrued=30, last_pause_start_at=at(100))
    assert order.live_pause_time(at(160)) == 90
    assert order.phase is OrderPhase.PAUSED


def test_live_pause_time_is_clamped_to_total_duration():
    order = make_order(start_time=at(0), pause_accrued=500, last_pause_start_at=at(100))
    assert order.live_pause_time(at(200)) == 200


def test_open_pause_is_bounded_by_end_time():
    order = make_order(
        start_time=at(0),
        end_time=at(150),
        last_pause_start_at=at(100),
    )
    assert order.live_pause_time(at(400)) == 50
    assert order.open_pause_time(at(400)) == 300


def test_open_pause_ignored_while_running():
    order = make_order(
        start_time=at(0),
        is_running=True,
        last_resume_at=at(0),
        last_pause_start_at=at(10),
    )
    assert order.live_pause_time(at(100)) == 0


def test_net_work_time_subtracts_setup_and_pause():
    order = make_order(
        start_time=at(0),
        end_time=at(1000),
        setup_accrued=100,
        pause_accrued=250,
        is_finished=True,
    )
    breakdown = order.breakdown(at(1000))
    assert breakdown.total_duration == 1000
    assert breakdown.setup_time == 100
    assert breakdown.pause_time == 250
    assert breakdown.net_work_time == 650


def test_legacy_elapsed_counts_running_interval_only_outside_setup():
    running = make_order(
        start_time=at(0), pause_accrued=30, is_running=True, last_resume_at=at(40)
    )
    assert running.legacy_elapsed(at(50)) == 40

    in_setup = make_order(
        start_time=at(0),
        pause_accrued=30,
        is_running=True,
        is_in_setup=True,
        last_resume_at=at(40),
    )
    assert in_setup.legacy_elapsed(at(50)) == 30


def test_legacy_elapsed_uses_manual_work_override():
    order = make_order(
        start_time=at(0),
        is_running=True,
        last_resume_at=at(0),
        manual_work=ManualOverride(hours=2),
    )
    assert order.legacy_elapsed(at(10)) == 7200
    # net work time is unaffected by the work override
    assert order.net_work_time(at(10)) == 10


def test_breakdown_hours_are_rounded():
    order = make_order(start_time=at(0), end_time=at(5400), is_finished=True)
    hours = order.breakdown(at(5400)).hours
    assert hours.total_duration == 1.5
    assert hours.net_work_time == 1.5


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, 0.0), (3600, 1.0), (5400, 1.5), (60, 0.02), (1000, 0.28)],
)
def test_decimal_hours(seconds, expected):
    assert decimal_hours(seconds) == expected


def test_timing_source_conversions():
    assert timing_source_from_hours(None) == Computed()
    assert timing_source_from_hours(1) == ManualOverride(hours=1.0)
    assert timing_source_hours(ManualOverride(hours=2.5)) == 2.5
    assert timing_source_hours(Computed()) is None


def test_start_of_day():
    assert start_of_day(datetime(2026, 3, 2, 17, 45, 3)) == datetime(2026, 3, 2)
