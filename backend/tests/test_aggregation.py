from datetime import datetime, timedelta

import pytest

from pingmonitor.errors import QueryError
from pingmonitor.services.aggregation import (
    AggregationService,
    build_hour_buckets,
    bucket_results,
    find_outages,
)
from tests.conftest import insert_rows, make_result

END = datetime(2024, 5, 1, 12, 34, 56)


def test_buckets_are_contiguous_and_end_at_window_end_hour():
    buckets = build_hour_buckets(END, 24)
    hours = sorted(buckets)

    assert len(hours) == 24
    assert hours[-1] == datetime(2024, 5, 1, 12)
    assert hours[0] == datetime(2024, 4, 30, 13)
    assert all(b - a == timedelta(hours=1) for a, b in zip(hours, hours[1:]))


def test_empty_hours_are_gaps_and_failures_are_sparse():
    results = [
        make_result(1, datetime(2024, 5, 1, 10, 5), 10.0),
        make_result(2, datetime(2024, 5, 1, 10, 45), 20.0),
        make_result(3, datetime(2024, 5, 1, 10, 50), None),
        make_result(4, datetime(2024, 5, 1, 12, 0), None),
    ]

    series = bucket_results(build_hour_buckets(END, 4), results)

    assert series.averages == [
        (datetime(2024, 5, 1, 9), None),
        (datetime(2024, 5, 1, 10), 15.0),
        (datetime(2024, 5, 1, 11), None),
        (datetime(2024, 5, 1, 12), None),
    ]
    assert series.failures == [
        (datetime(2024, 5, 1, 10), 1),
        (datetime(2024, 5, 1, 12), 1),
    ]


def test_results_outside_window_are_ignored():
    results = [
        make_result(1, datetime(2024, 5, 1, 8, 59, 59), 100.0),
        make_result(2, datetime(2024, 5, 1, 13, 0), None),
        make_result(3, datetime(2024, 5, 1, 9, 0), 5.0),
    ]

    series = bucket_results(build_hour_buckets(END, 4), results)

    assert series.averages[0] == (datetime(2024, 5, 1, 9), 5.0)
    assert series.failures == []


async def test_hourly_averages_without_data_still_fill_window(store):
    series = await AggregationService(store).hourly_averages(END, 6)

    assert len(series.averages) == 6
    assert all(avg is None for _, avg in series.averages)
    assert series.failures == []


async def test_hourly_averages_reads_from_store(session_factory, store):
    await insert_rows(session_factory, [
        (datetime(2024, 5, 1, 11, 10), 4.0),
        (datetime(2024, 5, 1, 11, 20), 6.0),
        (datetime(2024, 5, 1, 12, 30), None),
        (datetime(2024, 5, 1, 13, 30), 99.0),  # after window end hour
    ])

    series = await AggregationService(store).hourly_averages(END, 2)

    assert series.averages == [
        (datetime(2024, 5, 1, 11), 5.0),
        (datetime(2024, 5, 1, 12), None),
    ]
    assert series.failures == [(datetime(2024, 5, 1, 12), 1)]


async def test_hourly_averages_rejects_empty_window(store):
    with pytest.raises(QueryError):
        await AggregationService(store).hourly_averages(END, 0)


def test_find_outages_measures_until_recovery():
    t0 = datetime(2024, 5, 1, 10)
    results = [make_result(1, t0, 1.0)]
    # 6 minute outage
    results += [make_result(2 + i, t0 + timedelta(minutes=1 + i), None) for i in range(6)]
    results.append(make_result(8, t0 + timedelta(minutes=7), 1.0))
    # 1 minute blip
    results.append(make_result(9, t0 + timedelta(minutes=8), None))
    results.append(make_result(10, t0 + timedelta(minutes=9), 1.0))

    outages = find_outages(results, min_duration=timedelta(minutes=5))

    assert len(outages) == 1
    assert outages[0].start == t0 + timedelta(minutes=1)
    assert outages[0].end == t0 + timedelta(minutes=7)
    assert outages[0].failures == 6
    assert outages[0].duration == timedelta(minutes=6)
    assert not outages[0].ongoing


def test_find_outages_reports_ongoing_run_newest_first():
    t0 = datetime(2024, 5, 1, 10)
    results = [
        make_result(1, t0, None),
        make_result(2, t0 + timedelta(minutes=1), 1.0),
        make_result(3, t0 + timedelta(minutes=2), None),
        make_result(4, t0 + timedelta(minutes=3), None),
    ]

    outages = find_outages(results, min_duration=timedelta(0))

    assert [o.ongoing for o in outages] == [True, False]
    assert outages[0].end is None
    assert outages[0].duration == timedelta(minutes=1)


async def test_outages_limit(session_factory, store):
    t0 = datetime(2024, 5, 1, 10)
    rows = []
    for i in range(5):
        rows.append((t0 + timedelta(minutes=2 * i), None))
        rows.append((t0 + timedelta(minutes=2 * i + 1), 1.0))
    await insert_rows(session_factory, rows)

    outages = await AggregationService(store).outages(
        start=t0, end=t0 + timedelta(hours=1), min_duration=timedelta(0), limit=3,
    )

    assert len(outages) == 3
    assert outages[0].start == t0 + timedelta(minutes=8)


def test_find_outages_closes_trailing_run_at_later_recovery():
    t0 = datetime(2024, 5, 1, 10)
    results = [make_result(1, t0, 1.0), make_result(2, t0 + timedelta(minutes=1), None)]

    outages = find_outages(results, min_duration=timedelta(0), recovered_at=t0 + timedelta(minutes=4))

    assert not outages[0].ongoing
    assert outages[0].duration == timedelta(minutes=3)


async def test_outages_window_ending_mid_run_uses_later_recovery(session_factory, store):
    t0 = datetime(2024, 5, 1, 12)
    rows = [(t0, 1.0)]
    rows += [(t0 + timedelta(minutes=1 + i), None) for i in range(7)]
    rows.append((t0 + timedelta(minutes=8), 1.0))
    await insert_rows(session_factory, rows)
    service = AggregationService(store)

    outages = await service.outages(
        start=t0 - timedelta(hours=1),
        end=t0 + timedelta(minutes=7, seconds=30),
        min_duration=timedelta(minutes=5),
    )

    assert len(outages) == 1
    assert not outages[0].ongoing
    assert outages[0].start == t0 + timedelta(minutes=1)
    assert outages[0].end == t0 + timedelta(minutes=8)


async def test_outages_without_recovery_stay_ongoing(session_factory, store):
    t0 = datetime(2024, 5, 1, 12)
    await insert_rows(session_factory, [(t0, 1.0)] + [(t0 + timedelta(minutes=1 + i), None) for i in range(6)])

    outages = await AggregationService(store).outages(
        start=t0, end=t0 + timedelta(minutes=30), min_duration=timedelta(minutes=5),
    )

    assert [o.ongoing for o in outages] == [True]
    assert outages[0].end is None
