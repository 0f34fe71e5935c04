"""Aggregation service - hourly latency averages and outage ranges.

Hourly series feed the dashboard charts. The averages series is continuous:
every hour in the window gets an entry and hours without a successful probe
carry ``None`` so the chart draws a gap instead of a drop to zero. The
failures series is sparse and only lists hours that had failures.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..errors import QueryError
from ..utils.timeutil import local_now, truncate_to_hour
from .result_store import ProbeResult, ResultStore

logger = logging.getLogger(__name__)

ONE_HOUR = timedelta(hours=1)

# Outages shorter than this are not listed
DEFAULT_MIN_OUTAGE = timedelta(minutes=5)

# Window scanned for outages when no start is given
DEFAULT_OUTAGE_LOOKBACK = timedelta(hours=24)


@dataclass
class HourlyBucket:
    """Probe counts for one clock hour."""
    hour_start: datetime
    success_count: int = 0
    failure_count: int = 0
    total_latency: float = 0.0

    def add(self, result: ProbeResult):
        if result.succeeded:
            self.success_count += 1
            self.total_latency += result.latency_ms
        else:
            self.failure_count += 1

    @property
    def average_latency(self) -> Optional[float]:
        if self.success_count == 0:
            return None
        return round(self.total_latency / self.success_count, 2)


@dataclass(frozen=True)
class HourlySeries:
    averages: List[Tuple[datetime, Optional[float]]]
    failures: List[Tuple[datetime, int]]


@dataclass(frozen=True)
class Outage:
    """A run of consecutive failed probes.

    ``end`` is the timestamp of the success that closed the run, or None
    while the run is still ongoing.
    """
    start: datetime
    end: Optional[datetime]
    failures: int
    last_failure: datetime

    @property
    def ongoing(self) -> bool:
        return self.end is None

    @property
    def duration(self) -> timedelta:
        return (self.end or self.last_failure) - self.start


def build_hour_buckets(window_end: datetime, window_hours: int) -> Dict[datetime, HourlyBucket]:
    """Create ``window_hours`` empty buckets ending at the hour containing window_end."""
    last_hour = truncate_to_hour(window_end)
    first_hour = last_hour - ONE_HOUR * (window_hours - 1)
    return {
        first_hour + ONE_HOUR * i: HourlyBucket(hour_start=first_hour + ONE_HOUR * i)
        for i in range(window_hours)
    }


def bucket_results(buckets: Dict[datetime, HourlyBucket], results: List[ProbeResult]) -> HourlySeries:
    """Assign results to their hour bucket and build both series.

    Results whose hour has no bucket are ignored.
    """
    for result in results:
        bucket = buckets.get(truncate_to_hour(result.timestamp))
        if bucket is not None:
            bucket.add(result)

    ordered = [buckets[hour] for hour in sorted(buckets)]
    return HourlySeries(
        averages=[(b.hour_start, b.average_latency) for b in ordered],
        failures=[(b.hour_start, b.failure_count) for b in ordered if b.failure_count > 0],
    )


def find_outages(
    results: List[ProbeResult],
    min_duration: timedelta,
    recovered_at: Optional[datetime] = None,
) -> List[Outage]:
    """Find runs of consecutive failures in chronologically ordered results.

    A run lasts from its first failure to the success that ends it. A run
    still open at the end of ``results`` is closed at ``recovered_at`` when
    given (the first success after the window), otherwise it is ongoing.
    Runs shorter than ``min_duration`` are dropped. Newest first.
    """
    outages: List[Outage] = []
    run_start: Optional[ProbeResult] = None
    run_last: Optional[ProbeResult] = None
    run_failures = 0

    for result in results:
        if not result.succeeded:
            if run_start is None:
                run_start = result
                run_failures = 0
            run_last = result
            run_failures += 1
            continue
        if run_start is not None:
            outage = Outage(run_start.timestamp, result.timestamp, run_failures, run_last.timestamp)
            if outage.duration >= min_duration:
                outages.append(outage)
            run_start = None

    if run_start is not None:
        outage = Outage(run_start.timestamp, recovered_at, run_failures, run_last.timestamp)
        if outage.duration >= min_duration:
            outages.append(outage)

    outages.reverse()
    return outages


class AggregationService:
    """Derived views computed on demand from the result store."""

    def __init__(self, store: ResultStore):
        self.store = store

    async def hourly_averages(self, window_end: datetime, window_hours: int) -> HourlySeries:
        """Hourly average latency and failure counts over a window.

        Always returns exactly ``window_hours`` entries in ``averages``.
        """
        if window_hours < 1:
            raise QueryError("window_hours must be >= 1")

        buckets = build_hour_buckets(window_end, window_hours)
        first_hour = min(buckets)
        results = await self.store.window(first_hour, max(buckets) + ONE_HOUR)
        series = bucket_results(buckets, results)
        logger.debug(f"Aggregated {len(results)} results into {window_hours} hourly buckets")
        return series

    async def outages(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        min_duration: timedelta = DEFAULT_MIN_OUTAGE,
        limit: int = 10,
    ) -> List[Outage]:
        """List outages between start and end, newest first, at most ``limit``."""
        end = end or local_now()
        start = start or end - DEFAULT_OUTAGE_LOOKBACK
        if start > end:
            raise QueryError("start must not be after end")
        if limit < 1:
            raise QueryError("limit must be >= 1")

        results = await self.store.window(start, end + timedelta(microseconds=1))
        recovered_at = None
        if results and not results[-1].succeeded:
            # The window may end mid-run; the run is over if a success followed
            recovery = await self.store.first_success_after(end)
            if recovery is not None:
                recovered_at = recovery.timestamp
        return find_outages(results, min_duration, recovered_at)[:limit]
