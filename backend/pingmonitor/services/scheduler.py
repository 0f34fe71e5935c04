"""Scheduler service - runs the fixed-rate probe loop and daily retention.

Each tick starts a probe cycle as its own task and returns, so a slow probe
never delays the next tick. Cycles may overlap up to ``max_inflight``; when
that many are still outstanding the tick is skipped.

A cycle is: probe -> append to the store -> update the live feed -> feed the
failure tracker. A failed append drops that cycle only.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..errors import PersistenceError
from ..utils.timeutil import local_now, local_zone
from .failure_tracker import FailureTracker
from .live_feed import LiveFeed
from .prober import TcpProber
from .result_store import ProbeResult, ResultStore

logger = logging.getLogger(__name__)

# Delay before the first retention run after startup
RETENTION_STARTUP_DELAY = timedelta(minutes=1)


class SchedulerService:
    """Service for scheduling probe cycles and retention pruning."""

    def __init__(
        self,
        prober: TcpProber,
        store: ResultStore,
        feed: LiveFeed,
        tracker: FailureTracker,
        host: str,
        port: int,
        interval_ms: int = 1000,
        connect_timeout_ms: int = 3000,
        max_inflight: int = 4,
        retention_days: int = 7,
    ):
        self.prober = prober
        self.store = store
        self.feed = feed
        self.tracker = tracker
        self.host = host
        self.port = port
        self.interval_ms = interval_ms
        self.connect_timeout_ms = connect_timeout_ms
        self.max_inflight = max_inflight
        self.retention_days = retention_days
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._inflight: Set[asyncio.Task] = set()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        if self.connect_timeout_ms >= self.interval_ms:
            logger.warning(
                f"Connect timeout ({self.connect_timeout_ms}ms) is not shorter than the probe "
                f"interval ({self.interval_ms}ms); up to {self.max_inflight} probes may overlap"
            )

        self.scheduler = AsyncIOScheduler(timezone=local_zone())

        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000),
            id="probe",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=1,
        )

        # At most once per day; first run shortly after startup
        self.scheduler.add_job(
            self.prune_old_records,
            trigger=IntervalTrigger(days=1),
            id="prune_old_records",
            replace_existing=True,
            max_instances=1,
            next_run_time=datetime.now(local_zone()) + RETENTION_STARTUP_DELAY,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (target={self.host}:{self.port}, interval={self.interval_ms}ms, "
            f"timeout={self.connect_timeout_ms}ms, max_inflight={self.max_inflight})"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def drain(self):
        """Wait for probe cycles that are still running."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def tick(self):
        """Start one probe cycle without waiting for it."""
        if len(self._inflight) >= self.max_inflight:
            logger.warning(f"Skipping probe: {len(self._inflight)} probes still in flight")
            return

        task = asyncio.create_task(self._guarded_cycle())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def run_cycle(self) -> Optional[ProbeResult]:
        """Probe once and commit the result.

        Returns the stored result, or None if it could not be persisted.
        """
        outcome = await self.prober.probe(self.host, self.port, self.connect_timeout_ms / 1000)

        try:
            result = await self.store.append(outcome)
        except PersistenceError as e:
            logger.error(f"Dropping probe result: {e}")
            return None

        self.feed.update(result)
        self.tracker.observe(result)
        logger.debug(f"Probe {result.id}: {result.outcome.value} {result.latency_ms}ms")
        return result

    async def _guarded_cycle(self):
        try:
            await self.run_cycle()
        except Exception as e:
            logger.error(f"Error running probe cycle: {type(e).__name__}: {e}")

    async def prune_old_records(self) -> int:
        """Delete results older than the retention horizon."""
        cutoff = local_now() - timedelta(days=self.retention_days)
        try:
            deleted = await self.store.prune(cutoff)
        except PersistenceError as e:
            logger.error(f"Error pruning old records: {e}")
            return 0
        logger.info(f"Pruned {deleted} probe results older than {cutoff:%Y-%m-%d %H:%M:%S}")
        return deleted
