"""Result store - durable, time-ordered log of probe outcomes."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import PersistenceError, QueryError
from ..models import Outcome, PingResult
from ..utils.db_utils import retry_on_lock
from ..utils.timeutil import local_now
from .prober import ProbeOutcome

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# Rows deleted per retention batch; the write lock is released between batches
PRUNE_BATCH_SIZE = 5000


@dataclass(frozen=True)
class ProbeResult:
    """A persisted probe outcome."""
    id: int
    timestamp: datetime  # local zone, naive
    latency_ms: Optional[float]
    outcome: Outcome

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @classmethod
    def from_row(cls, row: PingResult) -> "ProbeResult":
        return cls(
            id=row.id,
            timestamp=row.timestamp,
            latency_ms=row.ping_time,
            outcome=Outcome(row.status),
        )


@dataclass(frozen=True)
class QueryFilter:
    """History query parameters. ``page_size == 0`` disables pagination."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    status: Optional[Outcome] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def paginated(self) -> bool:
        return self.page_size > 0


class ResultStore:
    """Append-only probe log backed by the ``ping_results`` table.

    Writes (append and prune) go through a single lock so timestamps are
    assigned in id order; reads use their own sessions and never take it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        prune_batch_size: int = PRUNE_BATCH_SIZE,
    ):
        self._session_factory = session_factory
        self._prune_batch_size = prune_batch_size
        self._write_lock = asyncio.Lock()
        self._last_timestamp: Optional[datetime] = None
        self._seeded = False

    async def append(self, outcome: ProbeOutcome) -> ProbeResult:
        """Persist one probe outcome with a store-assigned id and timestamp.

        Raises:
            PersistenceError: if the row could not be written
        """
        async with self._write_lock:
            try:
                if not self._seeded:
                    self._last_timestamp = await self._latest_timestamp()
                    self._seeded = True

                timestamp = local_now()
                # Never go backwards, even if the wall clock does
                if self._last_timestamp is not None and timestamp < self._last_timestamp:
                    timestamp = self._last_timestamp

                row = PingResult(
                    timestamp=timestamp,
                    ping_time=outcome.latency_ms,
                    status=outcome.outcome.value,
                )
                async with self._session_factory() as session:
                    session.add(row)
                    await retry_on_lock(session.commit)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to store probe result: {e}") from e

            self._last_timestamp = timestamp
            return ProbeResult.from_row(row)

    async def get(self, result_id: int) -> Optional[ProbeResult]:
        """Fetch one result by id."""
        try:
            async with self._session_factory() as session:
                row = await session.get(PingResult, result_id)
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to load probe result: {e}", status_code=500) from e
        return ProbeResult.from_row(row) if row else None

    async def query(self, query_filter: QueryFilter) -> Tuple[List[ProbeResult], int]:
        """Return matching rows newest-first and the total number of matches.

        Both range bounds are inclusive. The count and the page are read in
        the same transaction so they agree with each other.
        """
        if query_filter.page < 1:
            raise QueryError("page must be >= 1")
        if query_filter.page_size < 0:
            raise QueryError("page_size must be >= 0")
        if query_filter.start and query_filter.end and query_filter.start > query_filter.end:
            raise QueryError("start must not be after end")

        conditions = self._conditions(query_filter)
        stmt = (
            select(PingResult)
            .where(*conditions)
            .order_by(PingResult.timestamp.desc(), PingResult.id.desc())
        )
        if query_filter.paginated:
            offset = (query_filter.page - 1) * query_filter.page_size
            stmt = stmt.offset(offset).limit(query_filter.page_size)

        try:
            async with self._session_factory() as session:
                count_result = await session.execute(
                    select(func.count(PingResult.id)).where(*conditions)
                )
                total = count_result.scalar() or 0
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to query probe results: {e}", status_code=500) from e

        return [ProbeResult.from_row(row) for row in rows], total

    async def window(self, start: datetime, end: datetime) -> List[ProbeResult]:
        """All results with start <= timestamp < end, oldest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PingResult)
                    .where(PingResult.timestamp >= start, PingResult.timestamp < end)
                    .order_by(PingResult.timestamp, PingResult.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to query probe results: {e}", status_code=500) from e
        return [ProbeResult.from_row(row) for row in rows]

    async def first_success_after(self, after: datetime) -> Optional[ProbeResult]:
        """Earliest successful result with timestamp > after, if any."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PingResult)
                    .where(PingResult.timestamp > after, PingResult.status == Outcome.SUCCESS.value)
                    .order_by(PingResult.timestamp, PingResult.id)
                    .limit(1)
                )
                row = result.scalars().first()
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to query probe results: {e}", status_code=500) from e
        return ProbeResult.from_row(row) if row else None

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(PingResult.id)))
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to count probe results: {e}", status_code=500) from e

    async def prune(self, older_than: datetime) -> int:
        """Delete every result with timestamp strictly before ``older_than``.

        Deletes in batches so appends can interleave. Running it twice with
        the same cutoff deletes nothing the second time.

        Returns:
            Number of rows deleted
        """
        deleted_total = 0
        while True:
            batch = (
                select(PingResult.id)
                .where(PingResult.timestamp < older_than)
                .order_by(PingResult.id)
                .limit(self._prune_batch_size)
            )
            stmt = (
                delete(PingResult)
                .where(PingResult.id.in_(batch))
                .execution_options(synchronize_session=False)
            )
            async with self._write_lock:
                try:
                    async with self._session_factory() as session:
                        result = await session.execute(stmt)
                        await retry_on_lock(session.commit)
                except SQLAlchemyError as e:
                    raise PersistenceError(f"Failed to prune probe results: {e}") from e

            deleted = result.rowcount or 0
            deleted_total += deleted
            if deleted < self._prune_batch_size:
                break
            # Let queued appends in before the next batch
            await asyncio.sleep(0)

        return deleted_total

    async def _latest_timestamp(self) -> Optional[datetime]:
        async with self._session_factory() as session:
            result = await session.execute(select(func.max(PingResult.timestamp)))
            return result.scalar()

    @staticmethod
    def _conditions(query_filter: QueryFilter) -> list:
        conditions = []
        if query_filter.start is not None:
            conditions.append(PingResult.timestamp >= query_filter.start)
        if query_filter.end is not None:
            conditions.append(PingResult.timestamp <= query_filter.end)
        if query_filter.status is not None:
            conditions.append(PingResult.status == query_filter.status.value)
        return conditions
