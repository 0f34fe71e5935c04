"""Shared fixtures: a throwaway SQLite database per test and fakes."""
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from pingmonitor.config import settings
from pingmonitor.database import build_engine, build_session_factory, init_db
from pingmonitor.models import Outcome, PingResult
from pingmonitor.services.notifier import NotificationEvent
from pingmonitor.services.result_store import ProbeResult, ResultStore


@pytest.fixture(autouse=True)
def local_timezone(monkeypatch):
    """Pin the zone so results do not depend on the TZ of the machine running the tests."""
    monkeypatch.setattr(settings, "timezone", "Asia/Jakarta")


@pytest.fixture
async def session_factory(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ping_monitor.db'}")
    await init_db(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
async def store(session_factory) -> ResultStore:
    return ResultStore(session_factory)


async def insert_rows(session_factory, rows: List[Tuple[datetime, Optional[float]]]) -> None:
    """Insert rows with explicit timestamps. latency None means a failed probe."""
    async with session_factory() as session:
        for timestamp, latency in rows:
            session.add(PingResult(
                timestamp=timestamp,
                ping_time=latency,
                status=(Outcome.SUCCESS if latency is not None else Outcome.FAILURE).value,
            ))
        await session.commit()


def make_result(result_id: int, timestamp: datetime, latency: Optional[float]) -> ProbeResult:
    outcome = Outcome.SUCCESS if latency is not None else Outcome.FAILURE
    return ProbeResult(id=result_id, timestamp=timestamp, latency_ms=latency, outcome=outcome)


class FakeNotifier:
    """Records every event; optionally fails."""

    def __init__(self, delivered: bool = True, error: Optional[Exception] = None):
        self.events: List[NotificationEvent] = []
        self.delivered = delivered
        self.error = error

    async def notify(self, event: NotificationEvent) -> bool:
        self.events.append(event)
        if self.error:
            raise self.error
        return self.delivered


class FakeWebSocket:
    """Minimal stand-in for fastapi.WebSocket used by the live feed."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent: List[str] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, message: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)
