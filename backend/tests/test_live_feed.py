import asyncio
import json
from datetime import datetime

from pingmonitor.services.live_feed import LiveFeed
from tests.conftest import FakeWebSocket, make_result

TS = datetime(2024, 5, 1, 12, 0, 0, 250000)


class _StuckWebSocket(FakeWebSocket):
    """Accepts the connection, then never finishes a send."""

    async def send_text(self, message: str):
        await asyncio.Event().wait()


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_snapshot_before_first_probe_is_initializing():
    assert LiveFeed().snapshot() == {"status": "initializing"}
    assert LiveFeed().latest is None


def test_snapshot_uses_wire_format():
    feed = LiveFeed()
    feed.update(make_result(7, TS, 3.5))

    assert feed.snapshot() == {
        "id": 7,
        "timestamp": "2024-05-01 12:00:00",
        "ping_time": 3.5,
        "status": "success",
    }


async def test_new_viewer_receives_latest_on_connect():
    feed = LiveFeed()
    feed.update(make_result(1, TS, None))
    ws = FakeWebSocket()

    await feed.connect(ws)
    await _settle()

    assert ws.accepted
    assert [json.loads(m)["status"] for m in ws.sent] == ["failed"]
    await feed.close()


async def test_updates_are_delivered_in_order():
    feed = LiveFeed()
    viewers = [FakeWebSocket(), FakeWebSocket()]
    for ws in viewers:
        await feed.connect(ws)

    for i in range(1, 4):
        feed.update(make_result(i, TS, float(i)))
    await _settle()

    for ws in viewers:
        assert [json.loads(m)["id"] for m in ws.sent] == [1, 2, 3]
    await feed.close()


async def test_stuck_viewer_does_not_block_others():
    feed = LiveFeed(queue_size=2)
    stuck = _StuckWebSocket()
    healthy = FakeWebSocket()
    await feed.connect(stuck)
    await feed.connect(healthy)

    for i in range(1, 11):
        feed.update(make_result(i, TS, 1.0))
        await _settle()

    assert [json.loads(m)["id"] for m in healthy.sent] == list(range(1, 11))
    assert feed.connection_count == 2
    await feed.close()


async def test_failing_viewer_is_dropped():
    feed = LiveFeed()
    broken = FakeWebSocket(fail=True)
    await feed.connect(broken)

    feed.update(make_result(1, TS, 1.0))
    await _settle()

    assert feed.connection_count == 0


async def test_disconnect_removes_viewer():
    feed = LiveFeed()
    ws = FakeWebSocket()
    await feed.connect(ws)
    await feed.disconnect(ws)

    feed.update(make_result(1, TS, 1.0))
    await _settle()

    assert feed.connection_count == 0
    assert ws.sent == []
