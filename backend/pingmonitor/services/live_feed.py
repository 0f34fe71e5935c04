"""Live feed - latest probe result and WebSocket fan-out to dashboard viewers."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket

from ..schemas.ping import InitializingStatus, ProbeResultOut
from .result_store import ProbeResult

logger = logging.getLogger(__name__)


class _Viewer:
    """One connected viewer with its own outbound queue and sender task."""

    def __init__(self, websocket: WebSocket, queue_size: int):
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.task: Optional[asyncio.Task] = None


class LiveFeed:
    """Holds the latest result and pushes every update to connected viewers.

    ``update`` never awaits a viewer: messages are queued per viewer and a
    full queue drops the update for that viewer only.
    """

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._latest: Optional[ProbeResult] = None
        self._viewers: Dict[Any, _Viewer] = {}

    @property
    def latest(self) -> Optional[ProbeResult]:
        """Latest result, or None while initializing."""
        return self._latest

    def snapshot(self) -> Dict[str, Any]:
        if self._latest is None:
            return InitializingStatus().model_dump()
        return ProbeResultOut.from_result(self._latest).model_dump()

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection and start sending it updates."""
        await websocket.accept()
        viewer = _Viewer(websocket, self._queue_size)
        self._viewers[websocket] = viewer
        if self._latest is not None:
            viewer.queue.put_nowait(self._encode(self._latest))
        viewer.task = asyncio.create_task(self._pump(viewer))
        logger.info(f"WebSocket connected. Total connections: {len(self._viewers)}")

    async def disconnect(self, websocket: WebSocket):
        """Remove a disconnected WebSocket."""
        viewer = self._viewers.pop(websocket, None)
        if viewer and viewer.task:
            viewer.task.cancel()
        logger.info(f"WebSocket disconnected. Total connections: {len(self._viewers)}")

    def update(self, result: ProbeResult):
        """Replace the latest result and queue it for every viewer."""
        self._latest = result
        if not self._viewers:
            return

        message = self._encode(result)
        for viewer in list(self._viewers.values()):
            try:
                viewer.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.debug(f"Viewer queue full, dropping update {result.id}")

    async def close(self):
        """Stop all sender tasks."""
        viewers = list(self._viewers.values())
        self._viewers.clear()
        for viewer in viewers:
            if viewer.task:
                viewer.task.cancel()
        tasks = [v.task for v in viewers if v.task]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def connection_count(self) -> int:
        """Return the number of active connections."""
        return len(self._viewers)

    async def _pump(self, viewer: _Viewer):
        while True:
            message = await viewer.queue.get()
            try:
                await viewer.websocket.send_text(message)
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                self._viewers.pop(viewer.websocket, None)
                return

    @staticmethod
    def _encode(result: ProbeResult) -> str:
        return json.dumps(ProbeResultOut.from_result(result).model_dump())
