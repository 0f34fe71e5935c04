"""Live update channel - every new probe result is pushed to connected viewers."""
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/ws")
async def live_updates(websocket: WebSocket, services: Services = Depends(get_services)):
    await services.feed.connect(websocket)
    try:
        # Viewers only listen; reading keeps the connection open until it closes
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await services.feed.disconnect(websocket)
