"""Current status and dashboard bootstrap API."""
from fastapi import APIRouter, Depends

from ..schemas.ping import MonitorConfigOut
from ..services import Services, get_services

router = APIRouter(prefix="/api", tags=["status"])


@router.get("/current-status")
async def get_current_status(services: Services = Depends(get_services)):
    """Latest probe result, or {"status": "initializing"} before the first probe."""
    return services.feed.snapshot()


@router.get("/config", response_model=MonitorConfigOut)
async def get_config(services: Services = Depends(get_services)):
    """Title, target and cadence for the dashboard."""
    config = services.settings
    return MonitorConfigOut(
        title=config.app_title,
        ip=config.target_host,
        port=config.target_port,
        pingInterval=config.ping_interval_ms,
        timezone=config.timezone,
    )
