"""API routers."""
from .history import router as history_router
from .live import router as live_router
from .status import router as status_router

__all__ = ["history_router", "live_router", "status_router"]
