"""Main FastAPI application - probe loop, history API and live updates."""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import settings
from .database import async_session, init_db, close_db
from .errors import QueryError
from .routers import history_router, live_router, status_router
from .services import Services, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown.

    Services passed to create_app() are used as-is and not started here.
    """
    owned = app.state.services is None
    if owned:
        logger.info(f"Starting {settings.app_title} for {settings.target_host}:{settings.target_port}")
        await init_db()
        logger.info("Database initialized")

        app.state.services = build_services(settings, async_session)
        app.state.services.scheduler.start()

    yield

    if owned:
        services: Services = app.state.services
        services.scheduler.stop()
        await services.scheduler.drain()
        await services.tracker.drain()
        await services.feed.close()
        await close_db()
        logger.info("Shutdown complete")


async def query_error_handler(request: Request, exc: QueryError):
    if exc.status_code >= 500:
        logger.error(f"Query failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Ping Monitor",
        description="TCP reachability and latency monitor for a single endpoint",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware for the dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(QueryError, query_error_handler)

    app.include_router(status_router)
    app.include_router(history_router)
    app.include_router(live_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        current: Services = app.state.services
        return {
            "status": "healthy",
            "probes_in_flight": current.scheduler.inflight_count,
            "viewers": current.feed.connection_count,
        }

    # Serve the dashboard if it has been built next to the backend
    static_dir = os.path.join(os.path.dirname(__file__), "..", "static")
    if os.path.exists(static_dir):
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.app_port)
