"""Services for probing, storage, aggregation, live updates and alerting."""
from dataclasses import dataclass
from datetime import timedelta

from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from .aggregation import AggregationService
from .email_sender import EmailConfig
from .failure_tracker import FailureTracker
from .live_feed import LiveFeed
from .notifier import Notifier
from .prober import TcpProber
from .result_store import ResultStore
from .scheduler import SchedulerService


@dataclass
class Services:
    """Everything the probe loop and the API share, built once per app."""
    settings: Settings
    store: ResultStore
    feed: LiveFeed
    tracker: FailureTracker
    notifier: Notifier
    aggregation: AggregationService
    scheduler: SchedulerService


def build_services(config: Settings, session_factory: async_sessionmaker[AsyncSession]) -> Services:
    """Wire the services together for one monitored target."""
    email_config = None
    if config.smtp_host and config.alert_email_to:
        email_config = EmailConfig(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username or "",
            password=config.smtp_password or "",
            use_tls=config.smtp_use_tls,
            from_address=config.alert_email_from or "",
            to_address=config.alert_email_to,
        )

    target = f"{config.target_host}:{config.target_port}"
    store = ResultStore(session_factory)
    feed = LiveFeed(queue_size=config.viewer_queue_size)
    notifier = Notifier(webhook_url=config.webhook_url, email_config=email_config)
    tracker = FailureTracker(
        notifier,
        target=target,
        threshold=config.failure_threshold,
        cooldown=timedelta(minutes=config.notification_cooldown_minutes),
    )
    scheduler = SchedulerService(
        TcpProber(),
        store,
        feed,
        tracker,
        host=config.target_host,
        port=config.target_port,
        interval_ms=config.ping_interval_ms,
        connect_timeout_ms=config.connect_timeout_ms,
        max_inflight=config.max_inflight_probes,
        retention_days=config.retention_days,
    )
    return Services(
        settings=config,
        store=store,
        feed=feed,
        tracker=tracker,
        notifier=notifier,
        aggregation=AggregationService(store),
        scheduler=scheduler,
    )


def get_services(connection: HTTPConnection) -> Services:
    """Dependency to get the app's services (HTTP and WebSocket routes)."""
    return connection.app.state.services


__all__ = [
    "AggregationService",
    "FailureTracker",
    "LiveFeed",
    "Notifier",
    "ResultStore",
    "SchedulerService",
    "Services",
    "TcpProber",
    "build_services",
    "get_services",
]
