"""Notifier service - delivers failure-streak notifications by webhook and email."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ..errors import NotificationError
from ..utils.timeutil import format_local
from .email_sender import EmailConfig, EmailSenderService, email_sender_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """What the failure tracker hands to the notifier."""
    target: str
    failure_count: int
    occurred_at: datetime  # local zone, naive
    context: str = ""


class Notifier:
    """Send a notification through every configured transport.

    Delivery counts as successful if at least one transport accepted it.
    Nothing is retried.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        email_config: Optional[EmailConfig] = None,
        email_sender: EmailSenderService = email_sender_service,
        timeout: float = 10,
    ):
        self.webhook_url = webhook_url
        self.email_config = email_config
        self.email_sender = email_sender
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url) or bool(self.email_config and self.email_config.configured)

    async def notify(self, event: NotificationEvent) -> bool:
        if not self.configured:
            logger.warning(
                f"No notification transport configured, dropping alert for {event.target} "
                f"({event.failure_count} consecutive failures)"
            )
            return False

        delivered = False
        if self.webhook_url:
            try:
                await self._send_webhook(self.webhook_url, self._build_payload(event))
                delivered = True
            except NotificationError as e:
                logger.error(f"Failed to send webhook: {e}")

        if self.email_config and self.email_config.configured:
            subject, body = self._build_email(event)
            if await self.email_sender.send_email(self.email_config, subject, body):
                delivered = True

        return delivered

    def _build_payload(self, event: NotificationEvent) -> dict:
        return {
            "target": event.target,
            "event": "down",
            "failure_count": event.failure_count,
            "timestamp": format_local(event.occurred_at),
            "details": event.context,
        }

    def _build_email(self, event: NotificationEvent) -> tuple:
        subject = f"DOWN - {event.target} - {event.failure_count} consecutive failures"
        lines = [
            "Ping Monitor DOWN Report",
            "=" * 40,
            "",
            f"Target: {event.target}",
            f"Consecutive failures: {event.failure_count}",
            f"Time: {format_local(event.occurred_at)}",
        ]
        if event.context:
            lines.append(f"Details: {event.context}")
        return subject, "\n".join(lines)

    async def _send_webhook(self, url: str, payload: dict):
        """POST the payload as JSON; raise NotificationError unless it is accepted."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(f"Webhook returned {response.status_code}")
        logger.info(f"Webhook sent: {payload['event']} for {payload['target']}")
