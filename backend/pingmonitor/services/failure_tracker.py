"""Failure tracker - counts consecutive failed probes and raises notifications.

The streak counter resets on any success and grows on every failure. Once it
reaches the threshold a notification goes out, then further ones are held
back until the cooldown has passed since the last dispatch. The
counter keeps growing while notifications are suppressed.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Set

from .notifier import NotificationEvent, Notifier
from .result_store import ProbeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureStreakState:
    consecutive_failures: int = 0
    last_notification_at: Optional[datetime] = None


class FailureTracker:
    """Owns the failure streak for the monitored target."""

    def __init__(
        self,
        notifier: Notifier,
        target: str,
        threshold: int = 10,
        cooldown: timedelta = timedelta(minutes=5),
    ):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.notifier = notifier
        self.target = target
        self.threshold = threshold
        self.cooldown = cooldown
        self._consecutive_failures = 0
        self._last_notification_at: Optional[datetime] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def state(self) -> FailureStreakState:
        return FailureStreakState(self._consecutive_failures, self._last_notification_at)

    def observe(self, result: ProbeResult) -> bool:
        """Feed one committed probe result.

        Uses the result's timestamp as "now" so cooldowns follow probe time.

        Returns:
            True if a notification was dispatched for this result
        """
        if result.succeeded:
            if self._consecutive_failures >= self.threshold:
                logger.info(f"{self.target} recovered after {self._consecutive_failures} failed probes")
            self._consecutive_failures = 0
            return False

        self._consecutive_failures += 1
        if self._consecutive_failures < self.threshold:
            return False

        now = result.timestamp
        if self._last_notification_at is not None and now - self._last_notification_at < self.cooldown:
            logger.debug(
                f"Notification suppressed for {self.target}: "
                f"{self._consecutive_failures} failures, cooldown active"
            )
            return False

        self._last_notification_at = now
        self._dispatch(NotificationEvent(
            target=self.target,
            failure_count=self._consecutive_failures,
            occurred_at=now,
            context=f"{self._consecutive_failures} consecutive failed probes",
        ))
        return True

    def _dispatch(self, event: NotificationEvent):
        """Run the notifier in the background so the probe cycle never waits on it."""
        task = asyncio.get_running_loop().create_task(self._notify(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, event: NotificationEvent):
        try:
            delivered = await self.notifier.notify(event)
        except Exception as e:
            logger.error(f"Notification for {event.target} failed: {type(e).__name__}: {e}")
            return

        if delivered:
            logger.info(f"Notification sent for {event.target}: {event.failure_count} consecutive failures")
        else:
            logger.warning(f"Notification for {event.target} was not delivered")

    async def drain(self):
        """Wait for in-flight notifications, e.g. before shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
