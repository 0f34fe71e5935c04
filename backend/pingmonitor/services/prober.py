"""Prober service - measures TCP handshake latency to the monitored endpoint."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..models import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single probe attempt, before it is persisted."""
    outcome: Outcome
    latency_ms: Optional[float] = None  # set iff outcome is SUCCESS
    details: Optional[str] = None  # failure reason, for logs only

    def __post_init__(self):
        if (self.latency_ms is not None) != (self.outcome is Outcome.SUCCESS):
            raise ValueError("latency_ms must be set if and only if the probe succeeded")
        if self.latency_ms is not None and self.latency_ms < 0:
            raise ValueError("latency_ms must not be negative")

    @classmethod
    def success(cls, latency_ms: float) -> "ProbeOutcome":
        return cls(Outcome.SUCCESS, latency_ms)

    @classmethod
    def failure(cls, details: str) -> "ProbeOutcome":
        return cls(Outcome.FAILURE, None, details)


class _HandshakeProtocol(asyncio.Protocol):
    """Resolves the attempt future on the first terminal socket event.

    ``connection_made`` means the handshake completed; ``connection_lost``
    before that means the peer went away first. Whichever comes first wins,
    later events find the future done and are ignored.
    """

    def __init__(self, attempt: asyncio.Future, started: float):
        self._attempt = attempt
        self._started = started

    def connection_made(self, transport):
        elapsed_ms = (time.perf_counter() - self._started) * 1000
        self._settle(ProbeOutcome.success(round(elapsed_ms, 2)))
        # Graceful close (FIN), no need to wait for data
        transport.close()

    def connection_lost(self, exc):
        self._settle(ProbeOutcome.failure(f"Connection closed: {exc}" if exc else "Connection closed"))

    def _settle(self, outcome: ProbeOutcome):
        if not self._attempt.done():
            self._attempt.set_result(outcome)


class TcpProber:
    """Probe reachability by timing a TCP connection handshake."""

    async def probe(self, host: str, port: int, connect_timeout: float) -> ProbeOutcome:
        """Attempt one connection to (host, port).

        Never raises for transport problems: refused, reset, unreachable and
        timed-out connections all come back as a failed outcome.
        """
        loop = asyncio.get_running_loop()
        attempt: asyncio.Future = loop.create_future()

        def settle(outcome: ProbeOutcome):
            if not attempt.done():
                attempt.set_result(outcome)

        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                loop.create_connection(lambda: _HandshakeProtocol(attempt, started), host, port),
                timeout=connect_timeout,
            )
        except asyncio.TimeoutError:
            settle(ProbeOutcome.failure(f"Connection timeout after {connect_timeout}s"))
        except OSError as e:
            settle(ProbeOutcome.failure(f"Connection error: {e}"))

        # Resolved by now: connection_made runs before create_connection returns
        outcome = await attempt
        if outcome.outcome is Outcome.FAILURE:
            logger.debug(f"Probe {host}:{port} failed: {outcome.details}")
        return outcome
