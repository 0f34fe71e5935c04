"""Probe result schemas for API."""
from typing import List, Optional

from pydantic import BaseModel

from ..utils.timeutil import format_local


class ProbeResultOut(BaseModel):
    """A probe result as the dashboard sees it."""
    id: int
    timestamp: str  # YYYY-MM-DD HH:MM:SS, local zone
    ping_time: Optional[float] = None  # NULL if failed
    status: str  # success, failed

    @classmethod
    def from_result(cls, result) -> "ProbeResultOut":
        return cls(
            id=result.id,
            timestamp=format_local(result.timestamp),
            ping_time=result.latency_ms,
            status=result.outcome.value,
        )


class InitializingStatus(BaseModel):
    """Returned before the first probe has completed."""
    status: str = "initializing"


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class PingDataPage(BaseModel):
    """History page. ``pagination`` is left out when limit=0."""
    data: List[ProbeResultOut]
    pagination: Optional[Pagination] = None


class HourlyAverage(BaseModel):
    hour: str
    avg_ping_time: Optional[float] = None  # None = no successful probe that hour


class HourlyFailures(BaseModel):
    hour: str
    count: int


class HourlySeriesOut(BaseModel):
    averages: List[HourlyAverage]
    failures: List[HourlyFailures]


class OutageOut(BaseModel):
    start: str
    end: Optional[str] = None
    duration_seconds: float
    failures: int
    ongoing: bool


class MonitorConfigOut(BaseModel):
    """Dashboard bootstrap data."""
    title: str
    ip: str
    port: int
    pingInterval: int
    timezone: str
