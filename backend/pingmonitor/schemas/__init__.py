"""Pydantic schemas for API request/response models."""
from .ping import (
    ProbeResultOut,
    InitializingStatus,
    Pagination,
    PingDataPage,
    HourlyAverage,
    HourlyFailures,
    HourlySeriesOut,
    OutageOut,
    MonitorConfigOut,
)

__all__ = [
    "ProbeResultOut",
    "InitializingStatus",
    "Pagination",
    "PingDataPage",
    "HourlyAverage",
    "HourlyFailures",
    "HourlySeriesOut",
    "OutageOut",
    "MonitorConfigOut",
]
