"""Exception types raised by the storage, query and notification layers.

Probe transport errors never appear here: a refused, reset or timed-out
connection is recorded as a failed probe result, not raised.
"""


class PingMonitorError(Exception):
    """Base class for application errors."""


class PersistenceError(PingMonitorError):
    """A probe result could not be written to the result store."""


class QueryError(PingMonitorError):
    """A history query was malformed or the store failed to answer it."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotificationError(PingMonitorError):
    """An outbound notification transport failed."""
