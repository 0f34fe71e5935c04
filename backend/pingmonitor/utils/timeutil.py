"""Local timestamp helpers.

All stored timestamps are naive datetimes expressed in the configured zone
(``settings.timezone``). Every conversion between aware instants, stored
values and the ``YYYY-MM-DD HH:MM:SS`` wire format goes through this module.
"""
from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from ..config import settings

WIRE_FORMAT = "%Y-%m-%d %H:%M:%S"


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_zone() -> ZoneInfo:
    """Return the configured zone."""
    return _zone(settings.timezone)


def local_now() -> datetime:
    """Current time in the configured zone, as a naive datetime."""
    return datetime.now(local_zone()).replace(tzinfo=None)


def to_local(value: datetime) -> datetime:
    """Convert an instant to a naive local datetime.

    Aware values are converted into the configured zone; naive values are
    assumed to already be local and are returned unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(local_zone()).replace(tzinfo=None)


def parse_instant(text: str) -> datetime:
    """Parse an ISO-8601 date or datetime into a naive local datetime.

    Accepts a trailing ``Z`` as produced by ``Date.toISOString()``.
    Raises ValueError on malformed input.
    """
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_local(datetime.fromisoformat(text))


def format_local(value: datetime) -> str:
    """Format a stored timestamp for the wire (second resolution)."""
    return to_local(value).strftime(WIRE_FORMAT)


def truncate_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)
