"""PingResult model - one row per probe cycle."""
import enum

from sqlalchemy import Column, Integer, Float, String, DateTime

from ..database import Base


class Outcome(str, enum.Enum):
    """Probe outcome as stored in the ``status`` column."""

    SUCCESS = "success"
    FAILURE = "failed"


class PingResult(Base):
    """Append-only log of probe outcomes for the monitored endpoint."""

    __tablename__ = "ping_results"
    # AUTOINCREMENT keeps ids monotonic even after retention empties the table
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)  # local zone, naive
    ping_time = Column(Float, nullable=True)  # milliseconds, NULL if failed
    status = Column(String, nullable=False)  # success, failed
