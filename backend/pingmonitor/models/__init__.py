"""Database models."""
from .ping_result import Outcome, PingResult

__all__ = ["Outcome", "PingResult"]
