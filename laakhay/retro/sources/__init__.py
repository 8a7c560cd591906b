"""Activity sources."""

from .base import ActivitySource, execute_task
from .http import HTTPActivitySource

__all__ = ["ActivitySource", "HTTPActivitySource", "execute_task"]
