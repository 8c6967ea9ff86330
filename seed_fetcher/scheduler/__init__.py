"""Timer adapters driving the tick scheduler."""

from .apsched_adapter import IntervalTickDriver

__all__ = ["IntervalTickDriver"]
