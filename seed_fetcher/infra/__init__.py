"""Infra layer utilities (response log storage, UA pool)."""

from .storage import JsonLinesCodec, RecordCodec, ResponseLog
from .ua_pool import UserAgentPool

__all__ = ["JsonLinesCodec", "RecordCodec", "ResponseLog", "UserAgentPool"]
