"""Configuration package exports."""

from .loader import ConfigRepository
from .models import BackOffRule, HooksConfig, JobConfig, SeedFormat, TransportConfig

__all__ = [
    "BackOffRule",
    "ConfigRepository",
    "HooksConfig",
    "JobConfig",
    "SeedFormat",
    "TransportConfig",
]
