"""Exception taxonomy shared by the fetch engine and the CLI."""

from __future__ import annotations


class SeedFetcherError(Exception):
    """Base class for every error raised by seed_fetcher."""


class ConfigError(SeedFetcherError):
    """A required setting is missing or invalid."""


class SeedFormatError(SeedFetcherError):
    """The declared seed format is not supported."""


class FetchError(SeedFetcherError):
    """The transport failed to fetch a single record."""


class RunAbortedError(SeedFetcherError):
    """The run-wide consecutive failure budget was exhausted."""


class PersistenceError(SeedFetcherError):
    """Appending to (or reading) the response log failed."""


class RefineConsistencyError(SeedFetcherError):
    """The refine collaborator returned an inconsistent field schema."""


__all__ = [
    "ConfigError",
    "FetchError",
    "PersistenceError",
    "RefineConsistencyError",
    "RunAbortedError",
    "SeedFetcherError",
    "SeedFormatError",
]
