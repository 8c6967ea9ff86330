"""Seed-driven, resumable remote data fetching."""

__version__ = "0.3.0"
