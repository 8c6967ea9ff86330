"""Fetch outcome record persisted in the response log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .seeds import SeedRow


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """Remote payload plus the seed row it was fetched for."""

    payload: Any
    seed_row: SeedRow

    @property
    def ordinal(self) -> int:
        return self.seed_row.ordinal


__all__ = ["FetchOutcome"]
