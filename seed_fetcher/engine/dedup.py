"""Deduplication index built from previously fetched outcomes."""

from __future__ import annotations

from typing import Iterable, Sequence

from .outcome import FetchOutcome
from .seeds import SeedRow


class DedupIndex:
    """Set of key-column tuples for records that are already fetched.

    Two rows are the same record iff every key column holds an equal string;
    non-key columns are ignored.
    """

    def __init__(self, key_columns: Sequence[str]) -> None:
        if not key_columns:
            raise ValueError("DedupIndex needs at least one key column")
        self.key_columns = tuple(key_columns)
        self._keys: set[tuple[str | None, ...]] = set()

    @classmethod
    def build(cls, prior_outcomes: Iterable[FetchOutcome], key_columns: Sequence[str]) -> "DedupIndex":
        index = cls(key_columns)
        for outcome in prior_outcomes:
            index.add(outcome.seed_row)
        return index

    def add(self, row: SeedRow) -> None:
        self._keys.add(row.key(self.key_columns))

    def contains(self, row: SeedRow) -> bool:
        key = row.key(self.key_columns)
        if None in key:
            return False
        return key in self._keys

    __contains__ = contains

    def __len__(self) -> int:
        return len(self._keys)


__all__ = ["DedupIndex"]
