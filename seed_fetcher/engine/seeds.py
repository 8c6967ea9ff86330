"""Seed ingestion: turn a delimited seed file into addressable rows."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Sequence

import structlog

from ..config import SeedFormat
from ..errors import ConfigError, SeedFormatError

SUPPORTED_FORMATS = ("CSV",)


@dataclass(slots=True)
class SeedRow:
    """One seed record.

    ``ordinal`` is the 1-based line number in the seed file (the header is
    line 0) and survives permutation; ``raw`` is the untouched source line
    used when reassembling output.
    """

    ordinal: int
    fields: dict[str, str]
    raw: str
    extra: dict[str, Any] = field(default_factory=dict)

    def key(self, columns: Sequence[str]) -> tuple[str | None, ...]:
        return tuple(self.fields.get(name) for name in columns)

    def relevant_fields(self) -> dict[str, str]:
        return dict(self.fields)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.ordinal,
            "fields": dict(self.fields),
            "raw": self.raw,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SeedRow":
        return cls(
            ordinal=int(record["id"]),
            fields={str(k): v for k, v in dict(record.get("fields") or {}).items()},
            raw=str(record.get("raw", "")),
            extra=dict(record.get("extra") or {}),
        )


@dataclass(slots=True)
class SeedData:
    """Header line plus the ordered rows that follow it."""

    header: str
    rows: list[SeedRow]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[SeedRow]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> SeedRow:
        return self.rows[index]


Mutator = Callable[[SeedRow], None]


class SeedStore:
    """Load seed rows selecting the declared columns."""

    def __init__(
        self,
        seed_format: SeedFormat,
        columns: Mapping[str, int],
        mutate: Mutator | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if seed_format.format.upper() not in SUPPORTED_FORMATS:
            raise SeedFormatError(
                f"Unsupported seed format {seed_format.format!r}; supported: {', '.join(SUPPORTED_FORMATS)}"
            )
        self.seed_format = seed_format
        self.columns = dict(columns)
        self.mutate = mutate
        self.logger = logger or structlog.get_logger("seed_fetcher.seeds")

    def load(self, path: Path) -> SeedData:
        self.logger.info("seed_loading", path=str(path))
        try:
            with Path(path).open("r", encoding="utf-8", newline="") as stream:
                text = stream.read()
        except OSError as exc:
            raise ConfigError(f"Cannot read seed file {path}: {exc}") from exc
        return self.parse(text)

    def parse(self, text: str) -> SeedData:
        # Naive split: quoted fields and escaped separators are not handled.
        lines = text.split(self.seed_format.line_terminator)
        header = lines[0] if lines else ""
        rows: list[SeedRow] = []
        for ordinal, line in enumerate(lines[1:], start=1):
            if not line:
                continue
            cells = line.split(self.seed_format.separator)
            fields = {
                name: cells[index] if index < len(cells) else ""
                for name, index in self.columns.items()
            }
            row = SeedRow(ordinal=ordinal, fields=fields, raw=line)
            if self.mutate is not None:
                self.mutate(row)
            rows.append(row)
        self.logger.info("seed_loaded", rows=len(rows))
        return SeedData(header=header, rows=rows)


def permute(rows: Sequence[SeedRow], seed: int | None = None) -> list[SeedRow]:
    """Return the rows in uniformly random order; ordinals are untouched."""

    shuffled = list(rows)
    random.Random(seed).shuffle(shuffled)
    return shuffled


__all__ = ["SUPPORTED_FORMATS", "SeedData", "SeedRow", "SeedStore", "permute"]
