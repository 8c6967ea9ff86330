"""Post-run reassembly of seed lines with refined fetched fields."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import structlog

from ..errors import PersistenceError, RefineConsistencyError
from .hooks import RefineFn
from .outcome import FetchOutcome


class Refiner:
    """Buffer outcomes during a run and write the augmented seed file at the end.

    The key order of the first ``refine`` result fixes the output schema;
    any later row returning a different key count or order is a collaborator
    bug and raises ``RefineConsistencyError``.
    """

    def __init__(
        self,
        refine: RefineFn,
        output_path: Path,
        *,
        separator: str = ",",
        line_terminator: str = "\r\n",
        restore_order: bool = True,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.refine = refine
        self.output_path = Path(output_path)
        self.separator = separator
        self.line_terminator = line_terminator
        self.restore_order = restore_order
        self.logger = logger or structlog.get_logger("seed_fetcher.refiner")
        self.buffered: list[FetchOutcome] = []

    def buffer(self, outcome: FetchOutcome) -> None:
        self.buffered.append(outcome)

    def extend(self, outcomes: Iterable[FetchOutcome]) -> None:
        self.buffered.extend(outcomes)

    def run(self, header: str, outcomes: Iterable[FetchOutcome] | None = None) -> Path | None:
        """Write the refined file; return its path, or ``None`` when nothing was fetched."""

        # Always machine generated, so an old artifact is safe to discard.
        self._remove_existing()
        ordered = list(self.buffered if outcomes is None else outcomes)
        if self.restore_order:
            ordered.sort(key=lambda outcome: outcome.ordinal)
        if not ordered:
            self.logger.info("refine_skipped", reason="no_outcomes")
            return None

        lines = self._assemble(header, ordered)
        tmp_path = self.output_path.with_name(self.output_path.name + ".tmp")
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8", newline="") as stream:
                stream.writelines(lines)
            os.replace(tmp_path, self.output_path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write refined file {self.output_path}: {exc}") from exc
        self.logger.info("refine_written", path=str(self.output_path), rows=len(ordered))
        return self.output_path

    # ------------------------------------------------------------------
    def _assemble(self, header: str, outcomes: list[FetchOutcome]) -> list[str]:
        schema: list[str] | None = None
        lines: list[str] = []
        for outcome in outcomes:
            try:
                new_fields = self.refine(outcome)
            except RefineConsistencyError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise RefineConsistencyError(
                    f"Refine failed for record {outcome.ordinal}: {type(exc).__name__}: {exc}"
                ) from exc
            if not isinstance(new_fields, Mapping):
                raise RefineConsistencyError(
                    f"Refine returned {type(new_fields).__name__} for record {outcome.ordinal}, expected a mapping"
                )
            keys = [str(key) for key in new_fields]
            if schema is None:
                schema = keys
                lines.append(self._join(header, schema))
            elif len(keys) != len(schema):
                raise RefineConsistencyError(
                    f"Refine returned {len(keys)} fields for record {outcome.ordinal}, first row had {len(schema)}"
                )
            elif keys != schema:
                raise RefineConsistencyError(
                    f"Refine returned fields {keys} for record {outcome.ordinal}, first row order was {schema}"
                )
            lines.append(self._join(outcome.seed_row.raw, [_cell(value) for value in new_fields.values()]))
        return lines

    def _join(self, prefix: str, values: list[str]) -> str:
        return self.separator.join([prefix, *values]) + self.line_terminator

    def _remove_existing(self) -> None:
        if self.output_path.exists():
            try:
                self.output_path.unlink()
            except OSError as exc:
                raise PersistenceError(f"Cannot remove old refined file {self.output_path}: {exc}") from exc
            self.logger.debug("refine_artifact_removed", path=str(self.output_path))


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


__all__ = ["Refiner"]
