"""Append-only response log backing crash recovery and reassembly."""

from __future__ import annotations

import json
import os
from pathlib import Path
from threading import Lock
from typing import IO, Any, Protocol

import structlog

from ..engine.outcome import FetchOutcome
from ..engine.seeds import SeedRow
from ..errors import PersistenceError


class RecordCodec(Protocol):
    """Serialise outcomes to single-line records and back."""

    def encode(self, outcome: FetchOutcome) -> str:
        """Return one line of text (no line terminator)."""

    def decode(self, line: str) -> FetchOutcome:
        """Parse one line produced by ``encode``."""


class JsonLinesCodec:
    """One JSON object per line: ``{"payload": ..., "seed_row": {...}}``."""

    def encode(self, outcome: FetchOutcome) -> str:
        return json.dumps(
            {"payload": outcome.payload, "seed_row": outcome.seed_row.to_record()},
            ensure_ascii=False,
        )

    def decode(self, line: str) -> FetchOutcome:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("Response record must be a JSON object")
        if "seed_row" in data:
            return FetchOutcome(payload=data.get("payload"), seed_row=SeedRow.from_record(data["seed_row"]))
        if "_seedrow" in data:
            return self._decode_legacy(data)
        raise ValueError("Response record carries no seed row")

    @staticmethod
    def _decode_legacy(data: dict[str, Any]) -> FetchOutcome:
        # Older logs merged the seed row into the payload under "_seedrow".
        payload = dict(data)
        legacy = dict(payload.pop("_seedrow"))
        ordinal = int(legacy.pop("id"))
        raw = str(legacy.pop("org", ""))
        return FetchOutcome(payload=payload, seed_row=SeedRow(ordinal=ordinal, fields=legacy, raw=raw))


class ResponseLog:
    """Durable newline-delimited log of fetch outcomes.

    Every ``append`` is flushed and fsynced before it returns, so a crash
    leaves a valid prefix of completed records. A missing file means no
    prior progress.
    """

    def __init__(
        self,
        path: Path,
        codec: RecordCodec | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.path = Path(path)
        self.codec = codec or JsonLinesCodec()
        self.logger = logger or structlog.get_logger("seed_fetcher.storage")
        self._file: IO[str] | None = None
        self._lock = Lock()

    def append(self, outcome: FetchOutcome) -> None:
        try:
            line = self.codec.encode(outcome)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot encode outcome for record {outcome.ordinal}: {exc}") from exc
        if "\n" in line:
            raise PersistenceError(f"Encoded outcome for record {outcome.ordinal} spans several lines")
        with self._lock:
            try:
                stream = self._ensure_open()
                stream.write(line + "\n")
                stream.flush()
                os.fsync(stream.fileno())
            except OSError as exc:
                raise PersistenceError(f"Cannot append to response log {self.path}: {exc}") from exc

    def load_all(self) -> list[FetchOutcome]:
        if not self.path.exists():
            return []
        self.logger.info("response_log_loading", path=str(self.path))
        try:
            data = self.path.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"Cannot read response log {self.path}: {exc}") from exc

        # Decoded per line: a crash may cut the last record inside a multi-byte character.
        *complete, tail = data.split(b"\n")
        outcomes: list[FetchOutcome] = []
        for number, line in enumerate(complete, start=1):
            if not line.strip():
                continue
            try:
                outcomes.append(self.codec.decode(line.decode("utf-8")))
            except (ValueError, KeyError, TypeError) as exc:
                raise PersistenceError(f"Corrupt record at {self.path}:{number}: {exc}") from exc

        if tail.strip():
            try:
                outcomes.append(self.codec.decode(tail.decode("utf-8")))
            except (ValueError, KeyError, TypeError):
                self._drop_torn_tail(len(data) - len(tail))
            else:
                self._terminate_tail()
        self.logger.info("response_log_loaded", records=len(outcomes))
        return outcomes

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def reset(self) -> None:
        self.close()
        if self.path.exists():
            self.path.unlink()

    # ------------------------------------------------------------------
    def _ensure_open(self) -> IO[str]:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("a", encoding="utf-8", newline="")
        return self._file

    def _drop_torn_tail(self, valid_size: int) -> None:
        self.logger.warning("response_log_torn_tail", path=str(self.path), kept_bytes=valid_size)
        try:
            os.truncate(self.path, valid_size)
        except OSError as exc:
            raise PersistenceError(f"Cannot truncate torn record in {self.path}: {exc}") from exc

    def _terminate_tail(self) -> None:
        try:
            with self.path.open("a", encoding="utf-8", newline="") as stream:
                stream.write("\n")
        except OSError as exc:
            raise PersistenceError(f"Cannot repair response log {self.path}: {exc}") from exc


__all__ = ["JsonLinesCodec", "RecordCodec", "ResponseLog"]
