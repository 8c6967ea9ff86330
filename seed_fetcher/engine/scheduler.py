"""Single-flight tick scheduler driving one fetch per tick."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Callable, Protocol, Sequence

import structlog

from ..errors import FetchError, PersistenceError
from .backoff import BackoffController, FailureVerdict, RunState, RunStatus
from .dedup import DedupIndex
from .hooks import Transport
from .outcome import FetchOutcome
from .seeds import SeedRow


class OutcomeLog(Protocol):
    def append(self, outcome: FetchOutcome) -> None: ...


class TickResult(str, Enum):
    """What a single tick did."""

    BUSY = "busy"
    SLEEPING = "sleeping"
    SKIPPED = "skipped"
    FAILED = "failed"
    ABANDONED = "abandoned"
    FETCHED = "fetched"
    BACKED_OFF = "backed_off"
    DISCARDED = "discarded"
    DONE = "done"
    ABORTED = "aborted"
    STOPPED = "stopped"

    @property
    def reenter(self) -> bool:
        """Ticks that ask for an immediate follow-up instead of the next timer fire."""

        return self in (TickResult.SKIPPED, TickResult.FAILED, TickResult.ABANDONED)


@dataclass(slots=True)
class RunStats:
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    abandoned: int = 0
    backed_off: int = 0
    discarded: int = 0


TickListener = Callable[[TickResult, SeedRow | None], None]
CompletionHook = Callable[[RunStatus], None]


class Scheduler:
    """Advance a fetch run one unit of work per ``tick``.

    Per tick, in order: finish when the cursor reaches the end bound, abort
    when the run-wide failure budget is spent, idle while sleeping, skip rows
    already in the dedup index, otherwise fetch the row at the cursor.
    Overlapping ticks are no-ops.
    """

    def __init__(
        self,
        rows: Sequence[SeedRow],
        dedup: DedupIndex,
        log: OutcomeLog,
        transport: Transport,
        backoff: BackoffController,
        *,
        end: int | None = None,
        retry_discarded: bool = True,
        on_outcome: Callable[[FetchOutcome], None] | None = None,
        on_complete: CompletionHook | None = None,
        listener: TickListener | None = None,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.rows = list(rows)
        self.dedup = dedup
        self.log = log
        self.transport = transport
        self.backoff = backoff
        self.retry_discarded = retry_discarded
        self.on_outcome = on_outcome
        self.on_complete = on_complete
        self.listener = listener
        self.clock = clock
        self.logger = logger or structlog.get_logger("seed_fetcher.scheduler")
        bound = len(self.rows) if end is None else min(end, len(self.rows))
        self.state = RunState(end=bound)
        self.stats = RunStats()
        self._guard = Lock()

    @property
    def status(self) -> RunStatus:
        return self.state.status

    @property
    def finished(self) -> bool:
        return self.state.status.terminal

    def tick(self, now: float | None = None) -> TickResult:
        if not self._guard.acquire(blocking=False):
            self.logger.debug("tick_busy")
            return TickResult.BUSY
        try:
            if self.finished:
                return TickResult.STOPPED
            return self._step(self.state, now)
        except Exception:
            # Any error escaping a step ends the run.
            if not self.state.status.terminal:
                self.state.status = RunStatus.CRASHED
            raise
        finally:
            self._guard.release()

    # ------------------------------------------------------------------
    def _step(self, state: RunState, at: float | None) -> TickResult:
        now = self._now(at)
        if state.cursor >= state.end:
            self.logger.info("run_records_done", last_cursor=state.cursor)
            return self._finish(state, RunStatus.DONE)

        if self.backoff.budget_exhausted(state):
            self.logger.warning("run_failure_budget_exhausted", consecutive_failures=state.fail_count)
            return self._finish(state, RunStatus.ABORTED)

        if now < state.sleep_until:
            state.status = RunStatus.SLEEPING
            self.logger.debug("run_sleeping", remaining_seconds=round(state.sleep_until - now, 1))
            return TickResult.SLEEPING

        state.status = RunStatus.RUNNING
        row = self.rows[state.cursor]

        if self.dedup.contains(row):
            self.logger.debug("record_skipped", cursor=state.cursor, ordinal=row.ordinal, key=row.relevant_fields())
            state.cursor += 1
            self.stats.skipped += 1
            return self._emit(TickResult.SKIPPED, row)

        try:
            payload = self._fetch(row)
        except FetchError as exc:
            # Pauses run from the end of the attempt, not the start of the tick.
            return self._handle_failure(state, row, exc, self._now(at))
        now = self._now(at)

        self.backoff.record_success(state)
        backed_off = self.backoff.check_back_off(state, payload, row, now)
        if backed_off:
            self.stats.backed_off += 1
            if self.backoff.discard_on_back_off:
                return self._discard(state, row)

        outcome = FetchOutcome(payload=payload, seed_row=row)
        try:
            self.log.append(outcome)
        except PersistenceError:
            state.status = RunStatus.CRASHED
            self.logger.error("response_log_write_failed", cursor=state.cursor, ordinal=row.ordinal)
            raise
        self.dedup.add(row)
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        self.logger.debug("record_saved", cursor=state.cursor, ordinal=row.ordinal)

        state.cursor += 1
        self.stats.fetched += 1
        if not backed_off:
            # No extra pause; the regular interval paces the next fetch.
            state.sleep_until = now
            return self._emit(TickResult.FETCHED, row)
        return self._emit(TickResult.BACKED_OFF, row)

    def _now(self, at: float | None) -> float:
        return self.clock() if at is None else at

    def _fetch(self, row: SeedRow) -> Any:
        try:
            return self.transport(row)
        except FetchError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise FetchError(f"{type(exc).__name__}: {exc}") from exc

    def _handle_failure(self, state: RunState, row: SeedRow, exc: FetchError, now: float) -> TickResult:
        verdict = self.backoff.record_failure(state, now)
        self.stats.failed += 1
        self.logger.warning(
            "fetch_failed",
            cursor=state.cursor,
            ordinal=row.ordinal,
            error=str(exc),
            record_failures=state.record_fail_count,
            consecutive_failures=state.fail_count,
        )
        if verdict is FailureVerdict.ABANDON:
            self.logger.warning(
                "record_abandoned", cursor=state.cursor, ordinal=row.ordinal, key=row.relevant_fields()
            )
            state.cursor += 1
            self.stats.abandoned += 1
            return self._emit(TickResult.ABANDONED, row)
        return self._emit(TickResult.FAILED, row)

    def _discard(self, state: RunState, row: SeedRow) -> TickResult:
        self.stats.discarded += 1
        if not self.retry_discarded:
            # Not logged, so a later resumption fetches it again.
            state.cursor += 1
        self.logger.info("response_discarded", ordinal=row.ordinal, retry=self.retry_discarded)
        return self._emit(TickResult.DISCARDED, row)

    def _finish(self, state: RunState, status: RunStatus) -> TickResult:
        state.status = status
        self.logger.info("run_finished", status=status.value, cursor=state.cursor, end=state.end)
        result = TickResult.DONE if status is RunStatus.DONE else TickResult.ABORTED
        self._emit(result, None)
        if self.on_complete is not None:
            self.on_complete(status)
        return result

    def _emit(self, result: TickResult, row: SeedRow | None) -> TickResult:
        if self.listener is not None:
            self.listener(result, row)
        return result


__all__ = ["OutcomeLog", "RunStats", "Scheduler", "TickResult"]
