"""Run-wide pacing: failure budgets and rate-limit pauses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ..config import JobConfig
from .hooks import BackOffPolicy, never_back_off
from .seeds import SeedRow


class RunStatus(str, Enum):
    """Scheduler states; DONE, ABORTED and CRASHED are terminal."""

    RUNNING = "running"
    SLEEPING = "sleeping"
    DONE = "done"
    ABORTED = "aborted"
    CRASHED = "crashed"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.DONE, RunStatus.ABORTED, RunStatus.CRASHED)


@dataclass(slots=True)
class RunState:
    """Mutable state of one run, owned by the scheduler."""

    end: int
    cursor: int = 0
    sleep_until: float = 0.0
    record_fail_count: int = 0
    fail_count: int = 0
    fetches_since_last_back_off: int = 0
    status: RunStatus = RunStatus.RUNNING


class FailureVerdict(str, Enum):
    RETRY = "retry"
    ABANDON = "abandon"


@dataclass(slots=True)
class BackoffSettings:
    task_interval: float
    back_off_seconds: float
    max_record_fail_count: int
    max_fail_count: int
    sleep_intervals_after_fail: float = 0
    discard_back_off_response: bool = False

    @classmethod
    def from_config(cls, config: JobConfig) -> "BackoffSettings":
        return cls(
            task_interval=config.task_interval,
            back_off_seconds=config.task_back_off_seconds,
            max_record_fail_count=config.max_record_fail_count,
            max_fail_count=config.max_fail_count,
            sleep_intervals_after_fail=config.sleep_intervals_after_fail,
            discard_back_off_response=config.discard_back_off_response,
        )


class BackoffController:
    """Decide pauses and give-ups after each fetch attempt.

    The controller holds no run state of its own; every method receives the
    scheduler's ``RunState`` and mutates only counters and ``sleep_until``.
    Cursor movement stays with the scheduler.
    """

    def __init__(
        self,
        settings: BackoffSettings,
        policy: BackOffPolicy | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings
        self.policy = policy or never_back_off
        self.logger = logger or structlog.get_logger("seed_fetcher.backoff")

    @property
    def discard_on_back_off(self) -> bool:
        return self.settings.discard_back_off_response

    def budget_exhausted(self, state: RunState) -> bool:
        return state.fail_count >= self.settings.max_fail_count

    def record_failure(self, state: RunState, now: float) -> FailureVerdict:
        state.record_fail_count += 1
        state.fail_count += 1
        state.sleep_until = now + self.settings.task_interval * self.settings.sleep_intervals_after_fail

        if state.record_fail_count >= self.settings.max_record_fail_count:
            state.record_fail_count = 0
            return FailureVerdict.ABANDON
        return FailureVerdict.RETRY

    def record_success(self, state: RunState) -> None:
        state.record_fail_count = 0
        state.fail_count = 0
        state.fetches_since_last_back_off += 1

    def check_back_off(self, state: RunState, payload: Any, row: SeedRow, now: float) -> bool:
        """Ask the policy whether to pause; start the pause if so."""

        if not self.policy(payload, row, state.fetches_since_last_back_off):
            return False
        state.fetches_since_last_back_off = 0
        state.sleep_until = now + self.settings.back_off_seconds
        self.logger.warning(
            "back_off_started",
            ordinal=row.ordinal,
            minutes=self.settings.back_off_seconds / 60,
            discard=self.discard_on_back_off,
        )
        return True


__all__ = [
    "BackoffController",
    "BackoffSettings",
    "FailureVerdict",
    "RunState",
    "RunStatus",
]
