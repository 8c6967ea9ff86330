"""Shared fixtures: seed files, job configs, a fake clock and scripted collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from seed_fetcher.config import JobConfig
from seed_fetcher.engine import FetchOutcome, RunStatus, Scheduler, SeedRow
from seed_fetcher.errors import FetchError

SEED_HEADER = "zipcode,number,housenumberext"


class FakeClock:
    """Injected time source advanced explicitly by tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedTransport:
    """Transport replaying a per-key script; unscripted rows echo their key."""

    def __init__(self, script: dict[str, Sequence[Any]] | None = None, key: str = "zipcode") -> None:
        self.script = {name: list(steps) for name, steps in (script or {}).items()}
        self.key = key
        self.calls: list[str] = []

    def __call__(self, row: SeedRow) -> Any:
        value = row.fields[self.key]
        self.calls.append(value)
        steps = self.script.get(value)
        if steps:
            step = steps.pop(0) if len(steps) > 1 else steps[0]
            if isinstance(step, BaseException):
                raise step
            return step
        return {"echo": value}


def failing(message: str = "boom") -> FetchError:
    return FetchError(message)


class MemoryLog:
    def __init__(self) -> None:
        self.outcomes: list[FetchOutcome] = []

    def append(self, outcome: FetchOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def keys(self) -> list[str]:
        return [outcome.seed_row.fields["id"] for outcome in self.outcomes]


class ManualDriver:
    """Drive ticks in-process, advancing the fake clock one interval per idle tick."""

    def __init__(self, scheduler: Scheduler, interval: float, clock: FakeClock, max_ticks: int = 10_000) -> None:
        self.scheduler = scheduler
        self.interval = interval
        self.clock = clock
        self.max_ticks = max_ticks
        self.ticks = 0

    def run(self, timeout: float | None = None) -> RunStatus:
        while not self.scheduler.finished:
            result = self.scheduler.tick()
            self.ticks += 1
            if not result.reenter:
                self.clock.advance(self.interval)
            if self.ticks > self.max_ticks:
                raise AssertionError("scheduler did not reach a terminal state")
        return self.scheduler.status


def make_rows(values: Iterable[str], column: str = "id") -> list[SeedRow]:
    return [
        SeedRow(ordinal=index, fields={column: value}, raw=f"{value},row{index}")
        for index, value in enumerate(values, start=1)
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manual_driver(fake_clock: FakeClock) -> Callable[[Scheduler, float], ManualDriver]:
    def _factory(scheduler: Scheduler, interval: float) -> ManualDriver:
        return ManualDriver(scheduler, interval, fake_clock)

    return _factory


@pytest.fixture
def write_seed(tmp_path: Path) -> Callable[..., Path]:
    def _writer(
        rows: Sequence[Sequence[str]],
        *,
        header: str = SEED_HEADER,
        name: str = "seeds.csv",
        terminator: str = "\r\n",
    ) -> Path:
        path = tmp_path / name
        lines = [header, *(",".join(row) for row in rows)]
        path.write_bytes((terminator.join(lines) + terminator).encode("utf-8"))
        return path

    return _writer


@pytest.fixture
def sample_seed(write_seed: Callable[..., Path]) -> Path:
    return write_seed(
        [
            ("1011AB", "1", ""),
            ("1011AB", "2", "A"),
            ("2500CD", "14", ""),
            ("3511EF", "7", "bis"),
        ]
    )


@pytest.fixture
def job_config(tmp_path: Path) -> Callable[..., JobConfig]:
    def _builder(seed_path: Path, **overrides: Any) -> JobConfig:
        base: dict[str, Any] = {
            "run_type": "TEST",
            "task_interval": 1.0,
            "back_off_minutes": 1,
            "randomize_seed_order": False,
            "max_record_fail_count": 3,
            "max_fail_count": 10,
            "sleep_intervals_after_fail": 0,
            "columns": {"zipcode": 0, "number": 1, "housenumberext": 2},
            "seed_path": seed_path,
            "response_log_path": tmp_path / "responses.jsonl",
            "refined_path": tmp_path / "refined.csv",
        }
        base.update(overrides)
        return JobConfig(**base)

    return _builder
