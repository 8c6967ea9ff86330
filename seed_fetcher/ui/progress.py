"""Terminal progress rendering for fetch runs."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..engine.scheduler import TickResult
from ..engine.seeds import SeedRow

_ADVANCING = {
    TickResult.FETCHED: "fetched",
    TickResult.BACKED_OFF: "fetched",
    TickResult.SKIPPED: "skipped",
    TickResult.ABANDONED: "abandoned",
}


@dataclass
class ProgressState:
    total: int
    fetched: int = 0
    skipped: int = 0
    abandoned: int = 0
    failures: int = 0
    current: str | None = None


class ProgressReporter:
    """Render a progress bar and keep counters, fed by scheduler tick events."""

    def __init__(self, enabled: bool = True, label: str = "fetch", console: Console | None = None) -> None:
        self.enabled = enabled
        self.label = label
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()
        self.state: ProgressState | None = None

    def start(self, total: int, completed: int = 0) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # Non-interactive output: stay silent instead of printing every refresh.
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            TextColumn("[green]✓{task.fields[fetched]:>4}", justify="right"),
            TextColumn("[yellow]↺{task.fields[skipped]:>4}", justify="right"),
            TextColumn("[red]✗{task.fields[abandoned]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current]}", justify="left"),
            console=self._console,
            transient=True,
            expand=True,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "fetch",
            total=total,
            completed=completed,
            label=self.label,
            fetched=0,
            skipped=0,
            abandoned=0,
            current="waiting…",
        )

    def on_tick(self, result: TickResult, row: SeedRow | None) -> None:
        """Scheduler listener: advance on every result that moves the cursor."""

        if self.state is None:
            return
        with self._lock:
            if result is TickResult.FAILED:
                self.state.failures += 1
            counter = _ADVANCING.get(result)
            if counter is None:
                return
            setattr(self.state, counter, getattr(self.state, counter) + 1)
            if row is not None:
                self.state.current = f"#{row.ordinal}"
            if self._progress is not None and self._task_id is not None:
                self._progress.update(
                    self._task_id,
                    advance=1,
                    fetched=self.state.fetched,
                    skipped=self.state.skipped,
                    abandoned=self.state.abandoned,
                    current=self.state.current or "",
                )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress.__exit__(None, None, None)
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if not self.state:
            return {"fetched": 0, "skipped": 0, "abandoned": 0, "failures": 0}
        return {
            "fetched": self.state.fetched,
            "skipped": self.state.skipped,
            "abandoned": self.state.abandoned,
            "failures": self.state.failures,
        }


__all__ = ["ProgressReporter", "ProgressState"]
