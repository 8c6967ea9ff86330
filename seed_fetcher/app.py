"""Typer CLI entrypoint for seed-fetcher."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, JobConfig
from .errors import (
    ConfigError,
    PersistenceError,
    RefineConsistencyError,
    RunAbortedError,
    SeedFetcherError,
    SeedFormatError,
)
from .logging_conf import available_job_logs, configure_logging, default_log_dir, job_logger, tail_log
from .orchestrator import JobStatus, Orchestrator, RunSummary
from .ui import ProgressReporter

EXIT_OK = 0
EXIT_STARTUP = 1
EXIT_ABORTED = 2
EXIT_CRASHED = 3
EXIT_REFINE = 4

app = typer.Typer(
    help="Resumable, rate-respecting remote fetches keyed off a seed file.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect log files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
app.add_typer(log_app, name="log")

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    return AppState(repository=ConfigRepository(), verbose=verbose)


def build_orchestrator(config: JobConfig, verbose: bool = False) -> Orchestrator:
    return Orchestrator(config, logger=job_logger(_job_label(config), verbose=verbose))


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _job_label(config: JobConfig) -> str:
    slug = "".join(ch.lower() if ch.isalnum() else "-" for ch in config.seed_path.stem).strip("-")
    return slug or "job"


def _progress_default_enabled() -> bool:
    return bool(getattr(sys.stdout, "isatty", lambda: False)())


def _load(state: AppState, job: Path) -> Orchestrator:
    try:
        config = state.repository.load_job(job)
        return build_orchestrator(config, verbose=state.verbose)
    except (ConfigError, SeedFormatError) as exc:
        console.print(f"Cannot start: {exc}", style="red")
        raise typer.Exit(code=EXIT_STARTUP) from exc


def _render_summary(job: Path, summary: RunSummary) -> Table:
    table = Table(title=f"{job.name} run result", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Status", summary.status.value)
    table.add_row("Seed rows", str(summary.total))
    table.add_row("Done before run", str(summary.previously_done))
    table.add_row("Fetched", str(summary.fetched))
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Failed attempts", str(summary.failed))
    table.add_row("Abandoned", str(summary.abandoned))
    if summary.backed_off:
        table.add_row("Back-offs", str(summary.backed_off))
    if summary.discarded:
        table.add_row("Discarded", str(summary.discarded))
    if summary.refined_path:
        table.add_row("Refined file", str(summary.refined_path))
    return table


def _render_status(job: Path, status: JobStatus) -> Table:
    table = Table(title=f"{job.name} progress", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Seed rows", str(status.total))
    table.add_row("Done", str(status.done))
    table.add_row("Remaining", str(status.remaining))
    table.add_row("Log records", str(status.log_records))
    table.add_row("Response log", str(status.response_log_path))
    table.add_row("Refined file", str(status.refined_path) if status.refined_exists else "-")
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Fetch every seed row not yet in the response log.")
def run_job(
    ctx: typer.Context,
    job: Path = typer.Argument(..., help="Job file (YAML or JSON)."),
    quiet: bool = typer.Option(False, "--quiet", help="Print a one-line result only.", is_flag=True),
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Stop after this many seed rows."),
    no_refine: bool = typer.Option(False, "--no-refine", help="Skip reassembly for this run.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    orchestrator = _load(state, job)
    progress = ProgressReporter(enabled=_progress_default_enabled() and not quiet, label=orchestrator.config.run_type)
    try:
        prepared_total = orchestrator.status().total if progress.enabled else 0
        progress.start(min(prepared_total, limit) if limit is not None else prepared_total)
        summary = orchestrator.run(
            listener=progress.on_tick,
            limit=limit,
            refine_enabled=False if no_refine else None,
        )
    except (ConfigError, SeedFormatError) as exc:
        console.print(f"Cannot start: {exc}", style="red")
        raise typer.Exit(code=EXIT_STARTUP) from exc
    except PersistenceError as exc:
        console.print(f"Crashed on write: {exc}", style="red")
        raise typer.Exit(code=EXIT_CRASHED) from exc
    except KeyboardInterrupt:
        console.print("Interrupted; completed records are kept in the response log.", style="yellow")
        raise typer.Exit(code=130)
    finally:
        progress.close()

    if quiet:
        console.print(
            f"{summary.status.value}: fetched {summary.fetched}, skipped {summary.skipped}, "
            f"abandoned {summary.abandoned}"
        )
    else:
        console.print(_render_summary(job, summary))

    try:
        summary.raise_for_status()
    except RunAbortedError as exc:
        console.print(f"Aborted on failure budget: {exc}", style="red")
        raise typer.Exit(code=EXIT_ABORTED) from exc
    except PersistenceError as exc:
        console.print(f"Run crashed: {exc}", style="red")
        raise typer.Exit(code=EXIT_CRASHED) from exc
    except RefineConsistencyError as exc:
        console.print(f"Reassembly failed: {exc}", style="red")
        raise typer.Exit(code=EXIT_REFINE) from exc
    if not quiet:
        console.print("Completed.", style="green")


@app.command("status", help="Show how many seed rows are already fetched.")
def status_job(ctx: typer.Context, job: Path = typer.Argument(..., help="Job file.")) -> None:
    state = _get_state(ctx)
    orchestrator = _load(state, job)
    try:
        status = orchestrator.status()
    except SeedFetcherError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=EXIT_STARTUP) from exc
    console.print(_render_status(job, status))


@app.command("refine", help="Rebuild the refined file from the response log without fetching.")
def refine_job(ctx: typer.Context, job: Path = typer.Argument(..., help="Job file.")) -> None:
    state = _get_state(ctx)
    orchestrator = _load(state, job)
    try:
        path = orchestrator.refine()
    except ConfigError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=EXIT_STARTUP) from exc
    except RefineConsistencyError as exc:
        console.print(f"Reassembly failed: {exc}", style="red")
        raise typer.Exit(code=EXIT_REFINE) from exc
    except PersistenceError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=EXIT_CRASHED) from exc
    if path is None:
        console.print("Nothing fetched yet; no refined file written.", style="yellow")
        return
    console.print(f"Created {path}", style="green")


@app.command("reset", help="Delete the response log and refined file to start over.")
def reset_job(
    ctx: typer.Context,
    job: Path = typer.Argument(..., help="Job file."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    orchestrator = _load(state, job)
    if not yes:
        confirmed = typer.confirm(f"Delete {orchestrator.response_log.path} and all fetched progress?")
        if not confirmed:
            console.print("Cancelled.", style="yellow")
            raise typer.Exit(code=0)
    orchestrator.reset()
    console.print("Progress cleared.", style="green")


@app.command("init", help="Write a commented job template.")
def init_job(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("job.yaml"), help="Where to write the template."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    try:
        written = state.repository.write_template(path, overwrite=force)
    except ConfigError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=EXIT_STARTUP) from exc
    console.print(f"Template written to {written}", style="green")


@log_app.command("list", help="List per-job log files.")
def log_list() -> None:
    logs = list(available_job_logs())
    if not logs:
        console.print("No job logs yet.", style="dim")
        return
    table = Table(title="Job logs", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan")
    table.add_column("Path", overflow="fold")
    for path in logs:
        table.add_row(path.stem, str(path))
    console.print(table)


@log_app.command("show", help="Show the tail of a job log (or the main log).")
def log_show(
    name: Optional[str] = typer.Argument(None, help="Job log name; omit for the main log."),
    lines: int = typer.Option(50, "--lines", "-n", min=1, help="Number of lines."),
) -> None:
    log_dir = default_log_dir()
    path = log_dir / "jobs" / f"{name}.log" if name else log_dir / "fetcher.log"
    content = tail_log(path, lines)
    if not content:
        console.print("No log entries.", style="dim")
        return
    console.print(str(path), style="cyan")
    console.print("".join(content), markup=False, highlight=False)


def run() -> None:
    app()


__all__ = ["AppState", "EXIT_ABORTED", "EXIT_CRASHED", "EXIT_REFINE", "EXIT_STARTUP", "app", "run"]
