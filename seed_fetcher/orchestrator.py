"""Run orchestrator wiring seeds, response log, dedup, scheduler and refiner."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

import structlog

from .config import JobConfig
from .engine import (
    BackoffController,
    BackoffSettings,
    DedupIndex,
    HookSet,
    HttpTransport,
    Refiner,
    RunStatus,
    Scheduler,
    SeedData,
    SeedStore,
    permute,
)
from .engine.hooks import Transport
from .engine.scheduler import TickListener
from .errors import ConfigError, PersistenceError, RefineConsistencyError, RunAbortedError
from .infra import ResponseLog
from .scheduler import IntervalTickDriver


class TickDriver(Protocol):
    def run(self, timeout: float | None = None) -> RunStatus: ...


DriverFactory = Callable[[Scheduler, float], TickDriver]


@dataclass(slots=True)
class RunSummary:
    """Outcome of one run as reported to the caller."""

    status: RunStatus
    total: int
    previously_done: int
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    abandoned: int = 0
    backed_off: int = 0
    discarded: int = 0
    refined_path: Path | None = None
    refine_error: str | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.DONE and self.refine_error is None

    def raise_for_status(self) -> None:
        if self.status is RunStatus.CRASHED:
            raise PersistenceError(self.error or "Run crashed")
        if self.status is RunStatus.ABORTED:
            raise RunAbortedError(
                f"Run aborted after too many consecutive failures ({self.failed} failed attempts)"
            )
        if self.refine_error is not None:
            raise RefineConsistencyError(self.refine_error)


@dataclass(slots=True)
class JobStatus:
    total: int
    done: int
    log_records: int
    response_log_path: Path
    refined_path: Path
    refined_exists: bool

    @property
    def remaining(self) -> int:
        return self.total - self.done


@dataclass(slots=True)
class RefineReport:
    path: Path | None = None
    error: str | None = None


@dataclass(slots=True)
class PreparedRun:
    scheduler: Scheduler
    seeds: SeedData
    refiner: Refiner | None
    previously_done: int
    refine_report: RefineReport


class Orchestrator:
    """Coordinate one fetch job from seed ingestion to reassembly."""

    def __init__(
        self,
        config: JobConfig,
        hooks: HookSet | None = None,
        transport: Transport | None = None,
        *,
        clock: Callable[[], float] = time.time,
        driver_factory: DriverFactory | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.hooks = hooks or HookSet.from_config(config.hooks, config.back_off)
        self.transport = transport
        self.clock = clock
        self.driver_factory = driver_factory or IntervalTickDriver
        self.logger = logger or structlog.get_logger("seed_fetcher.orchestrator").bind(job=config.run_type)
        self.response_log = ResponseLog(config.resolved_response_log_path(), logger=self.logger)
        self._owned_transport: HttpTransport | None = None

    # ------------------------------------------------------------------
    def prepare(
        self,
        *,
        listener: TickListener | None = None,
        limit: int | None = None,
        refine_enabled: bool | None = None,
    ) -> PreparedRun:
        config = self.config
        prior = self.response_log.load_all()
        dedup = DedupIndex.build(prior, config.dedup_columns)
        seeds = self._load_seeds()

        rows = seeds.rows
        if config.randomize_seed_order:
            rows = permute(rows, config.shuffle_seed)

        refine_on = config.post_run_refine_enabled if refine_enabled is None else refine_enabled
        refiner: Refiner | None = None
        if refine_on and self.hooks.refine is not None:
            refiner = self._build_refiner()
            refiner.extend(prior)

        report = RefineReport()

        def _complete(status: RunStatus) -> None:
            if refiner is not None:
                self._run_refiner(refiner, seeds.header, report)

        end = limit if limit is not None else config.limit
        scheduler = Scheduler(
            rows,
            dedup,
            self.response_log,
            self._transport(),
            BackoffController(BackoffSettings.from_config(config), self.hooks.back_off, logger=self.logger),
            end=end,
            retry_discarded=config.retry_discarded_record,
            on_outcome=refiner.buffer if refiner is not None else None,
            on_complete=_complete,
            listener=listener,
            clock=self.clock,
            logger=self.logger,
        )
        self.logger.info(
            "run_prepared",
            run_type=config.run_type,
            rows=len(rows),
            end=scheduler.state.end,
            previously_done=len(dedup),
            randomized=config.randomize_seed_order,
            refine=refiner is not None,
        )
        return PreparedRun(
            scheduler=scheduler,
            seeds=seeds,
            refiner=refiner,
            previously_done=len(dedup),
            refine_report=report,
        )

    def run(
        self,
        *,
        listener: TickListener | None = None,
        limit: int | None = None,
        refine_enabled: bool | None = None,
    ) -> RunSummary:
        prepared = self.prepare(listener=listener, limit=limit, refine_enabled=refine_enabled)
        scheduler = prepared.scheduler
        self.logger.info("run_starting", run_type=self.config.run_type, interval=self.config.task_interval)
        error: str | None = None
        try:
            self.driver_factory(scheduler, self.config.task_interval).run()
        except PersistenceError as exc:
            error = str(exc)
            self.logger.error("run_crashed", error=error)
        except Exception as exc:  # noqa: BLE001
            # A collaborator hook raised mid-run; reported like a crash.
            error = f"{type(exc).__name__}: {exc}"
            self.logger.error("run_crashed", error=error)
        finally:
            self.close()

        summary = self._summarise(prepared, error)
        self.logger.info(
            "run_summary",
            status=summary.status.value,
            fetched=summary.fetched,
            skipped=summary.skipped,
            abandoned=summary.abandoned,
            refined=str(summary.refined_path) if summary.refined_path else None,
        )
        return summary

    def refine(self) -> Path | None:
        """Reassemble the refined file from the response log alone."""

        if self.hooks.refine is None:
            raise ConfigError("Reassembly needs hooks.refine in the job file")
        seeds = self._load_seeds()
        refiner = self._build_refiner()
        return refiner.run(seeds.header, self.response_log.load_all())

    def status(self) -> JobStatus:
        prior = self.response_log.load_all()
        dedup = DedupIndex.build(prior, self.config.dedup_columns)
        seeds = self._load_seeds()
        done = sum(1 for row in seeds if dedup.contains(row))
        refined_path = self.config.resolved_refined_path()
        return JobStatus(
            total=len(seeds),
            done=done,
            log_records=len(prior),
            response_log_path=self.response_log.path,
            refined_path=refined_path,
            refined_exists=refined_path.exists(),
        )

    def reset(self) -> None:
        """Forget all progress: delete the response log and refined artifact."""

        self.response_log.reset()
        refined_path = self.config.resolved_refined_path()
        if refined_path.exists():
            refined_path.unlink()
        self.logger.info("job_reset", response_log=str(self.response_log.path))

    def close(self) -> None:
        self.response_log.close()
        if self._owned_transport is not None:
            self._owned_transport.close()
            self._owned_transport = None

    # ------------------------------------------------------------------
    def _load_seeds(self) -> SeedData:
        store = SeedStore(self.config.seed_format, self.config.columns, self.hooks.mutate, logger=self.logger)
        return store.load(self.config.seed_path)

    def _build_refiner(self) -> Refiner:
        return Refiner(
            self.hooks.refine,
            self.config.resolved_refined_path(),
            separator=self.config.seed_format.separator,
            line_terminator=self.config.seed_format.line_terminator,
            logger=self.logger,
        )

    def _run_refiner(self, refiner: Refiner, header: str, report: RefineReport) -> None:
        try:
            report.path = refiner.run(header)
        except (RefineConsistencyError, PersistenceError) as exc:
            # Reassembly failed; fetched records stay safe in the response log.
            self.logger.error("refine_failed", error=str(exc))
            report.error = str(exc)

    def _transport(self) -> Transport:
        if self.transport is not None:
            return self.transport
        if self._owned_transport is not None:
            return self._owned_transport
        self._owned_transport = HttpTransport(
            self.config.transport,
            self.hooks.body,
            run_type=self.config.run_type,
            logger=self.logger,
        )
        return self._owned_transport

    @staticmethod
    def _summarise(prepared: PreparedRun, error: str | None) -> RunSummary:
        scheduler = prepared.scheduler
        stats = scheduler.stats
        return RunSummary(
            status=scheduler.status,
            total=len(scheduler.rows),
            previously_done=prepared.previously_done,
            fetched=stats.fetched,
            skipped=stats.skipped,
            failed=stats.failed,
            abandoned=stats.abandoned,
            backed_off=stats.backed_off,
            discarded=stats.discarded,
            refined_path=prepared.refine_report.path,
            refine_error=prepared.refine_report.error,
            error=error,
        )


__all__ = ["JobStatus", "Orchestrator", "PreparedRun", "RefineReport", "RunSummary"]
