"""APScheduler timer firing scheduler ticks at a fixed interval."""

from __future__ import annotations

from datetime import datetime
from threading import Event

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..engine.backoff import RunStatus
from ..engine.scheduler import Scheduler

JOB_ID = "seed_fetcher::tick"


class IntervalTickDriver:
    """Fire ``Scheduler.tick`` every ``interval`` seconds until the run ends.

    Ticks that ask for immediate re-entry are repeated inside the same job
    invocation. Stopping the timer is the only cancellation; an in-flight
    fetch is allowed to finish.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        backend: BackgroundScheduler | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.interval = interval
        self.backend = backend or BackgroundScheduler()
        self.logger = logger or structlog.get_logger("seed_fetcher.timer")
        self._done = Event()
        self._error: BaseException | None = None
        self.started = False

    def run(self, timeout: float | None = None) -> RunStatus:
        """Block until the scheduler reaches a terminal state (or ``timeout``)."""

        self.start()
        try:
            self._done.wait(timeout)
        finally:
            self.shutdown()
        if self._error is not None:
            raise self._error
        return self.scheduler.status

    def start(self) -> None:
        if self.started:
            return
        self.backend.add_job(
            self._fire,
            trigger=IntervalTrigger(seconds=self.interval),
            id=JOB_ID,
            next_run_time=datetime.now(),
            # Overlapping fires reach the scheduler's busy guard.
            max_instances=2,
            coalesce=True,
            replace_existing=True,
        )
        self.backend.start()
        self.started = True
        self.logger.info("timer_started", interval=self.interval)

    def stop(self) -> None:
        self._done.set()

    def shutdown(self) -> None:
        if self.started:
            self.backend.shutdown(wait=True)
            self.started = False
            self.logger.info("timer_stopped", status=self.scheduler.status.value)

    def _fire(self) -> None:
        if self._done.is_set():
            return
        try:
            result = self.scheduler.tick()
            while result.reenter:
                result = self.scheduler.tick()
        except Exception as exc:  # noqa: BLE001
            # Re-raised from run() in the caller's thread.
            self.logger.error("tick_crashed", error=str(exc))
            self._error = exc
            self._done.set()
            return
        if self.scheduler.finished:
            self._done.set()


__all__ = ["IntervalTickDriver", "JOB_ID"]
