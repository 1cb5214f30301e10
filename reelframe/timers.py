"""Rearmable interval timers backed by APScheduler jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .logging import get_logger


class Timer(Protocol):
    """Minimal timer interface used by the presentation layer."""

    interval: float

    @property
    def is_running(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


TimerFactory = Callable[[str, Callable[[], None], float], Timer]


@dataclass
class SchedulerTimer:
    """Interval job that fires ``callback`` every ``interval`` seconds.

    Jobs run with ``max_instances=1`` and ``coalesce=True`` so a slow tick is
    never overlapped by the next one; missed ticks collapse into a single run.
    """

    scheduler: BaseScheduler
    job_id: str
    callback: Callable[[], None]
    interval: float
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.timers"))
    _running: bool = field(default=False, init=False, repr=False)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self.scheduler.add_job(
            self.callback,
            trigger=IntervalTrigger(seconds=self.interval),
            id=self.job_id,
            name=self.job_id,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._running = True
        self.logger.info("timer.started", job_id=self.job_id, interval=self.interval)

    def stop(self) -> None:
        if not self._running:
            return
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            self.logger.debug("timer.job_missing", job_id=self.job_id)
        self._running = False
        self.logger.info("timer.stopped", job_id=self.job_id)


def scheduler_timer_factory(scheduler: BaseScheduler) -> TimerFactory:
    """Return a factory creating :class:`SchedulerTimer` jobs on ``scheduler``."""

    def _factory(job_id: str, callback: Callable[[], None], interval: float) -> Timer:
        return SchedulerTimer(scheduler=scheduler, job_id=job_id, callback=callback, interval=interval)

    return _factory
