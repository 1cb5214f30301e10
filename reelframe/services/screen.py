"""Display power monitoring.

The monitor asks a probe whether the display is powered and notifies
subscribers only when that answer changes. While the screen is off it
polls periodically so the slideshow can resume as soon as power returns.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from ..logging import get_logger
from ..timers import Timer, TimerFactory

ScreenProbe = Callable[[], bool]
ScreenListener = Callable[[bool], None]

SCREEN_CHECK_JOB_ID = "screen-check"


@dataclass
class CommandScreenProbe:
    """Run an external command (e.g. a smart plug query); exit status 0 means on.

    Without a command, or when the command cannot be run, the screen is
    assumed on so the slideshow is never stopped on a guess.
    """

    command: Optional[List[str]] = None
    timeout: float = 10.0
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.screen"))

    def __call__(self) -> bool:
        if not self.command:
            return True
        try:
            completed = subprocess.run(
                self.command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            self.logger.error("screen.probe_failed", command=self.command, error=str(exc))
            return True
        is_on = completed.returncode == 0
        self.logger.debug("screen.probe_result", is_on=is_on, returncode=completed.returncode)
        return is_on


@dataclass
class ScreenMonitor:
    probe: ScreenProbe
    timer_factory: TimerFactory
    check_interval: float = 60.0
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.screen"))
    _listeners: List[ScreenListener] = field(default_factory=list, init=False, repr=False)
    _screen_was_off: bool = field(default=False, init=False, repr=False)
    _timer: Optional[Timer] = field(default=None, init=False, repr=False)

    @property
    def is_screen_on(self) -> bool:
        return not self._screen_was_off

    @property
    def is_polling(self) -> bool:
        return self._timer is not None and self._timer.is_running

    def subscribe(self, listener: ScreenListener) -> None:
        self._listeners.append(listener)

    def initialize(self, check_interval: Optional[float] = None) -> None:
        if check_interval is not None:
            self.check_interval = check_interval
        if self._timer is None:
            self._timer = self.timer_factory(SCREEN_CHECK_JOB_ID, self._on_check_tick, self.check_interval)
        self.logger.info("screen.initialized", check_interval=self.check_interval)

    def _read_probe(self) -> bool:
        try:
            return bool(self.probe())
        except Exception as exc:
            self.logger.error("screen.probe_error", error=str(exc))
            return True

    def _emit(self, is_on: bool) -> None:
        for listener in list(self._listeners):
            listener(is_on)

    def check_now(self) -> bool:
        """Probe immediately; subscribers hear about on/off transitions only."""

        is_on = self._read_probe()
        if not is_on and not self._screen_was_off:
            self._screen_was_off = True
            self.logger.info("screen.turned_off")
            self._emit(False)
        elif is_on and self._screen_was_off:
            self._screen_was_off = False
            self.logger.info("screen.turned_on")
            self._emit(True)
        return is_on

    def start_periodic_check(self) -> None:
        if self._timer is None:
            self.initialize()
        if not self._timer.is_running:
            self._timer.start()
            self.logger.info("screen.periodic_check_started")

    def stop_periodic_check(self) -> None:
        if self._timer is not None and self._timer.is_running:
            self._timer.stop()
            self.logger.info("screen.periodic_check_stopped")

    def _on_check_tick(self) -> None:
        # Only runs while the screen is off, waiting for it to come back.
        if self._read_probe() and self._screen_was_off:
            self._screen_was_off = False
            self.stop_periodic_check()
            self.logger.info("screen.turned_on", detected_by="timer")
            self._emit(True)
