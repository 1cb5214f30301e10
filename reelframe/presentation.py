"""Slideshow state machine driving the scheduler from timer and device events."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from .logging import get_logger
from .scheduler import MediaScheduler, NoMediaAvailable, SchedulingResult
from .services.screen import ScreenMonitor
from .timers import Timer, TimerFactory

MediaListener = Callable[[SchedulingResult], None]

SLIDESHOW_JOB_ID = "slideshow-advance"


class PresentationState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    EXTERNAL_PLAYBACK = "external_playback"
    SCREEN_OFF = "screen_off"


@dataclass
class PresentationController:
    """Finite-state slideshow driver.

    Every transition runs under a single re-entrant lock, so timer ticks,
    manual commands, playback callbacks and screen events never interleave
    their catalog and cache work.
    """

    scheduler: MediaScheduler
    timer_factory: TimerFactory
    interval: float = 60.0
    auto_advance: bool = True
    screen: Optional[ScreenMonitor] = None
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.presentation"))
    _state: PresentationState = field(init=False)
    _timer: Timer = field(init=False, repr=False)
    _listeners: List[MediaListener] = field(default_factory=list, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._state = PresentationState.RUNNING if self.auto_advance else PresentationState.PAUSED
        self._timer = self.timer_factory(SLIDESHOW_JOB_ID, self._on_timer_tick, self.interval)
        if self.screen is not None:
            self.screen.subscribe(self._on_screen_state_changed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> PresentationState:
        return self._state

    @property
    def timer_running(self) -> bool:
        return self._timer.is_running

    def add_listener(self, listener: MediaListener) -> None:
        self._listeners.append(listener)

    def current_info(self) -> Optional[SchedulingResult]:
        with self._lock:
            return self.scheduler.current_info()

    def status(self) -> Dict[str, Any]:
        with self._lock:
            current = self.scheduler.current_info()
            return {
                "state": self._state.value,
                "auto_advance": self.auto_advance,
                "interval_seconds": self.interval,
                "timer_running": self._timer.is_running,
                "current": current.to_dict() if current else None,
            }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self) -> Optional[SchedulingResult]:
        with self._lock:
            self.scheduler.prepare()
            if self.screen is not None:
                self.screen.initialize()
            if self.auto_advance:
                self._start_timer()
            self.logger.info("presentation.starting", state=self._state.value, interval=self.interval)
            return self.advance()

    def advance(self) -> Optional[SchedulingResult]:
        """Select and announce the next item; ``None`` when the screen is off."""

        with self._lock:
            if self._state is PresentationState.SCREEN_OFF:
                self.logger.info("presentation.advance_skipped", reason="screen_off")
                return None

            # An off reading is delivered back to us as on_screen_off.
            if self.screen is not None and not self.screen.check_now():
                self.logger.info("presentation.advance_skipped", reason="screen_off")
                return None

            result = self.scheduler.select_next()

            if not result.media.kind.advances_on_timer:
                self._stop_timer()
                self._set_state(PresentationState.EXTERNAL_PLAYBACK)
            else:
                if self.auto_advance:
                    self._start_timer()
                self._set_state(self._idle_state())

            self._notify(result)
            return result

    def toggle(self) -> PresentationState:
        with self._lock:
            if self._state in (PresentationState.EXTERNAL_PLAYBACK, PresentationState.SCREEN_OFF):
                self.logger.info("presentation.toggle_ignored", state=self._state.value)
                return self._state

            self.auto_advance = not self.auto_advance
            if self.auto_advance:
                self._start_timer()
            else:
                self._stop_timer()
            self._set_state(self._idle_state())
            return self._state

    def on_external_playback_finished(self) -> None:
        with self._lock:
            if not self._leave_external_playback("finished"):
                return
            if self.auto_advance:
                # Armed before advancing so a failed advance retries on the next tick.
                self._start_timer()
                self._advance_logging_failure()

    def on_external_playback_cancelled(self) -> None:
        with self._lock:
            if not self._leave_external_playback("cancelled"):
                return
            if self.auto_advance:
                self._start_timer()

    def refresh_library(self) -> int:
        with self._lock:
            return self.scheduler.refresh_library()

    def on_screen_off(self) -> None:
        with self._lock:
            self._stop_timer()
            self._set_state(PresentationState.SCREEN_OFF)
            if self.screen is not None:
                self.screen.start_periodic_check()

    def on_screen_on(self) -> None:
        with self._lock:
            if self._state is not PresentationState.SCREEN_OFF:
                return
            self._set_state(self._idle_state())
            if self.auto_advance:
                self._start_timer()
            self._advance_logging_failure()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _idle_state(self) -> PresentationState:
        return PresentationState.RUNNING if self.auto_advance else PresentationState.PAUSED

    def _set_state(self, state: PresentationState) -> None:
        if state is self._state:
            return
        self.logger.info("presentation.state_changed", previous=self._state.value, state=state.value)
        self._state = state

    def _leave_external_playback(self, outcome: str) -> bool:
        if self._state is not PresentationState.EXTERNAL_PLAYBACK:
            self.logger.info("presentation.playback_event_ignored", outcome=outcome, state=self._state.value)
            return False
        self.logger.info("presentation.playback_ended", outcome=outcome)
        self._set_state(self._idle_state())
        return True

    def _start_timer(self) -> None:
        if not self._timer.is_running:
            self._timer.start()

    def _stop_timer(self) -> None:
        if self._timer.is_running:
            self._timer.stop()

    def _notify(self, result: SchedulingResult) -> None:
        for listener in list(self._listeners):
            listener(result)

    def _advance_logging_failure(self) -> None:
        try:
            self.advance()
        except NoMediaAvailable as exc:
            self.logger.error("presentation.no_media", error=str(exc))

    def _on_timer_tick(self) -> None:
        self.logger.debug("presentation.timer_tick")
        self._advance_logging_failure()

    def _on_screen_state_changed(self, is_on: bool) -> None:
        if is_on:
            self.on_screen_on()
        else:
            self.on_screen_off()
