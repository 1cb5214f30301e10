"""Headless rendering: status file for displays and an external video player."""

from __future__ import annotations

import json
import os
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from ..logging import get_logger
from ..scheduler import SchedulingResult


@dataclass
class ExternalPlayer:
    """Play a file with an external command and wait for it to exit."""

    command: List[str]
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.player"))
    _process: Optional[subprocess.Popen] = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def play(self, path: Path) -> bool:
        """Return ``True`` when playback ran to completion (exit status 0)."""

        args = [*self.command, str(path)]
        self.logger.info("player.launch", command=args)
        try:
            process = subprocess.Popen(args)
        except OSError as exc:
            self.logger.error("player.launch_failed", command=args, error=str(exc))
            return False

        with self._lock:
            self._process = process
        exit_code = process.wait()
        with self._lock:
            self._process = None

        self.logger.info("player.exited", exit_code=exit_code, file=Path(path).name)
        return exit_code == 0

    def stop(self) -> None:
        with self._lock:
            process = self._process
        if process is not None and process.poll() is None:
            self.logger.info("player.terminating")
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()


@dataclass
class PlaybackRenderer:
    """Media-changed listener used when no graphical front end is attached.

    Each selection is logged and written to ``status_file`` for an external
    display. Videos are handed to the :class:`ExternalPlayer` on a worker
    thread; the outcome is reported back through ``on_finished`` or
    ``on_cancelled``. A new selection stops any video still playing, and
    the superseded worker reports nothing.
    """

    player: ExternalPlayer
    status_file: Optional[Path] = None
    start_delay: float = 5.0
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.renderer"))
    on_finished: Optional[Callable[[], None]] = None
    on_cancelled: Optional[Callable[[], None]] = None
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _worker: Optional[threading.Thread] = field(default=None, init=False, repr=False)
    _generation: int = field(default=0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def bind(self, on_finished: Callable[[], None], on_cancelled: Callable[[], None]) -> None:
        self.on_finished = on_finished
        self.on_cancelled = on_cancelled

    def __call__(self, result: SchedulingResult) -> None:
        media = result.media
        self.logger.info(
            "renderer.media_changed",
            kind=media.kind.value,
            path=media.network_path,
            size_kb=media.size_kb,
            times_shown=media.times_shown,
            cache_files=result.cache_file_count,
            outage=result.outage_active,
        )
        self.write_status(result)
        self._supersede_playback()
        if media.is_video:
            self._start_video(media.cache_path)

    def write_status(self, result: SchedulingResult) -> None:
        if self.status_file is None:
            return
        payload = {"updated_at": datetime.now(timezone.utc).isoformat(), **result.to_dict()}
        path = Path(self.status_file).expanduser()
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_path, path)
        except OSError as exc:
            self.logger.warning("renderer.status_write_failed", path=str(path), error=str(exc))

    def _supersede_playback(self) -> None:
        with self._lock:
            self._generation += 1
            worker = self._worker
        # The worker itself delivers the next item when a video finishes.
        if worker is None or worker is threading.current_thread() or not worker.is_alive():
            return
        self.logger.info("renderer.playback_superseded")
        self.player.stop()

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _start_video(self, path: Path) -> None:
        with self._lock:
            worker = threading.Thread(
                target=self._play_video,
                args=(path, self._generation),
                name="reelframe-video",
                daemon=True,
            )
            self._worker = worker
        worker.start()

    def _play_video(self, path: Path, generation: int) -> None:
        if self._stop_event.wait(timeout=self.start_delay) or not self._is_current(generation):
            return
        completed = self.player.play(path)
        if self._stop_event.is_set() or not self._is_current(generation):
            self.logger.debug("renderer.outcome_dropped", path=str(path), completed=completed)
            return
        callback = self.on_finished if completed else self.on_cancelled
        if callback is not None:
            callback()

    def shutdown(self) -> None:
        self._stop_event.set()
        self.player.stop()
        worker = self._worker
        if worker is not None and worker is not threading.current_thread() and worker.is_alive():
            worker.join(timeout=2)
