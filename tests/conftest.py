from __future__ import annotations

import random
from pathlib import Path
from typing import Callable, Dict

import pytest

from reelframe.cache import ReconcileReport
from reelframe.media import MediaKind
from reelframe.scheduler import MediaSnapshot, NoMediaAvailable, SchedulingResult


class FakeTimer:
    """In-memory stand-in for an APScheduler interval job."""

    def __init__(self, job_id: str, callback: Callable[[], None], interval: float) -> None:
        self.job_id = job_id
        self.callback = callback
        self.interval = interval
        self.starts = 0
        self.stops = 0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        self.starts += 1
        self._running = True

    def stop(self) -> None:
        self.stops += 1
        self._running = False

    def fire(self) -> None:
        self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: Dict[str, FakeTimer] = {}

    def __call__(self, job_id: str, callback: Callable[[], None], interval: float) -> FakeTimer:
        timer = FakeTimer(job_id, callback, interval)
        self.timers[job_id] = timer
        return timer


class ScriptedRandom(random.Random):
    """Seeded generator whose ``randrange`` replays a fixed list of draws."""

    def __init__(self, draws=(0,), seed: int = 7) -> None:
        super().__init__(seed)
        self._draws = list(draws)
        self._index = 0

    def randrange(self, *args, **kwargs):  # type: ignore[override]
        value = self._draws[min(self._index, len(self._draws) - 1)]
        self._index += 1
        return value


def scheduling_result(media_id, kind=MediaKind.PHOTO):
    extension = ".mp4" if kind is MediaKind.VIDEO else ".jpg"
    media = MediaSnapshot(
        media_id=media_id,
        network_path=f"/remote/{media_id}{extension}",
        file_name=f"{media_id}{extension}",
        extension=extension,
        cache_file_name=f"{media_id}{extension}",
        cache_path=Path("/cache") / f"{media_id}{extension}",
        size_bytes=2048,
        times_shown=1,
        kind=kind,
    )
    return SchedulingResult(media=media, cache_file_count=1, cache_size_bytes=2048, outage_active=False)


class StubScheduler:
    """Hands out queued results; an empty queue means nothing to show."""

    def __init__(self, *kinds):
        self.queue = [scheduling_result(index + 1, kind) for index, kind in enumerate(kinds)]
        self.selections = 0
        self.prepared = 0
        self.refreshed = 0
        self.current = None

    def prepare(self):
        self.prepared += 1
        return ReconcileReport()

    def select_next(self):
        self.selections += 1
        if not self.queue:
            raise NoMediaAvailable("No cached media available")
        self.current = self.queue.pop(0)
        return self.current

    def current_info(self):
        return self.current

    def refresh_library(self):
        self.refreshed += 1
        return 3


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()
