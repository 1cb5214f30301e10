"""Selection engine deciding which cached or freshly fetched item to show next."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import structlog

from .cache import CacheStore, ReachabilityProbe, ReconcileReport
from .catalog import CatalogError, MediaCatalog, MediaRecord
from .config import LibrarySettings
from .logging import get_logger
from .media import MediaKind, media_kind_for
from .remote import ControlFileProbe, refresh_catalog

OUTAGE_COOL_DOWN = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NoMediaAvailable(RuntimeError):
    """Raised when neither the cache nor the remote store can supply an item."""


@dataclass(frozen=True)
class MediaSnapshot:
    """Presentation descriptor for the selected item."""

    media_id: int
    network_path: str
    file_name: str
    extension: str
    cache_file_name: str
    cache_path: Path
    size_bytes: int
    times_shown: int
    kind: MediaKind

    @property
    def is_video(self) -> bool:
        return self.kind is MediaKind.VIDEO

    @property
    def size_kb(self) -> int:
        return self.size_bytes // 1024

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.media_id,
            "network_path": self.network_path,
            "file_name": self.file_name,
            "extension": self.extension,
            "cache_file_name": self.cache_file_name,
            "cache_path": str(self.cache_path),
            "size_bytes": self.size_bytes,
            "times_shown": self.times_shown,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class SchedulingResult:
    """Snapshot of the current item plus cache and outage status."""

    media: MediaSnapshot
    cache_file_count: int
    cache_size_bytes: int
    outage_active: bool
    outage_until: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "media": self.media.to_dict(),
            "cache_file_count": self.cache_file_count,
            "cache_size_bytes": self.cache_size_bytes,
            "outage_active": self.outage_active,
            "outage_until": self.outage_until.isoformat() if self.outage_until else None,
        }


@dataclass
class MediaScheduler:
    """Choose the next item, pulling from the remote store when it makes sense.

    A draw of ``0..99`` at or below ``refresh_percentage`` (or an empty
    cache) sends the scheduler to the remote store for an uncached item.
    Anything that goes wrong there falls back to replaying a cached item.
    After an unreachable remote store is detected, remote attempts are
    suspended for ``outage_duration``.
    """

    catalog: MediaCatalog
    cache: CacheStore
    refresh_percentage: int = 10
    probe_reachable: ReachabilityProbe = field(default_factory=ControlFileProbe)
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], datetime] = _utcnow
    outage_duration: timedelta = OUTAGE_COOL_DOWN
    library: Optional[LibrarySettings] = None
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.scheduler"))
    _current: Optional[MediaRecord] = field(default=None, init=False, repr=False)
    _outage_until: Optional[datetime] = field(default=None, init=False, repr=False)

    # ------------------------------------------------------------------
    # Outage window
    # ------------------------------------------------------------------
    @property
    def outage_until(self) -> Optional[datetime]:
        return self._outage_until

    @property
    def outage_active(self) -> bool:
        return self._outage_until is not None and self.clock() < self._outage_until

    def mark_unreachable(self) -> None:
        self._outage_until = self.clock() + self.outage_duration
        self.logger.warning(
            "scheduler.outage_started",
            until=self._outage_until.isoformat(),
            message="Remote store unreachable; serving cached media only.",
        )

    def _expire_outage(self) -> None:
        if self._outage_until is not None and self.clock() >= self._outage_until:
            self.logger.info("scheduler.outage_expired")
            self._outage_until = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def prepare(self) -> ReconcileReport:
        """Startup pass: cache root, optional library scan, reconciliation."""

        self.cache.ensure_root_exists()
        if self.library is not None and self.library.scan_on_start:
            self.refresh_library()
        return self.cache.reconcile()

    def refresh_library(self) -> int:
        """Add newly discovered remote items to the catalog."""

        if self.library is None:
            self.logger.info("scheduler.library_unconfigured")
            return 0
        return refresh_catalog(self.catalog, self.library, logger=self.logger)

    def select_next(self) -> SchedulingResult:
        self._expire_outage()

        in_outage = self.outage_active
        has_cached = bool(self.catalog.all_cached())
        draw = self.rng.randrange(100)
        try_remote = not in_outage and (not has_cached or draw <= self.refresh_percentage)
        self.logger.debug(
            "scheduler.decision",
            draw=draw,
            refresh_percentage=self.refresh_percentage,
            has_cached=has_cached,
            outage=in_outage,
            try_remote=try_remote,
        )

        if try_remote:
            result = self._select_from_remote()
            if result is not None:
                return result

        chosen = self.catalog.random_cached()
        if chosen is None:
            self.logger.error("scheduler.no_media_available")
            raise NoMediaAvailable("No cached media available")

        return self._show(chosen, source="cache")

    def current_info(self) -> Optional[SchedulingResult]:
        if self._current is None:
            return None
        record = self.catalog.find_by_id(self._current.id) or self._current
        return self._snapshot(record)

    @property
    def current(self) -> Optional[MediaRecord]:
        return self._current

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _select_from_remote(self) -> Optional[SchedulingResult]:
        candidate = self.catalog.random_uncached()
        if candidate is None:
            self.logger.info("scheduler.no_uncached_media", message="Falling back to cached media.")
            return None

        self.logger.info("scheduler.fetching", media_id=candidate.id, path=candidate.source_path)
        try:
            copied = self.cache.copy_into_cache(candidate, self.probe_reachable, self.mark_unreachable)
        except CatalogError as exc:
            self.logger.error("scheduler.catalog_write_failed", media_id=candidate.id, error=str(exc))
            copied = False
        if not copied:
            self.logger.info("scheduler.fetch_failed", media_id=candidate.id, message="Falling back to cached media.")
            return None
        return self._show(candidate, source="remote")

    def _show(self, record: MediaRecord, source: str) -> SchedulingResult:
        try:
            updated = self.catalog.increment_times_shown(record.id) or record
        except CatalogError as exc:
            # The in-memory count is kept and written with the next successful persist.
            self.logger.error("scheduler.catalog_write_failed", media_id=record.id, error=str(exc))
            updated = self.catalog.find_by_id(record.id) or record
        self._current = updated
        self.logger.info(
            "scheduler.selected",
            media_id=updated.id,
            source=source,
            times_shown=updated.times_shown,
            path=updated.source_path,
        )
        return self._snapshot(updated)

    def _snapshot(self, record: MediaRecord) -> SchedulingResult:
        cache_path = self.cache.local_path(record)
        try:
            size = cache_path.stat().st_size
        except OSError as exc:
            self.logger.warning("scheduler.cache_file_unreadable", path=str(cache_path), error=str(exc))
            size = 0

        total_bytes, file_count = self.cache.current_size()
        network_path = Path(record.source_path)
        media = MediaSnapshot(
            media_id=record.id,
            network_path=record.source_path,
            file_name=network_path.name,
            extension=network_path.suffix,
            cache_file_name=cache_path.name,
            cache_path=cache_path,
            size_bytes=size,
            times_shown=record.times_shown,
            kind=media_kind_for(cache_path),
        )
        return SchedulingResult(
            media=media,
            cache_file_count=file_count,
            cache_size_bytes=total_bytes,
            outage_active=self.outage_active,
            outage_until=self._outage_until if self.outage_active else None,
        )
