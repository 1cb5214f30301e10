"""Local cache of remote media, kept consistent with the catalog."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import structlog

from .catalog import MediaCatalog, MediaRecord
from .logging import get_logger

ReachabilityProbe = Callable[[], bool]

_MB = 1024 * 1024
_GB = 1024 * _MB


@dataclass(frozen=True)
class ReconcileReport:
    removed_files: int = 0
    reset_records: int = 0


@dataclass(frozen=True)
class EvictionReport:
    needed_bytes: int = 0
    freed_bytes: int = 0
    evicted_ids: Tuple[int, ...] = ()

    @property
    def satisfied(self) -> bool:
        return self.freed_bytes >= self.needed_bytes


def _parse_media_id(path: Path) -> Optional[int]:
    try:
        return int(path.stem)
    except ValueError:
        return None


@dataclass
class CacheStore:
    """Flat directory of ``<id><extension>`` copies bounded by a byte budget."""

    root: Path
    budget_bytes: int
    catalog: MediaCatalog
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.cache"))

    def local_path(self, record: MediaRecord) -> Path:
        return self.root / f"{record.id}{record.extension}"

    def ensure_root_exists(self) -> None:
        if not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)
            self.logger.info("cache.root_created", root=str(self.root))

    def _cache_files(self) -> List[Path]:
        if not self.root.exists():
            return []
        return [path for path in self.root.rglob("*") if path.is_file()]

    def current_size(self) -> Tuple[int, int]:
        """Return ``(total_bytes, file_count)`` for everything under the root."""

        total = 0
        count = 0
        for path in self._cache_files():
            try:
                total += path.stat().st_size
            except OSError as exc:
                self.logger.warning("cache.stat_failed", path=str(path), error=str(exc))
                continue
            count += 1
        return total, count

    def _delete(self, path: Path, reason: str) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            self.logger.error("cache.delete_failed", path=str(path), reason=reason, error=str(exc))
            return False
        self.logger.info("cache.file_removed", path=str(path), reason=reason)
        return True

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def reconcile(self) -> ReconcileReport:
        """Bring cache files and ``times_shown`` counters back in agreement."""

        self.logger.info("cache.reconcile_start", root=str(self.root))
        removed = 0
        reset = 0

        for path in self._cache_files():
            media_id = _parse_media_id(path)
            if media_id is None:
                removed += self._delete(path, reason="invalid_name")
                continue
            record = self.catalog.find_by_id(media_id)
            if record is None:
                removed += self._delete(path, reason="unknown_id")
            elif record.times_shown == 0:
                removed += self._delete(path, reason="not_shown")
            elif path != self.local_path(record):
                removed += self._delete(path, reason="misplaced")

        for record in self.catalog.all_cached():
            if not self.local_path(record).exists():
                self.catalog.reset_times_shown(record.id)
                reset += 1
                self.logger.info("cache.missing_file_reset", media_id=record.id, path=record.source_path)

        if reset:
            self.catalog.persist()

        self.logger.info("cache.reconcile_complete", removed_files=removed, reset_records=reset)
        return ReconcileReport(removed_files=removed, reset_records=reset)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------
    def evict_if_needed(self, incoming_bytes: int) -> EvictionReport:
        """Free room for ``incoming_bytes``, evicting the most-shown items first."""

        current, _ = self.current_size()
        if current + incoming_bytes <= self.budget_bytes:
            return EvictionReport()

        needed = current + incoming_bytes - self.budget_bytes
        self.logger.info(
            "cache.eviction_start",
            current_gb=round(current / _GB, 2),
            incoming_mb=round(incoming_bytes / _MB, 2),
            needed_bytes=needed,
        )

        freed = 0
        evicted: List[int] = []
        touched = False
        for record in self.catalog.cached_ordered_for_eviction():
            if freed >= needed:
                break
            path = self.local_path(record)
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                self.catalog.reset_times_shown(record.id)
                touched = True
                self.logger.info("cache.missing_file_reset", media_id=record.id, path=record.source_path)
                continue
            except OSError as exc:
                self.logger.error("cache.stat_failed", path=str(path), error=str(exc))
                continue
            if not self._delete(path, reason="evicted"):
                continue
            self.catalog.reset_times_shown(record.id)
            touched = True
            freed += size
            evicted.append(record.id)
            self.logger.info(
                "cache.evicted",
                media_id=record.id,
                times_shown=record.times_shown,
                path=record.source_path,
                freed_mb=round(size / _MB, 2),
            )

        if touched:
            self.catalog.persist()

        report = EvictionReport(needed_bytes=needed, freed_bytes=freed, evicted_ids=tuple(evicted))
        if report.satisfied:
            self.logger.info("cache.eviction_complete", evicted=len(evicted), freed_gb=round(freed / _GB, 2))
        else:
            self.logger.warning(
                "cache.eviction_short",
                evicted=len(evicted),
                freed_bytes=freed,
                needed_bytes=needed,
                message="Not enough evictable media; cache will exceed its budget.",
            )
        return report

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    def _remote_reachable(self, probe_reachable: ReachabilityProbe, on_unreachable: Callable[[], None]) -> bool:
        if probe_reachable():
            return True
        self.logger.warning("cache.remote_unreachable")
        on_unreachable()
        return False

    def copy_into_cache(
        self,
        record: MediaRecord,
        probe_reachable: ReachabilityProbe,
        on_unreachable: Callable[[], None],
    ) -> bool:
        """Copy ``record`` from the remote store; ``True`` when a local copy exists."""

        destination = self.local_path(record)
        if destination.exists():
            self.logger.debug("cache.already_cached", media_id=record.id, path=str(destination))
            return True

        source = Path(record.source_path)
        try:
            if not source.is_file():
                self.logger.info("cache.source_missing", media_id=record.id, path=record.source_path)
                if self._remote_reachable(probe_reachable, on_unreachable):
                    self.logger.info("cache.source_deleted", media_id=record.id, path=record.source_path)
                    self.catalog.remove(record.id)
                return False

            size = source.stat().st_size
            self.evict_if_needed(size)
            self.ensure_root_exists()
            self._copy_exclusive(source, destination)
        except FileExistsError:
            return True
        except OSError as exc:
            self.logger.error(
                "cache.copy_failed",
                media_id=record.id,
                path=record.source_path,
                error=str(exc),
            )
            self._remote_reachable(probe_reachable, on_unreachable)
            return False

        self.logger.info("cache.copied", media_id=record.id, path=str(destination), size_bytes=size)
        return True

    @staticmethod
    def _copy_exclusive(source: Path, destination: Path) -> None:
        with source.open("rb") as reader:
            try:
                with destination.open("xb") as writer:
                    shutil.copyfileobj(reader, writer)
            except FileExistsError:
                raise
            except OSError:
                destination.unlink(missing_ok=True)
                raise
