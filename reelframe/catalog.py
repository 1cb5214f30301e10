"""Persistent catalog of every known media item and how often it was shown."""

from __future__ import annotations

import json
import os
import random
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path, PurePath
from typing import Any, Dict, Iterable, List, Optional

import structlog

from .logging import get_logger

CATALOG_VERSION = 1


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogError(RuntimeError):
    """Raised when the catalog file cannot be read or written."""


@dataclass(frozen=True)
class MediaRecord:
    """A single item of the remote collection.

    ``times_shown`` doubles as the cache membership flag: a positive count
    means a copy is expected under the cache root.
    """

    id: int
    source_path: str
    times_shown: int = 0

    @property
    def is_cached(self) -> bool:
        return self.times_shown > 0

    @property
    def extension(self) -> str:
        return PurePath(self.source_path).suffix

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "path": self.source_path, "times_shown": self.times_shown}


@dataclass
class MediaCatalog:
    """JSON-backed store of :class:`MediaRecord` keyed by id.

    Increment, remove and upsert flush to disk before returning. Resets only
    mark the catalog dirty so a reconciliation or eviction pass can write
    once at the end via :meth:`persist`.
    """

    path: Path
    rng: random.Random = field(default_factory=random.Random)
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.catalog"))
    _records: Dict[int, MediaRecord] = field(default_factory=dict, init=False, repr=False)
    _ids_by_path: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _next_id: int = field(default=1, init=False, repr=False)
    _dirty: bool = field(default=False, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def dirty(self) -> bool:
        return self._dirty

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find_by_id(self, media_id: int) -> Optional[MediaRecord]:
        with self._lock:
            return self._records.get(media_id)

    def records(self) -> List[MediaRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda record: record.id)

    def all_cached(self) -> List[MediaRecord]:
        with self._lock:
            return [record for record in self.records() if record.times_shown > 0]

    def all_uncached(self) -> List[MediaRecord]:
        with self._lock:
            return [record for record in self.records() if record.times_shown == 0]

    def cached_ordered_for_eviction(self) -> List[MediaRecord]:
        """Cached records, most shown first, ties broken by ascending id."""

        with self._lock:
            return sorted(self.all_cached(), key=lambda record: (-record.times_shown, record.id))

    def random_cached(self) -> Optional[MediaRecord]:
        with self._lock:
            candidates = self.all_cached()
            if not candidates:
                self.logger.info("catalog.no_cached_media")
                return None
            choice = self.rng.choice(candidates)
        self.logger.debug("catalog.random_cached", media_id=choice.id, path=choice.source_path)
        return choice

    def random_uncached(self) -> Optional[MediaRecord]:
        with self._lock:
            candidates = self.all_uncached()
            if not candidates:
                self.logger.info("catalog.no_uncached_media")
                return None
            choice = self.rng.choice(candidates)
        self.logger.debug("catalog.random_uncached", media_id=choice.id, path=choice.source_path)
        return choice

    def summary(self) -> Dict[str, int]:
        with self._lock:
            cached = len(self.all_cached())
            total = len(self._records)
        return {"total": total, "cached": cached, "uncached": total - cached}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def increment_times_shown(self, media_id: int) -> Optional[MediaRecord]:
        with self._lock:
            record = self._records.get(media_id)
            if record is None:
                return None
            updated = replace(record, times_shown=record.times_shown + 1)
            self._records[media_id] = updated
            self._dirty = True
            self.persist()
        self.logger.debug(
            "catalog.times_shown_incremented",
            media_id=media_id,
            times_shown=updated.times_shown,
            path=updated.source_path,
        )
        return updated

    def reset_times_shown(self, media_id: int) -> bool:
        """Mark ``media_id`` as not cached. Call :meth:`persist` afterwards."""

        with self._lock:
            record = self._records.get(media_id)
            if record is None:
                return False
            if record.times_shown != 0:
                self._records[media_id] = replace(record, times_shown=0)
                self._dirty = True
            return True

    def remove(self, media_id: int) -> bool:
        with self._lock:
            record = self._records.pop(media_id, None)
            if record is None:
                return False
            self._ids_by_path.pop(record.source_path, None)
            self._dirty = True
            self.persist()
        self.logger.info("catalog.media_removed", media_id=media_id, path=record.source_path)
        return True

    def upsert_new_paths(self, paths: Iterable[str]) -> int:
        """Insert records for paths not yet known; existing records are left as-is."""

        added = 0
        with self._lock:
            for source_path in paths:
                source_path = str(source_path)
                if source_path in self._ids_by_path:
                    continue
                record = MediaRecord(id=self._next_id, source_path=source_path)
                self._next_id += 1
                self._records[record.id] = record
                self._ids_by_path[source_path] = record.id
                added += 1
            if added:
                self._dirty = True
                self.persist()

        if added:
            self.logger.info("catalog.media_added", added=added, total=len(self))
        else:
            self.logger.info("catalog.no_new_media")
        return added

    def persist(self) -> None:
        """Flush pending mutations to disk."""

        with self._lock:
            if not self._dirty:
                return
            payload = {
                "version": CATALOG_VERSION,
                "updated_at": _utcnow_iso(),
                "next_id": self._next_id,
                "media": [record.to_dict() for record in self.records()],
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f"{self.path.name}.tmp")
            try:
                with tmp_path.open("w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.replace(tmp_path, self.path)
            except OSError as exc:
                raise CatalogError(f"Failed to write catalog {self.path}: {exc}") from exc
            self._dirty = False

    def _load_payload(self, payload: Dict[str, Any]) -> None:
        media = payload.get("media") or []
        if not isinstance(media, list):
            raise CatalogError(f"Expected a list of media in {self.path}")
        highest = 0
        for entry in media:
            try:
                record = MediaRecord(
                    id=int(entry["id"]),
                    source_path=str(entry["path"]),
                    times_shown=max(int(entry.get("times_shown", 0)), 0),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise CatalogError(f"Malformed media entry in {self.path}: {entry!r}") from exc
            if record.source_path in self._ids_by_path:
                self.logger.warning("catalog.duplicate_path_skipped", media_id=record.id, path=record.source_path)
                continue
            self._records[record.id] = record
            self._ids_by_path[record.source_path] = record.id
            highest = max(highest, record.id)
        self._next_id = max(int(payload.get("next_id") or 1), highest + 1)


def load_catalog(
    path: Path,
    rng: Optional[random.Random] = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> MediaCatalog:
    """Open the catalog at ``path``; a missing file yields an empty catalog."""

    catalog = MediaCatalog(
        path=path,
        rng=rng or random.Random(),
        logger=logger or get_logger("reelframe.catalog"),
    )
    if not path.exists():
        catalog.logger.info("catalog.created", path=str(path))
        return catalog

    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle) or {}
    except (OSError, ValueError) as exc:
        raise CatalogError(f"Failed to read catalog {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise CatalogError(f"Expected mapping at top level of {path}")

    catalog._load_payload(payload)
    catalog.logger.info("catalog.loaded", path=str(path), **catalog.summary())
    return catalog
