"""Helpers for the remote media store: reachability and library scans."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

import structlog

from .catalog import MediaCatalog
from .config import LibrarySettings
from .logging import get_logger
from .media import PHOTO_EXTENSIONS, VIDEO_EXTENSIONS


@dataclass
class ControlFileProbe:
    """Judge the remote store reachable while a known control file is visible.

    With no control file configured the store is assumed reachable, so a
    missing source is always treated as deleted.
    """

    control_file: Optional[Path] = None
    logger: structlog.stdlib.BoundLogger = field(default_factory=lambda: get_logger("reelframe.remote"))

    def __call__(self) -> bool:
        if self.control_file is None:
            self.logger.debug("remote.probe_unconfigured")
            return True
        try:
            reachable = Path(self.control_file).expanduser().exists()
        except OSError as exc:
            self.logger.warning("remote.probe_failed", control_file=str(self.control_file), error=str(exc))
            return False
        if reachable:
            self.logger.debug("remote.reachable", control_file=str(self.control_file))
        else:
            self.logger.warning("remote.control_file_missing", control_file=str(self.control_file))
        return reachable


def scan_media_paths(
    root: Path,
    extensions: Iterable[str],
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> List[str]:
    """Return sorted source paths under ``root`` whose suffix is in ``extensions``."""

    log = logger or get_logger("reelframe.remote")
    root = Path(root).expanduser()
    if not root.is_dir():
        log.warning("remote.scan_root_missing", root=str(root))
        return []

    wanted = {ext.lower() for ext in extensions}
    found = sorted(
        str(path) for path in root.rglob("*") if path.suffix.lower() in wanted and path.is_file()
    )
    log.info("remote.scan_complete", root=str(root), found=len(found))
    return found


def refresh_catalog(
    catalog: MediaCatalog,
    library: LibrarySettings,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> int:
    """Scan the configured photo and video roots and add unknown items."""

    log = logger or get_logger("reelframe.remote")
    added = 0
    for root, extensions in (
        (library.photo_root, PHOTO_EXTENSIONS),
        (library.video_root, VIDEO_EXTENSIONS),
    ):
        if root is None:
            continue
        try:
            paths = scan_media_paths(root, extensions, logger=log)
        except OSError as exc:
            log.error("remote.scan_failed", root=str(root), error=str(exc))
            continue
        if paths:
            added += catalog.upsert_new_paths(paths)
    return added
