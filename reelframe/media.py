"""Media kinds and the file extensions that map to them."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath
from typing import FrozenSet, Union

PHOTO_EXTENSIONS: FrozenSet[str] = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tiff", ".webp"}
)
VIDEO_EXTENSIONS: FrozenSet[str] = frozenset(
    {".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm", ".m4v"}
)
ALL_EXTENSIONS: FrozenSet[str] = PHOTO_EXTENSIONS | VIDEO_EXTENSIONS


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"

    @property
    def advances_on_timer(self) -> bool:
        """Videos are played to completion by an external player."""

        return self is MediaKind.PHOTO


def _suffix(path: Union[str, PurePath]) -> str:
    return PurePath(path).suffix.lower()


def media_kind_for(path: Union[str, PurePath]) -> MediaKind:
    if _suffix(path) in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.PHOTO


def is_supported(path: Union[str, PurePath]) -> bool:
    return _suffix(path) in ALL_EXTENSIONS
