"""Collaborators around the presentation engine: screen state and playback."""

from .playback import ExternalPlayer, PlaybackRenderer
from .screen import CommandScreenProbe, ScreenMonitor

__all__ = [
    "CommandScreenProbe",
    "ExternalPlayer",
    "PlaybackRenderer",
    "ScreenMonitor",
]
