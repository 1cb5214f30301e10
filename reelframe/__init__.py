"""Reelframe: cached media slideshow engine."""

__version__ = "0.1.0"
