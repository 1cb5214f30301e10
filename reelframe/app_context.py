"""Shared application context for Reelframe CLI commands and the web API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import ConfigPaths, FrameConfig, load_config

CONFIG_DIR_ENV = "REELFRAME_CONFIG_DIR"


@dataclass
class AppContext:
    """Container for resolved configuration used by CLI commands."""

    paths: ConfigPaths
    config: FrameConfig


def determine_paths(config_dir: Optional[Path]) -> ConfigPaths:
    """Resolve configuration paths from a CLI override or the environment."""

    if config_dir:
        return ConfigPaths.from_base_dir(config_dir)
    env_value = os.getenv(CONFIG_DIR_ENV)
    if env_value:
        return ConfigPaths.from_base_dir(Path(env_value))
    return ConfigPaths.default()


def load_context(paths: ConfigPaths) -> AppContext:
    """Load the configuration file from disk."""

    return AppContext(paths=paths, config=load_config(paths.config_file))
