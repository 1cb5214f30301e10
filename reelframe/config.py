"""Configuration models and helpers for Reelframe."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

BYTES_PER_GB = 1024 ** 3
CATALOG_FILENAME = "catalog.json"
DEFAULT_PLAYER_COMMAND = [
    "vlc",
    "--fullscreen",
    "--play-and-exit",
    "--no-video-title-show",
]


@dataclass(frozen=True)
class BootstrapReport:
    """Summary of files/directories created during initialisation."""

    base_created: bool
    state_dir_created: bool
    cache_dir_created: bool
    config_created: bool
    config_overwritten: bool


class ConfigError(RuntimeError):
    """Raised when configuration files cannot be parsed or are invalid."""


@dataclass(frozen=True)
class ConfigPaths:
    """Resolved filesystem locations used by the application."""

    base_dir: Path
    config_file: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        """Return default locations under the user's home directory."""

        return cls.from_base_dir(Path.home() / ".reelframe")

    @classmethod
    def from_base_dir(cls, base_dir: Path) -> "ConfigPaths":
        base_dir = base_dir.expanduser()
        return cls(base_dir=base_dir, config_file=base_dir / "config.yml")

    @property
    def state_dir(self) -> Path:
        """Default directory for the catalog and other runtime state."""

        return self.base_dir / "state"

    @property
    def cache_dir(self) -> Path:
        return self.base_dir / "cache"


class CacheSettings(BaseModel):
    """Local cache root and its size budget."""

    directory: Path
    size_limit_gb: float = Field(default=10, ge=1, le=1000)

    model_config = ConfigDict(extra="forbid")

    @property
    def limit_bytes(self) -> int:
        return int(self.size_limit_gb * BYTES_PER_GB)


class LibrarySettings(BaseModel):
    """Where the remote collection lives and how often to pull from it."""

    photo_root: Optional[Path] = None
    video_root: Optional[Path] = None
    control_file: Optional[Path] = None
    refresh_percentage: int = Field(default=10, ge=0, le=100)
    scan_on_start: bool = Field(default=False)

    model_config = ConfigDict(extra="forbid")


class SlideshowSettings(BaseModel):
    interval_seconds: int = Field(default=60, ge=1, le=3600)
    auto_advance: bool = Field(default=True)

    model_config = ConfigDict(extra="forbid")


class ScreenSettings(BaseModel):
    """Optional display power probe (e.g. a smart plug query script)."""

    probe_command: Optional[List[str]] = None
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    check_interval_seconds: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")


class PlayerSettings(BaseModel):
    command: List[str] = Field(default_factory=lambda: list(DEFAULT_PLAYER_COMMAND))
    start_delay_seconds: float = Field(default=5.0, ge=0)

    model_config = ConfigDict(extra="forbid")


class RuntimeSettings(BaseModel):
    """Runtime-level defaults."""

    timezone: str = Field(default="UTC")
    storage_dir: Path = Field(default_factory=lambda: ConfigPaths.default().state_dir)
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def catalog_path(self) -> Path:
        return Path(self.storage_dir).expanduser() / CATALOG_FILENAME


class SupervisorSettings(BaseModel):
    """Supervisor process configuration."""

    ipc_socket: Path = Field(default_factory=lambda: ConfigPaths.default().base_dir / "ipc.sock")
    status_file: Optional[Path] = None

    model_config = ConfigDict(extra="forbid")


class FrameConfig(BaseModel):
    """Top-level configuration file model."""

    cache: CacheSettings
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    slideshow: SlideshowSettings = Field(default_factory=SlideshowSettings)
    screen: ScreenSettings = Field(default_factory=ScreenSettings)
    player: PlayerSettings = Field(default_factory=PlayerSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)

    model_config = ConfigDict(extra="forbid")

    @property
    def screen_check_interval(self) -> int:
        """Screen polling falls back to the slideshow interval."""

        return self.screen.check_interval_seconds or self.slideshow.interval_seconds


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top level of {path}")
    return data


def load_config(path: Path) -> FrameConfig:
    """Load and validate the configuration file."""

    payload = _read_yaml(path)
    try:
        return FrameConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def _default_config(paths: ConfigPaths) -> Dict[str, Any]:
    """Dictionary representing the starter configuration."""

    return {
        "cache": {
            "directory": str(paths.cache_dir),
            "size_limit_gb": 10,
        },
        "library": {
            "photo_root": None,
            "video_root": None,
            "control_file": None,
            "refresh_percentage": 10,
            "scan_on_start": False,
        },
        "slideshow": {
            "interval_seconds": 60,
            "auto_advance": True,
        },
        "player": {
            "command": list(DEFAULT_PLAYER_COMMAND),
            "start_delay_seconds": 5,
        },
        "runtime": {
            "timezone": "UTC",
            "storage_dir": str(paths.state_dir),
            "log_level": "INFO",
        },
        "supervisor": {
            "ipc_socket": str(paths.base_dir / "ipc.sock"),
            "status_file": str(paths.state_dir / "now_showing.json"),
        },
    }


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)


def bootstrap(paths: ConfigPaths, overwrite: bool = False) -> BootstrapReport:
    """Ensure configuration directories/files exist.

    Parameters
    ----------
    paths:
        Target filesystem layout.
    overwrite:
        When ``True`` the config file is re-written even if it already exists.
    """

    base_created = False
    state_dir_created = False
    cache_dir_created = False
    config_created = False
    config_overwritten = False

    if not paths.base_dir.exists():
        paths.base_dir.mkdir(parents=True, exist_ok=True)
        base_created = True

    if not paths.state_dir.exists():
        paths.state_dir.mkdir(parents=True, exist_ok=True)
        state_dir_created = True

    if not paths.cache_dir.exists():
        paths.cache_dir.mkdir(parents=True, exist_ok=True)
        cache_dir_created = True

    existing = paths.config_file.exists()
    if not existing or overwrite:
        _write_yaml(paths.config_file, _default_config(paths))
        config_created = True
        config_overwritten = existing and overwrite

    return BootstrapReport(
        base_created=base_created,
        state_dir_created=state_dir_created,
        cache_dir_created=cache_dir_created,
        config_created=config_created,
        config_overwritten=config_overwritten,
    )
