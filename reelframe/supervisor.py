"""Supervisor runtime wiring the slideshow engine together."""

from __future__ import annotations

import json
import random
import signal
import socket
import threading
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from .cache import CacheStore
from .catalog import MediaCatalog, load_catalog
from .config import ConfigPaths, FrameConfig
from .presentation import PresentationController
from .remote import ControlFileProbe
from .scheduler import MediaScheduler, NoMediaAvailable
from .services.playback import ExternalPlayer, PlaybackRenderer
from .services.screen import CommandScreenProbe, ScreenMonitor
from .timers import TimerFactory, scheduler_timer_factory


@dataclass
class Engine:
    """The assembled catalog, cache, scheduler and presentation controller."""

    catalog: MediaCatalog
    cache: CacheStore
    scheduler: MediaScheduler
    controller: PresentationController
    screen: Optional[ScreenMonitor] = None


def build_engine(
    config: FrameConfig,
    timer_factory: TimerFactory,
    logger: structlog.stdlib.BoundLogger,
    rng: Optional[random.Random] = None,
) -> Engine:
    """Construct every engine component from a validated configuration."""

    rng = rng or random.Random()
    catalog = load_catalog(config.runtime.catalog_path, rng=rng, logger=logger.bind(component="catalog"))
    cache = CacheStore(
        root=Path(config.cache.directory).expanduser(),
        budget_bytes=config.cache.limit_bytes,
        catalog=catalog,
        logger=logger.bind(component="cache"),
    )
    scheduler = MediaScheduler(
        catalog=catalog,
        cache=cache,
        refresh_percentage=config.library.refresh_percentage,
        probe_reachable=ControlFileProbe(config.library.control_file, logger=logger.bind(component="remote")),
        rng=rng,
        library=config.library,
        logger=logger.bind(component="scheduler"),
    )

    screen: Optional[ScreenMonitor] = None
    if config.screen.probe_command:
        screen = ScreenMonitor(
            probe=CommandScreenProbe(
                command=config.screen.probe_command,
                timeout=config.screen.probe_timeout_seconds,
                logger=logger.bind(component="screen"),
            ),
            timer_factory=timer_factory,
            check_interval=config.screen_check_interval,
            logger=logger.bind(component="screen"),
        )

    controller = PresentationController(
        scheduler=scheduler,
        timer_factory=timer_factory,
        interval=config.slideshow.interval_seconds,
        auto_advance=config.slideshow.auto_advance,
        screen=screen,
        logger=logger.bind(component="presentation"),
    )
    return Engine(catalog=catalog, cache=cache, scheduler=scheduler, controller=controller, screen=screen)


@dataclass
class FrameSupervisor:
    """Long-running process owning one cache root and catalog."""

    config: FrameConfig
    paths: ConfigPaths
    logger: structlog.stdlib.BoundLogger
    _timezone: ZoneInfo = field(init=False, repr=False)
    _timezone_source: str = field(init=False, repr=False)
    _scheduler: BackgroundScheduler = field(init=False, repr=False)
    _stop_event: threading.Event = field(init=False, repr=False)
    _ipc_thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)
    _ipc_socket: Optional[Path] = field(default=None, init=False, repr=False)
    _engine: Optional[Engine] = field(default=None, init=False, repr=False)
    _renderer: Optional[PlaybackRenderer] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._timezone, self._timezone_source = self._resolve_timezone(self.config.runtime.timezone)
        self._stop_event = threading.Event()
        self._scheduler = self._create_scheduler()
        self._ipc_socket = Path(self.config.supervisor.ipc_socket).expanduser()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        """Start the slideshow and block until interrupted."""

        self.logger.info(
            "supervisor.start",
            cache_dir=str(self.config.cache.directory),
            cache_limit_gb=self.config.cache.size_limit_gb,
            refresh_percentage=self.config.library.refresh_percentage,
            interval=self.config.slideshow.interval_seconds,
            timezone=self._timezone_source,
        )

        if self._timezone_source != self.config.runtime.timezone:
            self.logger.warning(
                "supervisor.timezone_fallback",
                configured=self.config.runtime.timezone,
                using=self._timezone_source,
            )

        self._engine = build_engine(self.config, scheduler_timer_factory(self._scheduler), self.logger)
        controller = self._engine.controller

        self._renderer = PlaybackRenderer(
            player=ExternalPlayer(self.config.player.command, logger=self.logger.bind(component="player")),
            status_file=self.config.supervisor.status_file,
            start_delay=self.config.player.start_delay_seconds,
            logger=self.logger.bind(component="renderer"),
        )
        self._renderer.bind(controller.on_external_playback_finished, controller.on_external_playback_cancelled)
        controller.add_listener(self._renderer)

        self._scheduler.start()
        self._install_signal_handlers()
        self._start_ipc_server()

        try:
            controller.start()
        except NoMediaAvailable as exc:
            self.logger.error(
                "supervisor.no_media",
                error=str(exc),
                message="Nothing to show yet; waiting for the next scheduling tick.",
            )

        try:
            while not self._stop_event.wait(timeout=1):
                pass
        except KeyboardInterrupt:
            self.logger.info("supervisor.stop", reason="keyboard_interrupt")
        finally:
            self.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _resolve_timezone(tz_name: str) -> tuple[ZoneInfo, str]:
        try:
            tz = ZoneInfo(tz_name)
            return tz, getattr(tz, "key", str(tz))
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC"), "UTC"

    def _create_scheduler(self) -> BackgroundScheduler:
        # One worker serialises slideshow and screen ticks.
        executors = {"default": ThreadPoolExecutor(max_workers=1)}
        return BackgroundScheduler(timezone=self._timezone, executors=executors)

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._signal_handler)

    def _signal_handler(self, signum, frame) -> None:  # pragma: no cover - OS signal handling
        self.logger.info("supervisor.signal", signal=signum)
        self._stop_event.set()

    def shutdown(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        if self._renderer is not None:
            self._renderer.shutdown()

        if self._ipc_thread and self._ipc_thread.is_alive():
            try:
                if self._ipc_socket and self._ipc_socket.exists():
                    self._ipc_socket.unlink()
            except OSError as exc:
                self.logger.warning("supervisor.ipc_cleanup_failed", error=str(exc))
            self._ipc_thread.join(timeout=2)

        self.logger.info("supervisor.shutdown")

    # ------------------------------------------------------------------
    # IPC server
    # ------------------------------------------------------------------
    def _start_ipc_server(self) -> None:
        if self._ipc_thread and self._ipc_thread.is_alive():
            return

        if not self._ipc_socket:
            return

        socket_path = self._ipc_socket
        socket_path.parent.mkdir(parents=True, exist_ok=True)
        if socket_path.exists():
            socket_path.unlink()

        def _serve():
            with closing(socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)) as server:
                try:
                    server.bind(str(socket_path))
                except OSError as exc:
                    self.logger.error(
                        "supervisor.ipc_bind_failed",
                        error=str(exc),
                        socket=str(socket_path),
                    )
                    return
                server.listen(5)
                server.settimeout(1)
                while not self._stop_event.is_set():
                    try:
                        client, _ = server.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break

                    with closing(client):
                        try:
                            data = client.recv(65536)
                            if not data:
                                continue
                            request = json.loads(data.decode("utf-8"))
                            response = self.handle_command(request)
                        except Exception as exc:  # pragma: no cover - malformed request
                            response = {"status": "error", "message": str(exc)}
                        client.sendall(json.dumps(response).encode("utf-8"))

        self._ipc_thread = threading.Thread(target=_serve, name="reelframe-ipc", daemon=True)
        self._ipc_thread.start()

    def handle_command(self, request: Dict[str, object]) -> Dict[str, object]:
        if self._engine is None:
            return {"status": "error", "message": "Engine not started"}
        controller = self._engine.controller
        command = str(request.get("command", "")).lower()

        if command == "status":
            return {"status": "ok", "presentation": controller.status(), "catalog": self._engine.catalog.summary()}
        if command == "next":
            try:
                result = controller.advance()
            except NoMediaAvailable as exc:
                return {"status": "error", "message": str(exc)}
            if result is None:
                return {"status": "ok", "message": "Screen is off; not advancing"}
            return {"status": "ok", "message": f"Showing {result.media.file_name}", "current": result.to_dict()}
        if command == "toggle":
            state = controller.toggle()
            return {"status": "ok", "message": f"Slideshow {state.value}", "state": state.value}
        if command == "scan":
            added = controller.refresh_library()
            return {"status": "ok", "message": f"Added {added} new items", "added": added}

        return {"status": "error", "message": f"Unsupported command: {command}"}
