"""Host-server adapter runtime.

Hosts embed the engine through ``HostRuntime``: mount the debug API, run
the startup and production builds, forward ``file-refresh`` events to
their reload mechanism and copy build output into their own output folder.
"""

import shutil
from collections.abc import Callable
from pathlib import Path

import structlog
from fastapi import FastAPI

from src.build.events import Event, EventBus, Subscription
from src.build.models import BuildOptions, BuildResult
from src.build.orchestrator import BuildOrchestrator
from src.build.watch import WatchService
from src.config.effective import EffectiveConfig
from src.config.loader import ConfigLoader
from src.config.schemas.stores import LocalStoreConfig
from src.server.app import create_app
from src.settings.app import AppSettings


logger = structlog.get_logger()

DEFAULT_BASE_PATH = "/iiif"


class HostRuntime:
    """Lazily assembled orchestrator, watch service and debug API."""

    def __init__(  # noqa: PLR0913
        self,
        root: Path,
        config_path: Path | None = None,
        settings: AppSettings | None = None,
        config: EffectiveConfig | None = None,
        base_path: str = DEFAULT_BASE_PATH,
        events: EventBus | None = None,
    ) -> None:
        """Initialize the runtime.

        Args:
            root: Project root.
            config_path: Explicit configuration file; searched for if omitted.
            settings: Environment settings.
            config: Preloaded configuration; skips file loading.
            base_path: Path the debug API is mounted under.
            events: Shared event bus.
        """
        self._root = root
        self._config_path = config_path
        self._settings = settings or AppSettings()
        self._config = config
        self._base_path = "/" + base_path.strip("/")
        self._events = events or EventBus()
        self._orchestrator: BuildOrchestrator | None = None
        self._watch: WatchService | None = None
        self._app: FastAPI | None = None
        self._log = logger.bind(component="runtime")

    @property
    def base_path(self) -> str:
        """Get the mount path of the debug API."""
        return self._base_path

    @property
    def config(self) -> EffectiveConfig:
        """Get the configuration, loading it on first use.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        if self._config is None:
            self._config = self.load_config()
        return self._config

    @property
    def orchestrator(self) -> BuildOrchestrator:
        """Get the orchestrator, creating it on first use."""
        if self._orchestrator is None:
            self._orchestrator = BuildOrchestrator(
                self.config, settings=self._settings, events=self._events
            )
        return self._orchestrator

    @property
    def watch(self) -> WatchService:
        """Get the watch service, creating it on first use."""
        if self._watch is None:
            self._watch = WatchService(
                self.orchestrator, config_loader=self.load_config
            )
        return self._watch

    @property
    def app(self) -> FastAPI:
        """Get the debug API application."""
        if self._app is None:
            self._app = create_app(self.orchestrator, self.watch, dev=True)
        return self._app

    def load_config(self) -> EffectiveConfig:
        """Read the configuration from disk with a fresh loader."""
        loader = ConfigLoader(self._root, server_url=self._settings.server_url)
        return loader.load(self._config_path)

    def mount(self, host_app: FastAPI) -> None:
        """Mount the debug API under the base path of a host app."""
        host_app.mount(self._base_path, self.app)
        self._log.info("api_mounted", base_path=self._base_path)

    def start_dev(self, watch: bool = True) -> BuildResult:
        """Run the startup dev build and arm the watcher.

        Args:
            watch: Arm the watch service after the build.

        Returns:
            BuildResult of the startup build.
        """
        result = self.orchestrator.cached_build(BuildOptions(dev=True, watch=False))
        if watch:
            self.watch.watch()
        return result

    def run_build(self) -> BuildResult:
        """Run a production build, recomputing every step."""
        return self.orchestrator.cached_build(BuildOptions(cache=False, emit=True))

    def on_reload(self, callback: Callable[[str], None]) -> Subscription:
        """Call ``callback`` with the changed path after each watch rebuild.

        Args:
            callback: Receives the changed file path.

        Returns:
            Subscription to cancel the callback.
        """

        def handler(event: Event) -> None:
            callback(str(event.payload.get("path", "")))

        return self._events.subscribe("file-refresh", handler)

    def copy_build_artifacts(self, out_dir: Path, dev: bool = False) -> Path:
        """Copy the build directory into a host output directory.

        Files land under ``<out_dir>/<base path>``.

        Args:
            out_dir: Host output directory.
            dev: Copy the dev build instead of the production build.

        Returns:
            Destination directory.
        """
        source = self.orchestrator.paths(dev).build_dir
        destination = out_dir / self._base_path.strip("/")
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
            self._log.info(
                "build_artifacts_copied",
                source=str(source),
                destination=str(destination),
            )
        else:
            self._log.warning("build_dir_missing", path=str(source))
        return destination

    def has_buildable_stores(self) -> bool:
        """Check if any store has something to build.

        Remote stores need a URL; local stores need an existing folder.
        """
        for store in self.config.stores.values():
            if isinstance(store, LocalStoreConfig):
                if self.config.resolve_path(store.path).is_dir():
                    return True
            elif store.locators():
                return True
        return False

    def close(self) -> None:
        """Stop watching and release network resources."""
        if self._watch is not None:
            self._watch.unwatch()
        if self._orchestrator is not None:
            self._orchestrator.close()
