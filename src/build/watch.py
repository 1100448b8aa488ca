"""File-watch service triggering debounced incremental rebuilds."""

import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from src.build.models import BuildOptions
from src.build.orchestrator import IIIF_DIR, BuildOrchestrator
from src.config.effective import EffectiveConfig
from src.core.errors import HssError
from src.core.lifecycle import Lifecycle


logger = structlog.get_logger()

WATCHED_EVENT_TYPES = frozenset({"created", "modified", "deleted", "moved"})


class WatchState(str, Enum):
    """Whether file changes are observed."""

    STOPPED = "stopped"
    WATCHING = "watching"


class WatchStateMachine(Lifecycle[WatchState]):
    """STOPPED <-> WATCHING, driven by watch() and unwatch()."""

    NAME = "watch"
    INITIAL = WatchState.STOPPED
    VALID_TRANSITIONS: ClassVar[dict[Enum, frozenset[Enum]]] = {
        WatchState.STOPPED: frozenset({WatchState.WATCHING}),
        WatchState.WATCHING: frozenset({WatchState.STOPPED}),
    }


class _ChangeHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread to the service."""

    def __init__(self, service: "WatchService") -> None:
        """Initialize the handler."""
        super().__init__()
        self._service = service

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Forward file create, modify, delete and move events."""
        if event.is_directory or event.event_type not in WATCHED_EVENT_TYPES:
            return
        self._service.notify_change(str(event.src_path))
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            self._service.notify_change(str(dest_path))


class WatchService:
    """Watches store folders and rebuilds when files change.

    Registers itself with the orchestrator so dev builds arm it. Changes
    arriving within the debounce window are coalesced into one batch
    (last write wins). After a successful rebuild of the batch a single
    ``file-refresh`` event is published. Changes seen while stopped are
    ignored.
    """

    def __init__(  # noqa: PLR0913
        self,
        orchestrator: BuildOrchestrator,
        debounce_ms: int | None = None,
        config_loader: Callable[[], EffectiveConfig] | None = None,
        observer_factory: Callable[[], Any] = Observer,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ) -> None:
        """Initialize the watch service in STOPPED state.

        Args:
            orchestrator: Orchestrator to rebuild with.
            debounce_ms: Batch window; defaults to the configured value.
            config_loader: Reloads configuration when the config file changes.
            observer_factory: Creates a watchdog observer.
            timer_factory: Creates the debounce timer.
        """
        self._orchestrator = orchestrator
        self._debounce_ms = (
            debounce_ms
            if debounce_ms is not None
            else orchestrator.config.site.watch.debounce_ms
        )
        self._config_loader = config_loader
        self._observer_factory = observer_factory
        self._timer_factory = timer_factory
        self._machine = WatchStateMachine()
        self._observer: Any = None
        self._timer: Any = None
        self._pending: dict[str, int] = {}
        self._sequence = 0
        self._lock = threading.Lock()
        self._log = logger.bind(component="watch")
        orchestrator.set_watch_hook(self.watch)

    @property
    def state(self) -> WatchState:
        """Get the current state."""
        with self._lock:
            return self._machine.state

    @property
    def is_watching(self) -> bool:
        """Check if file changes are being observed."""
        return self.state == WatchState.WATCHING

    @property
    def pending_files(self) -> list[str]:
        """Get changed files not yet folded into a completed rebuild."""
        with self._lock:
            return list(self._pending)

    def watch(self) -> bool:
        """Arm the file watcher over every store folder.

        Returns:
            False if already watching.
        """
        with self._lock:
            if self._machine.state == WatchState.WATCHING:
                return False
            self._machine.transition(WatchState.WATCHING)
            observer = self._observer_factory()
            handler = _ChangeHandler(self)
            scheduled: list[str] = []
            for root in self._orchestrator.watch_roots():
                if root.is_dir():
                    observer.schedule(handler, str(root), recursive=True)
                    scheduled.append(str(root))
            source = self._orchestrator.config.source_path
            if source and Path(source).parent.is_dir():
                observer.schedule(handler, str(Path(source).parent), recursive=False)
                scheduled.append(str(Path(source).parent))
            observer.start()
            self._observer = observer
        self._log.info("watch_started", paths=scheduled)
        self._orchestrator.events.emit("watch-changed", watching=True)
        return True

    def unwatch(self) -> bool:
        """Tear down the file watcher and drop pending changes.

        Returns:
            False if not watching.
        """
        with self._lock:
            if self._machine.state == WatchState.STOPPED:
                return False
            self._machine.transition(WatchState.STOPPED)
            observer, self._observer = self._observer, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()
        if observer is not None:
            observer.stop()
            observer.join()
        self._log.info("watch_stopped")
        self._orchestrator.events.emit("watch-changed", watching=False)
        return True

    def toggle(self) -> bool:
        """Flip between watching and stopped.

        Returns:
            True if now watching.
        """
        if self.is_watching:
            self.unwatch()
            return False
        self.watch()
        return True

    def notify_change(self, path: str) -> None:
        """Record a changed file and restart the debounce window.

        Args:
            path: Changed file path.
        """
        if self._is_build_output(path):
            return
        with self._lock:
            if self._machine.state != WatchState.WATCHING:
                return
            self._sequence += 1
            self._pending.pop(path, None)
            self._pending[path] = self._sequence
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self._debounce_ms / 1000.0, self.flush)
            self._timer.daemon = True
            self._timer.start()
        self._log.debug("file_change_detected", path=path)

    def flush(self) -> bool:
        """Rebuild for the pending batch.

        Called by the debounce timer; tests may call it directly.

        Returns:
            True if a rebuild ran and ``file-refresh`` was published.
        """
        with self._lock:
            self._timer = None
            if self._machine.state != WatchState.WATCHING or not self._pending:
                return False
            snapshot = dict(self._pending)
        batch = list(snapshot)

        try:
            if self._config_loader is not None and self._config_changed(batch):
                self._orchestrator.reconfigure(self._config_loader())
            result = self._orchestrator.cached_build(
                BuildOptions(dev=True, watch=False, exact=self._affected_slugs(batch))
            )
        except HssError as e:
            self._log.warning("watch_rebuild_failed", files=batch, error=str(e))
            return False
        except Exception as e:  # noqa: BLE001
            self._log.error("watch_rebuild_failed", files=batch, error=str(e))
            return False

        with self._lock:
            if self._machine.state != WatchState.WATCHING:
                return False
            # A file saved again during the rebuild stays queued for the next one
            for path, sequence in snapshot.items():
                if self._pending.get(path) == sequence:
                    del self._pending[path]

        self._log.info(
            "watch_batch_flushed",
            files=len(batch),
            build_id=result.build_id,
        )
        self._orchestrator.events.emit(
            "file-refresh", path=batch[-1], paths=batch, buildId=result.build_id
        )
        return True

    def _config_changed(self, batch: list[str]) -> bool:
        source = self._orchestrator.config.source_path
        if not source:
            return False
        resolved = str(Path(source).resolve())
        return any(str(Path(path).resolve()) == resolved for path in batch)

    def _affected_slugs(self, batch: list[str]) -> frozenset[str]:
        resources = self._orchestrator.resources
        if resources is None:
            return frozenset()
        slugs: set[str] = set()
        for path in batch:
            slug = resources.slug_for_path(path) or resources.slug_for_path(
                str(Path(path).resolve())
            )
            if slug:
                slugs.add(slug)
        return frozenset(slugs)

    def _is_build_output(self, path: str) -> bool:
        return IIIF_DIR in Path(path).parts
