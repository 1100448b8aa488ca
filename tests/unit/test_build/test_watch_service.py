"""Tests for the debounced watch service."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from src.build.events import Event, EventBus
from src.build.models import BuildOptions, BuildResult, BuildStats
from src.build.watch import WatchService, WatchState, _ChangeHandler
from src.config.effective import EffectiveConfig
from src.config.schemas.site import SiteConfig
from src.core.errors import ConfigurationError
from src.crawler.models import Resource, ResourceSet, ResourceType, SourceDescriptor


class FakeObserver:
    """Records scheduled paths instead of watching the filesystem."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[str, bool]] = []
        self.started = False
        self.stopped = False

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.scheduled.append((path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self) -> None:
        pass


class FakeTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class FakeOrchestrator:
    """Just enough of BuildOrchestrator for the watch service."""

    def __init__(self, root: Path, source_path: str | None = None) -> None:
        site = SiteConfig.model_validate({"watch": {"debounce_ms": 250}})
        self.config = EffectiveConfig.from_site(
            site, root=root, source_path=source_path
        )
        self.events = EventBus()
        self.resources: ResourceSet | None = None
        self.builds: list[BuildOptions] = []
        self.reconfigured: list[EffectiveConfig] = []
        self.fail_with: Exception | None = None
        self.during_build: Callable[[], None] | None = None
        self.watch_hook: Callable[[], object] | None = None
        self._root = root

    def watch_roots(self) -> list[Path]:
        return [self._root / "content"]

    def set_watch_hook(self, hook: Callable[[], object] | None) -> None:
        self.watch_hook = hook

    def cached_build(self, options: BuildOptions) -> BuildResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.builds.append(options)
        if self.during_build is not None:
            self.during_build()
        return BuildResult(
            build_id=f"b{len(self.builds)}", build_config={}, stats=BuildStats()
        )

    def reconfigure(self, config: EffectiveConfig) -> None:
        self.reconfigured.append(config)


@pytest.fixture
def content(tmp_path: Path) -> Path:
    """Create the watched store folder."""
    folder = tmp_path / "content"
    folder.mkdir()
    return folder


def _service(
    orchestrator: FakeOrchestrator,
    timers: list[FakeTimer],
    observers: list[FakeObserver],
    config_loader: Callable[[], EffectiveConfig] | None = None,
) -> WatchService:
    def make_timer(interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        timers.append(timer)
        return timer

    def make_observer() -> FakeObserver:
        observer = FakeObserver()
        observers.append(observer)
        return observer

    return WatchService(
        orchestrator,  # type: ignore[arg-type]
        config_loader=config_loader,
        observer_factory=make_observer,
        timer_factory=make_timer,
    )


def _refreshes(orchestrator: FakeOrchestrator) -> list[Event]:
    seen: list[Event] = []
    orchestrator.events.subscribe("file-refresh", seen.append)
    return seen


class TestWatchLifecycle:
    """Tests for watch, unwatch and toggle."""

    def test_watch_schedules_store_folders(self, content: Path) -> None:
        """Test that watching arms an observer over store folders."""
        orchestrator = FakeOrchestrator(content.parent)
        observers: list[FakeObserver] = []
        changes: list[Event] = []
        orchestrator.events.subscribe("watch-changed", changes.append)
        service = _service(orchestrator, [], observers)

        assert service.watch() is True
        assert service.watch() is False

        assert service.state == WatchState.WATCHING
        assert len(observers) == 1
        assert observers[0].scheduled == [(str(content), True)]
        assert observers[0].started
        assert [e.payload for e in changes] == [{"watching": True}]

    def test_config_folder_watched(self, content: Path) -> None:
        """Test that the config file's folder is observed too."""
        config_file = content.parent / ".iiifrc.yml"
        orchestrator = FakeOrchestrator(content.parent, str(config_file))
        observers: list[FakeObserver] = []
        service = _service(orchestrator, [], observers)

        service.watch()

        assert (str(content.parent), False) in observers[0].scheduled

    def test_unwatch_stops_and_clears(self, content: Path) -> None:
        """Test that unwatching stops the observer and drops pending files."""
        orchestrator = FakeOrchestrator(content.parent)
        timers: list[FakeTimer] = []
        observers: list[FakeObserver] = []
        service = _service(orchestrator, timers, observers)
        service.watch()
        service.notify_change(str(content / "a.json"))

        assert service.unwatch() is True
        assert service.unwatch() is False

        assert observers[0].stopped
        assert timers[0].cancelled
        assert service.pending_files == []
        assert service.flush() is False
        assert orchestrator.builds == []

    def test_toggle(self, content: Path) -> None:
        """Test that toggle flips the state."""
        service = _service(FakeOrchestrator(content.parent), [], [])

        assert service.toggle() is True
        assert service.is_watching
        assert service.toggle() is False
        assert not service.is_watching

    def test_dev_builds_arm_through_hook(self, content: Path) -> None:
        """Test that the service hands the orchestrator a way to arm it."""
        orchestrator = FakeOrchestrator(content.parent)
        service = _service(orchestrator, [], [])

        assert orchestrator.watch_hook is not None
        orchestrator.watch_hook()

        assert service.is_watching
        service.notify_change(str(content / "a.json"))
        service.flush()
        assert orchestrator.builds[0].arms_watch is False


class TestDebounce:
    """Tests for change batching."""

    def test_changes_coalesce_into_one_refresh(self, content: Path) -> None:
        """Test that a burst of changes triggers exactly one rebuild."""
        orchestrator = FakeOrchestrator(content.parent)
        refreshes = _refreshes(orchestrator)
        timers: list[FakeTimer] = []
        service = _service(orchestrator, timers, [])
        service.watch()
        first = str(content / "a.json")
        second = str(content / "b.json")

        service.notify_change(first)
        service.notify_change(second)
        service.notify_change(first)

        assert len(timers) == 3
        assert [t.cancelled for t in timers] == [True, True, False]
        assert timers[-1].interval == 0.25
        assert timers[-1].daemon is True

        timers[-1].callback()

        assert len(orchestrator.builds) == 1
        assert orchestrator.builds[0].dev is True
        assert len(refreshes) == 1
        assert refreshes[0].payload["paths"] == [second, first]
        assert refreshes[0].payload["path"] == first
        assert refreshes[0].payload["buildId"] == "b1"
        assert service.pending_files == []

    def test_ignored_when_stopped(self, content: Path) -> None:
        """Test that changes are dropped while not watching."""
        orchestrator = FakeOrchestrator(content.parent)
        timers: list[FakeTimer] = []
        service = _service(orchestrator, timers, [])

        service.notify_change(str(content / "a.json"))

        assert timers == []
        assert service.flush() is False

    def test_build_output_ignored(self, content: Path) -> None:
        """Test that changes under the build folder never trigger rebuilds."""
        orchestrator = FakeOrchestrator(content.parent)
        timers: list[FakeTimer] = []
        service = _service(orchestrator, timers, [])
        service.watch()

        service.notify_change(str(content.parent / ".iiif" / "build" / "x.json"))

        assert timers == []
        assert service.pending_files == []

    def test_affected_slugs_recomputed_exactly(self, content: Path) -> None:
        """Test that changed files map to exact slugs on rebuild."""
        orchestrator = FakeOrchestrator(content.parent)
        path = str(content / "one.json")
        resources = ResourceSet()
        resources.add(
            Resource(
                slug="one",
                type=ResourceType.MANIFEST,
                id="https://x/one",
                source=SourceDescriptor(
                    store_id="default",
                    store_type="iiif-json",
                    locator=path,
                    file_path=path,
                ),
            )
        )
        orchestrator.resources = resources
        timers: list[FakeTimer] = []
        service = _service(orchestrator, timers, [])
        service.watch()

        service.notify_change(path)
        service.notify_change(str(content / "new.json"))
        service.flush()

        assert orchestrator.builds[0].exact == frozenset({"one"})

    def test_failed_rebuild_keeps_pending(self, content: Path) -> None:
        """Test that a failing rebuild publishes nothing."""
        orchestrator = FakeOrchestrator(content.parent)
        orchestrator.fail_with = ConfigurationError("broken config")
        refreshes = _refreshes(orchestrator)
        service = _service(orchestrator, [], [])
        service.watch()
        path = str(content / "a.json")
        service.notify_change(path)

        assert service.flush() is False

        assert refreshes == []
        assert service.pending_files == [path]

    def test_config_change_reloads(self, content: Path) -> None:
        """Test that editing the config file reconfigures first."""
        config_file = content.parent / ".iiifrc.yml"
        config_file.write_text("stores: {}\n", encoding="utf-8")
        orchestrator = FakeOrchestrator(content.parent, str(config_file))
        reloaded = EffectiveConfig.from_site(SiteConfig(), root=content.parent)
        service = _service(orchestrator, [], [], config_loader=lambda: reloaded)
        service.watch()

        service.notify_change(str(config_file))
        service.flush()

        assert orchestrator.reconfigured == [reloaded]
        assert len(orchestrator.builds) == 1

    def test_save_during_rebuild_queues_another(self, content: Path) -> None:
        """Test that a file saved again mid-rebuild is rebuilt once more."""
        orchestrator = FakeOrchestrator(content.parent)
        refreshes = _refreshes(orchestrator)
        timers: list[FakeTimer] = []
        service = _service(orchestrator, timers, [])
        service.watch()
        path = str(content / "a.json")
        other = str(content / "b.json")
        service.notify_change(path)
        service.notify_change(other)

        def save_again() -> None:
            orchestrator.during_build = None
            service.notify_change(path)

        orchestrator.during_build = save_again

        assert service.flush() is True
        assert service.pending_files == [path]
        assert len(timers) == 3
        assert timers[-1].cancelled is False

        assert service.flush() is True
        assert service.pending_files == []
        assert len(orchestrator.builds) == 2
        assert [e.payload["paths"] for e in refreshes] == [[path, other], [path]]


class TestChangeHandler:
    """Tests for the watchdog event adapter."""

    def test_forwards_file_events(self, content: Path) -> None:
        """Test that file events reach the service and moves report both ends."""
        service = _service(FakeOrchestrator(content.parent), [], [])
        service.watch()
        handler = _ChangeHandler(service)
        a = str(content / "a.json")
        b = str(content / "b.json")

        handler.on_any_event(FileModifiedEvent(a))
        handler.on_any_event(DirModifiedEvent(str(content)))
        handler.on_any_event(FileMovedEvent(a, b))

        assert service.pending_files == [a, b]
