"""Build orchestration, status, events and watch mode."""

from src.build.events import Event, EventBus, Subscription
from src.build.models import BuildOptions, BuildPaths, BuildResult, BuildStats
from src.build.orchestrator import BuildOrchestrator
from src.build.state_machine import BuildState, BuildStateMachine
from src.build.status import BuildStatusTracker
from src.build.watch import WatchService, WatchState


__all__ = [
    "BuildOptions",
    "BuildOrchestrator",
    "BuildPaths",
    "BuildResult",
    "BuildState",
    "BuildStateMachine",
    "BuildStats",
    "BuildStatusTracker",
    "Event",
    "EventBus",
    "Subscription",
    "WatchService",
    "WatchState",
]
