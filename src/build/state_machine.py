"""Lifecycle of the build orchestrator."""

from enum import Enum
from typing import ClassVar

from src.core.lifecycle import Lifecycle


class BuildState(str, Enum):
    """Where the orchestrator is between builds.

    The value is reported as ``status`` by the debug API.
    """

    IDLE = "idle"
    BUILDING = "building"
    READY = "ready"
    ERROR = "error"


class BuildStateMachine(Lifecycle[BuildState]):
    """Guards against overlapping builds.

    A build can only start from IDLE, READY or ERROR, so a second build
    requested while one runs is an illegal transition.
    """

    NAME = "build"
    INITIAL = BuildState.IDLE
    VALID_TRANSITIONS: ClassVar[dict[Enum, frozenset[Enum]]] = {
        BuildState.IDLE: frozenset({BuildState.BUILDING}),
        BuildState.BUILDING: frozenset({BuildState.READY, BuildState.ERROR}),
        BuildState.READY: frozenset({BuildState.BUILDING}),
        BuildState.ERROR: frozenset({BuildState.BUILDING}),
    }

    def to_building(self) -> None:
        """Mark a build as started."""
        self.transition(BuildState.BUILDING)

    def to_ready(self) -> None:
        """Mark the running build as finished."""
        self.transition(BuildState.READY)

    def to_error(self) -> None:
        """Mark the running build as crashed."""
        self.transition(BuildState.ERROR)

    def is_building(self) -> bool:
        """Check if a build is in progress."""
        return self._state == BuildState.BUILDING
