"""Lifecycle of a single configuration load."""

from enum import Enum
from typing import ClassVar

from src.core.lifecycle import Lifecycle


class ConfigState(str, Enum):
    """Phases of ConfigLoader.

    UNLOADED -> LOADING -> VALIDATED -> READY, with FAILED reachable from
    every phase before READY.
    """

    UNLOADED = "UNLOADED"
    LOADING = "LOADING"
    VALIDATED = "VALIDATED"
    READY = "READY"
    FAILED = "FAILED"


class ConfigStateMachine(Lifecycle[ConfigState]):
    """Single-use machine: READY and FAILED are both terminal."""

    NAME = "config"
    INITIAL = ConfigState.UNLOADED
    VALID_TRANSITIONS: ClassVar[dict[Enum, frozenset[Enum]]] = {
        ConfigState.UNLOADED: frozenset({ConfigState.LOADING, ConfigState.FAILED}),
        ConfigState.LOADING: frozenset({ConfigState.VALIDATED, ConfigState.FAILED}),
        ConfigState.VALIDATED: frozenset({ConfigState.READY, ConfigState.FAILED}),
        ConfigState.READY: frozenset(),
        ConfigState.FAILED: frozenset(),
    }
