"""Table-driven lifecycle state machines."""

from enum import Enum
from typing import ClassVar, Generic, TypeVar

import structlog

from src.core.errors import StateTransitionError


logger = structlog.get_logger()

StateT = TypeVar("StateT", bound=Enum)


class Lifecycle(Generic[StateT]):
    """Base class for a state machine defined by a transition table.

    Subclasses set ``NAME``, ``INITIAL`` and ``VALID_TRANSITIONS``. States
    with no outgoing transitions are terminal. An illegal transition is an
    invariant violation: it is logged and raised, never ignored.
    """

    NAME: ClassVar[str]
    INITIAL: ClassVar[Enum]
    VALID_TRANSITIONS: ClassVar[dict[Enum, frozenset[Enum]]]

    def __init__(self) -> None:
        """Start the machine in its initial state."""
        self._state: StateT = self.INITIAL  # type: ignore[assignment]
        self._log = logger.bind(component=self.NAME)

    @property
    def state(self) -> StateT:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: StateT) -> bool:
        """Check if ``to_state`` is reachable from the current state."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, frozenset())

    def is_terminal(self) -> bool:
        """Check if no more transitions are allowed."""
        return not self.VALID_TRANSITIONS.get(self._state)

    def transition(self, to_state: StateT) -> None:
        """Move to ``to_state``.

        Args:
            to_state: The target state.

        Raises:
            StateTransitionError: If the table does not allow the move.
        """
        from_state = self._state
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=from_state.value,
                to_state=to_state.value,
            )
            raise StateTransitionError(self.NAME, from_state.value, to_state.value)
        self._state = to_state
        self._log.debug(
            f"{self.NAME}_state_transition",
            from_state=from_state.value,
            to_state=to_state.value,
        )
