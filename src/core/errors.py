"""Exception hierarchy for the build engine.

Only configuration errors and illegal state transitions propagate out of a
build. Fetch, step and cache errors are caught where they occur and turned
into diagnostics on the affected resource.
"""

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from src.fetch.models import FetchError


class HssError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(HssError):
    """Raised when the site configuration is invalid or contradictory."""

    def __init__(
        self,
        message: str,
        errors: list[dict[str, str]] | None = None,
        source: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable summary.
            errors: Individual validation errors (loc, msg, type).
            source: File or origin of the configuration, if known.
        """
        self.errors = errors or []
        self.source = source
        super().__init__(message)


class FetchFailure(HssError):
    """Raised when a resource could not be retrieved."""

    def __init__(self, url: str, error: "FetchError") -> None:
        """Initialize the error.

        Args:
            url: The URL that failed.
            error: Classified fetch error.
        """
        self.url = url
        self.error = error
        super().__init__(f"Failed to fetch {url}: {error.message}")


class StepExecutionError(HssError):
    """Raised when an extraction or enrichment step fails."""

    def __init__(self, step: str, slug: str, cause: BaseException) -> None:
        """Initialize the error.

        Args:
            step: Name of the failing step.
            slug: Slug of the resource being processed.
            cause: Original exception.
        """
        self.step = step
        self.slug = slug
        self.cause = cause
        super().__init__(f"Step {step} failed for {slug}: {cause}")


class CacheCorruptionError(HssError):
    """Raised when a cache entry exists but cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        """Initialize the error.

        Args:
            key: Cache key or path of the unreadable entry.
            reason: Why decoding failed.
        """
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt cache entry {key}: {reason}")


class StateTransitionError(HssError):
    """Raised when an invalid lifecycle transition is attempted."""

    def __init__(self, machine: str, from_state: str, to_state: str) -> None:
        """Initialize the error.

        Args:
            machine: Name of the state machine.
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.machine = machine
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid {machine} state transition: {from_state} -> {to_state}"
        )
