"""Thread-safe build status shared with the debug API."""

import copy
import threading
from datetime import UTC, datetime
from typing import Any

from src.build.state_machine import BuildState, BuildStateMachine
from src.fetch.models import FetchProgressEvent


def _empty_progress() -> dict[str, Any]:
    return {
        "phase": None,
        "message": None,
        "resources": {"total": 0, "processed": 0, "currentSlug": None},
        "fetch": {
            "queued": 0,
            "started": 0,
            "completed": 0,
            "failed": 0,
            "cacheHits": 0,
            "inFlight": 0,
            "currentUrl": None,
        },
    }


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class BuildStatusTracker:
    """Single-writer, multi-reader build status.

    The orchestrator writes; readers get deep-copied snapshots so they never
    observe a partially updated structure.
    """

    def __init__(self) -> None:
        """Initialize an idle status."""
        self._lock = threading.Lock()
        self._machine = BuildStateMachine()
        self._data: dict[str, Any] = {
            "status": BuildState.IDLE.value,
            "startedAt": None,
            "completedAt": None,
            "lastError": None,
            "buildCount": 0,
            "progress": _empty_progress(),
        }

    @property
    def state(self) -> BuildState:
        """Get the lifecycle state."""
        with self._lock:
            return self._machine.state

    def snapshot(self) -> dict[str, Any]:
        """Get a deep copy of the status."""
        with self._lock:
            return copy.deepcopy(self._data)

    def start(self) -> None:
        """Enter the building state and reset progress."""
        with self._lock:
            self._machine.to_building()
            self._data.update(
                status=BuildState.BUILDING.value,
                startedAt=_now_iso(),
                completedAt=None,
                lastError=None,
                progress=_empty_progress(),
            )

    def finish(self, error: str | None = None, warning: str | None = None) -> None:
        """Leave the building state.

        Args:
            error: Set when the build failed; moves to ``error``.
            warning: Last isolated error of a successful build.
        """
        with self._lock:
            if error is None:
                self._machine.to_ready()
            else:
                self._machine.to_error()
            self._data.update(
                status=self._machine.state.value,
                completedAt=_now_iso(),
                lastError=error if error is not None else warning,
                buildCount=self._data["buildCount"] + 1,
            )
            self._data["progress"]["phase"] = "done" if error is None else "error"

    def set_phase(self, phase: str, message: str | None = None) -> None:
        """Report the current build phase."""
        with self._lock:
            progress = self._data["progress"]
            progress["phase"] = phase
            progress["message"] = message

    def set_resources(self, processed: int, total: int, slug: str | None) -> None:
        """Report resource progress."""
        with self._lock:
            self._data["progress"]["resources"] = {
                "total": total,
                "processed": processed,
                "currentSlug": slug,
            }

    def on_fetch(self, event: FetchProgressEvent) -> None:
        """Fold a request-cache progress event into the fetch counters."""
        with self._lock:
            fetch = self._data["progress"]["fetch"]
            if event.kind == "queued":
                fetch["queued"] += 1
            elif event.kind == "started":
                fetch["started"] += 1
                fetch["inFlight"] += 1
                fetch["currentUrl"] = event.url
            elif event.kind == "completed":
                fetch["completed"] += 1
                fetch["inFlight"] = max(0, fetch["inFlight"] - 1)
            elif event.kind == "failed":
                fetch["failed"] += 1
                fetch["inFlight"] = max(0, fetch["inFlight"] - 1)
            elif event.kind == "cache-hit":
                fetch["cacheHits"] += 1
