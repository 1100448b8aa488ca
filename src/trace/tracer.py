"""Per-build trace of extraction and enrichment step outcomes."""

import copy
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Literal


Phase = Literal["extraction", "enrichment"]

_PHASE_KEYS: dict[str, tuple[str, str, str, str]] = {
    # phase: (aggregate key, per-resource key, start key, end key)
    "extraction": ("extractions", "extractions", "extractionStart", "extractionEnd"),
    "enrichment": ("enrichments", "enrichments", "enrichmentStart", "enrichmentEnd"),
}


class TraceClosedError(RuntimeError):
    """Raised when writing to a trace whose build has completed."""


def _now_ms() -> float:
    return time.time() * 1000


class Tracer:
    """Records timing and cache outcomes for every step invocation.

    Writers are the pipeline workers of a single build; readers get deep-copied
    snapshots. After ``close()`` the trace is read-only.
    """

    def __init__(self, build_id: str, clock: Callable[[], float] = _now_ms) -> None:
        """Initialize an empty trace.

        Args:
            build_id: Build the trace belongs to.
            clock: Returns the current time in milliseconds.
        """
        self._build_id = build_id
        self._clock = clock
        self._lock = threading.Lock()
        self._closed = False
        self._data: dict[str, Any] = {
            "buildId": build_id,
            "extractions": {},
            "enrichments": {},
            "resources": {},
            "topics": {},
        }

    @property
    def build_id(self) -> str:
        """Get the build id."""
        return self._build_id

    @property
    def closed(self) -> bool:
        """Check if the trace is read-only."""
        return self._closed

    def now(self) -> float:
        """Get the trace clock's current time in milliseconds."""
        return self._clock()

    def phase_started(self, phase: Phase, slug: str) -> None:
        """Mark the start of a resource's extraction or enrichment."""
        start_key = _PHASE_KEYS[phase][2]
        with self._write() as data:
            self._resource(data, slug)[start_key] = self._clock()

    def phase_finished(self, phase: Phase, slug: str) -> None:
        """Mark the end of a resource's extraction or enrichment."""
        end_key = _PHASE_KEYS[phase][3]
        with self._write() as data:
            self._resource(data, slug)[end_key] = self._clock()

    def step_completed(  # noqa: PLR0913
        self,
        phase: Phase,
        slug: str,
        step: str,
        start: float,
        end: float,
        result: Any,
    ) -> None:
        """Record a step that ran (cache miss)."""
        aggregate_key, resource_key, _, _ = _PHASE_KEYS[phase]
        with self._write() as data:
            self._resource(data, slug)[resource_key][step] = {
                "start": start,
                "end": end,
                "result": copy.deepcopy(result),
                "cacheHit": False,
            }
            self._aggregate(data[aggregate_key], step, start, end)

    def step_cache_hit(self, phase: Phase, slug: str, step: str) -> None:
        """Record a step whose result came from the cache."""
        resource_key = _PHASE_KEYS[phase][1]
        with self._write() as data:
            self._resource(data, slug)[resource_key][step] = {"cacheHit": True}

    def step_failed(  # noqa: PLR0913
        self,
        phase: Phase,
        slug: str,
        step: str,
        start: float,
        end: float,
        error: str,
    ) -> None:
        """Record a step that raised."""
        aggregate_key, resource_key, _, _ = _PHASE_KEYS[phase]
        with self._write() as data:
            self._resource(data, slug)[resource_key][step] = {
                "start": start,
                "end": end,
                "error": error,
                "cacheHit": False,
            }
            self._aggregate(data[aggregate_key], step, start, end)

    def set_resource_meta(
        self,
        slug: str,
        label: str | None = None,
        thumbnail: str | None = None,
        within_collections: list[str] | None = None,
    ) -> None:
        """Attach display metadata to a resource's trace entry."""
        with self._write() as data:
            entry = self._resource(data, slug)
            if label is not None:
                entry["label"] = label
            if thumbnail is not None:
                entry["thumbnail"] = thumbnail
            if within_collections is not None:
                entry["withinCollections"] = list(within_collections)

    def add_files(self, slug: str, files: list[str]) -> None:
        """Record files emitted for a resource."""
        with self._write() as data:
            self._resource(data, slug)["files"].extend(files)

    def add_topic(self, topic_id: str, meta: dict[str, Any]) -> None:
        """Record a topic discovered during enrichment."""
        with self._write() as data:
            data["topics"][topic_id] = {"meta": copy.deepcopy(meta)}

    def close(self) -> None:
        """Make the trace read-only."""
        with self._lock:
            self._closed = True

    def snapshot(self) -> dict[str, Any]:
        """Get a deep copy of the trace."""
        with self._lock:
            return copy.deepcopy(self._data)

    @contextmanager
    def _write(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            if self._closed:
                msg = f"Trace for build {self._build_id} is closed"
                raise TraceClosedError(msg)
            yield self._data

    @staticmethod
    def _resource(data: dict[str, Any], slug: str) -> dict[str, Any]:
        resources: dict[str, Any] = data["resources"]
        if slug not in resources:
            resources[slug] = {
                "extractionStart": None,
                "extractionEnd": None,
                "extractions": {},
                "enrichmentStart": None,
                "enrichmentEnd": None,
                "enrichments": {},
                "files": [],
                "withinCollections": [],
            }
        entry: dict[str, Any] = resources[slug]
        return entry

    @staticmethod
    def _aggregate(
        aggregates: dict[str, Any], step: str, start: float, end: float
    ) -> None:
        current = aggregates.get(step)
        if current is None:
            aggregates[step] = {
                "startTime": start,
                "endTime": end,
                "totalTime": end - start,
                "count": 1,
            }
            return
        current["startTime"] = min(current["startTime"], start)
        current["endTime"] = max(current["endTime"], end)
        current["totalTime"] += end - start
        current["count"] += 1
