"""Build metrics collection."""

import threading
from dataclasses import dataclass, field


@dataclass
class BuildMetrics:
    """Counters for builds, step executions and emitted files.

    Collects builds_total, build_failures_total, build_duration_ms,
    steps_executed_total, step_cache_hits_total, step_failures_total and
    files_written_total.
    """

    _builds_total: int = 0
    _build_failures_total: int = 0
    _build_duration_ms: float = 0.0
    _steps_executed_total: int = 0
    _step_cache_hits_total: int = 0
    _step_failures_total: int = 0
    _files_written_total: int = 0
    _files_unchanged_total: int = 0
    _step_durations_ms: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: "BuildMetrics | None" = field(default=None, repr=False)

    @classmethod
    def get_instance(cls) -> "BuildMetrics":
        """Get or create the singleton instance.

        Returns:
            The singleton BuildMetrics instance.
        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance for testing."""
        cls._instance = None

    def record_build(self, duration_ms: float, *, failed: bool = False) -> None:
        """Record a finished build.

        Args:
            duration_ms: Build duration in milliseconds.
            failed: Whether the build ended in error.
        """
        with self._lock:
            self._builds_total += 1
            self._build_duration_ms = duration_ms
            if failed:
                self._build_failures_total += 1

    def record_step(self, step: str, duration_ms: float) -> None:
        """Record a step that ran.

        Args:
            step: Step id.
            duration_ms: Time spent in the step.
        """
        with self._lock:
            self._steps_executed_total += 1
            self._step_durations_ms[step] = (
                self._step_durations_ms.get(step, 0.0) + duration_ms
            )

    def record_cache_hit(self) -> None:
        """Record a step result served from the cache."""
        with self._lock:
            self._step_cache_hits_total += 1

    def record_step_failure(self) -> None:
        """Record a step that raised."""
        with self._lock:
            self._step_failures_total += 1

    def record_file(self, *, changed: bool) -> None:
        """Record an emitted file.

        Args:
            changed: False when the file already had the same content.
        """
        with self._lock:
            if changed:
                self._files_written_total += 1
            else:
                self._files_unchanged_total += 1

    @property
    def builds_total(self) -> int:
        """Get total builds."""
        return self._builds_total

    @property
    def build_failures_total(self) -> int:
        """Get total failed builds."""
        return self._build_failures_total

    @property
    def steps_executed_total(self) -> int:
        """Get total step executions."""
        return self._steps_executed_total

    @property
    def step_cache_hits_total(self) -> int:
        """Get total step cache hits."""
        return self._step_cache_hits_total

    @property
    def step_failures_total(self) -> int:
        """Get total step failures."""
        return self._step_failures_total

    @property
    def files_written_total(self) -> int:
        """Get total files written with new content."""
        return self._files_written_total

    def get_summary(self) -> dict[str, object]:
        """Get metrics summary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "builds_total": self._builds_total,
                "build_failures_total": self._build_failures_total,
                "build_duration_ms": self._build_duration_ms,
                "steps_executed_total": self._steps_executed_total,
                "step_cache_hits_total": self._step_cache_hits_total,
                "step_failures_total": self._step_failures_total,
                "files_written_total": self._files_written_total,
                "files_unchanged_total": self._files_unchanged_total,
                "step_durations_ms": dict(self._step_durations_ms),
            }
