"""Data models for build options and results."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BuildOptions(BaseModel):
    """Options for one orchestrator run.

    Attributes:
        cache: Reuse cached step results. False recomputes every step.
        emit: Write artifacts. False runs the pipeline for validation only.
        dev: Use the dev build directories.
        watch: Arm the watcher after the build. None follows ``dev``.
        exact: Slugs whose steps always recompute.
        extract: Run the extraction pipeline.
        enrich: Run the enrichment pipeline.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    cache: bool = True
    emit: bool = True
    dev: bool = False
    watch: bool | None = None
    exact: frozenset[str] = Field(default_factory=frozenset)
    extract: bool = True
    enrich: bool = True

    @property
    def arms_watch(self) -> bool:
        """Check if the watcher should be armed once the build completes."""
        return self.dev if self.watch is None else self.watch


class BuildPaths(BaseModel):
    """Resolved on-disk locations for a build."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    build_dir: Path
    cache_dir: Path
    requests_dir: Path

    def summary(self) -> dict[str, str]:
        """Get the paths as strings."""
        return {
            "buildDir": str(self.build_dir),
            "cacheDir": str(self.cache_dir),
            "requestsDir": str(self.requests_dir),
        }


class BuildStats(BaseModel):
    """Counters describing one finished build."""

    model_config = ConfigDict(extra="forbid")

    resources: int = 0
    failed: int = 0
    steps_run: int = 0
    cache_hits: int = 0
    step_failures: int = 0
    files_written: int = 0
    files_unchanged: int = 0
    cache_invalidated: bool = False
    duration_ms: float = 0.0


class BuildResult(BaseModel):
    """Outcome of ``cached_build``.

    Attributes:
        build_id: Unique build identifier.
        build_config: Resolved paths, options and configuration hash.
        stats: Build counters.
        resources: Slugs of every crawled resource, in crawl order.
        diagnostics: Recoverable problems recorded during the build.
    """

    model_config = ConfigDict(extra="forbid")

    build_id: str
    build_config: dict[str, Any]
    stats: BuildStats
    resources: list[str] = Field(default_factory=list)
    diagnostics: list[dict[str, Any]] = Field(default_factory=list)
