"""Pipeline runner with per-step caching and failure isolation."""

import json
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import structlog

from src.cache.fingerprint import compute_fingerprint
from src.cache.manager import CacheManager
from src.config.effective import EffectiveConfig
from src.core.hashing import canonical_json
from src.crawler.models import Diagnostic, Resource, ResourceSet
from src.observability.metrics import BuildMetrics
from src.pipeline.base import Step, StepContext, StepKind
from src.trace.tracer import Phase, Tracer


logger = structlog.get_logger()

EXTRACT_PARTITION = "extract"
ENRICH_PARTITION = "enrich"

_PHASES: dict[StepKind, tuple[Phase, str]] = {
    StepKind.EXTRACTION: ("extraction", EXTRACT_PARTITION),
    StepKind.ENRICHMENT: ("enrichment", ENRICH_PARTITION),
}


@dataclass
class PipelineStats:
    """Counters for one pipeline phase."""

    resources: int = 0
    steps_run: int = 0
    cache_hits: int = 0
    failures: int = 0

    def merge(self, other: "PipelineStats") -> None:
        """Add another stats object's counters to this one."""
        self.resources += other.resources
        self.steps_run += other.steps_run
        self.cache_hits += other.cache_hits
        self.failures += other.failures


def _normalize(value: Any) -> Any:
    """Round-trip a result through canonical JSON.

    Cached values come back from JSON, so fresh values must look the same
    for emitted output to be identical on hits and misses.
    """
    return json.loads(canonical_json(value))


class PipelineRunner:
    """Runs extraction and enrichment steps over a ResourceSet.

    Provides:
    - Fingerprint-based cache lookups per (resource, step)
    - Trace records for every step, hits included
    - Failure isolation per step, the failing result is omitted and not cached
    - Parallel processing of resources with bounded workers
    """

    def __init__(  # noqa: PLR0913
        self,
        config: EffectiveConfig,
        cache: CacheManager,
        tracer: Tracer,
        use_cache: bool = True,
        exact: frozenset[str] = frozenset(),
        on_progress: Callable[[str, int, int, str], None] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Effective configuration.
            cache: Cache manager for derived results.
            tracer: Trace of the current build.
            use_cache: False forces every step to recompute.
            exact: Slugs whose steps always recompute.
            on_progress: Called with (phase, processed, total, slug).
        """
        self._config = config
        self._cache = cache
        self._tracer = tracer
        self._use_cache = use_cache
        self._exact = exact
        self._on_progress = on_progress
        self._configuration_hash = config.configuration_hash()
        self._metrics = BuildMetrics.get_instance()
        self._log = logger.bind(component="pipeline", build_id=tracer.build_id)

    def run_extraction(
        self, resources: ResourceSet, steps: list[Step]
    ) -> PipelineStats:
        """Run extraction steps over every active resource.

        Args:
            resources: Crawled resources.
            steps: Extraction steps in run order.

        Returns:
            PipelineStats for the phase.
        """
        return self._run_phase(
            StepKind.EXTRACTION,
            resources,
            [s for s in steps if s.kind == StepKind.EXTRACTION],
            self._config.site.concurrency.extract,
            digest=None,
        )

    def run_enrichment(
        self, resources: ResourceSet, steps: list[Step]
    ) -> PipelineStats:
        """Run enrichment steps over every active resource.

        Must only be called once extraction has finished for the whole set.

        Args:
            resources: Resources with extraction results.
            steps: Enrichment steps in run order.

        Returns:
            PipelineStats for the phase.
        """
        return self._run_phase(
            StepKind.ENRICHMENT,
            resources,
            [s for s in steps if s.kind == StepKind.ENRICHMENT],
            self._config.site.concurrency.enrich,
            digest=resources.extraction_digest(),
        )

    def _run_phase(  # noqa: PLR0913
        self,
        kind: StepKind,
        resources: ResourceSet,
        steps: list[Step],
        max_workers: int,
        digest: str | None,
    ) -> PipelineStats:
        phase, _ = _PHASES[kind]
        active = resources.active()
        total = PipelineStats()
        if not steps or not active:
            return total

        self._log.info(
            "pipeline_phase_started",
            phase=phase,
            resources=len(active),
            steps=[s.id for s in steps],
        )

        def work(resource: Resource) -> PipelineStats:
            return self._process(kind, resource, steps, resources, digest)

        processed = 0
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for resource, stats in zip(
                active, executor.map(work, active), strict=True
            ):
                total.merge(stats)
                processed += 1
                if self._on_progress:
                    self._on_progress(phase, processed, len(active), resource.slug)

        self._log.info(
            "pipeline_phase_completed",
            phase=phase,
            resources=total.resources,
            steps_run=total.steps_run,
            cache_hits=total.cache_hits,
            failures=total.failures,
        )
        return total

    def _process(  # noqa: PLR0913
        self,
        kind: StepKind,
        resource: Resource,
        steps: list[Step],
        resources: ResourceSet,
        digest: str | None,
    ) -> PipelineStats:
        phase, partition = _PHASES[kind]
        stats = PipelineStats(resources=1)
        results = (
            resource.extracted if kind == StepKind.EXTRACTION else resource.enriched
        )
        by_id = {step.id: step for step in steps}
        run = self._config.run_for_store(resource.source.store_id)
        use_cache = self._use_cache and resource.slug not in self._exact

        self._tracer.phase_started(phase, resource.slug)
        for step_id in run:
            step = by_id.get(step_id)
            if step is None or not step.applies_to(resource):
                continue
            context = StepContext.for_resource(
                self._config,
                step.id,
                resource,
                resources=resources if kind == StepKind.ENRICHMENT else None,
                resources_digest=digest,
            )
            fingerprint = compute_fingerprint(
                self._configuration_hash,
                resource.slug,
                step.id,
                step.input_hash(resource, context),
            )

            if use_cache:
                entry = self._cache.get(partition, fingerprint)
                if entry is not None:
                    results[step.id] = entry.value
                    self._tracer.step_cache_hit(phase, resource.slug, step.id)
                    self._metrics.record_cache_hit()
                    stats.cache_hits += 1
                    continue

            start = self._tracer.now()
            try:
                value = _normalize(step.run(resource, context))
            except Exception as e:  # noqa: BLE001
                end = self._tracer.now()
                self._record_failure(phase, resource, step, start, end, e)
                stats.failures += 1
                continue
            end = self._tracer.now()

            results[step.id] = value
            self._tracer.step_completed(
                phase, resource.slug, step.id, start, end, value
            )
            self._cache.put(partition, fingerprint, value)
            self._metrics.record_step(step.id, end - start)
            stats.steps_run += 1
        self._tracer.phase_finished(phase, resource.slug)
        return stats

    def _record_failure(  # noqa: PLR0913
        self,
        phase: Phase,
        resource: Resource,
        step: Step,
        start: float,
        end: float,
        error: Exception,
    ) -> None:
        message = f"{type(error).__name__}: {error}"
        self._log.warning(
            "step_failed",
            phase=phase,
            slug=resource.slug,
            step=step.id,
            error=message,
        )
        self._tracer.step_failed(phase, resource.slug, step.id, start, end, message)
        self._metrics.record_step_failure()
        resource.diagnostics.append(
            Diagnostic(
                kind="step",
                message=message,
                slug=resource.slug,
                step=step.id,
                error_class=type(error).__name__,
            )
        )
