"""Unit tests for the pipeline runner."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from src.cache.backends import MemoryBackend
from src.cache.manager import CacheManager
from src.config.effective import EffectiveConfig
from src.config.schemas.site import SiteConfig
from src.core.errors import ConfigurationError
from src.crawler.models import Resource, ResourceSet, ResourceType, SourceDescriptor
from src.observability.metrics import BuildMetrics
from src.pipeline.base import Step, StepContext, StepKind
from src.pipeline.registry import StepRegistry
from src.pipeline.runner import PipelineRunner
from src.trace.tracer import Tracer


class CountingStep(Step):
    """Extraction step returning the resource label and counting calls."""

    id = "count-label"
    name = "Count label"
    kind = StepKind.EXTRACTION

    def __init__(self) -> None:
        self.calls: list[str] = []

    def run(self, resource: Resource, context: StepContext) -> Any:
        self.calls.append(resource.slug)
        return {"label": (resource.raw_body or {}).get("label")}


class BrokenStep(Step):
    """Extraction step failing for one slug."""

    id = "broken"
    name = "Broken"
    kind = StepKind.EXTRACTION

    def run(self, resource: Resource, context: StepContext) -> Any:
        if resource.slug == "manifests/bad":
            msg = "cannot read"
            raise RuntimeError(msg)
        return True


class NeighbourCountStep(Step):
    """Enrichment step reading every resource's extraction results."""

    id = "neighbours"
    name = "Neighbours"
    kind = StepKind.ENRICHMENT

    def __init__(self) -> None:
        self.calls: list[str] = []

    def run(self, resource: Resource, context: StepContext) -> Any:
        self.calls.append(resource.slug)
        assert context.resources is not None
        return sorted(
            other.slug
            for other in context.resources.active()
            if other.extracted.get("count-label")
        )


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Reset the metrics singleton around each test."""
    BuildMetrics.reset()
    yield
    BuildMetrics.reset()


def _config(run: list[str]) -> EffectiveConfig:
    return EffectiveConfig.from_site(
        SiteConfig.model_validate({"run": run}), root=Path("/project")
    )


def _resources(*labels: str) -> ResourceSet:
    resources = ResourceSet()
    for label in labels:
        slug = f"manifests/{label}"
        resources.add(
            Resource(
                slug=slug,
                type=ResourceType.MANIFEST,
                id=f"https://example.org/{label}",
                source=SourceDescriptor(
                    store_id="default", store_type="iiif-json", locator=f"/{label}"
                ),
                raw_body={"id": f"https://example.org/{label}", "label": label},
            )
        )
    return resources


class TestExtraction:
    """Tests for run_extraction."""

    def test_results_and_trace(self) -> None:
        """Test that results are stored and traced as misses."""
        step = CountingStep()
        tracer = Tracer("build-1")
        runner = PipelineRunner(
            _config([step.id]), CacheManager(MemoryBackend()), tracer
        )
        resources = _resources("a", "b")

        stats = runner.run_extraction(resources, [step])

        assert stats.steps_run == 2
        assert stats.cache_hits == 0
        resource = resources.get("manifests/a")
        assert resource is not None
        assert resource.extracted["count-label"] == {"label": "a"}
        entry = tracer.snapshot()["resources"]["manifests/a"]["extractions"][step.id]
        assert entry["cacheHit"] is False
        assert entry["result"] == {"label": "a"}

    def test_second_run_hits_cache(self) -> None:
        """Test that unchanged inputs are served from the cache."""
        step = CountingStep()
        cache = CacheManager(MemoryBackend())
        config = _config([step.id])
        PipelineRunner(config, cache, Tracer("b1")).run_extraction(
            _resources("a", "b"), [step]
        )

        tracer = Tracer("b2")
        resources = _resources("a", "b")
        stats = PipelineRunner(config, cache, tracer).run_extraction(resources, [step])

        assert stats.cache_hits == 2
        assert sorted(step.calls) == ["manifests/a", "manifests/b"]
        entry = tracer.snapshot()["resources"]["manifests/b"]["extractions"][step.id]
        assert entry == {"cacheHit": True}
        resource = resources.get("manifests/b")
        assert resource is not None
        assert resource.extracted["count-label"] == {"label": "b"}
        assert BuildMetrics.get_instance().step_cache_hits_total == 2

    def test_body_change_misses(self) -> None:
        """Test that a changed body recomputes only that resource."""
        step = CountingStep()
        cache = CacheManager(MemoryBackend())
        config = _config([step.id])
        PipelineRunner(config, cache, Tracer("b1")).run_extraction(
            _resources("a", "b"), [step]
        )
        resources = _resources("a", "b")
        changed = resources.get("manifests/b")
        assert changed is not None
        changed.raw_body = {"label": "b2"}

        stats = PipelineRunner(config, cache, Tracer("b2")).run_extraction(
            resources, [step]
        )

        assert (stats.cache_hits, stats.steps_run) == (1, 1)
        assert changed.extracted["count-label"] == {"label": "b2"}

    def test_no_cache_and_exact(self) -> None:
        """Test that use_cache=False and exact slugs force recomputation."""
        step = CountingStep()
        cache = CacheManager(MemoryBackend())
        config = _config([step.id])
        PipelineRunner(config, cache, Tracer("b1")).run_extraction(
            _resources("a", "b"), [step]
        )

        no_cache = PipelineRunner(config, cache, Tracer("b2"), use_cache=False)
        assert no_cache.run_extraction(_resources("a", "b"), [step]).steps_run == 2

        exact = PipelineRunner(
            config, cache, Tracer("b3"), exact=frozenset({"manifests/a"})
        )
        stats = exact.run_extraction(_resources("a", "b"), [step])
        assert (stats.steps_run, stats.cache_hits) == (1, 1)

    def test_failure_isolated(self) -> None:
        """Test that one failing step neither stops others nor gets cached."""
        broken = BrokenStep()
        counting = CountingStep()
        cache = CacheManager(MemoryBackend())
        config = _config([broken.id, counting.id])
        tracer = Tracer("b1")
        resources = _resources("bad", "good")

        stats = PipelineRunner(config, cache, tracer).run_extraction(
            resources, [broken, counting]
        )

        assert stats.failures == 1
        bad = resources.get("manifests/bad")
        assert bad is not None
        assert "broken" not in bad.extracted
        assert bad.extracted["count-label"] == {"label": "bad"}
        assert bad.diagnostics[0].step == "broken"
        assert bad.diagnostics[0].error_class == "RuntimeError"
        entry = tracer.snapshot()["resources"]["manifests/bad"]["extractions"]["broken"]
        assert "cannot read" in entry["error"]

        retry = PipelineRunner(config, cache, Tracer("b2")).run_extraction(
            _resources("bad", "good"), [broken, counting]
        )
        assert retry.failures == 1
        assert retry.cache_hits == 3

    def test_store_skip_list(self) -> None:
        """Test that steps skipped by the store do not run."""
        step = CountingStep()
        config = EffectiveConfig.from_site(
            SiteConfig.model_validate(
                {
                    "run": [step.id],
                    "stores": {
                        "default": {
                            "type": "iiif-json",
                            "path": "content",
                            "skip": [step.id],
                        }
                    },
                }
            ),
            root=Path("/project"),
        )
        resources = _resources("a")

        runner = PipelineRunner(config, CacheManager(MemoryBackend()), Tracer("b"))
        runner.run_extraction(resources, [step])

        assert step.calls == []

    def test_store_run_replaces_site_run(self) -> None:
        """Test that a store's own run list decides its steps and their order."""
        broken = BrokenStep()
        counting = CountingStep()
        config = EffectiveConfig.from_site(
            SiteConfig.model_validate(
                {
                    "run": [broken.id],
                    "stores": {
                        "default": {
                            "type": "iiif-json",
                            "path": "content",
                            "run": [counting.id],
                        }
                    },
                }
            ),
            root=Path("/project"),
        )
        resources = _resources("bad")

        runner = PipelineRunner(config, CacheManager(MemoryBackend()), Tracer("b"))
        stats = runner.run_extraction(resources, [broken, counting])

        assert stats.failures == 0
        assert counting.calls == ["manifests/bad"]
        resource = resources.get("manifests/bad")
        assert resource is not None
        assert list(resource.extracted) == ["count-label"]

    def test_failed_resources_skipped(self) -> None:
        """Test that resources that failed to crawl are not processed."""
        step = CountingStep()
        resources = _resources("a")
        failed = resources.get("manifests/a")
        assert failed is not None
        failed.failed = True

        stats = PipelineRunner(
            _config([step.id]), CacheManager(MemoryBackend()), Tracer("b")
        ).run_extraction(resources, [step])

        assert stats.resources == 0
        assert step.calls == []


class TestEnrichment:
    """Tests for run_enrichment."""

    def test_reads_other_resources(self) -> None:
        """Test that enrichment sees every resource's extraction results."""
        extract = CountingStep()
        enrich = NeighbourCountStep()
        config = _config([extract.id, enrich.id])
        cache = CacheManager(MemoryBackend())
        resources = _resources("a", "b")
        runner = PipelineRunner(config, cache, Tracer("b1"))

        runner.run_extraction(resources, [extract, enrich])
        runner.run_enrichment(resources, [extract, enrich])

        resource = resources.get("manifests/a")
        assert resource is not None
        assert resource.enriched["neighbours"] == ["manifests/a", "manifests/b"]

    def test_other_resource_change_invalidates(self) -> None:
        """Test that enrichment recomputes when any extraction changes."""
        extract = CountingStep()
        enrich = NeighbourCountStep()
        config = _config([extract.id, enrich.id])
        cache = CacheManager(MemoryBackend())
        first = _resources("a", "b")
        runner = PipelineRunner(config, cache, Tracer("b1"))
        runner.run_extraction(first, [extract])
        runner.run_enrichment(first, [enrich])

        second = _resources("a", "b", "c")
        runner = PipelineRunner(config, cache, Tracer("b2"))
        runner.run_extraction(second, [extract])
        stats = runner.run_enrichment(second, [enrich])

        assert stats.cache_hits == 0
        assert stats.steps_run == 3


class TestStepRegistry:
    """Tests for StepRegistry."""

    def test_builtins_registered(self) -> None:
        """Test that every default step id resolves."""
        registry = StepRegistry()
        steps = registry.resolve(_config([]).run)
        assert [step.id for step in steps] == list(_config([]).run)

    def test_unknown_step(self) -> None:
        """Test that unknown ids are a configuration error."""
        with pytest.raises(ConfigurationError, match="no-such-step"):
            StepRegistry().resolve(["extract-topics", "no-such-step"])

    def test_by_kind(self) -> None:
        """Test filtering by pipeline."""
        registry = StepRegistry()
        steps = registry.resolve(_config([]).run)
        enrichments = registry.by_kind(steps, StepKind.ENRICHMENT)
        assert all(step.kind is StepKind.ENRICHMENT for step in enrichments)
        assert "extract-collection-thumbnail" in [step.id for step in enrichments]
        assert "extract-thumbnail" not in [step.id for step in enrichments]
