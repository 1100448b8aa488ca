"""Build orchestrator sequencing crawl, pipelines and emission."""

import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from src.build.events import EventBus
from src.build.models import BuildOptions, BuildPaths, BuildResult, BuildStats
from src.build.status import BuildStatusTracker
from src.cache.backends import CacheBackend, FilesystemBackend
from src.cache.manager import CacheManager
from src.config.effective import EffectiveConfig
from src.crawler.crawler import Crawler
from src.crawler.models import PendingSave, ResourceSet
from src.crawler.overrides import OverrideFolder
from src.crawler.stores import StoreResolver
from src.fetch.client import HttpFetcher
from src.fetch.config import FetchConfig
from src.fetch.constants import REQUESTS_PARTITION
from src.fetch.request_cache import RequestCache
from src.indices.builder import IndexBuilder
from src.indices.emitter import ResourceEmitter
from src.indices.io import AtomicWriter
from src.indices.models import EmitReport
from src.observability.logging import bind_build_context, clear_build_context
from src.observability.metrics import BuildMetrics
from src.pipeline.base import Step, StepKind
from src.pipeline.registry import StepRegistry
from src.pipeline.runner import PipelineRunner, PipelineStats
from src.settings.app import AppSettings
from src.trace.tracer import Tracer


logger = structlog.get_logger()

IIIF_DIR = ".iiif"
EMITTED_SUFFIXES = frozenset({".json", ".jsonl"})
TOPIC_STEP = "enrich-topic-classification"
LABEL_STEP = "extract-label-string"
THUMBNAIL_STEP = "extract-thumbnail"


class BuildOrchestrator:
    """Runs builds for one configuration.

    Each instance owns its status, latest trace and latest ResourceSet, so
    several orchestrators can live in one process without interfering.
    Concurrent ``cached_build`` calls are serialized.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: EffectiveConfig,
        settings: AppSettings | None = None,
        registry: StepRegistry | None = None,
        fetcher: HttpFetcher | None = None,
        events: EventBus | None = None,
        backend_factory: Callable[[Path], CacheBackend] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Effective configuration.
            settings: Environment settings; directory overrides are honored.
            registry: Step registry; defaults to the built-in steps.
            fetcher: HTTP fetcher; built from the network settings if omitted.
            events: Event bus; a private one is created if omitted.
            backend_factory: Creates the derived-cache backend for a directory.

        Raises:
            ConfigurationError: If the run list names an unknown step.
        """
        self._settings = settings or AppSettings()
        self._registry = registry or StepRegistry()
        self._fetcher = fetcher
        self._events = events or EventBus()
        self._backend_factory = backend_factory or FilesystemBackend
        self._status = BuildStatusTracker()
        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._tracer: Tracer | None = None
        self._resources: ResourceSet | None = None
        self._last_result: BuildResult | None = None
        self._pending_saves: list[PendingSave] = []
        self._watch_hook: Callable[[], object] | None = None
        self._metrics = BuildMetrics.get_instance()
        self._log = logger.bind(component="orchestrator")
        self._config = config
        self._steps = self._resolve_steps(config)

    @property
    def config(self) -> EffectiveConfig:
        """Get the current configuration."""
        return self._config

    @property
    def events(self) -> EventBus:
        """Get the event bus."""
        return self._events

    @property
    def status(self) -> BuildStatusTracker:
        """Get the build status tracker."""
        return self._status

    @property
    def trace(self) -> Tracer | None:
        """Get the trace of the most recent build."""
        with self._state_lock:
            return self._tracer

    @property
    def resources(self) -> ResourceSet | None:
        """Get the ResourceSet of the most recent successful build."""
        with self._state_lock:
            return self._resources

    @property
    def last_result(self) -> BuildResult | None:
        """Get the result of the most recent successful build."""
        with self._state_lock:
            return self._last_result

    @property
    def pending_saves(self) -> list[PendingSave]:
        """Get bodies queued for saving into override folders."""
        with self._state_lock:
            return list(self._pending_saves)

    def reconfigure(self, config: EffectiveConfig) -> None:
        """Swap in a new configuration for subsequent builds.

        Args:
            config: New effective configuration.

        Raises:
            ConfigurationError: If the run list names an unknown step.
        """
        steps = self._resolve_steps(config)
        with self._run_lock:
            self._config = config
            self._steps = steps
        self._log.info(
            "configuration_reloaded",
            configuration_hash=config.configuration_hash()[:12],
        )

    def paths(self, dev: bool = False) -> BuildPaths:
        """Resolve build, cache and request-cache directories.

        Dev and production builds have separate build and derived-cache
        directories but share the raw-fetch partition.

        Args:
            dev: Resolve dev directories.

        Returns:
            BuildPaths.
        """
        root = self._config.root
        iiif = root / IIIF_DIR
        base_cache = self._resolve(self._settings.cache_dir) or iiif / "cache"
        build_dir = self._resolve(self._settings.build_dir) or (
            iiif / "dev" / "build" if dev else iiif / "build"
        )
        cache_dir = (
            iiif / "dev" / "cache"
            if dev and self._settings.cache_dir is None
            else base_cache
        )
        return BuildPaths(
            build_dir=build_dir,
            cache_dir=cache_dir,
            requests_dir=base_cache / REQUESTS_PARTITION,
        )

    def watch_roots(self) -> list[Path]:
        """List folders whose changes should trigger a rebuild."""
        resolver = StoreResolver(self._config, self._request_cache_factory(None))
        return resolver.watch_roots()

    def cache_marker(self, dev: bool = False) -> str | None:
        """Read the configuration hash the derived cache was last built with.

        Args:
            dev: Read the dev cache.

        Returns:
            Stored hash, or None before the first build.
        """
        return self._backend_factory(self.paths(dev).cache_dir).read_marker()

    def cached_build(
        self, options: BuildOptions | None = None, **kwargs: Any
    ) -> BuildResult:
        """Run a build, waiting for any build already in progress.

        Args:
            options: Build options.
            **kwargs: BuildOptions fields, used when ``options`` is None.

        Returns:
            BuildResult describing the output.
        """
        options = options or BuildOptions(**kwargs)
        with self._run_lock:
            result = self._build(options)
        hook = self._watch_hook
        if options.arms_watch and hook is not None:
            hook()
        return result

    def set_watch_hook(self, hook: Callable[[], object] | None) -> None:
        """Register what arms the watcher after dev builds.

        Args:
            hook: Called after each build whose options arm the watcher.
        """
        self._watch_hook = hook

    def save_pending(self) -> list[str]:
        """Write queued bodies into their stores' override folders.

        Returns:
            Paths of the written files.
        """
        with self._state_lock:
            pending = list(self._pending_saves)
            self._pending_saves = []
        saved: list[str] = []
        for item in pending:
            folder = OverrideFolder(Path(item.path).parent)
            saved.append(str(folder.save(item)))
        self._log.info("pending_saves_written", count=len(saved))
        return saved

    def close(self) -> None:
        """Release the HTTP client."""
        if self._fetcher is not None:
            self._fetcher.close()

    def _resolve_steps(self, config: EffectiveConfig) -> list[Step]:
        # Site run order first, then steps only some stores opt into
        steps = self._registry.resolve(config.run)
        seen = {step.id for step in steps}
        for store_id in config.stores:
            for step in self._registry.resolve(config.run_for_store(store_id)):
                if step.id not in seen:
                    seen.add(step.id)
                    steps.append(step)
        return steps

    def _resolve(self, path: Path | None) -> Path | None:
        if path is None:
            return None
        return path if path.is_absolute() else self._config.root / path

    def _get_fetcher(self) -> HttpFetcher:
        if self._fetcher is None:
            network = self._config.site.network
            self._fetcher = HttpFetcher(
                FetchConfig.model_validate(network.model_dump())
            )
        return self._fetcher

    def _request_cache_factory(
        self, requests_dir: Path | None
    ) -> Callable[[str], RequestCache]:
        directory = requests_dir or self.paths().requests_dir
        semaphore = threading.BoundedSemaphore(self._config.site.network.concurrency)

        def factory(store_id: str) -> RequestCache:
            return RequestCache(
                store_id,
                directory,
                self._get_fetcher(),
                on_progress=self._status.on_fetch,
                semaphore=semaphore,
            )

        return factory

    def _build(self, options: BuildOptions) -> BuildResult:
        config = self._config
        build_id = uuid.uuid4().hex[:12]
        paths = self.paths(options.dev)
        configuration_hash = config.configuration_hash()
        log = self._log.bind(build_id=build_id)
        bind_build_context(build_id, options.dev)

        tracer = Tracer(build_id)
        with self._state_lock:
            self._tracer = tracer
        self._status.start()
        self._events.emit("build-started", buildId=build_id, dev=options.dev)
        log.info(
            "build_started",
            dev=options.dev,
            cache=options.cache,
            emit=options.emit,
            build_dir=str(paths.build_dir),
        )
        start = time.perf_counter()

        try:
            stats, resources = self._run(
                config, options, paths, tracer, configuration_hash
            )
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            tracer.close()
            self._status.finish(error=f"{type(e).__name__}: {e}")
            self._metrics.record_build(duration_ms, failed=True)
            self._events.emit("build-failed", buildId=build_id, error=str(e))
            log.error("build_failed", error=str(e), duration_ms=round(duration_ms, 2))
            clear_build_context()
            raise

        stats.duration_ms = (time.perf_counter() - start) * 1000
        tracer.close()
        diagnostics = resources.diagnostics
        self._status.finish(
            warning=diagnostics[-1].message if diagnostics else None,
        )
        self._metrics.record_build(stats.duration_ms)

        result = BuildResult(
            build_id=build_id,
            build_config={
                **paths.summary(),
                "cache": options.cache,
                "emit": options.emit,
                "dev": options.dev,
                "exact": sorted(options.exact),
                "serverUrl": config.server_url,
                "configurationHash": configuration_hash,
                "run": [step.id for step in self._steps],
            },
            stats=stats,
            resources=resources.slugs(),
            diagnostics=[d.model_dump(mode="json") for d in diagnostics],
        )
        with self._state_lock:
            self._resources = resources
            self._last_result = result
            self._pending_saves = resources.pending_saves

        self._events.emit(
            "build-completed",
            buildId=build_id,
            resources=stats.resources,
            failed=stats.failed,
        )
        log.info(
            "build_completed",
            resources=stats.resources,
            failed=stats.failed,
            steps_run=stats.steps_run,
            cache_hits=stats.cache_hits,
            files_written=stats.files_written,
            duration_ms=round(stats.duration_ms, 2),
        )
        clear_build_context()
        return result

    def _run(
        self,
        config: EffectiveConfig,
        options: BuildOptions,
        paths: BuildPaths,
        tracer: Tracer,
        configuration_hash: str,
    ) -> tuple[BuildStats, ResourceSet]:
        stats = BuildStats()

        self._status.set_phase("parse-stores", "Resolving stores")
        cache = CacheManager(self._backend_factory(paths.cache_dir))
        stats.cache_invalidated = cache.ensure_configuration(configuration_hash)
        resolver = StoreResolver(
            config, self._request_cache_factory(paths.requests_dir)
        )

        self._status.set_phase("crawl", "Crawling stores")
        crawler = Crawler(
            resolver,
            rewrites=list(config.site.rewrites),
            max_workers=config.site.network.concurrency,
            on_progress=self._status.set_resources,
        )
        resources = crawler.crawl()
        stats.resources = len(resources.active())
        stats.failed = len(resources.failed())

        runner = PipelineRunner(
            config,
            cache,
            tracer,
            use_cache=options.cache,
            exact=options.exact,
            on_progress=self._on_pipeline_progress,
        )
        pipeline = PipelineStats()
        if options.extract:
            self._status.set_phase("extract", "Running extraction steps")
            pipeline.merge(
                runner.run_extraction(
                    resources, self._registry.by_kind(self._steps, StepKind.EXTRACTION)
                )
            )
        if options.enrich:
            self._status.set_phase("enrich", "Running enrichment steps")
            pipeline.merge(
                runner.run_enrichment(
                    resources, self._registry.by_kind(self._steps, StepKind.ENRICHMENT)
                )
            )
        stats.steps_run = pipeline.steps_run
        stats.cache_hits = pipeline.cache_hits
        stats.step_failures = pipeline.failures
        self._record_trace_meta(resources, tracer)

        if options.emit:
            writer = AtomicWriter(paths.build_dir, tracer.build_id)
            self._status.set_phase("emit", "Writing resources")
            report = ResourceEmitter(config, writer).emit(resources)
            for slug, files in report.by_slug.items():
                tracer.add_files(slug, files)
            self._status.set_phase("indices", "Building indices")
            report.extend(IndexBuilder(config, writer).build(resources))
            self._prune(paths.build_dir, report)
            stats.files_written = report.written
            stats.files_unchanged = len(report.files) - report.written
        return stats, resources

    def _on_pipeline_progress(
        self, phase: str, processed: int, total: int, slug: str
    ) -> None:
        self._status.set_resources(processed, total, slug)

    @staticmethod
    def _record_trace_meta(resources: ResourceSet, tracer: Tracer) -> None:
        topics: dict[str, dict[str, Any]] = {}
        for resource in resources.active():
            label = resource.extracted.get(LABEL_STEP) or {}
            tracer.set_resource_meta(
                resource.slug,
                label=label.get("label"),
                thumbnail=resource.extracted.get(THUMBNAIL_STEP),
                within_collections=sorted(resource.parents),
            )
            for topic in resource.enriched.get(TOPIC_STEP) or []:
                entry = topics.setdefault(
                    topic["id"],
                    {"type": topic["type"], "label": topic["label"], "items": []},
                )
                entry["items"].append(resource.slug)
        for topic_id in sorted(topics):
            topics[topic_id]["items"].sort()
            tracer.add_topic(topic_id, topics[topic_id])

    def _prune(self, build_dir: Path, report: EmitReport) -> None:
        """Delete emitted files left over from resources that disappeared."""
        if not build_dir.is_dir():
            return
        keep = report.paths
        removed = 0
        for path in sorted(build_dir.rglob("*"), reverse=True):
            if path.is_file() and path.suffix in EMITTED_SUFFIXES:
                if path.relative_to(build_dir).as_posix() not in keep:
                    path.unlink()
                    removed += 1
            elif path.is_dir() and not any(path.iterdir()):
                path.rmdir()
        if removed:
            self._log.info("stale_files_removed", count=removed)
