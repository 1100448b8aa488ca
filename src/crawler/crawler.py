"""Crawler walking store worklists into a ResourceSet."""

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from src.config.schemas.site import RewriteRule
from src.core import iiif
from src.crawler.models import (
    Diagnostic,
    PendingSave,
    Resource,
    ResourceSet,
    ResourceType,
    SourceDescriptor,
)
from src.crawler.overrides import deep_merge
from src.crawler.slugs import SlugAssigner
from src.crawler.stores import ReadResult, Store, StoreResolver, WorkItem


logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, str | None], None]


@dataclass
class CrawlStats:
    """Counters for one crawl."""

    resources: int = 0
    failed: int = 0
    cache_hits: int = 0
    duplicates: int = 0
    levels: int = 0
    duration_ms: float = 0.0


@dataclass
class _CrawlState:
    resources: ResourceSet = field(default_factory=ResourceSet)
    identities: dict[str, str] = field(default_factory=dict)
    queued: set[str] = field(default_factory=set)
    child_ids: dict[str, list[str]] = field(default_factory=dict)
    processed: int = 0
    total: int = 0


def _guess_type(locator: str) -> ResourceType:
    if "collection" in locator.lower():
        return ResourceType.COLLECTION
    return ResourceType.MANIFEST


class Crawler:
    """Discovers every resource reachable from the configured stores.

    Works level by level: all items of one level are read in parallel, then
    processed in worklist order so slug assignment is deterministic. Visited
    identities break cycles. A branch that fails to read becomes a failed
    resource with a reserved slug; its siblings are unaffected.
    """

    def __init__(
        self,
        resolver: StoreResolver,
        rewrites: list[RewriteRule] | None = None,
        max_workers: int = 4,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the crawler.

        Args:
            resolver: Resolver providing store readers and root items.
            rewrites: Slug rewrite rules.
            max_workers: Parallel reads per level.
            on_progress: Receives (processed, total, current slug).
        """
        self._resolver = resolver
        self._rewrites = rewrites or []
        self._max_workers = max_workers
        self._on_progress = on_progress
        self._stats = CrawlStats()
        self._log = logger.bind(component="crawler")

    @property
    def stats(self) -> CrawlStats:
        """Get counters from the last crawl."""
        return self._stats

    def crawl(self) -> ResourceSet:
        """Crawl every store to its closure.

        Returns:
            ResourceSet in crawl order.
        """
        start = time.perf_counter()
        self._stats = CrawlStats()
        stores = self._resolver.stores()
        assigner = SlugAssigner(self._rewrites)
        state = _CrawlState()

        level: list[WorkItem] = []
        for item in self._resolver.worklist():
            if item.locator not in state.queued:
                state.queued.add(item.locator)
                level.append(item)
        state.total = len(level)

        self._log.info("crawl_started", stores=list(stores), roots=len(level))

        while level:
            self._stats.levels += 1
            results = self._read_level(level, stores)
            next_level: list[WorkItem] = []
            for result in results:
                next_level.extend(
                    self._process(result, stores[result.item.store_id], assigner, state)
                )
            # Siblings read later in the same level may already be the target
            next_level = [
                item for item in next_level if item.locator not in state.identities
            ]
            state.total += len(next_level)
            level = next_level

        self._link(state)
        self._stats.resources = len(state.resources)
        self._stats.failed = len(state.resources.failed())
        self._stats.duration_ms = (time.perf_counter() - start) * 1000
        self._log.info(
            "crawl_complete",
            resources=self._stats.resources,
            failed=self._stats.failed,
            cache_hits=self._stats.cache_hits,
            levels=self._stats.levels,
            duration_ms=round(self._stats.duration_ms, 2),
        )
        return state.resources

    def _read_level(
        self, level: list[WorkItem], stores: dict[str, Store]
    ) -> list[ReadResult]:
        if self._max_workers <= 1 or len(level) == 1:
            return [self._read_one(item, stores) for item in level]
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            return list(executor.map(lambda item: self._read_one(item, stores), level))

    def _read_one(self, item: WorkItem, stores: dict[str, Store]) -> ReadResult:
        try:
            return stores[item.store_id].read(item)
        except Exception as e:  # noqa: BLE001
            self._log.error(
                "store_read_error",
                store_id=item.store_id,
                locator=item.locator,
                error=str(e),
            )
            return ReadResult(item=item, error_class="UNKNOWN", error=str(e))

    def _process(
        self,
        result: ReadResult,
        store: Store,
        assigner: SlugAssigner,
        state: _CrawlState,
    ) -> list[WorkItem]:
        item = result.item
        state.processed += 1
        if result.cache_hit:
            self._stats.cache_hits += 1

        body = result.body
        resource_type = iiif.resource_type(body) if body is not None else None
        if body is None or resource_type is None:
            message = result.error or "Not a IIIF Manifest or Collection"
            self._fail(item, store, assigner, state, message, result.error_class)
            return []

        identity = iiif.resource_id(body) or item.locator
        if identity in state.identities:
            self._stats.duplicates += 1
            state.identities.setdefault(item.locator, state.identities[identity])
            return []

        rtype = ResourceType(resource_type)
        slug = assigner.assign(identity, rtype, store.templates, item.relative_path)
        state.identities[identity] = slug
        state.identities.setdefault(item.locator, slug)

        resource = Resource(
            slug=slug,
            type=rtype,
            id=identity,
            source=SourceDescriptor(
                store_id=store.store_id,
                store_type=store.store_type,
                locator=item.locator,
                file_path=None if item.is_remote else item.locator,
            ),
            raw_body=body,
        )
        self._apply_overrides(resource, store, state)
        state.resources.add(resource)
        self._report(state, slug)

        if rtype != ResourceType.COLLECTION:
            return []

        children: list[WorkItem] = []
        refs = iiif.child_references(body)
        state.child_ids[slug] = [ref_id for ref_id, _ in refs]
        for ref_id, ref_type in refs:
            if ref_id in state.identities or ref_id in state.queued:
                continue
            if not ref_id.startswith(("http://", "https://")):
                self._log.debug("child_not_fetchable", parent=slug, ref=ref_id)
                continue
            state.queued.add(ref_id)
            children.append(
                WorkItem(
                    store.store_id,
                    ref_id,
                    expected_type=ResourceType(ref_type),
                    parent_slug=slug,
                )
            )
        return children

    def _apply_overrides(
        self, resource: Resource, store: Store, state: _CrawlState
    ) -> None:
        overrides = store.overrides
        if overrides is None or resource.raw_body is None:
            return
        path = overrides.path_for(resource.slug)
        try:
            fragment = overrides.load(resource.slug)
        except ValueError as e:
            resource.diagnostics.append(
                Diagnostic(
                    kind="fetch",
                    message=f"Ignoring invalid override: {e}",
                    slug=resource.slug,
                    error_class="INVALID_OVERRIDE",
                )
            )
            resource.override_path = str(path)
            return

        if fragment is not None:
            resource.raw_body = deep_merge(resource.raw_body, fragment)
            resource.override_path = str(path)
        elif store.save_manifests and resource.is_manifest:
            state.resources.add_pending_save(
                PendingSave(
                    slug=resource.slug,
                    store_id=store.store_id,
                    path=str(path),
                    body=resource.raw_body,
                )
            )

    def _fail(  # noqa: PLR0913
        self,
        item: WorkItem,
        store: Store,
        assigner: SlugAssigner,
        state: _CrawlState,
        message: str,
        error_class: str | None,
    ) -> None:
        known = state.identities.get(item.locator)
        existing = state.resources.get(known) if known else None
        if existing is not None:
            # Another store already produced this identity; keep that resource
            self._stats.duplicates += 1
            existing.diagnostics.append(
                Diagnostic(
                    kind="fetch",
                    message=f"{item.locator}: {message}",
                    slug=existing.slug,
                    error_class=error_class,
                )
            )
            self._report(state, existing.slug)
            self._log.warning(
                "duplicate_locator_failed",
                slug=existing.slug,
                locator=item.locator,
                store_id=store.store_id,
                error_class=error_class,
                error=message,
            )
            return

        rtype = item.expected_type or _guess_type(item.locator)
        slug = assigner.assign(item.locator, rtype, store.templates, item.relative_path)
        state.identities[item.locator] = slug
        resource = Resource(
            slug=slug,
            type=rtype,
            id=item.locator,
            source=SourceDescriptor(
                store_id=store.store_id,
                store_type=store.store_type,
                locator=item.locator,
                file_path=None if item.is_remote else item.locator,
            ),
            failed=True,
            diagnostics=[
                Diagnostic(
                    kind="fetch",
                    message=message,
                    slug=slug,
                    error_class=error_class,
                )
            ],
        )
        state.resources.add(resource)
        self._report(state, slug)
        self._log.warning(
            "resource_failed",
            slug=slug,
            locator=item.locator,
            parent=item.parent_slug,
            error_class=error_class,
            error=message,
        )

    def _link(self, state: _CrawlState) -> None:
        for parent_slug, ref_ids in state.child_ids.items():
            parent = state.resources.get(parent_slug)
            if parent is None:
                continue
            for ref_id in ref_ids:
                child_slug = state.identities.get(ref_id)
                child = state.resources.get(child_slug) if child_slug else None
                if child is None or child.failed or child.slug == parent.slug:
                    continue
                if child.slug not in parent.children:
                    parent.children.append(child.slug)
                if parent.slug not in child.parents:
                    child.parents.append(parent.slug)

    def _report(self, state: _CrawlState, slug: str) -> None:
        if self._on_progress is not None:
            self._on_progress(state.processed, state.total, slug)
