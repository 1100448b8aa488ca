"""Store readers and the store resolver.

The resolver turns configured stores into an ordered worklist of root
resources. Each store knows how to read a work item into a JSON body.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog

from src.config.constants import STORE_TYPE_LOCAL, STORE_TYPE_REMOTE
from src.config.effective import EffectiveConfig
from src.config.schemas.stores import LocalStoreConfig, RemoteStoreConfig, SlugTemplate
from src.crawler.models import ResourceType
from src.crawler.overrides import OverrideFolder
from src.fetch.models import FetchErrorClass
from src.fetch.request_cache import RequestCache


logger = structlog.get_logger()


@dataclass(frozen=True)
class WorkItem:
    """A resource reference waiting to be crawled.

    Attributes:
        store_id: Store the reference belongs to.
        locator: URL or absolute file path.
        expected_type: Type declared by the referring collection, if any.
        parent_slug: Slug of the referring collection, if any.
        relative_path: Path within a local store, for disk-backed items.
    """

    store_id: str
    locator: str
    expected_type: ResourceType | None = None
    parent_slug: str | None = None
    relative_path: str | None = None

    @property
    def is_remote(self) -> bool:
        """Check if the locator is an HTTP URL."""
        return self.locator.startswith(("http://", "https://"))


@dataclass(frozen=True)
class ReadResult:
    """Outcome of reading one work item."""

    item: WorkItem
    body: dict[str, Any] | None = None
    error_class: str | None = None
    error: str | None = None
    cache_hit: bool = False

    @property
    def ok(self) -> bool:
        """Check if a body was read."""
        return self.body is not None


class Store(Protocol):
    """Interface shared by remote and local stores."""

    store_id: str
    store_type: str
    templates: list[SlugTemplate]
    overrides: OverrideFolder | None
    save_manifests: bool

    def roots(self) -> list[WorkItem]:
        """List root work items in a stable order."""
        ...

    def read(self, item: WorkItem) -> ReadResult:
        """Read a work item's body."""
        ...

    def watch_roots(self) -> list[Path]:
        """List folders the watch service should observe."""
        ...


def _read_remote(cache: RequestCache, item: WorkItem) -> ReadResult:
    result = cache.fetch(item.locator)
    if result.error is not None:
        return ReadResult(
            item=item,
            error_class=result.error.error_class.value,
            error=result.error.message,
        )
    if not isinstance(result.data, dict) or not result.data:
        return ReadResult(
            item=item,
            error_class=FetchErrorClass.INVALID_JSON.value,
            error="Response is not a JSON object",
        )
    return ReadResult(item=item, body=result.data, cache_hit=result.cache_hit)


class RemoteStore:
    """Store rooted at one or more remote IIIF URLs."""

    store_type = STORE_TYPE_REMOTE

    def __init__(
        self,
        store_id: str,
        config: RemoteStoreConfig,
        request_cache: RequestCache,
        overrides_dir: Path | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            store_id: Store identifier.
            config: Remote store configuration.
            request_cache: Raw fetch cache for this store.
            overrides_dir: Resolved overrides folder, if configured.
        """
        self.store_id = store_id
        self.config = config
        self.templates = list(config.slug_templates)
        self.overrides = OverrideFolder(overrides_dir) if overrides_dir else None
        self.save_manifests = config.save_manifests
        self._cache = request_cache

    def roots(self) -> list[WorkItem]:
        """List the configured root URLs."""
        return [WorkItem(self.store_id, url) for url in self.config.locators()]

    def read(self, item: WorkItem) -> ReadResult:
        """Fetch a body through the request cache."""
        return _read_remote(self._cache, item)

    def watch_roots(self) -> list[Path]:
        """Remote stores only watch their overrides folder."""
        return [self.overrides.folder] if self.overrides else []


class LocalDiskStore:
    """Store backed by a folder of IIIF JSON files."""

    store_type = STORE_TYPE_LOCAL
    save_manifests = False
    overrides = None

    def __init__(
        self,
        store_id: str,
        config: LocalStoreConfig,
        root: Path,
        request_cache: RequestCache,
    ) -> None:
        """Initialize the store.

        Args:
            store_id: Store identifier.
            config: Local store configuration.
            root: Absolute store folder.
            request_cache: Raw fetch cache for remote children.
        """
        self.store_id = store_id
        self.config = config
        self.templates = list(config.slug_templates)
        self._root = root
        self._cache = request_cache

    @property
    def root(self) -> Path:
        """Get the store folder."""
        return self._root

    def roots(self) -> list[WorkItem]:
        """List matching files sorted by relative path."""
        if not self._root.is_dir():
            logger.warning(
                "store_folder_missing", store_id=self.store_id, path=str(self._root)
            )
            return []
        files = sorted(
            path for path in self._root.glob(self.config.pattern) if path.is_file()
        )
        return [
            WorkItem(
                self.store_id,
                str(path.resolve()),
                relative_path=path.relative_to(self._root).as_posix(),
            )
            for path in files
        ]

    def read(self, item: WorkItem) -> ReadResult:
        """Read a file, or fetch a remote child through the request cache."""
        if item.is_remote:
            return _read_remote(self._cache, item)
        path = Path(item.locator)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return ReadResult(
                item=item, error_class="FILE_NOT_FOUND", error=f"Missing file {path}"
            )
        except (OSError, ValueError) as e:
            return ReadResult(
                item=item,
                error_class=FetchErrorClass.INVALID_JSON.value,
                error=f"Unreadable JSON in {path}: {e}",
            )
        if not isinstance(data, dict):
            return ReadResult(
                item=item,
                error_class=FetchErrorClass.INVALID_JSON.value,
                error=f"{path} does not contain a JSON object",
            )
        return ReadResult(item=item, body=data)

    def watch_roots(self) -> list[Path]:
        """Local stores watch their own folder."""
        return [self._root]


class StoreResolver:
    """Builds store readers from configuration and lists root work items."""

    def __init__(
        self,
        config: EffectiveConfig,
        request_cache_factory: Callable[[str], RequestCache],
    ) -> None:
        """Initialize the resolver.

        Args:
            config: Effective configuration.
            request_cache_factory: Creates the request cache for a store id.
        """
        self._config = config
        self._factory = request_cache_factory
        self._stores: dict[str, Store] | None = None

    def stores(self) -> dict[str, Store]:
        """Get store readers keyed by store id, in declaration order."""
        if self._stores is None:
            stores: dict[str, Store] = {}
            for store_id, store_config in self._config.stores.items():
                cache = self._factory(store_id)
                if isinstance(store_config, RemoteStoreConfig):
                    overrides_dir = (
                        self._config.resolve_path(store_config.overrides)
                        if store_config.overrides
                        else None
                    )
                    stores[store_id] = RemoteStore(
                        store_id, store_config, cache, overrides_dir
                    )
                else:
                    stores[store_id] = LocalDiskStore(
                        store_id,
                        store_config,
                        self._config.resolve_path(store_config.path),
                        cache,
                    )
            self._stores = stores
        return self._stores

    def worklist(self) -> list[WorkItem]:
        """List root work items for every store, store by store."""
        items: list[WorkItem] = []
        for store in self.stores().values():
            items.extend(store.roots())
        return items

    def watch_roots(self) -> list[Path]:
        """List every folder that backs a store."""
        roots: list[Path] = []
        for store in self.stores().values():
            roots.extend(store.watch_roots())
        return roots
