"""Data models for crawled resources."""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.core.hashing import stable_hash


class ResourceType(str, Enum):
    """Resource types the engine builds."""

    MANIFEST = "Manifest"
    COLLECTION = "Collection"


class SourceDescriptor(BaseModel):
    """Where a resource came from.

    Attributes:
        store_id: Store that produced the resource.
        store_type: ``iiif-remote`` or ``iiif-json``.
        locator: URL or absolute file path the body was read from.
        file_path: Backing file for disk-backed resources.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    store_id: str
    store_type: str
    locator: str
    file_path: str | None = None


DiagnosticKind = Literal["fetch", "step", "cache", "config"]


class Diagnostic(BaseModel):
    """A recoverable problem attached to a resource or build."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: DiagnosticKind
    message: str
    slug: str | None = None
    step: str | None = None
    error_class: str | None = None


@dataclass
class Resource:
    """A crawled node of the resource graph.

    ``extracted`` and ``enriched`` are only ever appended to by pipeline
    steps. A failed resource keeps its slug but has no body and is skipped by
    every later stage.
    """

    slug: str
    type: ResourceType
    id: str
    source: SourceDescriptor
    raw_body: dict[str, Any] | None = None
    extracted: dict[str, Any] = field(default_factory=dict)
    enriched: dict[str, Any] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    children: list[str] = field(default_factory=list)
    parents: list[str] = field(default_factory=list)
    failed: bool = False
    override_path: str | None = None

    @property
    def is_manifest(self) -> bool:
        """Check if the resource is a manifest."""
        return self.type == ResourceType.MANIFEST

    @property
    def is_collection(self) -> bool:
        """Check if the resource is a collection."""
        return self.type == ResourceType.COLLECTION

    def body_hash(self) -> str:
        """Hash of the raw body after overrides."""
        return stable_hash(self.raw_body)

    def summary(self) -> dict[str, Any]:
        """Get a JSON-compatible summary for debug output."""
        return {
            "slug": self.slug,
            "type": self.type.value,
            "id": self.id,
            "source": self.source.model_dump(mode="json"),
            "failed": self.failed,
            "children": list(self.children),
            "parents": list(self.parents),
            "diagnostics": [d.model_dump(mode="json") for d in self.diagnostics],
        }


class PendingSave(BaseModel):
    """A fetched body queued for saving into a store's overrides folder."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    slug: str
    store_id: str
    path: str
    body: dict[str, Any] = Field(default_factory=dict)


class ResourceSet:
    """Ordered collection of crawled resources keyed by slug.

    Enrichment steps receive this object to read other resources' extraction
    results. Per-resource results are written only by the pipeline runner.
    """

    def __init__(self) -> None:
        """Initialize an empty set."""
        self._by_slug: dict[str, Resource] = {}
        self._files_to_watch: set[str] = set()
        self._path_index: dict[str, str] = {}
        self._pending_saves: list[PendingSave] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._by_slug)

    def __iter__(self) -> Iterator[Resource]:
        return iter(list(self._by_slug.values()))

    def __contains__(self, slug: object) -> bool:
        return slug in self._by_slug

    def add(self, resource: Resource) -> None:
        """Add a resource; slugs must be unique."""
        if resource.slug in self._by_slug:
            msg = f"Duplicate slug: {resource.slug}"
            raise ValueError(msg)
        self._by_slug[resource.slug] = resource
        if resource.source.file_path:
            self._path_index[resource.source.file_path] = resource.slug
            self._files_to_watch.add(resource.source.file_path)
        if resource.override_path:
            self._path_index[resource.override_path] = resource.slug
            self._files_to_watch.add(resource.override_path)

    def get(self, slug: str) -> Resource | None:
        """Get a resource by slug."""
        return self._by_slug.get(slug)

    def slugs(self) -> list[str]:
        """Get all slugs in crawl order."""
        return list(self._by_slug)

    def active(self) -> list[Resource]:
        """Get resources that crawled successfully, in crawl order."""
        return [r for r in self._by_slug.values() if not r.failed]

    def failed(self) -> list[Resource]:
        """Get resources that failed to crawl."""
        return [r for r in self._by_slug.values() if r.failed]

    def of_type(self, resource_type: ResourceType) -> list[Resource]:
        """Get active resources of one type, sorted by slug."""
        return sorted(
            (r for r in self.active() if r.type == resource_type),
            key=lambda r: r.slug,
        )

    def extracted(self, slug: str, step: str) -> Any:
        """Read one extraction result of another resource."""
        resource = self._by_slug.get(slug)
        if resource is None:
            return None
        return resource.extracted.get(step)

    def extraction_digest(self) -> str:
        """Hash the extraction results of every active resource.

        Enrichment fingerprints include this digest so a change to any
        resource's extracted facts invalidates cross-resource results.
        """
        state = {r.slug: r.extracted for r in self.active()}
        return stable_hash(state)

    def slug_for_path(self, path: str) -> str | None:
        """Map a watched file back to the resource it backs."""
        return self._path_index.get(path)

    @property
    def files_to_watch(self) -> list[str]:
        """Get local files backing resources, sorted."""
        return sorted(self._files_to_watch)

    def add_pending_save(self, pending: PendingSave) -> None:
        """Queue a fetched body for saving into an overrides folder."""
        with self._lock:
            self._pending_saves.append(pending)

    @property
    def pending_saves(self) -> list[PendingSave]:
        """Get queued saves."""
        with self._lock:
            return list(self._pending_saves)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Get the diagnostics of every resource in crawl order."""
        return [d for resource in self._by_slug.values() for d in resource.diagnostics]
