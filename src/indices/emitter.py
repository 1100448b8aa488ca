"""Per-resource artifact emission."""

import copy
from pathlib import Path
from typing import Any

import structlog

from src.config.effective import EffectiveConfig
from src.crawler.models import Resource, ResourceSet
from src.indices import references
from src.indices.io import AtomicWriter
from src.indices.models import EmitReport


logger = structlog.get_logger()


class ResourceEmitter:
    """Writes the per-resource files of a build.

    Every active resource gets ``<slug>/manifest.json`` or
    ``<slug>/collection.json`` plus a ``<slug>/meta.json``.
    """

    def __init__(self, config: EffectiveConfig, writer: AtomicWriter) -> None:
        """Initialize the emitter.

        Args:
            config: Effective configuration.
            writer: Atomic writer rooted at the build directory.
        """
        self._config = config
        self._writer = writer
        self._log = logger.bind(component="emitter")

    def emit(self, resources: ResourceSet) -> EmitReport:
        """Emit every active resource.

        Args:
            resources: Enriched resources.

        Returns:
            EmitReport listing the files per slug.
        """
        report = EmitReport()
        for resource in resources.active():
            body = (
                self._manifest(resource)
                if resource.is_manifest
                else self._collection(resource, resources)
            )
            base = Path(resource.slug)
            report.add(
                self._writer.write_json(
                    base / references.resource_file(resource), body
                ),
                resource.slug,
            )
            report.add(
                self._writer.write_json(base / "meta.json", self.meta(resource)),
                resource.slug,
            )
        self._log.info(
            "resources_emitted",
            resources=len(report.by_slug),
            files=len(report.files),
            written=report.written,
        )
        return report

    def meta(self, resource: Resource) -> dict[str, Any]:
        """Build the ``meta.json`` document for a resource."""
        label = resource.extracted.get(references.LABEL_STEP) or {}
        meta: dict[str, Any] = {
            "slug": resource.slug,
            "type": resource.type.value,
            "label": references.resource_label(resource),
            "summary": label.get("summary"),
            "thumbnail": references.thumbnail_of(resource),
            "topics": resource.enriched.get("enrich-topic-classification", []),
            "related": resource.enriched.get("enrich-related-items", []),
            "partOf": resource.enriched.get("enrich-part-of-collections", []),
            "imageServices": resource.extracted.get("extract-image-services", []),
        }
        if resource.is_collection:
            items = resource.extracted.get("extract-collection-items") or {}
            meta["totalItems"] = items.get("totalItems", len(resource.children))
        return meta

    def _manifest(self, resource: Resource) -> dict[str, Any]:
        body = copy.deepcopy(resource.raw_body or {})
        url = references.public_url(
            self._config.server_url, resource.slug, "manifest.json"
        )
        if "@id" in body and "id" not in body:
            body["@id"] = url
        else:
            body["id"] = url
        body["hss:slug"] = resource.slug
        return body

    def _collection(self, resource: Resource, resources: ResourceSet) -> dict[str, Any]:
        items = []
        for child_slug in resource.children:
            child = resources.get(child_slug)
            if child is None or child.failed:
                continue
            items.append(references.reference(child, self._config.server_url))
        return references.collection(
            self._config.server_url,
            resource.slug,
            references.resource_label(resource),
            items,
            thumbnail=references.thumbnail_of(resource),
        )
