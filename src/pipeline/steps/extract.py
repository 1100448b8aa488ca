"""Built-in extraction steps.

Each step reads only the resource it is given.
"""

import re
from fnmatch import fnmatchcase
from typing import Any

from src.config.constants import STORE_TYPE_LOCAL
from src.core import iiif
from src.crawler.models import Resource, ResourceType
from src.pipeline.base import Step, StepContext, StepKind


class ExtractLabelString(Step):
    """Plain-text label and summary in the preferred language."""

    id = "extract-label-string"
    name = "Extract label string"
    kind = StepKind.EXTRACTION

    def run(self, resource: Resource, context: StepContext) -> dict[str, Any]:
        """Read the label and summary."""
        body = resource.raw_body or {}
        summary = body.get("summary", body.get("description"))
        return {
            "label": iiif.first_value(body.get("label"), context.language),
            "summary": iiif.first_value(summary, context.language),
        }


class ExtractThumbnail(Step):
    """First declared thumbnail, falling back to the first painted image."""

    id = "extract-thumbnail"
    name = "Extract thumbnail"
    kind = StepKind.EXTRACTION

    def run(self, resource: Resource, context: StepContext) -> str | None:
        """Find a thumbnail URL."""
        body = resource.raw_body or {}
        declared = iiif.thumbnail_id(body)
        if declared:
            return declared
        for canvas in iiif.canvases(body):
            declared = iiif.thumbnail_id(canvas)
            if declared:
                return declared
            for content in iiif.painting_bodies(canvas):
                content_id = iiif.resource_id(content)
                if content_id:
                    return content_id
        return None


class ExtractTopics(Step):
    """Groups metadata values by configured topic type.

    Settings (``topics`` in the site config, overridable per step):
        topic_types: topic type -> metadata label or list of labels.
        comma_separated: topic types whose values are split on commas.
        language: preferred language for labels and values.
    """

    id = "extract-topics"
    name = "Extract topics"
    kind = StepKind.EXTRACTION

    def run(self, resource: Resource, context: StepContext) -> dict[str, list[str]]:
        """Collect de-duplicated topic values per type."""
        rules = context.config.site.topics
        topic_types = context.settings.get(
            "topicTypes", context.settings.get("topic_types", rules.topic_types)
        )
        comma_separated = set(
            context.settings.get(
                "commaSeparated",
                context.settings.get("comma_separated", rules.comma_separated),
            )
        )

        label_to_type: dict[str, str] = {}
        for topic_type, labels in topic_types.items():
            for label in [labels] if isinstance(labels, str) else labels:
                label_to_type[label.strip().lower()] = topic_type

        topics: dict[str, list[str]] = {}
        for label, values in iiif.metadata_pairs(
            resource.raw_body or {}, context.language
        ):
            topic_type = label_to_type.get(label.strip().lower())
            if topic_type is None:
                continue
            bucket = topics.setdefault(topic_type, [])
            for value in values:
                parts = value.split(",") if topic_type in comma_separated else [value]
                for part in parts:
                    cleaned = _strip_markup(part).strip()
                    if cleaned and cleaned not in bucket:
                        bucket.append(cleaned)
        return {key: values for key, values in topics.items() if values}


class ExtractImageServices(Step):
    """Image service endpoints painted on a manifest's canvases."""

    id = "extract-image-services"
    name = "Extract image services"
    kind = StepKind.EXTRACTION
    types = frozenset({ResourceType.MANIFEST})

    def run(self, resource: Resource, context: StepContext) -> list[str]:
        """List unique service endpoints in canvas order."""
        endpoints: list[str] = []
        for canvas in iiif.canvases(resource.raw_body or {}):
            for content in iiif.painting_bodies(canvas):
                for endpoint in iiif.image_services(content):
                    if endpoint not in endpoints:
                        endpoints.append(endpoint)
        return endpoints


class ExtractCollectionItems(Step):
    """Child slugs and item count of a collection."""

    id = "extract-collection-items"
    name = "Extract collection items"
    kind = StepKind.EXTRACTION
    types = frozenset({ResourceType.COLLECTION})

    def run(self, resource: Resource, context: StepContext) -> dict[str, Any]:
        """List the crawled children."""
        return {
            "items": list(resource.children),
            "totalItems": len(resource.children),
        }


class ExtractFolderCollections(Step):
    """Folders above a local manifest, shallowest first.

    Each folder becomes a generated collection mirroring the slug hierarchy;
    the last entry is the folder holding the manifest. Remote resources have
    no folders.

    Settings:
        enabled: set to false to turn folder collections off.
        min_depth: folders shallower than this are left out, and manifests
            in them get none (default 1).
        ignore_paths: glob patterns; a manifest in or below a matching
            folder gets no folders.
    """

    id = "extract-folder-collections"
    name = "Extract folder collections"
    kind = StepKind.EXTRACTION
    types = frozenset({ResourceType.MANIFEST})

    def run(self, resource: Resource, context: StepContext) -> list[str] | None:
        """List folder slugs containing the resource."""
        settings = context.settings
        if not settings.get("enabled", True):
            return None
        if resource.source.store_type != STORE_TYPE_LOCAL:
            return None
        min_depth = int(settings.get("minDepth", settings.get("min_depth", 1)))
        ignore = list(settings.get("ignorePaths", settings.get("ignore_paths", [])))

        parts = resource.slug.split("/")[:-1]
        if not parts or len(parts) < min_depth:
            return None
        folders = ["/".join(parts[:depth]) for depth in range(1, len(parts) + 1)]
        for folder in folders:
            if any(_folder_matches(folder, pattern) for pattern in ignore):
                return None
        return folders[max(min_depth, 1) - 1 :]


def _folder_matches(folder: str, pattern: str) -> bool:
    pattern = pattern.strip("/")
    if pattern.endswith("/**"):
        base = pattern[:-3]
        return folder == base or fnmatchcase(folder, f"{base}/*")
    return fnmatchcase(folder, pattern)


_TAG_PATTERN = re.compile(r"<[^>]+>")


def _strip_markup(value: str) -> str:
    return _TAG_PATTERN.sub("", value)
