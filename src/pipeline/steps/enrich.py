"""Built-in enrichment steps.

Enrichment steps may read any resource's extraction results through the
context's ResourceSet but never write to other resources.
"""

import re
import unicodedata
from typing import Any

from src.core import iiif
from src.crawler.models import Resource, ResourceSet, ResourceType
from src.pipeline.base import Step, StepContext, StepKind


TOPICS_STEP = "extract-topics"
LABEL_STEP = "extract-label-string"
THUMBNAIL_STEP = "extract-thumbnail"
COLLECTION_ITEMS_STEP = "extract-collection-items"
TOPIC_CLASSIFICATION_STEP = "enrich-topic-classification"
COLLECTION_THUMBNAIL_STEP = "extract-collection-thumbnail"

DEFAULT_RELATED_LIMIT = 5
TOPIC_THUMBNAIL_STRATEGIES = ("first", "last")


def topic_value_slug(value: str) -> str:
    """Slugify a topic value for use in a path.

    Examples:
        >>> topic_value_slug("Jean-Luc Picard")
        'jean-luc-picard'
    """
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_value.lower()).strip("-")
    return slug or "untitled"


def topic_id(topic_type: str, value: str) -> str:
    """Build the slug of a topic collection."""
    return f"topics/{topic_value_slug(topic_type)}/{topic_value_slug(value)}"


def _label_of(resources: ResourceSet | None, slug: str) -> str | None:
    if resources is None:
        return None
    label = resources.extracted(slug, LABEL_STEP)
    return label.get("label") if isinstance(label, dict) else None


def _topic_ids(extracted: Any) -> set[str]:
    if not isinstance(extracted, dict):
        return set()
    return {
        topic_id(topic_type, value)
        for topic_type, values in extracted.items()
        for value in values
    }


class EnrichPartOfCollections(Step):
    """Collections that directly contain the resource."""

    id = "enrich-part-of-collections"
    name = "Part of collections"
    kind = StepKind.ENRICHMENT

    def run(self, resource: Resource, context: StepContext) -> list[dict[str, Any]]:
        """List parent collections with their labels."""
        return [
            {"slug": parent, "label": _label_of(context.resources, parent)}
            for parent in sorted(resource.parents)
        ]


class EnrichTopicClassification(Step):
    """Topic collection ids for the resource's extracted topics."""

    id = TOPIC_CLASSIFICATION_STEP
    name = "Topic classification"
    kind = StepKind.ENRICHMENT

    def run(self, resource: Resource, context: StepContext) -> list[dict[str, str]]:
        """Map each topic value to its topic collection."""
        extracted = context.extracted.get(TOPICS_STEP) or {}
        topics: list[dict[str, str]] = []
        for topic_type in sorted(extracted):
            for value in extracted[topic_type]:
                topics.append(
                    {
                        "id": topic_id(topic_type, value),
                        "type": topic_type,
                        "value": value,
                        "label": value,
                    }
                )
        return topics


class EnrichRelatedItems(Step):
    """Other manifests sharing the most topics.

    Settings:
        limit: maximum related items (default 5).
    """

    id = "enrich-related-items"
    name = "Related items"
    kind = StepKind.ENRICHMENT
    types = frozenset({ResourceType.MANIFEST})

    def run(self, resource: Resource, context: StepContext) -> list[dict[str, Any]]:
        """Rank manifests by shared topic count, ties broken by slug."""
        own = _topic_ids(context.extracted.get(TOPICS_STEP))
        if not own or context.resources is None:
            return []
        limit = int(context.settings.get("limit", DEFAULT_RELATED_LIMIT))

        scored: list[tuple[int, str]] = []
        for other in context.resources.of_type(ResourceType.MANIFEST):
            if other.slug == resource.slug:
                continue
            shared = own & _topic_ids(other.extracted.get(TOPICS_STEP))
            if shared:
                scored.append((len(shared), other.slug))
        scored.sort(key=lambda pair: (-pair[0], pair[1]))

        return [
            {
                "slug": slug,
                "label": _label_of(context.resources, slug),
                "score": score,
            }
            for score, slug in scored[:limit]
        ]


class EnrichSearchRecord(Step):
    """Flat search document for the resource."""

    id = "enrich-search-record"
    name = "Search record"
    kind = StepKind.ENRICHMENT

    def run(self, resource: Resource, context: StepContext) -> dict[str, Any] | None:
        """Assemble the record from extraction results."""
        if not context.config.site.search.emit_record:
            return None
        label_info = context.extracted.get(LABEL_STEP) or {}
        label = label_info.get("label") or resource.slug
        items = context.extracted.get(COLLECTION_ITEMS_STEP) or {}
        body = resource.raw_body or {}

        plaintext_parts: list[str] = []
        for meta_label, values in iiif.metadata_pairs(body, context.language):
            plaintext_parts.append(f"{meta_label}: {' '.join(values)}")

        file_name = "manifest.json" if resource.is_manifest else "collection.json"
        record: dict[str, Any] = {
            "id": resource.slug,
            "type": resource.type.value.lower(),
            "slug": resource.slug,
            "label": label[:200],
            "full_label": label,
            "summary": label_info.get("summary"),
            "collections": sorted(resource.parents),
            "topics": sorted(_topic_ids(context.extracted.get(TOPICS_STEP))),
            "plaintext": "\n".join(plaintext_parts),
            "url": f"{context.config.server_url}/{resource.slug}/{file_name}",
            "thumbnail": context.extracted.get(THUMBNAIL_STEP)
            or context.enriched.get(COLLECTION_THUMBNAIL_STEP),
        }
        if resource.is_collection:
            record["totalItems"] = int(items.get("totalItems", 0))
        return record


class ExtractCollectionThumbnail(Step):
    """Thumbnail for a collection, borrowed from its items when undeclared.

    Children are walked depth first in item order; nested collections are
    searched before moving on to the next item.
    """

    id = COLLECTION_THUMBNAIL_STEP
    name = "Collection thumbnail"
    kind = StepKind.ENRICHMENT
    types = frozenset({ResourceType.COLLECTION})

    def run(self, resource: Resource, context: StepContext) -> str | None:
        """Find the first thumbnail below the collection."""
        own = context.extracted.get(THUMBNAIL_STEP)
        if own:
            return str(own)
        if context.resources is None:
            return None
        return _first_child_thumbnail(context.resources, resource, {resource.slug})


def _first_child_thumbnail(
    resources: ResourceSet, resource: Resource, seen: set[str]
) -> str | None:
    for child_slug in resource.children:
        if child_slug in seen:
            continue
        seen.add(child_slug)
        child = resources.get(child_slug)
        if child is None or child.failed:
            continue
        thumbnail = child.extracted.get(THUMBNAIL_STEP)
        if thumbnail:
            return str(thumbnail)
        if child.is_collection:
            found = _first_child_thumbnail(resources, child, seen)
            if found:
                return found
    return None


class EnrichTopicThumbnails(Step):
    """Representative thumbnail for each of the manifest's topics.

    Every manifest sharing a topic agrees on the same image, so the topic
    collection can take it from any of its members.

    Settings:
        selection_strategy: ``first`` or ``last`` manifest in slug order
            that has a thumbnail (default ``first``).
        fallback: image URL for topics whose manifests have none.
    """

    id = "enrich-topic-thumbnails"
    name = "Topic thumbnails"
    kind = StepKind.ENRICHMENT
    types = frozenset({ResourceType.MANIFEST})

    def run(self, resource: Resource, context: StepContext) -> dict[str, str]:
        """Map topic collection ids to image URLs."""
        own = _topic_ids(context.extracted.get(TOPICS_STEP))
        if not own or context.resources is None:
            return {}
        settings = context.settings
        strategy = settings.get(
            "selectionStrategy", settings.get("selection_strategy", "first")
        )
        if strategy not in TOPIC_THUMBNAIL_STRATEGIES:
            raise ValueError(f"Unknown topic thumbnail strategy: {strategy}")
        fallback = settings.get("fallback")

        candidates: dict[str, list[str]] = {topic: [] for topic in own}
        for other in context.resources.of_type(ResourceType.MANIFEST):
            thumbnail = other.extracted.get(THUMBNAIL_STEP)
            if not thumbnail:
                continue
            for topic in own & _topic_ids(other.extracted.get(TOPICS_STEP)):
                candidates[topic].append(str(thumbnail))

        thumbnails: dict[str, str] = {}
        for topic in sorted(candidates):
            urls = candidates[topic]
            if urls:
                thumbnails[topic] = urls[0] if strategy == "first" else urls[-1]
            elif fallback:
                thumbnails[topic] = str(fallback)
        return thumbnails
