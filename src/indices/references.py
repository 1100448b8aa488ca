"""Helpers shared by resource emission and index building."""

from typing import Any

from src.crawler.models import Resource
from src.crawler.overrides import deep_merge


IIIF_CONTEXT = "http://iiif.io/api/presentation/3/context.json"

LABEL_STEP = "extract-label-string"
THUMBNAIL_STEP = "extract-thumbnail"
COLLECTION_THUMBNAIL_STEP = "extract-collection-thumbnail"


def resource_file(resource: Resource) -> str:
    """Get the file name a resource is emitted as."""
    return "manifest.json" if resource.is_manifest else "collection.json"


def public_url(server_url: str, slug: str, file_name: str = "collection.json") -> str:
    """Build the public URL of an emitted file."""
    return f"{server_url}/{slug}/{file_name}" if slug else f"{server_url}/{file_name}"


def thumbnail_of(resource: Resource) -> str | None:
    """Get the declared thumbnail, or the one derived for a collection."""
    value = resource.extracted.get(THUMBNAIL_STEP) or resource.enriched.get(
        COLLECTION_THUMBNAIL_STEP
    )
    return str(value) if value else None


def image(url: str) -> list[dict[str, Any]]:
    """Build a IIIF thumbnail property for an image URL."""
    return [{"id": url, "type": "Image"}]


def resource_label(resource: Resource) -> str:
    """Get the extracted label, falling back to the slug."""
    label = resource.extracted.get(LABEL_STEP)
    if isinstance(label, dict) and label.get("label"):
        return str(label["label"])
    return resource.slug


def reference(resource: Resource, server_url: str) -> dict[str, Any]:
    """Build a collection item referencing an emitted resource.

    Args:
        resource: Referenced resource.
        server_url: Public site URL.

    Returns:
        IIIF Presentation 3 reference with the slug attached.
    """
    ref: dict[str, Any] = {
        "id": public_url(server_url, resource.slug, resource_file(resource)),
        "type": resource.type.value,
        "label": {"none": [resource_label(resource)]},
        "hss:slug": resource.slug,
    }
    thumbnail = thumbnail_of(resource)
    if thumbnail:
        ref["thumbnail"] = image(thumbnail)
    return ref


def collection(  # noqa: PLR0913
    server_url: str,
    slug: str,
    label: str,
    items: list[dict[str, Any]],
    template: dict[str, Any] | None = None,
    total_items: int | None = None,
    thumbnail: str | None = None,
) -> dict[str, Any]:
    """Build a generated collection body.

    Args:
        server_url: Public site URL.
        slug: Slug of the collection; empty for the site root.
        label: Display label.
        items: Collection items.
        template: Partial body merged over the generated one.
        total_items: Count to advertise; defaults to ``len(items)``.
        thumbnail: Image URL representing the collection.

    Returns:
        Collection body.
    """
    body: dict[str, Any] = {
        "@context": IIIF_CONTEXT,
        "id": public_url(server_url, slug),
        "type": "Collection",
        "label": {"none": [label]},
        "hss:slug": slug,
        "hss:totalItems": len(items) if total_items is None else total_items,
        "items": items,
    }
    if thumbnail:
        body["thumbnail"] = image(thumbnail)
    if template:
        body = deep_merge(body, template)
    return body
