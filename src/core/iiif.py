"""Helpers for reading IIIF Presentation 2 and 3 documents.

Only the handful of properties the engine needs are understood. Version 2
documents use ``@id``/``@type`` with ``sc:`` prefixed types; version 3 uses
``id``/``type`` and language maps.
"""

from typing import Any


MANIFEST = "Manifest"
COLLECTION = "Collection"

_V2_TYPES = {
    "sc:Manifest": MANIFEST,
    "sc:Collection": COLLECTION,
}


def resource_id(body: Any) -> str | None:
    """Get the identifier of a IIIF resource or reference."""
    if isinstance(body, str):
        return body
    if not isinstance(body, dict):
        return None
    value = body.get("id", body.get("@id"))
    return value if isinstance(value, str) else None


def resource_type(body: Any) -> str | None:
    """Get the resource type, normalized to ``Manifest`` or ``Collection``.

    Returns:
        The normalized type, or None for anything else.
    """
    if not isinstance(body, dict):
        return None
    raw = body.get("type", body.get("@type"))
    if isinstance(raw, list):
        known = (*_V2_TYPES, MANIFEST, COLLECTION)
        raw = next((item for item in raw if item in known), None)
    if raw in (MANIFEST, COLLECTION):
        return str(raw)
    if isinstance(raw, str):
        return _V2_TYPES.get(raw)
    return None


def child_references(body: dict[str, Any]) -> list[tuple[str, str]]:
    """List the manifests and collections a collection refers to.

    Args:
        body: Collection document.

    Returns:
        ``(id, type)`` pairs in document order, without duplicates.
    """
    refs: list[tuple[str, str]] = []
    candidates: list[tuple[Any, str | None]] = []
    for item in body.get("items", []) or []:
        candidates.append((item, None))
    for item in body.get("collections", []) or []:
        candidates.append((item, COLLECTION))
    for item in body.get("manifests", []) or []:
        candidates.append((item, MANIFEST))
    for item in body.get("members", []) or []:
        candidates.append((item, None))

    seen: set[str] = set()
    for item, implied_type in candidates:
        ref_id = resource_id(item)
        ref_type = resource_type(item) or implied_type
        if not ref_id or ref_type is None or ref_id in seen:
            continue
        seen.add(ref_id)
        refs.append((ref_id, ref_type))
    return refs


def language_values(value: Any, language: str | None = None) -> list[str]:
    """Flatten a IIIF label-like value into strings.

    Accepts v3 language maps, v2 ``@value`` objects, lists of either, and
    plain strings. When ``language`` is given and present, only its values
    are returned; otherwise the first language in document order wins.

    Args:
        value: Label, summary, or metadata value.
        language: Preferred language code.

    Returns:
        List of strings, possibly empty.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (int, float)):
        return [str(value)]
    if isinstance(value, list):
        by_language: dict[str, list[str]] = {}
        plain: list[str] = []
        for item in value:
            if isinstance(item, dict) and "@value" in item:
                lang = str(item.get("@language", "none"))
                by_language.setdefault(lang, []).append(str(item["@value"]))
            else:
                plain.extend(language_values(item, language))
        if by_language:
            return _pick_language(by_language, language) + plain
        return plain
    if isinstance(value, dict):
        if "@value" in value:
            return [str(value["@value"])]
        by_language = {
            str(lang): [
                str(v) for v in (values if isinstance(values, list) else [values])
            ]
            for lang, values in value.items()
        }
        return _pick_language(by_language, language)
    return []


def _pick_language(
    by_language: dict[str, list[str]], language: str | None
) -> list[str]:
    if language and language in by_language:
        return by_language[language]
    return next(iter(by_language.values()), [])


def first_value(value: Any, language: str | None = None) -> str | None:
    """Get the first string of a label-like value."""
    values = language_values(value, language)
    return values[0] if values else None


def metadata_pairs(
    body: dict[str, Any], language: str | None = None
) -> list[tuple[str, list[str]]]:
    """Read a resource's metadata as ``(label, values)`` pairs.

    Args:
        body: Manifest or collection document.
        language: Preferred language code.

    Returns:
        Pairs in document order; entries without a label are skipped.
    """
    pairs: list[tuple[str, list[str]]] = []
    for entry in body.get("metadata", []) or []:
        if not isinstance(entry, dict):
            continue
        label = first_value(entry.get("label"), language)
        if not label:
            continue
        pairs.append((label, language_values(entry.get("value"), language)))
    return pairs


def thumbnail_id(body: dict[str, Any]) -> str | None:
    """Get the first thumbnail URL declared on a resource."""
    thumbnail = body.get("thumbnail")
    if isinstance(thumbnail, list):
        thumbnail = thumbnail[0] if thumbnail else None
    return resource_id(thumbnail)


def canvases(body: dict[str, Any]) -> list[dict[str, Any]]:
    """List the canvases of a manifest (v3 ``items`` or v2 sequences)."""
    found = [
        item
        for item in body.get("items", []) or []
        if isinstance(item, dict) and item.get("type") == "Canvas"
    ]
    if found:
        return found
    for sequence in body.get("sequences", []) or []:
        if isinstance(sequence, dict):
            found.extend(
                canvas
                for canvas in sequence.get("canvases", []) or []
                if isinstance(canvas, dict)
            )
    return found


def painting_bodies(canvas: dict[str, Any]) -> list[dict[str, Any]]:
    """List the content resources painted onto a canvas."""
    bodies: list[dict[str, Any]] = []
    for page in canvas.get("items", []) or []:
        if not isinstance(page, dict):
            continue
        for annotation in page.get("items", []) or []:
            if not isinstance(annotation, dict):
                continue
            body = annotation.get("body")
            for item in body if isinstance(body, list) else [body]:
                if isinstance(item, dict):
                    bodies.append(item)
    for image in canvas.get("images", []) or []:
        if isinstance(image, dict) and isinstance(image.get("resource"), dict):
            bodies.append(image["resource"])
    return bodies


def image_services(content: dict[str, Any]) -> list[str]:
    """List image service endpoints attached to a content resource."""
    services = content.get("service", [])
    if isinstance(services, dict):
        services = [services]
    endpoints: list[str] = []
    for service in services or []:
        endpoint = resource_id(service)
        if endpoint:
            endpoints.append(endpoint.rstrip("/"))
    return endpoints
