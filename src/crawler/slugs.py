"""Slug assignment for crawled resources."""

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from src.config.schemas.site import RewriteRule
from src.config.schemas.stores import SlugTemplate
from src.crawler.models import ResourceType


TYPE_PREFIXES = {
    ResourceType.MANIFEST: "manifests/",
    ResourceType.COLLECTION: "collections/",
}

_SUFFIX_PATTERNS = (
    re.compile(r"/manifest\.json$", re.IGNORECASE),
    re.compile(r"/collection\.json$", re.IGNORECASE),
    re.compile(r"\.json$", re.IGNORECASE),
)

# Top-level index locations that no resource may claim
RESERVED_SLUGS = frozenset(
    {"manifests", "collections", "topics", "meta", "folders"}
)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._~/-]+")


def _strip_json_suffix(path: str) -> str:
    path = path.rstrip("/")
    for pattern in _SUFFIX_PATTERNS:
        if pattern.search(path):
            return pattern.sub("", path)
    return path


def _clean(slug: str) -> str:
    slug = _UNSAFE_CHARS.sub("-", slug)
    slug = re.sub(r"/{2,}", "/", slug)
    return slug.strip("/")


def default_slug(url: str) -> str:
    """Derive a slug from a resource URL.

    Examples:
        >>> default_slug("https://example.org/iiif/book-1/manifest.json")
        'iiif/book-1'
        >>> default_slug("https://example.org/manifest.json")
        'example.org'

    Args:
        url: Resource identifier.

    Returns:
        URL path without a trailing ``manifest.json``, ``collection.json``
        or ``.json``, falling back to the host name.
    """
    parsed = urlparse(url)
    path = _clean(_strip_json_suffix(parsed.path))
    return path or (parsed.hostname or "resource")


def file_slug(relative_path: str) -> str:
    """Derive a slug from a file path relative to its store root."""
    path = PurePosixPath(relative_path).as_posix()
    stripped = _strip_json_suffix("/" + path)
    return _clean(stripped) or "index"


def strip_type_prefix(slug: str) -> str:
    """Remove a leading ``manifests/`` or ``collections/`` segment."""
    for prefix in TYPE_PREFIXES.values():
        if slug.startswith(prefix):
            return slug[len(prefix) :]
    return slug


class SlugAssigner:
    """Assigns unique slugs in crawl order.

    A candidate slug comes from the first matching slug template (prefixed
    with ``manifests/`` or ``collections/``), otherwise from the URL or file
    path. Rewrite rules run next. If another resource already holds the slug,
    ``-2``, ``-3``, ... is appended, so identical crawls yield identical slugs.
    """

    def __init__(self, rewrites: list[RewriteRule] | None = None) -> None:
        """Initialize the assigner.

        Args:
            rewrites: Rewrite rules applied after template or default slugs.
        """
        self._rewrites = rewrites or []
        self._owners: dict[str, str] = {slug: "" for slug in RESERVED_SLUGS}

    def candidate(
        self,
        resource_id: str,
        resource_type: ResourceType,
        templates: list[SlugTemplate] | None = None,
        relative_path: str | None = None,
    ) -> str:
        """Compute the slug a resource would get before collision handling.

        Args:
            resource_id: IIIF identity.
            resource_type: Manifest or Collection.
            templates: Store slug templates.
            relative_path: Path within a local store, if disk-backed.

        Returns:
            Candidate slug.
        """
        slug: str | None = None
        for template in templates or []:
            if template.type != resource_type.value:
                continue
            body = template.compile(resource_id)
            if body:
                prefix = TYPE_PREFIXES[resource_type]
                slug = _clean(body if body.startswith(prefix) else prefix + body)
                break

        if slug is None:
            if relative_path is not None:
                slug = file_slug(relative_path)
            else:
                slug = default_slug(resource_id)

        for rule in self._rewrites:
            slug = _clean(rule.apply(slug, resource_type.value)) or slug
        return slug

    def assign(
        self,
        resource_id: str,
        resource_type: ResourceType,
        templates: list[SlugTemplate] | None = None,
        relative_path: str | None = None,
    ) -> str:
        """Reserve a unique slug for a resource.

        Calling again with the same identity returns the same slug.

        Args:
            resource_id: IIIF identity.
            resource_type: Manifest or Collection.
            templates: Store slug templates.
            relative_path: Path within a local store, if disk-backed.

        Returns:
            The reserved slug.
        """
        base = self.candidate(resource_id, resource_type, templates, relative_path)
        slug = base
        counter = 2
        while slug in self._owners and self._owners[slug] != resource_id:
            slug = f"{base}-{counter}"
            counter += 1
        self._owners[slug] = resource_id
        return slug
