"""Store resolution and crawling of IIIF resource graphs."""

from src.crawler.crawler import Crawler, CrawlStats
from src.crawler.models import (
    Diagnostic,
    PendingSave,
    Resource,
    ResourceSet,
    ResourceType,
    SourceDescriptor,
)
from src.crawler.overrides import OverrideFolder, deep_merge
from src.crawler.slugs import SlugAssigner, default_slug, strip_type_prefix
from src.crawler.stores import (
    LocalDiskStore,
    ReadResult,
    RemoteStore,
    StoreResolver,
    WorkItem,
)


__all__ = [
    "CrawlStats",
    "Crawler",
    "Diagnostic",
    "LocalDiskStore",
    "OverrideFolder",
    "PendingSave",
    "ReadResult",
    "RemoteStore",
    "Resource",
    "ResourceSet",
    "ResourceType",
    "SlugAssigner",
    "SourceDescriptor",
    "StoreResolver",
    "WorkItem",
    "deep_merge",
    "default_slug",
    "strip_type_prefix",
]
