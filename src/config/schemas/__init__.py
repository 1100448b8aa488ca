"""Pydantic schemas for site configuration."""

from src.config.schemas.site import (
    CollectionTemplates,
    ConcurrencyConfig,
    NetworkConfig,
    RewriteRule,
    SearchConfig,
    ServerConfig,
    SiteConfig,
    TopicRules,
    WatchConfig,
)
from src.config.schemas.stores import (
    LocalStoreConfig,
    RemoteStoreConfig,
    ResourceKind,
    SlugTemplate,
    StoreConfig,
)


__all__ = [
    "CollectionTemplates",
    "ConcurrencyConfig",
    "LocalStoreConfig",
    "NetworkConfig",
    "RemoteStoreConfig",
    "ResourceKind",
    "RewriteRule",
    "SearchConfig",
    "ServerConfig",
    "SiteConfig",
    "SlugTemplate",
    "StoreConfig",
    "TopicRules",
    "WatchConfig",
]
