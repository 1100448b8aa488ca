"""Top-level site configuration schema."""

import re
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.config.constants import (
    SHORTHAND_CONFLICT_ERROR,
    SHORTHAND_OPTIONS_ERROR,
    STORE_TYPE_ALIASES,
    VALID_URL_SCHEMES,
)
from src.config.schemas.stores import ResourceKind, StoreConfig
from src.fetch.models import RetryPolicy


class ServerConfig(BaseModel):
    """Public URL the emitted site is served from."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL scheme and strip trailing slashes."""
        if not v.startswith(VALID_URL_SCHEMES):
            msg = "URL must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")


class TopicRules(BaseModel):
    """Rules for extracting topics from resource metadata.

    Attributes:
        language: Preferred language when reading metadata values.
        topic_types: Topic type id mapped to one or more metadata labels.
        comma_separated: Topic types whose values are split on commas.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    language: str | None = None
    topic_types: dict[str, list[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("topic_types", "topicTypes"),
    )
    comma_separated: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("comma_separated", "commaSeparated"),
    )

    @field_validator("topic_types", mode="before")
    @classmethod
    def normalize_labels(cls, v: Any) -> Any:
        """Allow a single label string in place of a list."""
        if isinstance(v, dict):
            return {
                key: [labels] if isinstance(labels, str) else labels
                for key, labels in v.items()
            }
        return v


class RewriteRule(BaseModel):
    """Regex substitution applied to slugs after assignment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    match: Annotated[str, Field(min_length=1)]
    replace: str
    types: list[ResourceKind] = Field(
        default_factory=lambda: ["Manifest", "Collection"]
    )

    @field_validator("match")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        """Validate that match is a valid regex."""
        try:
            re.compile(v)
        except re.error as e:
            msg = f"Invalid regex pattern: {e}"
            raise ValueError(msg) from e
        return v

    def apply(self, slug: str, resource_type: str) -> str:
        """Rewrite a slug if the rule applies to its type.

        Args:
            slug: Assigned slug.
            resource_type: Manifest or Collection.

        Returns:
            The rewritten slug.
        """
        if resource_type not in self.types:
            return slug
        return re.sub(self.match, self.replace, slug)


class CollectionTemplates(BaseModel):
    """Partial collection bodies merged into generated collections."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    index: dict[str, Any] = Field(default_factory=dict)
    manifests: dict[str, Any] = Field(default_factory=dict)
    collections: dict[str, Any] = Field(default_factory=dict)
    topics: dict[str, dict[str, Any]] = Field(default_factory=dict)


class SearchConfig(BaseModel):
    """Search record emission settings."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    emit_record: bool = Field(
        default=True, validation_alias=AliasChoices("emit_record", "emitRecord")
    )


class NetworkConfig(BaseModel):
    """Remote fetch tuning. Does not affect derived results."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    concurrency: Annotated[int, Field(ge=1, le=64)] = 4
    min_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 0
    timeout_seconds: Annotated[float, Field(ge=1.0, le=300.0)] = 30.0
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        "iiif-headless-site/0.1"
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class ConcurrencyConfig(BaseModel):
    """Worker pool sizes for the pipeline stages."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    extract: Annotated[int, Field(ge=1, le=64)] = 4
    enrich: Annotated[int, Field(ge=1, le=64)] = 4


class WatchConfig(BaseModel):
    """Watch mode settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    debounce_ms: Annotated[int, Field(ge=0, le=60000)] = 300


class SiteConfig(BaseModel):
    """Root configuration for a site build.

    Either explicit ``stores`` or the shorthand ``manifests``/``collections``
    URL lists may be given, never both. ``save`` and ``folder`` only make
    sense alongside a shorthand URL list.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    server: ServerConfig | None = None
    stores: dict[str, StoreConfig] = Field(default_factory=dict)
    manifests: list[str] | None = None
    collections: list[str] | None = None
    save: bool | None = None
    folder: str | None = None
    run: list[str] | None = None
    config: dict[str, dict[str, Any]] = Field(default_factory=dict)
    topics: TopicRules = Field(default_factory=TopicRules)
    rewrites: list[RewriteRule] = Field(default_factory=list)
    collection_templates: CollectionTemplates = Field(
        default_factory=CollectionTemplates
    )
    search: SearchConfig = Field(default_factory=SearchConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)

    @field_validator("stores", mode="before")
    @classmethod
    def normalize_store_types(cls, v: Any) -> Any:
        """Map accepted store type spellings onto their canonical form."""
        if not isinstance(v, dict):
            return v
        normalized: dict[str, Any] = {}
        for store_id, store in v.items():
            if isinstance(store, dict) and isinstance(store.get("type"), str):
                store = {
                    **store,
                    "type": STORE_TYPE_ALIASES.get(store["type"], store["type"]),
                }
            normalized[store_id] = store
        return normalized

    @field_validator("manifests", "collections")
    @classmethod
    def validate_shorthand_urls(cls, v: list[str] | None) -> list[str] | None:
        """Validate shorthand URLs start with http:// or https://."""
        for url in v or []:
            if not url.startswith(VALID_URL_SCHEMES):
                msg = f"URL must start with http:// or https://: {url}"
                raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_shorthand(self) -> "SiteConfig":
        """Reject contradictory shorthand and store combinations."""
        if self.has_shorthand and self.stores:
            raise ValueError(SHORTHAND_CONFLICT_ERROR)
        if (self.save or self.folder) and not self.has_shorthand:
            raise ValueError(SHORTHAND_OPTIONS_ERROR)
        if self.save and not self.folder:
            msg = "The `save` option requires a `folder` to save into"
            raise ValueError(msg)
        return self

    @property
    def has_shorthand(self) -> bool:
        """Check if a shorthand URL list was supplied."""
        return bool(self.manifests) or bool(self.collections)
