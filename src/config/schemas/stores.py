"""Store configuration schemas.

A store is either a remote IIIF endpoint (one or more root URLs) or a local
folder of IIIF JSON files. The two shapes form a tagged union discriminated
by ``type``.
"""

from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.config.constants import (
    DEFAULT_STORE_PATTERN,
    STORE_TYPE_LOCAL,
    STORE_TYPE_REMOTE,
    VALID_URL_SCHEMES,
)


ResourceKind = Literal["Manifest", "Collection"]


class SlugTemplate(BaseModel):
    """Maps resource URLs on one domain to short slugs.

    A URL matches when its host equals ``domain`` and its path starts with
    ``prefix`` and ends with ``suffix``; the slug is the text in between.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ResourceKind
    domain: Annotated[str, Field(min_length=1)]
    prefix: str = "/"
    suffix: str = ""

    def compile(self, url: str) -> str | None:
        """Extract the slug body for a URL.

        Args:
            url: Resource identifier.

        Returns:
            The slug body, or None when the URL does not match.
        """
        parsed = urlparse(url)
        if parsed.hostname != self.domain:
            return None
        path = parsed.path
        if not path.startswith(self.prefix):
            return None
        if self.suffix and not path.endswith(self.suffix):
            return None
        body = path[len(self.prefix) :]
        if self.suffix:
            body = body[: -len(self.suffix)]
        body = body.strip("/")
        return body or None


class _BaseStoreConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    skip: list[str] = Field(default_factory=list)
    run: list[str] | None = None
    config: dict[str, dict[str, Any]] = Field(default_factory=dict)
    slug_templates: list[SlugTemplate] = Field(
        default_factory=list,
        validation_alias=AliasChoices("slug_templates", "slugTemplates"),
    )


class RemoteStoreConfig(_BaseStoreConfig):
    """A store backed by one or more remote IIIF resources.

    Attributes:
        url: Single root URL.
        urls: Additional root URLs, crawled in order after ``url``.
        overrides: Folder of JSON fragments merged over fetched bodies.
        save_manifests: Queue fetched bodies for saving into ``overrides``.
    """

    type: Literal["iiif-remote"] = STORE_TYPE_REMOTE
    url: str | None = None
    urls: list[str] = Field(default_factory=list)
    overrides: str | None = None
    save_manifests: bool = Field(
        default=False,
        validation_alias=AliasChoices("save_manifests", "saveManifests"),
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate URL starts with http:// or https://."""
        if v is not None and not v.startswith(VALID_URL_SCHEMES):
            msg = "URL must start with http:// or https://"
            raise ValueError(msg)
        return v

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        """Validate every URL starts with http:// or https://."""
        for url in v:
            if not url.startswith(VALID_URL_SCHEMES):
                msg = f"URL must start with http:// or https://: {url}"
                raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_has_locator(self) -> "RemoteStoreConfig":
        """Ensure at least one root URL is configured."""
        if not self.url and not self.urls:
            msg = "Remote store requires `url` or `urls`"
            raise ValueError(msg)
        if self.save_manifests and not self.overrides:
            msg = "`save_manifests` requires an `overrides` folder"
            raise ValueError(msg)
        return self

    def locators(self) -> list[str]:
        """Return root URLs in crawl order without duplicates."""
        ordered = ([self.url] if self.url else []) + list(self.urls)
        return list(dict.fromkeys(ordered))


class LocalStoreConfig(_BaseStoreConfig):
    """A store backed by a folder of IIIF JSON files.

    Attributes:
        path: Folder, relative to the project root.
        pattern: Glob selecting resource files within ``path``.
    """

    type: Literal["iiif-json"] = STORE_TYPE_LOCAL
    path: Annotated[str, Field(min_length=1)]
    pattern: Annotated[str, Field(min_length=1)] = DEFAULT_STORE_PATTERN

    def locators(self) -> list[str]:
        """Return the store root folder."""
        return [self.path]


StoreConfig = Annotated[
    RemoteStoreConfig | LocalStoreConfig,
    Field(discriminator="type"),
]
