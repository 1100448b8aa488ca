"""Base step interface for the extraction and enrichment pipelines."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar

from src.core.hashing import stable_hash
from src.crawler.models import Resource, ResourceSet, ResourceType


if TYPE_CHECKING:
    from src.config.effective import EffectiveConfig


class StepKind(str, Enum):
    """Pipeline a step belongs to."""

    EXTRACTION = "extraction"
    ENRICHMENT = "enrichment"


@dataclass(frozen=True)
class StepContext:
    """Read-only view handed to a step.

    Attributes:
        config: Effective site configuration.
        settings: Step settings with store-level settings layered on top.
        extracted: The resource's own extraction results so far.
        enriched: The resource's own enrichment results so far.
        resources: The whole ResourceSet; only set for enrichment steps.
        resources_digest: Digest of every resource's extraction results.
    """

    config: "EffectiveConfig"
    settings: Mapping[str, Any] = field(default_factory=dict)
    extracted: Mapping[str, Any] = field(default_factory=dict)
    enriched: Mapping[str, Any] = field(default_factory=dict)
    resources: ResourceSet | None = None
    resources_digest: str | None = None

    @classmethod
    def for_resource(
        cls,
        config: "EffectiveConfig",
        step_id: str,
        resource: Resource,
        resources: ResourceSet | None = None,
        resources_digest: str | None = None,
    ) -> "StepContext":
        """Build the context for one step over one resource."""
        return cls(
            config=config,
            settings=MappingProxyType(
                config.step_config(step_id, resource.source.store_id)
            ),
            extracted=MappingProxyType(dict(resource.extracted)),
            enriched=MappingProxyType(dict(resource.enriched)),
            resources=resources,
            resources_digest=resources_digest,
        )

    @property
    def language(self) -> str | None:
        """Preferred metadata language."""
        language = self.settings.get("language", self.config.site.topics.language)
        return str(language) if language else None


class Step(ABC):
    """A named, pure analysis over one resource.

    Subclasses set ``id``, ``name``, ``kind`` and optionally ``types``, and
    implement ``run``. Results must be JSON-compatible since they are cached
    and emitted.
    """

    id: ClassVar[str]
    name: ClassVar[str]
    kind: ClassVar[StepKind]
    types: ClassVar[frozenset[ResourceType]] = frozenset(
        {ResourceType.MANIFEST, ResourceType.COLLECTION}
    )

    def applies_to(self, resource: Resource) -> bool:
        """Check if the step handles this resource's type."""
        return resource.type in self.types

    def input_hash(self, resource: Resource, context: StepContext) -> str:
        """Hash everything the step reads.

        Covers the body, the resource's place in the graph and the step
        settings. Enrichment steps also cover the resource's extraction
        results and a digest of every resource's extraction results.

        Args:
            resource: Resource being processed.
            context: Step context.

        Returns:
            Hex-encoded hash.
        """
        parts: list[Any] = [
            resource.body_hash(),
            resource.children,
            resource.parents,
            dict(context.settings),
        ]
        if self.kind == StepKind.ENRICHMENT:
            parts.append(dict(context.extracted))
            parts.append(dict(context.enriched))
            parts.append(context.resources_digest)
        return stable_hash(*parts)

    @abstractmethod
    def run(self, resource: Resource, context: StepContext) -> Any:
        """Compute the step result.

        Args:
            resource: Resource being processed; must not be mutated.
            context: Read-only context.

        Returns:
            JSON-compatible result.
        """
