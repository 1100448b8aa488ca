"""Registry mapping step ids to step implementations."""

from collections.abc import Iterable

from src.core.errors import ConfigurationError
from src.pipeline.base import Step, StepKind
from src.pipeline.steps import (
    EnrichPartOfCollections,
    EnrichRelatedItems,
    EnrichSearchRecord,
    EnrichTopicClassification,
    EnrichTopicThumbnails,
    ExtractCollectionItems,
    ExtractCollectionThumbnail,
    ExtractFolderCollections,
    ExtractImageServices,
    ExtractLabelString,
    ExtractThumbnail,
    ExtractTopics,
)


BUILTIN_STEPS: tuple[type[Step], ...] = (
    ExtractLabelString,
    ExtractThumbnail,
    ExtractTopics,
    ExtractImageServices,
    ExtractCollectionItems,
    ExtractFolderCollections,
    EnrichPartOfCollections,
    EnrichTopicClassification,
    EnrichTopicThumbnails,
    ExtractCollectionThumbnail,
    EnrichRelatedItems,
    EnrichSearchRecord,
)


class StepRegistry:
    """Known extraction and enrichment steps, keyed by id."""

    def __init__(self, steps: Iterable[Step] | None = None) -> None:
        """Initialize the registry.

        Args:
            steps: Step instances to register; defaults to the built-ins.
        """
        self._steps: dict[str, Step] = {}
        for step in steps if steps is not None else (cls() for cls in BUILTIN_STEPS):
            self.register(step)

    def register(self, step: Step) -> None:
        """Register a step, replacing any step with the same id."""
        self._steps[step.id] = step

    def get(self, step_id: str) -> Step | None:
        """Get a step by id."""
        return self._steps.get(step_id)

    @property
    def ids(self) -> list[str]:
        """Get registered step ids in registration order."""
        return list(self._steps)

    def resolve(self, step_ids: Iterable[str]) -> list[Step]:
        """Resolve configured step ids.

        Args:
            step_ids: Ids from the ``run`` list.

        Returns:
            Steps in the given order.

        Raises:
            ConfigurationError: If an id is unknown.
        """
        ids = list(step_ids)
        unknown = [step_id for step_id in ids if step_id not in self._steps]
        if unknown:
            msg = f"Unknown step(s) in run list: {', '.join(unknown)}"
            raise ConfigurationError(
                msg,
                errors=[
                    {"loc": "run", "msg": f"unknown step {step_id}", "type": "value"}
                    for step_id in unknown
                ],
            )
        return [self._steps[step_id] for step_id in ids]

    def by_kind(self, steps: Iterable[Step], kind: StepKind) -> list[Step]:
        """Filter steps to one pipeline, keeping order."""
        return [step for step in steps if step.kind == kind]
