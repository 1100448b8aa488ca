"""Built-in pipeline steps."""

from src.pipeline.steps.enrich import (
    EnrichPartOfCollections,
    EnrichRelatedItems,
    EnrichSearchRecord,
    EnrichTopicClassification,
    EnrichTopicThumbnails,
    ExtractCollectionThumbnail,
    topic_id,
    topic_value_slug,
)
from src.pipeline.steps.extract import (
    ExtractCollectionItems,
    ExtractFolderCollections,
    ExtractImageServices,
    ExtractLabelString,
    ExtractThumbnail,
    ExtractTopics,
)


__all__ = [
    "EnrichPartOfCollections",
    "EnrichRelatedItems",
    "EnrichSearchRecord",
    "EnrichTopicClassification",
    "EnrichTopicThumbnails",
    "ExtractCollectionItems",
    "ExtractCollectionThumbnail",
    "ExtractFolderCollections",
    "ExtractImageServices",
    "ExtractLabelString",
    "ExtractThumbnail",
    "ExtractTopics",
    "topic_id",
    "topic_value_slug",
]
