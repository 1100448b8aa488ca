"""Extraction and enrichment pipelines."""

from src.pipeline.base import Step, StepContext, StepKind
from src.pipeline.registry import BUILTIN_STEPS, StepRegistry
from src.pipeline.runner import (
    ENRICH_PARTITION,
    EXTRACT_PARTITION,
    PipelineRunner,
    PipelineStats,
)


__all__ = [
    "BUILTIN_STEPS",
    "ENRICH_PARTITION",
    "EXTRACT_PARTITION",
    "PipelineRunner",
    "PipelineStats",
    "Step",
    "StepContext",
    "StepKind",
    "StepRegistry",
]
