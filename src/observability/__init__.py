"""Structured logging and in-process build metrics."""

from src.observability.logging import (
    bind_build_context,
    clear_build_context,
    configure_logging,
    redact_url_fields,
)
from src.observability.metrics import BuildMetrics


__all__ = [
    "BuildMetrics",
    "bind_build_context",
    "clear_build_context",
    "configure_logging",
    "redact_url_fields",
]
