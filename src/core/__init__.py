"""Shared primitives: error hierarchy and canonical hashing."""

from src.core.errors import (
    CacheCorruptionError,
    ConfigurationError,
    FetchFailure,
    HssError,
    StateTransitionError,
    StepExecutionError,
)
from src.core.hashing import canonical_json, sha256_hex, stable_hash


__all__ = [
    "CacheCorruptionError",
    "ConfigurationError",
    "FetchFailure",
    "HssError",
    "StateTransitionError",
    "StepExecutionError",
    "canonical_json",
    "sha256_hex",
    "stable_hash",
]
