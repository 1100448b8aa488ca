"""Configuration loading and validation module."""

from src.config.effective import EffectiveConfig
from src.config.loader import ConfigLoader, find_config_file
from src.config.state_machine import ConfigState


__all__ = [
    "ConfigLoader",
    "ConfigState",
    "EffectiveConfig",
    "find_config_file",
]
