"""Environment settings for the CLI and host runtime."""

from src.settings.app import AppSettings, get_settings


__all__ = ["AppSettings", "get_settings"]
