"""Host-server adapters."""

from src.adapters.runtime import DEFAULT_BASE_PATH, HostRuntime


__all__ = ["DEFAULT_BASE_PATH", "HostRuntime"]
