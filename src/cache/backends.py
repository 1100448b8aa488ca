"""Pluggable key-value backends for the cache manager.

Keys are grouped into partitions. A partition maps to a directory on disk
and can be dropped as a unit.
"""

import shutil
import threading
from pathlib import Path
from typing import Protocol


class CacheBackend(Protocol):
    """Storage interface used by CacheManager."""

    def read(self, partition: str, key: str) -> bytes | None:
        """Read a value, or None if absent."""
        ...

    def write(self, partition: str, key: str, data: bytes) -> None:
        """Write a value, replacing any previous one."""
        ...

    def delete(self, partition: str, key: str) -> None:
        """Delete a value if present."""
        ...

    def partitions(self) -> list[str]:
        """List existing partitions."""
        ...

    def drop_partition(self, partition: str) -> None:
        """Delete a partition and everything in it."""
        ...

    def read_marker(self) -> str | None:
        """Read the configuration-hash marker."""
        ...

    def write_marker(self, value: str) -> None:
        """Write the configuration-hash marker."""
        ...


class FilesystemBackend:
    """Stores entries as files under a cache root.

    Layout: ``<root>/<partition>/<key[:2]>/<key>.json`` with the marker at
    ``<root>/.config-hash``.
    """

    MARKER_NAME = ".config-hash"

    def __init__(self, root: Path) -> None:
        """Initialize the backend.

        Args:
            root: Cache root directory; created on first write.
        """
        self._root = root

    @property
    def root(self) -> Path:
        """Get the cache root directory."""
        return self._root

    def path_for(self, partition: str, key: str) -> Path:
        """Get the file holding a key."""
        return self._root / partition / key[:2] / f"{key}.json"

    def read(self, partition: str, key: str) -> bytes | None:
        """Read a value, or None if absent."""
        path = self.path_for(partition, key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def write(self, partition: str, key: str, data: bytes) -> None:
        """Write a value atomically."""
        path = self.path_for(partition, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f".{threading.get_ident()}.tmp")
        temp_path.write_bytes(data)
        temp_path.replace(path)

    def delete(self, partition: str, key: str) -> None:
        """Delete a value if present."""
        self.path_for(partition, key).unlink(missing_ok=True)

    def partitions(self) -> list[str]:
        """List partition directories under the root."""
        if not self._root.is_dir():
            return []
        return sorted(entry.name for entry in self._root.iterdir() if entry.is_dir())

    def drop_partition(self, partition: str) -> None:
        """Delete a partition directory."""
        shutil.rmtree(self._root / partition, ignore_errors=True)

    def read_marker(self) -> str | None:
        """Read the configuration-hash marker file."""
        try:
            return (self._root / self.MARKER_NAME).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

    def write_marker(self, value: str) -> None:
        """Write the configuration-hash marker file."""
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / self.MARKER_NAME).write_text(value, encoding="utf-8")


class MemoryBackend:
    """In-memory backend for tests and throwaway builds."""

    def __init__(self) -> None:
        """Initialize an empty backend."""
        self._data: dict[str, dict[str, bytes]] = {}
        self._marker: str | None = None
        self._lock = threading.Lock()

    def read(self, partition: str, key: str) -> bytes | None:
        """Read a value, or None if absent."""
        with self._lock:
            return self._data.get(partition, {}).get(key)

    def write(self, partition: str, key: str, data: bytes) -> None:
        """Write a value."""
        with self._lock:
            self._data.setdefault(partition, {})[key] = data

    def delete(self, partition: str, key: str) -> None:
        """Delete a value if present."""
        with self._lock:
            self._data.get(partition, {}).pop(key, None)

    def partitions(self) -> list[str]:
        """List partitions holding at least one key."""
        with self._lock:
            return sorted(name for name, keys in self._data.items() if keys)

    def drop_partition(self, partition: str) -> None:
        """Delete a partition."""
        with self._lock:
            self._data.pop(partition, None)

    def read_marker(self) -> str | None:
        """Read the configuration-hash marker."""
        return self._marker

    def write_marker(self, value: str) -> None:
        """Write the configuration-hash marker."""
        self._marker = value
