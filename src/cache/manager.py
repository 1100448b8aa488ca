"""Cache manager for derived step results."""

import json
import threading
from typing import Any

import structlog
from pydantic import ValidationError

from src.cache.backends import CacheBackend
from src.cache.models import CacheEntry, CacheStats
from src.core.errors import CacheCorruptionError
from src.fetch.constants import REQUESTS_PARTITION


logger = structlog.get_logger()


class CacheManager:
    """Content-addressable store for extraction and enrichment results.

    Entries are keyed by fingerprint within a partition. All partitions except
    the raw-fetch partition are derived from configuration and are dropped
    together whenever the configuration hash changes.
    """

    PROTECTED_PARTITIONS = frozenset({REQUESTS_PARTITION})

    def __init__(self, backend: CacheBackend) -> None:
        """Initialize the cache manager.

        Args:
            backend: Storage backend.
        """
        self._backend = backend
        self._stats = CacheStats()
        self._lock = threading.Lock()
        self._log = logger.bind(component="cache")

    @property
    def backend(self) -> CacheBackend:
        """Get the storage backend."""
        return self._backend

    @property
    def stats(self) -> CacheStats:
        """Get a copy of the hit/miss counters."""
        with self._lock:
            return self._stats.model_copy()

    def get(self, partition: str, fingerprint: str) -> CacheEntry | None:
        """Look up a cached entry.

        Unreadable entries count as misses and are removed so the next
        ``put`` overwrites them cleanly.

        Args:
            partition: Derived partition name.
            fingerprint: Entry fingerprint.

        Returns:
            The entry on a hit, None on a miss.
        """
        raw = self._backend.read(partition, fingerprint)
        if raw is None:
            self._count("misses")
            return None
        try:
            entry = self._decode(fingerprint, raw)
        except CacheCorruptionError as e:
            self._log.warning(
                "cache_entry_corrupt",
                partition=partition,
                fingerprint=fingerprint[:12],
                reason=e.reason,
            )
            self._backend.delete(partition, fingerprint)
            self._count("corrupt")
            self._count("misses")
            return None
        self._count("hits")
        return entry

    def put(self, partition: str, fingerprint: str, value: Any) -> CacheEntry:
        """Persist a step result.

        Args:
            partition: Derived partition name.
            fingerprint: Entry fingerprint.
            value: JSON-compatible value.

        Returns:
            The stored entry.
        """
        if partition in self.PROTECTED_PARTITIONS:
            msg = f"Partition {partition} is reserved for raw fetches"
            raise ValueError(msg)
        entry = CacheEntry(fingerprint=fingerprint, value=value)
        self._backend.write(
            partition,
            fingerprint,
            entry.model_dump_json().encode("utf-8"),
        )
        self._count("writes")
        return entry

    def invalidate(self, partition: str, fingerprint: str) -> None:
        """Remove one entry."""
        self._backend.delete(partition, fingerprint)

    def invalidate_derived(self) -> list[str]:
        """Drop every derived partition, keeping the raw-fetch partition.

        Returns:
            Names of the dropped partitions.
        """
        dropped = [
            partition
            for partition in self._backend.partitions()
            if partition not in self.PROTECTED_PARTITIONS
        ]
        for partition in dropped:
            self._backend.drop_partition(partition)
        self._log.info("cache_invalidated", scope="derived", partitions=dropped)
        return dropped

    def invalidate_all(self) -> list[str]:
        """Drop every partition, including raw fetches.

        Returns:
            Names of the dropped partitions.
        """
        dropped = self._backend.partitions()
        for partition in dropped:
            self._backend.drop_partition(partition)
        self._log.info("cache_invalidated", scope="all", partitions=dropped)
        return dropped

    def ensure_configuration(self, configuration_hash: str) -> bool:
        """Align the cache with the current configuration.

        Compares the stored marker against ``configuration_hash``; on mismatch
        the derived partitions are dropped and the marker rewritten.

        Args:
            configuration_hash: Hash of the resolved configuration.

        Returns:
            True if derived partitions were invalidated.
        """
        stored = self._backend.read_marker()
        if stored == configuration_hash:
            return False
        self._log.info(
            "configuration_changed",
            previous=stored[:12] if stored else None,
            current=configuration_hash[:12],
        )
        self.invalidate_derived()
        self._backend.write_marker(configuration_hash)
        return True

    def _decode(self, fingerprint: str, raw: bytes) -> CacheEntry:
        try:
            entry = CacheEntry.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise CacheCorruptionError(fingerprint, str(e)) from e
        if entry.fingerprint != fingerprint:
            raise CacheCorruptionError(fingerprint, "fingerprint mismatch")
        return entry

    def _count(self, counter: str) -> None:
        with self._lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + 1)
