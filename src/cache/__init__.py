"""Derived result cache with pluggable backends."""

from src.cache.backends import CacheBackend, FilesystemBackend, MemoryBackend
from src.cache.fingerprint import compute_fingerprint
from src.cache.manager import CacheManager
from src.cache.models import CacheEntry, CacheStats


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "FilesystemBackend",
    "MemoryBackend",
    "compute_fingerprint",
]
