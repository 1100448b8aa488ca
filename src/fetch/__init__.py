"""HTTP fetch layer with retries, failure isolation and a raw request cache."""

from src.fetch.client import HttpFetcher
from src.fetch.config import FetchConfig
from src.fetch.constants import REQUESTS_PARTITION
from src.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchProgressEvent,
    FetchResult,
    RetryPolicy,
)
from src.fetch.request_cache import RequestCache


__all__ = [
    "REQUESTS_PARTITION",
    "FetchConfig",
    "FetchError",
    "FetchErrorClass",
    "FetchProgressEvent",
    "FetchResult",
    "HttpFetcher",
    "RequestCache",
    "RetryPolicy",
]
