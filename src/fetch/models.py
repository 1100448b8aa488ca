"""Result, error and retry models for remote IIIF fetches."""

import random
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.fetch.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    MAX_RETRY_AFTER_SECONDS,
)


class FetchErrorClass(str, Enum):
    """Why a remote document could not be used.

    The value ends up as ``error_class`` on crawl diagnostics, so it is part
    of the debug API output.
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_JSON = "INVALID_JSON"
    UNKNOWN = "UNKNOWN"

    @property
    def transient(self) -> bool:
        """Check if a later attempt may succeed."""
        return self in _TRANSIENT_CLASSES


_TRANSIENT_CLASSES = frozenset(
    {
        FetchErrorClass.NETWORK_TIMEOUT,
        FetchErrorClass.CONNECTION_ERROR,
        FetchErrorClass.HTTP_5XX,
        FetchErrorClass.RATE_LIMITED,
    }
)


class FetchError(BaseModel):
    """Classified failure of one fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass
    message: Annotated[str, Field(min_length=1)]
    status_code: int | None = None
    retry_after: int | None = Field(
        default=None, description="Seconds requested by a Retry-After header"
    )

    @classmethod
    def for_status(
        cls, status_code: int, retry_after: int | None = None
    ) -> "FetchError | None":
        """Classify an HTTP status.

        A 404 is an ordinary ``HTTP_4XX``: the crawler drops that branch and
        never retries it.

        Args:
            status_code: Response status.
            retry_after: Parsed Retry-After header, kept for 429 and 5xx.

        Returns:
            None for 2xx, otherwise the classified error.
        """
        if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
            return None
        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return cls(
                error_class=FetchErrorClass.RATE_LIMITED,
                message="Rate limited (429 Too Many Requests)",
                status_code=status_code,
                retry_after=retry_after,
            )
        if HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
            return cls(
                error_class=FetchErrorClass.HTTP_4XX,
                message=f"HTTP {status_code}",
                status_code=status_code,
            )
        if HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            return cls(
                error_class=FetchErrorClass.HTTP_5XX,
                message=f"HTTP {status_code}",
                status_code=status_code,
                retry_after=retry_after,
            )
        return cls(
            error_class=FetchErrorClass.UNKNOWN,
            message=f"Unexpected HTTP status {status_code}",
            status_code=status_code,
        )


class FetchResult(BaseModel):
    """Outcome of fetching one IIIF JSON document.

    ``data`` holds the decoded body on success. Results served from the
    request cache have ``cache_hit`` set and ``status_code`` 0.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    status_code: int = Field(ge=0, le=599, description="0 when no response")
    final_url: str | None = None
    data: Any = None
    body_size: int = Field(default=0, ge=0)
    cache_hit: bool = False
    error: FetchError | None = None

    @classmethod
    def failure(cls, url: str, error: FetchError) -> "FetchResult":
        """Build a failed result carrying the error's status code."""
        return cls(url=url, status_code=error.status_code or 0, error=error)

    @property
    def is_success(self) -> bool:
        """Check if a usable document was obtained."""
        if self.error is not None:
            return False
        return self.cache_hit or (
            HTTP_STATUS_OK_MIN <= self.status_code < HTTP_STATUS_OK_MAX
        )


class RetryPolicy(BaseModel):
    """Retry behavior for transient fetch failures.

    Backoff grows as ``base_delay_ms * exponential_base ** attempt``, capped
    at ``max_delay_ms``, plus up to ``jitter_factor`` of random extra delay.
    A Retry-After header, when honored, replaces the computed delay.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 500
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 10000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    respect_retry_after: bool = True

    def should_retry(self, error: FetchError, attempt: int) -> bool:
        """Check if another attempt is allowed after ``error``.

        Args:
            error: Error of the attempt that just failed.
            attempt: Zero-based number of that attempt.
        """
        return attempt < self.max_retries and error.error_class.transient

    def get_delay_ms(self, attempt: int) -> int:
        """Compute the jittered backoff before the next attempt.

        Args:
            attempt: Zero-based number of the attempt that failed.

        Returns:
            Delay in milliseconds.
        """
        delay = min(
            self.base_delay_ms * self.exponential_base**attempt, self.max_delay_ms
        )
        return int(delay * (1 + self.jitter_factor * random.random()))  # noqa: S311

    def delay_seconds(self, error: FetchError, attempt: int) -> float:
        """Pick the wait before retrying, honoring Retry-After when allowed."""
        if self.respect_retry_after and error.retry_after is not None:
            return float(min(error.retry_after, MAX_RETRY_AFTER_SECONDS))
        return self.get_delay_ms(attempt) / 1000.0


FetchProgressKind = Literal["queued", "started", "completed", "failed", "cache-hit"]


class FetchProgressEvent(BaseModel):
    """Progress notification emitted by the request cache."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: FetchProgressKind
    url: str
    store_id: str


class ResponseTooLargeError(Exception):
    """Raised while streaming a body that outgrows the size limit."""

    def __init__(self, limit: int, read: int) -> None:
        """Initialize the error.

        Args:
            limit: Configured limit in bytes.
            read: Bytes read when the limit was crossed.
        """
        self.limit = limit
        self.read = read
        super().__init__(f"Response exceeded {limit} bytes (read {read})")
