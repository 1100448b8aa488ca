"""HTTP client for IIIF JSON documents with retries and failure isolation."""

import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx
import structlog

from src.fetch.config import FetchConfig
from src.fetch.constants import DEFAULT_CHUNK_SIZE, IIIF_ACCEPT_HEADER
from src.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchResult,
    ResponseTooLargeError,
)
from src.fetch.redact import redact_headers, redact_url


logger = structlog.get_logger()

# Transport failures in match order; TimeoutException must precede its parents
_TRANSPORT_ERRORS: tuple[tuple[type[Exception], FetchErrorClass, str], ...] = (
    (httpx.TimeoutException, FetchErrorClass.NETWORK_TIMEOUT, "Request timed out"),
    (httpx.ConnectError, FetchErrorClass.CONNECTION_ERROR, "Connection failed"),
    (httpx.TransportError, FetchErrorClass.CONNECTION_ERROR, "Transport error"),
)


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given in seconds or as an HTTP date.

    Args:
        value: Raw header value.

    Returns:
        Non-negative seconds, or None when absent or unparseable.
    """
    if not value:
        return None
    if value.strip().isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


class HttpFetcher:
    """Fetches IIIF JSON documents over HTTP.

    Transient failures (timeouts, connection errors, 429 and 5xx) are retried
    according to the configured RetryPolicy. Every other outcome, including
    404, is returned at once. ``fetch_json`` never raises: failures come back
    as a FetchResult carrying a classified FetchError.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Fetch configuration.
            client: Shared httpx client; one is created when omitted.
            sleep: Sleep function used between retries.
        """
        self._config = config or FetchConfig()
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=self._config.timeout_seconds,
            follow_redirects=True,
        )
        self._headers = {
            "User-Agent": self._config.user_agent,
            "Accept": IIIF_ACCEPT_HEADER,
        }
        self._sleep = sleep
        self._log = logger.bind(component="fetch")

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    def close(self) -> None:
        """Close the httpx client if this fetcher created it."""
        if self._owns_client:
            self._client.close()

    def fetch_json(self, url: str) -> FetchResult:
        """Fetch a URL and decode its JSON body.

        Args:
            url: Document URL.

        Returns:
            FetchResult with the decoded body or a classified error.
        """
        log = self._log.bind(url=redact_url(url))
        policy = self._config.retry_policy
        started = time.perf_counter()

        attempt = 0
        result = self._attempt(url, log.bind(attempt=attempt))
        while result.error is not None and policy.should_retry(result.error, attempt):
            delay = policy.delay_seconds(result.error, attempt)
            log.info(
                "fetch_retry_scheduled",
                attempt=attempt + 1,
                max_retries=policy.max_retries,
                error_class=result.error.error_class.value,
                delay_ms=int(delay * 1000),
            )
            self._sleep(delay)
            attempt += 1
            result = self._attempt(url, log.bind(attempt=attempt))

        log.info(
            "fetch_complete",
            status_code=result.status_code,
            bytes=result.body_size,
            attempts=attempt + 1,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error_class=result.error.error_class.value if result.error else None,
        )
        return result

    def _attempt(self, url: str, log: structlog.stdlib.BoundLogger) -> FetchResult:
        log.debug("fetch_attempt", headers=redact_headers(self._headers))
        try:
            with self._client.stream("GET", url, headers=self._headers) as response:
                status_code = response.status_code
                error = FetchError.for_status(
                    status_code, parse_retry_after(response.headers.get("retry-after"))
                )
                if error is not None:
                    return FetchResult.failure(url, error)
                body = self._read_limited(response)
                final_url = str(response.url)
        except ResponseTooLargeError as e:
            return FetchResult.failure(
                url,
                FetchError(
                    error_class=FetchErrorClass.RESPONSE_SIZE_EXCEEDED, message=str(e)
                ),
            )
        except Exception as e:  # noqa: BLE001
            return FetchResult.failure(url, self._classify_exception(e))

        try:
            data = json.loads(body) if body.strip() else {}
        except ValueError as e:
            return FetchResult.failure(
                url,
                FetchError(
                    error_class=FetchErrorClass.INVALID_JSON,
                    message=f"Response is not JSON: {e}",
                    status_code=status_code,
                ),
            )
        return FetchResult(
            url=url,
            status_code=status_code,
            final_url=final_url,
            data=data,
            body_size=len(body),
        )

    def _read_limited(self, response: httpx.Response) -> bytes:
        limit = self._config.max_response_size_bytes
        body = bytearray()
        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > limit:
                raise ResponseTooLargeError(limit, len(body))
        return bytes(body)

    @staticmethod
    def _classify_exception(error: Exception) -> FetchError:
        for exc_type, error_class, label in _TRANSPORT_ERRORS:
            if isinstance(error, exc_type):
                return FetchError(error_class=error_class, message=f"{label}: {error}")
        return FetchError(
            error_class=FetchErrorClass.UNKNOWN,
            message=f"{type(error).__name__}: {error}",
        )
