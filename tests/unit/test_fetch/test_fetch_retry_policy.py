"""Unit tests for retry decisions on IIIF fetches."""

import pytest

from src.fetch.models import FetchError, FetchErrorClass, FetchResult, RetryPolicy


def _error(error_class: FetchErrorClass, status_code: int | None = None) -> FetchError:
    return FetchError(
        error_class=error_class, message="failed", status_code=status_code
    )


class TestRetryPolicyDefaults:
    """Tests for RetryPolicy defaults."""

    def test_default_values(self) -> None:
        """Test the default backoff settings."""
        policy = RetryPolicy()

        assert policy.max_retries == 3
        assert policy.base_delay_ms == 500
        assert policy.max_delay_ms == 10000
        assert policy.respect_retry_after is True

    def test_bounds_enforced(self) -> None:
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=11)


class TestShouldRetry:
    """Tests for retry classification."""

    @pytest.fixture
    def policy(self) -> RetryPolicy:
        """Create a policy allowing two retries."""
        return RetryPolicy(max_retries=2)

    @pytest.mark.parametrize(
        "error_class",
        [
            FetchErrorClass.NETWORK_TIMEOUT,
            FetchErrorClass.CONNECTION_ERROR,
            FetchErrorClass.HTTP_5XX,
            FetchErrorClass.RATE_LIMITED,
        ],
    )
    def test_transient_errors_retried(
        self, policy: RetryPolicy, error_class: FetchErrorClass
    ) -> None:
        """Test that transient failures are retried until the limit."""
        error = _error(error_class)

        assert policy.should_retry(error, attempt=0) is True
        assert policy.should_retry(error, attempt=1) is True
        assert policy.should_retry(error, attempt=2) is False

    @pytest.mark.parametrize(
        "error_class",
        [
            FetchErrorClass.HTTP_4XX,
            FetchErrorClass.INVALID_JSON,
            FetchErrorClass.RESPONSE_SIZE_EXCEEDED,
            FetchErrorClass.UNKNOWN,
        ],
    )
    def test_permanent_errors_not_retried(
        self, policy: RetryPolicy, error_class: FetchErrorClass
    ) -> None:
        """Test that permanent failures, 404 included, are not retried."""
        assert policy.should_retry(_error(error_class, 404), attempt=0) is False

    def test_zero_max_retries(self) -> None:
        """Test that a zero limit disables retries."""
        policy = RetryPolicy(max_retries=0)
        assert policy.should_retry(_error(FetchErrorClass.HTTP_5XX), 0) is False


class TestGetDelayMs:
    """Tests for backoff delay calculation."""

    def test_exponential_backoff_with_cap(self) -> None:
        """Test that delays double and stop at the cap."""
        policy = RetryPolicy(
            base_delay_ms=500,
            max_delay_ms=1500,
            exponential_base=2.0,
            jitter_factor=0.0,
        )

        assert policy.get_delay_ms(0) == 500
        assert policy.get_delay_ms(1) == 1000
        assert policy.get_delay_ms(2) == 1500
        assert policy.get_delay_ms(8) == 1500

    def test_jitter_bounded(self) -> None:
        """Test that jitter never exceeds its factor."""
        policy = RetryPolicy(base_delay_ms=1000, jitter_factor=0.1)

        for _ in range(20):
            assert 1000 <= policy.get_delay_ms(0) <= 1100


class TestFetchResult:
    """Tests for FetchResult.is_success."""

    def test_success_requires_2xx(self) -> None:
        """Test that only 2xx results without errors succeed."""
        url = "https://x.example/m.json"
        assert FetchResult(url=url, status_code=200).is_success
        assert not FetchResult(url=url, status_code=304).is_success

    def test_cache_hit_success(self) -> None:
        """Test that a cache hit without error is a success."""
        result = FetchResult(
            url="https://x.example/m.json", status_code=0, cache_hit=True, data={}
        )
        assert result.is_success

    def test_error_is_failure(self) -> None:
        """Test that an attached error means failure."""
        result = FetchResult(
            url="https://x.example/m.json",
            status_code=200,
            error=_error(FetchErrorClass.INVALID_JSON),
        )
        assert not result.is_success


class TestForStatus:
    """Tests for FetchError.for_status."""

    def test_success_has_no_error(self) -> None:
        """Test that 2xx statuses are not errors."""
        assert FetchError.for_status(200) is None
        assert FetchError.for_status(204) is None

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (404, FetchErrorClass.HTTP_4XX),
            (410, FetchErrorClass.HTTP_4XX),
            (429, FetchErrorClass.RATE_LIMITED),
            (503, FetchErrorClass.HTTP_5XX),
            (304, FetchErrorClass.UNKNOWN),
        ],
    )
    def test_classification(
        self, status_code: int, expected: FetchErrorClass
    ) -> None:
        """Test that statuses map onto error classes."""
        error = FetchError.for_status(status_code)

        assert error is not None
        assert error.error_class == expected
        assert error.status_code == status_code

    def test_retry_after_dropped_for_4xx(self) -> None:
        """Test that Retry-After is only kept where a retry can happen."""
        gone = FetchError.for_status(404, retry_after=5)
        limited = FetchError.for_status(429, retry_after=5)

        assert gone is not None and gone.retry_after is None
        assert limited is not None and limited.retry_after == 5


class TestDelaySeconds:
    """Tests for RetryPolicy.delay_seconds."""

    def test_retry_after_capped(self) -> None:
        """Test that a huge Retry-After is capped at one minute."""
        policy = RetryPolicy()
        error = FetchError(
            error_class=FetchErrorClass.RATE_LIMITED, message="slow", retry_after=600
        )

        assert policy.delay_seconds(error, 0) == 60.0

    def test_retry_after_ignored_when_disabled(self) -> None:
        """Test that backoff is used when Retry-After is not respected."""
        policy = RetryPolicy(respect_retry_after=False, jitter_factor=0.0)
        error = FetchError(
            error_class=FetchErrorClass.RATE_LIMITED, message="slow", retry_after=30
        )

        assert policy.delay_seconds(error, 1) == 1.0

    def test_failure_result_carries_status(self) -> None:
        """Test that FetchResult.failure copies the error status."""
        error = FetchError.for_status(404)
        assert error is not None

        result = FetchResult.failure("https://x.example/m.json", error)

        assert result.status_code == 404
        assert not result.is_success
