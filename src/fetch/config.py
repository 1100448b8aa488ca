"""Settings for the remote fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.fetch.constants import DEFAULT_MAX_RESPONSE_SIZE_BYTES
from src.fetch.models import RetryPolicy


class FetchConfig(BaseModel):
    """How remote IIIF documents are requested.

    Mirrors the site's ``network`` section plus a response size limit, so
    ``FetchConfig.model_validate(network.model_dump())`` converts one into the
    other. None of these values influence derived results.

    Attributes:
        user_agent: User-Agent header sent with every request.
        timeout_seconds: Per-request timeout.
        max_response_size_bytes: Bodies larger than this are rejected.
        concurrency: Requests in flight across all stores.
        min_delay_ms: Minimum spacing between request starts.
        retry_policy: Backoff for transient failures.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        "iiif-headless-site/0.1"
    )
    timeout_seconds: Annotated[float, Field(ge=1.0, le=300.0)] = 30.0
    max_response_size_bytes: Annotated[int, Field(ge=1024)] = (
        DEFAULT_MAX_RESPONSE_SIZE_BYTES
    )
    concurrency: Annotated[int, Field(ge=1, le=64)] = 4
    min_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 0
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
