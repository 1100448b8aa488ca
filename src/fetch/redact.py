"""Redaction of secrets before URLs and headers reach the logs."""

import re


SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "x-api-key",
        "proxy-authorization",
    }
)

SENSITIVE_QUERY_PARAMS = ("token", "access_token", "api_key", "key")

REDACTED_VALUE = "[REDACTED]"

_CREDENTIALS_PATTERN = re.compile(r"(https?://)([^:/@]+):([^@/]+)@")
_QUERY_PATTERN = re.compile(
    r"([?&](?:" + "|".join(SENSITIVE_QUERY_PARAMS) + r")=)[^&#]*", re.IGNORECASE
)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers dictionary.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def redact_url(url: str) -> str:
    """Redact userinfo credentials and token query parameters from a URL.

    Args:
        url: URL that may contain credentials.

    Returns:
        URL safe to log.
    """
    url = _CREDENTIALS_PATTERN.sub(rf"\1{REDACTED_VALUE}:{REDACTED_VALUE}@", url)
    return _QUERY_PATTERN.sub(rf"\1{REDACTED_VALUE}", url)
