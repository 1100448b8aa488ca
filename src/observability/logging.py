"""structlog setup shared by the CLI, the debug server and host adapters."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog

from src.fetch.redact import redact_url


# Event keys that may carry a remote URL with credentials in it
URL_KEYS = ("url", "locator", "ref", "current_url")

# Chatty third-party loggers kept at WARNING unless verbose
QUIET_LOGGERS = ("httpx", "httpcore", "watchdog", "uvicorn.access")


def redact_url_fields(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor scrubbing credentials from URL-valued event keys."""
    for key in URL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and "://" in value:
            event_dict[key] = redact_url(value)
    return event_dict


def configure_logging(
    level: int | str = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog for a build process.

    Log lines carry the bound build context (``build_id``, ``dev``) and never
    contain URL credentials. Standard-library loggers used by uvicorn and
    watchdog are routed to the same stream.

    Args:
        level: Level number or name such as ``"DEBUG"``.
        output: Stream to write to.
        json_format: JSON lines when True, console rendering otherwise.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_url_fields,
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(name)s: %(message)s", stream=output, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_build_context(build_id: str, dev: bool = False) -> None:
    """Attach the build id to every log line on this thread.

    Args:
        build_id: Build identifier.
        dev: Whether the build targets the dev directories.
    """
    structlog.contextvars.bind_contextvars(build_id=build_id, dev=dev)


def clear_build_context() -> None:
    """Detach the build context bound by ``bind_build_context``."""
    structlog.contextvars.unbind_contextvars("build_id", "dev")
