"""Per-store raw fetch cache.

Responses live at ``<requests_dir>/<store_id>/<sha256(url)>.json``. The
partition is independent of configuration and survives derived-cache
invalidation. Concurrent requests for the same URL share one fetch.
"""

import json
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from pathlib import Path
from typing import Any

import structlog

from src.core.hashing import sha256_hex
from src.fetch.client import HttpFetcher
from src.fetch.models import FetchProgressEvent, FetchProgressKind, FetchResult


logger = structlog.get_logger()

ProgressCallback = Callable[[FetchProgressEvent], None]


class RequestCache:
    """Raw fetch cache for one store.

    Lookups go memo -> disk -> network. Only successful responses are
    persisted; failures are returned to the caller and retried next build.
    """

    def __init__(  # noqa: PLR0913
        self,
        store_id: str,
        requests_dir: Path,
        fetcher: HttpFetcher,
        no_cache: bool = False,
        on_progress: ProgressCallback | None = None,
        semaphore: threading.BoundedSemaphore | None = None,
    ) -> None:
        """Initialize the request cache.

        Args:
            store_id: Store the cached responses belong to.
            requests_dir: Root of the raw-fetch partition.
            fetcher: HTTP fetcher used on a miss.
            no_cache: Skip disk reads; fresh responses are still written.
            on_progress: Receives queued/started/completed/failed/cache-hit events.
            semaphore: Shared concurrency limit; one is created when omitted.
        """
        self._store_id = store_id
        self._dir = requests_dir / store_id
        self._fetcher = fetcher
        self._no_cache = no_cache
        self._on_progress = on_progress
        self._semaphore = semaphore or threading.BoundedSemaphore(
            fetcher.config.concurrency
        )
        self._min_delay_s = fetcher.config.min_delay_ms / 1000.0
        self._memo: dict[str, Any] = {}
        self._in_flight: dict[str, Future[FetchResult]] = {}
        self._lock = threading.Lock()
        self._pacing_lock = threading.Lock()
        self._last_request_at = 0.0
        self._log = logger.bind(component="request_cache", store_id=store_id)

    @property
    def directory(self) -> Path:
        """Get the directory holding this store's entries."""
        return self._dir

    def path_for(self, url: str) -> Path:
        """Get the on-disk location of a URL's cached response."""
        return self._dir / f"{sha256_hex(url)}.json"

    def fetch(self, url: str) -> FetchResult:
        """Fetch a JSON document through the cache.

        Args:
            url: Resource URL.

        Returns:
            FetchResult; ``cache_hit`` is set when no request was made.
        """
        with self._lock:
            if url in self._memo:
                self._emit("cache-hit", url)
                return FetchResult(
                    url=url, status_code=200, data=self._memo[url], cache_hit=True
                )
            pending = self._in_flight.get(url)
            if pending is None:
                pending = Future()
                self._in_flight[url] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result()

        try:
            result = self._load(url)
        except BaseException as e:
            pending.set_exception(e)
            raise
        finally:
            with self._lock:
                self._in_flight.pop(url, None)

        pending.set_result(result)
        return result

    def _load(self, url: str) -> FetchResult:
        cached = None if self._no_cache else self._read(url)
        if cached is not None:
            with self._lock:
                self._memo[url] = cached
            self._emit("cache-hit", url)
            return FetchResult(url=url, status_code=200, data=cached, cache_hit=True)

        self._emit("queued", url)
        with self._semaphore:
            self._pace()
            self._emit("started", url)
            result = self._fetcher.fetch_json(url)

        if not result.is_success:
            self._emit("failed", url)
            return result

        self._write(url, result.data)
        with self._lock:
            self._memo[url] = result.data
        self._emit("completed", url)
        return result

    def _pace(self) -> None:
        if self._min_delay_s <= 0:
            return
        with self._pacing_lock:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self._min_delay_s:
                time.sleep(self._min_delay_s - elapsed)
            self._last_request_at = time.monotonic()

    def _read(self, url: str) -> Any:
        path = self.path_for(url)
        if not path.is_file():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
            if not raw:
                return None
            return json.loads(raw)
        except (OSError, ValueError) as e:
            self._log.warning("request_cache_unreadable", path=str(path), error=str(e))
            return None

    def _write(self, url: str, data: Any) -> None:
        path = self.path_for(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f".{threading.get_ident()}.tmp")
        temp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(path)

    def _emit(self, kind: FetchProgressKind, url: str) -> None:
        if self._on_progress is not None:
            self._on_progress(
                FetchProgressEvent(kind=kind, url=url, store_id=self._store_id)
            )
