"""Tests for the build status tracker."""

import pytest

from src.build.status import BuildStatusTracker
from src.core.errors import StateTransitionError
from src.fetch.models import FetchProgressEvent, FetchProgressKind


def _event(kind: FetchProgressKind, url: str = "https://x/a") -> FetchProgressEvent:
    return FetchProgressEvent(kind=kind, url=url, store_id="main")


class TestBuildStatusTracker:
    """Tests for BuildStatusTracker."""

    def test_initial_snapshot(self) -> None:
        """Test the idle status shape."""
        status = BuildStatusTracker().snapshot()

        assert status["status"] == "idle"
        assert status["buildCount"] == 0
        assert status["lastError"] is None
        assert status["progress"]["resources"] == {
            "total": 0,
            "processed": 0,
            "currentSlug": None,
        }

    def test_successful_build(self) -> None:
        """Test that finishing increments the build count."""
        tracker = BuildStatusTracker()
        tracker.start()
        assert tracker.snapshot()["status"] == "building"

        tracker.finish()

        status = tracker.snapshot()
        assert status["status"] == "ready"
        assert status["buildCount"] == 1
        assert status["completedAt"] is not None
        assert status["progress"]["phase"] == "done"

    def test_failed_build(self) -> None:
        """Test that an error is recorded and counted."""
        tracker = BuildStatusTracker()
        tracker.start()
        tracker.finish(error="ConfigurationError: bad")

        status = tracker.snapshot()
        assert status["status"] == "error"
        assert status["lastError"] == "ConfigurationError: bad"
        assert status["buildCount"] == 1

    def test_warning_kept_on_success(self) -> None:
        """Test that an isolated error is reported on a ready build."""
        tracker = BuildStatusTracker()
        tracker.start()
        tracker.finish(warning="HTTP 404")

        status = tracker.snapshot()
        assert status["status"] == "ready"
        assert status["lastError"] == "HTTP 404"

    def test_start_resets_progress(self) -> None:
        """Test that a new build clears progress and errors."""
        tracker = BuildStatusTracker()
        tracker.start()
        tracker.set_resources(3, 5, "a")
        tracker.finish(error="boom")

        tracker.start()

        status = tracker.snapshot()
        assert status["lastError"] is None
        assert status["progress"]["resources"]["total"] == 0

    def test_finish_without_start(self) -> None:
        """Test that finishing an idle tracker is rejected."""
        with pytest.raises(StateTransitionError):
            BuildStatusTracker().finish()

    def test_fetch_counters(self) -> None:
        """Test folding of request-cache progress events."""
        tracker = BuildStatusTracker()
        tracker.start()
        kinds: tuple[FetchProgressKind, ...] = (
            "queued",
            "started",
            "queued",
            "started",
            "completed",
        )
        for kind in kinds:
            tracker.on_fetch(_event(kind))
        tracker.on_fetch(_event("cache-hit"))

        fetch = tracker.snapshot()["progress"]["fetch"]
        assert fetch["queued"] == 2
        assert fetch["started"] == 2
        assert fetch["completed"] == 1
        assert fetch["inFlight"] == 1
        assert fetch["cacheHits"] == 1
        assert fetch["currentUrl"] == "https://x/a"

    def test_snapshot_is_copy(self) -> None:
        """Test that snapshots cannot mutate tracker state."""
        tracker = BuildStatusTracker()
        snapshot = tracker.snapshot()
        snapshot["progress"]["phase"] = "hacked"

        assert tracker.snapshot()["progress"]["phase"] is None
