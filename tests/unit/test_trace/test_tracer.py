"""Unit tests for the build trace."""

from itertools import count

import pytest

from src.trace.tracer import TraceClosedError, Tracer


def _tracer() -> Tracer:
    ticks = count(start=100, step=10)
    return Tracer("build-1", clock=lambda: float(next(ticks)))


class TestTracer:
    """Tests for Tracer."""

    def test_empty_shape(self) -> None:
        """Test the top-level keys of a fresh trace."""
        snapshot = Tracer("build-1").snapshot()
        assert snapshot == {
            "buildId": "build-1",
            "extractions": {},
            "enrichments": {},
            "resources": {},
            "topics": {},
        }

    def test_phase_markers(self) -> None:
        """Test start and end stamps per resource."""
        tracer = _tracer()
        tracer.phase_started("extraction", "manifests/a")
        tracer.phase_finished("extraction", "manifests/a")

        entry = tracer.snapshot()["resources"]["manifests/a"]
        assert entry["extractionStart"] == 100.0
        assert entry["extractionEnd"] == 110.0
        assert entry["enrichmentStart"] is None

    def test_step_aggregates(self) -> None:
        """Test that step timings aggregate across resources."""
        tracer = _tracer()
        tracer.step_completed("extraction", "manifests/a", "s", 0.0, 5.0, {"x": 1})
        tracer.step_completed("extraction", "manifests/b", "s", 2.0, 10.0, None)

        aggregate = tracer.snapshot()["extractions"]["s"]
        assert aggregate == {
            "startTime": 0.0,
            "endTime": 10.0,
            "totalTime": 13.0,
            "count": 2,
        }

    def test_cache_hit_not_aggregated(self) -> None:
        """Test that cache hits are recorded per resource only."""
        tracer = _tracer()
        tracer.step_cache_hit("enrichment", "manifests/a", "s")

        snapshot = tracer.snapshot()
        assert snapshot["resources"]["manifests/a"]["enrichments"]["s"] == {
            "cacheHit": True
        }
        assert snapshot["enrichments"] == {}

    def test_failure_recorded(self) -> None:
        """Test that failed steps keep their error."""
        tracer = _tracer()
        tracer.step_failed("extraction", "manifests/a", "s", 1.0, 2.0, "boom")

        entry = tracer.snapshot()["resources"]["manifests/a"]["extractions"]["s"]
        assert entry["error"] == "boom"
        assert entry["cacheHit"] is False

    def test_meta_files_and_topics(self) -> None:
        """Test display metadata, files and topics."""
        tracer = _tracer()
        tracer.set_resource_meta(
            "manifests/a", label="A", within_collections=["collections/all"]
        )
        tracer.add_files("manifests/a", ["manifests/a/manifest.json"])
        tracer.add_topic("topics/subject/art", {"label": "Art", "count": 1})

        snapshot = tracer.snapshot()
        entry = snapshot["resources"]["manifests/a"]
        assert entry["label"] == "A"
        assert entry["withinCollections"] == ["collections/all"]
        assert entry["files"] == ["manifests/a/manifest.json"]
        assert snapshot["topics"]["topics/subject/art"] == {
            "meta": {"label": "Art", "count": 1}
        }

    def test_snapshot_is_a_copy(self) -> None:
        """Test that callers cannot mutate the trace through a snapshot."""
        tracer = _tracer()
        tracer.step_completed("extraction", "manifests/a", "s", 0.0, 1.0, {"x": 1})
        snapshot = tracer.snapshot()
        snapshot["resources"]["manifests/a"]["extractions"]["s"]["result"]["x"] = 2

        fresh = tracer.snapshot()["resources"]["manifests/a"]["extractions"]["s"]
        assert fresh["result"] == {"x": 1}

    def test_closed_trace_read_only(self) -> None:
        """Test that writes after close fail and reads still work."""
        tracer = _tracer()
        tracer.close()

        assert tracer.closed is True
        with pytest.raises(TraceClosedError):
            tracer.phase_started("extraction", "manifests/a")
        assert tracer.snapshot()["buildId"] == "build-1"
