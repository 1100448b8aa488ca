"""Integration tests for the host-server adapter runtime."""

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.runtime import HostRuntime
from src.observability.metrics import BuildMetrics
from src.settings.app import AppSettings


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Reset the metrics singleton around each test."""
    BuildMetrics.reset()
    yield
    BuildMetrics.reset()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a project with a config file and one local manifest."""
    (tmp_path / ".iiifrc.yml").write_text(
        "server:\n  url: https://site.example\n"
        "stores:\n  books:\n    type: local\n    path: books\n",
        encoding="utf-8",
    )
    books = tmp_path / "books"
    books.mkdir()
    (books / "atlas.json").write_text(
        json.dumps(
            {
                "id": "https://example.org/atlas",
                "type": "Manifest",
                "label": {"en": ["Atlas"]},
            }
        ),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def runtime(project: Path) -> Iterator[HostRuntime]:
    """Create a runtime over the project."""
    host = HostRuntime(project, settings=AppSettings())
    yield host
    host.close()


class TestHostRuntime:
    """Tests for HostRuntime."""

    @pytest.mark.integration
    def test_config_loaded_from_project(self, runtime: HostRuntime) -> None:
        """Test that the config file is found under the root."""
        assert list(runtime.config.stores) == ["books"]
        assert runtime.config.server_url == "https://site.example"
        assert runtime.has_buildable_stores()

    @pytest.mark.integration
    def test_run_build_and_copy(self, runtime: HostRuntime, tmp_path: Path) -> None:
        """Test that production output is copied under the base path."""
        result = runtime.run_build()
        out_dir = tmp_path / "dist"

        destination = runtime.copy_build_artifacts(out_dir)

        assert result.build_config["cache"] is False
        assert destination == out_dir / "iiif"
        assert (destination / "atlas" / "manifest.json").is_file()
        assert (destination / "collection.json").is_file()

    @pytest.mark.integration
    def test_copy_without_build(self, runtime: HostRuntime, tmp_path: Path) -> None:
        """Test that copying before any build is a no-op."""
        destination = runtime.copy_build_artifacts(tmp_path / "dist", dev=True)
        assert not destination.exists()

    @pytest.mark.integration
    def test_start_dev_without_watch(self, runtime: HostRuntime, project: Path) -> None:
        """Test that the startup build writes the dev build directory."""
        result = runtime.start_dev(watch=False)

        assert result.build_config["dev"] is True
        assert (project / ".iiif" / "dev" / "build" / "atlas" / "meta.json").is_file()
        assert runtime.watch.is_watching is False

    @pytest.mark.integration
    def test_on_reload_receives_path(self, runtime: HostRuntime) -> None:
        """Test that reload callbacks get the refreshed path."""
        paths: list[str] = []
        subscription = runtime.on_reload(paths.append)

        runtime.orchestrator.events.emit("file-refresh", path="/p/books/atlas.json")
        subscription.unsubscribe()
        runtime.orchestrator.events.emit("file-refresh", path="/p/other.json")

        assert paths == ["/p/books/atlas.json"]

    @pytest.mark.integration
    def test_mount_under_base_path(self, runtime: HostRuntime) -> None:
        """Test that the debug API is reachable below the base path."""
        host_app = FastAPI()
        runtime.mount(host_app)

        response = TestClient(host_app).get("/iiif/config")

        assert response.status_code == 200
        assert response.json()["stores"] == ["books"]

    @pytest.mark.integration
    def test_missing_store_folder(self, tmp_path: Path) -> None:
        """Test that a project without content has nothing to build."""
        host = HostRuntime(tmp_path, settings=AppSettings())
        assert host.has_buildable_stores() is False
