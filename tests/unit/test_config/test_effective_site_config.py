"""Unit tests for EffectiveConfig resolution and hashing."""

from pathlib import Path

import pytest

from src.config.constants import DEFAULT_RUN, SHORTHAND_STORE_ID
from src.config.effective import EffectiveConfig
from src.config.schemas.site import SiteConfig
from src.config.schemas.stores import LocalStoreConfig, RemoteStoreConfig


def _effective(data: dict[str, object], root: Path | None = None) -> EffectiveConfig:
    return EffectiveConfig.from_site(
        SiteConfig.model_validate(data), root=root or Path("/project")
    )


class TestStoreResolution:
    """Tests for how stores are resolved."""

    @pytest.mark.unit
    def test_default_store_when_nothing_configured(self) -> None:
        """Test that an empty config gets the built-in local store."""
        effective = _effective({})
        assert list(effective.stores) == ["default"]
        store = effective.stores["default"]
        assert isinstance(store, LocalStoreConfig)
        assert store.path == "content"

    @pytest.mark.unit
    def test_shorthand_becomes_content_store(self) -> None:
        """Test that shorthand URL lists fold into one remote store."""
        effective = _effective(
            {
                "collections": ["https://example.org/collection.json"],
                "manifests": ["https://example.org/m1.json"],
                "save": True,
                "folder": "saved",
            }
        )
        store = effective.stores[SHORTHAND_STORE_ID]
        assert isinstance(store, RemoteStoreConfig)
        assert store.locators() == [
            "https://example.org/collection.json",
            "https://example.org/m1.json",
        ]
        assert store.overrides == "saved"
        assert store.save_manifests is True

    @pytest.mark.unit
    def test_explicit_stores_keep_order(self) -> None:
        """Test that declared stores keep declaration order."""
        effective = _effective(
            {
                "stores": {
                    "b": {"type": "iiif-json", "path": "b"},
                    "a": {"type": "iiif-json", "path": "a"},
                }
            }
        )
        assert list(effective.stores) == ["b", "a"]

    @pytest.mark.unit
    def test_server_url_default_and_override(self) -> None:
        """Test server URL resolution order."""
        assert _effective({}).server_url == "http://localhost:7111"
        configured = _effective({"server": {"url": "https://cdn.example.org/"}})
        assert configured.server_url == "https://cdn.example.org"

    @pytest.mark.unit
    def test_resolve_path(self) -> None:
        """Test that relative paths resolve against the root."""
        effective = _effective({}, root=Path("/project"))
        assert effective.resolve_path("content") == Path("/project/content")
        assert effective.resolve_path("/abs/content") == Path("/abs/content")


class TestRunLists:
    """Tests for run lists and step settings."""

    @pytest.mark.unit
    def test_default_run(self) -> None:
        """Test that the default run list applies when none is given."""
        assert _effective({}).run == DEFAULT_RUN

    @pytest.mark.unit
    def test_store_run_and_skip(self) -> None:
        """Test that store run lists replace and skip lists filter."""
        effective = _effective(
            {
                "run": ["extract-label-string", "extract-topics"],
                "stores": {
                    "own": {
                        "type": "iiif-json",
                        "path": "own",
                        "run": ["extract-thumbnail", "extract-topics"],
                        "skip": ["extract-topics"],
                    },
                    "plain": {
                        "type": "iiif-json",
                        "path": "plain",
                        "skip": ["extract-label-string"],
                    },
                },
            }
        )
        assert effective.run_for_store("own") == ("extract-thumbnail",)
        assert effective.run_for_store("plain") == ("extract-topics",)
        assert effective.run_for_store("missing") == effective.run

    @pytest.mark.unit
    def test_step_config_layers_store_settings(self) -> None:
        """Test that store step settings override global ones."""
        effective = _effective(
            {
                "config": {"enrich-related-items": {"limit": 3, "other": True}},
                "stores": {
                    "main": {
                        "type": "iiif-json",
                        "path": "content",
                        "config": {"enrich-related-items": {"limit": 8}},
                    }
                },
            }
        )
        assert effective.step_config("enrich-related-items") == {
            "limit": 3,
            "other": True,
        }
        assert effective.step_config("enrich-related-items", "main") == {
            "limit": 8,
            "other": True,
        }


class TestConfigurationHash:
    """Tests for the configuration hash."""

    @pytest.mark.unit
    def test_hash_is_stable(self) -> None:
        """Test that identical configs hash identically."""
        data = {"stores": {"main": {"type": "iiif-json", "path": "content"}}}
        first = _effective(data).configuration_hash()
        assert first == _effective(data).configuration_hash()
        assert len(first) == 64

    @pytest.mark.unit
    def test_hash_changes_with_derived_settings(self) -> None:
        """Test that settings affecting results change the hash."""
        base = _effective({}).configuration_hash()
        narrowed = _effective({"run": ["extract-label-string"]})
        assert narrowed.configuration_hash() != base
        assert (
            _effective({"topics": {"topic_types": {"subject": "Subject"}}})
            .configuration_hash()
            != base
        )
        assert (
            _effective({"server": {"url": "https://example.org"}}).configuration_hash()
            != base
        )

    @pytest.mark.unit
    def test_hash_ignores_network_and_watch(self) -> None:
        """Test that fetch tuning and watch settings leave the hash alone."""
        base = _effective({}).configuration_hash()
        tuned = _effective(
            {
                "network": {"concurrency": 12, "min_delay_ms": 50},
                "watch": {"debounce_ms": 900},
                "concurrency": {"extract": 2, "enrich": 8},
            }
        )
        assert tuned.configuration_hash() == base

    @pytest.mark.unit
    def test_summary_includes_hash(self) -> None:
        """Test that the summary exposes the hash and shorthand state."""
        effective = _effective({"manifests": ["https://example.org/m.json"]})
        summary = effective.summary()
        assert summary["configuration_hash"] == effective.configuration_hash()
        assert summary["shorthand"] == {
            "enabled": True,
            "urls": ["https://example.org/m.json"],
            "overrides": None,
            "save": False,
        }
