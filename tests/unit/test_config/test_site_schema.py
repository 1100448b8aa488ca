"""Unit tests for site and store configuration schemas."""

import pytest
from pydantic import TypeAdapter, ValidationError

from src.config.constants import SHORTHAND_CONFLICT_ERROR, SHORTHAND_OPTIONS_ERROR
from src.config.schemas.site import (
    NetworkConfig,
    RewriteRule,
    ServerConfig,
    SiteConfig,
    TopicRules,
)
from src.config.schemas.stores import (
    LocalStoreConfig,
    RemoteStoreConfig,
    SlugTemplate,
    StoreConfig,
)


class TestServerConfig:
    """Tests for ServerConfig."""

    @pytest.mark.unit
    def test_strips_trailing_slash(self) -> None:
        """Test that trailing slashes are removed from the server URL."""
        server = ServerConfig(url="https://example.org/site/")
        assert server.url == "https://example.org/site"

    @pytest.mark.unit
    def test_rejects_non_http_url(self) -> None:
        """Test that non-HTTP URLs are rejected."""
        with pytest.raises(ValidationError, match="http"):
            ServerConfig(url="ftp://example.org")


class TestStoreConfig:
    """Tests for the store tagged union."""

    @pytest.mark.unit
    def test_remote_store_from_type(self) -> None:
        """Test that type iiif-remote yields a RemoteStoreConfig."""
        store = TypeAdapter(StoreConfig).validate_python(
            {"type": "iiif-remote", "url": "https://example.org/collection.json"}
        )
        assert isinstance(store, RemoteStoreConfig)
        assert store.locators() == ["https://example.org/collection.json"]

    @pytest.mark.unit
    def test_local_store_defaults_pattern(self) -> None:
        """Test that local stores default to all JSON files."""
        store = TypeAdapter(StoreConfig).validate_python(
            {"type": "iiif-json", "path": "content"}
        )
        assert isinstance(store, LocalStoreConfig)
        assert store.pattern == "**/*.json"

    @pytest.mark.unit
    def test_remote_store_requires_locator(self) -> None:
        """Test that a remote store without url or urls is rejected."""
        with pytest.raises(ValidationError, match="url"):
            RemoteStoreConfig()

    @pytest.mark.unit
    def test_remote_locators_keep_order_without_duplicates(self) -> None:
        """Test that url comes first and duplicates are dropped."""
        store = RemoteStoreConfig(
            url="https://a.example/c.json",
            urls=["https://b.example/c.json", "https://a.example/c.json"],
        )
        assert store.locators() == [
            "https://a.example/c.json",
            "https://b.example/c.json",
        ]

    @pytest.mark.unit
    def test_save_manifests_requires_overrides(self) -> None:
        """Test that saving manifests needs a folder to save into."""
        with pytest.raises(ValidationError, match="overrides"):
            RemoteStoreConfig(url="https://example.org/c.json", save_manifests=True)

    @pytest.mark.unit
    def test_camel_case_aliases(self) -> None:
        """Test that camelCase option names are accepted."""
        store = RemoteStoreConfig.model_validate(
            {
                "url": "https://example.org/c.json",
                "overrides": "overrides",
                "saveManifests": True,
                "slugTemplates": [{"type": "Manifest", "domain": "example.org"}],
            }
        )
        assert store.save_manifests is True
        assert len(store.slug_templates) == 1

    @pytest.mark.unit
    def test_unknown_store_option_rejected(self) -> None:
        """Test that unknown options on a store fail validation."""
        with pytest.raises(ValidationError):
            LocalStoreConfig.model_validate({"path": "content", "colour": "red"})


class TestSlugTemplate:
    """Tests for SlugTemplate.compile."""

    @pytest.mark.unit
    def test_compiles_matching_url(self) -> None:
        """Test extracting the slug body between prefix and suffix."""
        template = SlugTemplate(
            type="Manifest",
            domain="iiif.example.org",
            prefix="/presentation/",
            suffix="/manifest.json",
        )
        body = template.compile(
            "https://iiif.example.org/presentation/book-1/manifest.json"
        )
        assert body == "book-1"

    @pytest.mark.unit
    def test_other_domain_does_not_match(self) -> None:
        """Test that URLs on a different host are ignored."""
        template = SlugTemplate(type="Manifest", domain="iiif.example.org")
        assert template.compile("https://other.example.org/book/manifest.json") is None

    @pytest.mark.unit
    def test_missing_suffix_does_not_match(self) -> None:
        """Test that URLs without the suffix are ignored."""
        template = SlugTemplate(
            type="Manifest", domain="iiif.example.org", suffix="/manifest.json"
        )
        assert template.compile("https://iiif.example.org/book.json") is None


class TestRewriteRule:
    """Tests for RewriteRule."""

    @pytest.mark.unit
    def test_invalid_regex_rejected(self) -> None:
        """Test that an invalid regex fails validation."""
        with pytest.raises(ValidationError, match="Invalid regex"):
            RewriteRule(match="(unclosed", replace="")

    @pytest.mark.unit
    def test_apply_respects_types(self) -> None:
        """Test that rules only rewrite slugs of the listed types."""
        rule = RewriteRule(match="^manifests/", replace="m/", types=["Manifest"])
        assert rule.apply("manifests/book", "Manifest") == "m/book"
        assert rule.apply("manifests/book", "Collection") == "manifests/book"


class TestTopicRules:
    """Tests for TopicRules."""

    @pytest.mark.unit
    def test_single_label_becomes_list(self) -> None:
        """Test that a single metadata label is wrapped in a list."""
        rules = TopicRules.model_validate({"topicTypes": {"subject": "Subject"}})
        assert rules.topic_types == {"subject": ["Subject"]}


class TestNetworkConfig:
    """Tests for NetworkConfig."""

    @pytest.mark.unit
    def test_defaults(self) -> None:
        """Test network defaults."""
        network = NetworkConfig()
        assert network.concurrency == 4
        assert network.min_delay_ms == 0

    @pytest.mark.unit
    def test_concurrency_bounds(self) -> None:
        """Test that concurrency must be at least one."""
        with pytest.raises(ValidationError):
            NetworkConfig(concurrency=0)


class TestSiteConfigShorthand:
    """Tests for shorthand manifests/collections handling."""

    @pytest.mark.unit
    def test_shorthand_accepted(self) -> None:
        """Test that a plain URL list validates."""
        site = SiteConfig.model_validate(
            {"collections": ["https://example.org/collection.json"]}
        )
        assert site.has_shorthand is True

    @pytest.mark.unit
    def test_save_without_shorthand_rejected(self) -> None:
        """Test that save/folder are rejected without a URL list."""
        with pytest.raises(ValidationError, match="can only be used"):
            SiteConfig.model_validate({"save": True, "folder": "saved"})
        assert "can only be used" in SHORTHAND_OPTIONS_ERROR

    @pytest.mark.unit
    def test_folder_without_shorthand_rejected(self) -> None:
        """Test that folder alone is rejected."""
        with pytest.raises(ValidationError, match="can only be used"):
            SiteConfig.model_validate({"folder": "saved"})

    @pytest.mark.unit
    def test_shorthand_with_stores_rejected(self) -> None:
        """Test that shorthand and explicit stores cannot be mixed."""
        with pytest.raises(ValidationError, match="cannot be combined"):
            SiteConfig.model_validate(
                {
                    "manifests": ["https://example.org/m.json"],
                    "stores": {"local": {"type": "iiif-json", "path": "content"}},
                }
            )
        assert "cannot be combined" in SHORTHAND_CONFLICT_ERROR

    @pytest.mark.unit
    def test_save_requires_folder(self) -> None:
        """Test that save without a folder is rejected."""
        with pytest.raises(ValidationError, match="folder"):
            SiteConfig.model_validate(
                {"manifests": ["https://example.org/m.json"], "save": True}
            )

    @pytest.mark.unit
    def test_shorthand_urls_must_be_http(self) -> None:
        """Test that shorthand URLs are validated."""
        with pytest.raises(ValidationError, match="http"):
            SiteConfig.model_validate({"manifests": ["file:///tmp/m.json"]})


class TestSiteConfigStores:
    """Tests for store declarations in SiteConfig."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("type_name", "expected"),
        [
            ("remote", RemoteStoreConfig),
            ("iiif-remote", RemoteStoreConfig),
            ("local", LocalStoreConfig),
            ("local-disk", LocalStoreConfig),
            ("iiif-json", LocalStoreConfig),
        ],
    )
    def test_store_type_aliases(self, type_name: str, expected: type) -> None:
        """Test that every accepted type spelling resolves."""
        store = (
            {"type": type_name, "url": "https://example.org/c.json"}
            if expected is RemoteStoreConfig
            else {"type": type_name, "path": "content"}
        )
        site = SiteConfig.model_validate({"stores": {"main": store}})
        assert isinstance(site.stores["main"], expected)

    @pytest.mark.unit
    def test_unknown_store_type_rejected(self) -> None:
        """Test that an unknown store type fails validation."""
        with pytest.raises(ValidationError):
            SiteConfig.model_validate({"stores": {"main": {"type": "ftp"}}})

    @pytest.mark.unit
    def test_unknown_top_level_option_rejected(self) -> None:
        """Test that typos at the top level fail validation."""
        with pytest.raises(ValidationError):
            SiteConfig.model_validate({"storez": {}})
