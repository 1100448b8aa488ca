"""Effective configuration resolved from a validated site config."""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.config.constants import (
    DEFAULT_RUN,
    DEFAULT_SERVER_URL,
    DEFAULT_STORE_ID,
    DEFAULT_STORE_PATH,
    DEFAULT_STORE_PATTERN,
    SHORTHAND_STORE_ID,
)
from src.config.schemas.site import SiteConfig
from src.config.schemas.stores import LocalStoreConfig, RemoteStoreConfig
from src.core.hashing import sha256_hex


class EffectiveConfig(BaseModel):
    """Normalized, immutable configuration used for one orchestrator run.

    Shorthand URL lists are folded into a synthetic ``content`` store and the
    built-in default store is applied when nothing else is configured, so
    downstream code only ever sees explicit stores.

    Attributes:
        site: The validated site configuration as written.
        stores: Resolved stores keyed by store id, in declaration order.
        run: Ordered step ids to execute.
        server_url: Public URL the emitted site is served from.
        root: Project root that relative store paths resolve against.
        source_path: Configuration file the config was loaded from.
        file_checksum: SHA-256 of the configuration file, if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    site: SiteConfig
    stores: dict[str, RemoteStoreConfig | LocalStoreConfig]
    run: tuple[str, ...]
    server_url: str
    root: Path
    source_path: str | None = None
    file_checksum: str | None = None

    @classmethod
    def from_site(
        cls,
        site: SiteConfig,
        root: Path,
        source_path: str | None = None,
        file_checksum: str | None = None,
        server_url: str | None = None,
    ) -> "EffectiveConfig":
        """Resolve a validated site configuration.

        Args:
            site: Validated site configuration.
            root: Project root directory.
            source_path: Where the configuration was read from.
            file_checksum: Checksum of the configuration file.
            server_url: Fallback server URL when the config sets none.

        Returns:
            EffectiveConfig with normalized stores.
        """
        stores: dict[str, RemoteStoreConfig | LocalStoreConfig]
        if site.has_shorthand:
            stores = {
                SHORTHAND_STORE_ID: RemoteStoreConfig(
                    urls=list(
                        dict.fromkeys(
                            (site.collections or []) + (site.manifests or [])
                        )
                    ),
                    save_manifests=bool(site.save),
                    overrides=site.folder,
                )
            }
        elif site.stores:
            stores = dict(site.stores)
        else:
            stores = {
                DEFAULT_STORE_ID: LocalStoreConfig(
                    path=DEFAULT_STORE_PATH,
                    pattern=DEFAULT_STORE_PATTERN,
                )
            }

        resolved_url = (
            site.server.url if site.server else (server_url or DEFAULT_SERVER_URL)
        )
        return cls(
            site=site,
            stores=stores,
            run=tuple(site.run) if site.run else DEFAULT_RUN,
            server_url=resolved_url.rstrip("/"),
            root=root,
            source_path=source_path,
            file_checksum=file_checksum,
        )

    def hash_inputs(self) -> dict[str, Any]:
        """Collect every setting that can change a derived result.

        Network tuning and watch settings are left out since they only
        affect how and when work happens, never what it produces.

        Returns:
            JSON-compatible mapping of hash inputs.
        """
        return {
            "stores": {
                store_id: store.model_dump(mode="json")
                for store_id, store in self.stores.items()
            },
            "run": list(self.run),
            "config": self.site.config,
            "topics": self.site.topics.model_dump(mode="json"),
            "rewrites": [rule.model_dump(mode="json") for rule in self.site.rewrites],
            "collection_templates": self.site.collection_templates.model_dump(
                mode="json"
            ),
            "search": self.site.search.model_dump(mode="json"),
            "server_url": self.server_url,
        }

    def configuration_hash(self) -> str:
        """Compute the configuration hash guarding the derived cache.

        Returns:
            Hex-encoded SHA-256 of the normalized hash inputs.
        """
        normalized = json.dumps(
            self.hash_inputs(), sort_keys=True, separators=(",", ":")
        )
        return sha256_hex(normalized)

    def step_config(self, step_id: str, store_id: str | None = None) -> dict[str, Any]:
        """Get the settings for a step, with store settings layered on top.

        Args:
            step_id: Step identifier.
            store_id: Store whose resource is being processed.

        Returns:
            Merged settings mapping.
        """
        merged: dict[str, Any] = dict(self.site.config.get(step_id, {}))
        if store_id and store_id in self.stores:
            merged.update(self.stores[store_id].config.get(step_id, {}))
        return merged

    def run_for_store(self, store_id: str) -> tuple[str, ...]:
        """Get the step ids that apply to a store's resources.

        Args:
            store_id: Store identifier.

        Returns:
            Ordered step ids after applying the store's run and skip lists.
        """
        store = self.stores.get(store_id)
        if store is None:
            return self.run
        steps = tuple(store.run) if store.run else self.run
        return tuple(step for step in steps if step not in store.skip)

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured path against the project root."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    def summary(self) -> dict[str, object]:
        """Get a summary of the effective configuration.

        Returns:
            Dictionary with summary information.
        """
        return {
            "source_path": self.source_path,
            "server_url": self.server_url,
            "stores": {
                store_id: store.model_dump(mode="json", exclude_none=True)
                for store_id, store in self.stores.items()
            },
            "run": list(self.run),
            "shorthand": {
                "enabled": self.site.has_shorthand,
                "urls": (self.site.collections or []) + (self.site.manifests or []),
                "overrides": self.site.folder,
                "save": bool(self.site.save),
            },
            "configuration_hash": self.configuration_hash(),
        }
