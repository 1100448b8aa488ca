"""Reads, validates and resolves the site configuration."""

import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from src.config.constants import COMPONENT_CONFIG, SUPPORTED_CONFIG_FILES
from src.config.effective import EffectiveConfig
from src.config.schemas.site import SiteConfig
from src.config.state_machine import ConfigState, ConfigStateMachine
from src.core.errors import ConfigurationError
from src.core.hashing import sha256_hex


logger = structlog.get_logger()


def find_config_file(root: Path) -> Path | None:
    """Find the first supported configuration file under a project root.

    Args:
        root: Project root directory.

    Returns:
        Path to the configuration file, or None if there is none.
    """
    for name in SUPPORTED_CONFIG_FILES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


class ConfigLoader:
    """Turns a YAML file or mapping into an EffectiveConfig.

    Each loader walks UNLOADED -> LOADING -> VALIDATED -> READY exactly once,
    or ends in FAILED with its errors kept in ``validation_errors``. Reloading
    means creating a new loader.
    """

    def __init__(self, root: Path, server_url: str | None = None) -> None:
        """Initialize the loader.

        Args:
            root: Project root that relative paths resolve against.
            server_url: Used when the configuration has no ``server`` section.
        """
        self._root = root
        self._server_url = server_url
        self._machine = ConfigStateMachine()
        self._errors: list[dict[str, str]] = []
        self._log = logger.bind(component=COMPONENT_CONFIG)

    @property
    def state(self) -> ConfigState:
        """Get the loader phase."""
        return self._machine.state

    @property
    def validation_errors(self) -> list[dict[str, str]]:
        """Get a copy of the collected ``loc``/``msg``/``type`` errors."""
        return list(self._errors)

    def load(self, config_path: Path | None = None) -> EffectiveConfig:
        """Load the project's configuration file.

        Without ``config_path`` the supported file names are tried in order;
        a project without any of them gets the built-in default store.

        Args:
            config_path: Explicit configuration file.

        Returns:
            Resolved EffectiveConfig.

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid.
        """
        self._machine.transition(ConfigState.LOADING)
        path = config_path or find_config_file(self._root)
        if path is None:
            self._log.info("config_file_absent", root=str(self._root))
            return self._resolve({}, source=None, checksum=None)

        raw, checksum = self._read(path)
        self._log.info("config_file_loaded", file_path=str(path), file_sha256=checksum)
        return self._resolve(raw, source=str(path), checksum=checksum)

    def load_mapping(self, data: Mapping[str, Any]) -> EffectiveConfig:
        """Load configuration that is already in memory.

        Args:
            data: Raw configuration values.

        Returns:
            Resolved EffectiveConfig.

        Raises:
            ConfigurationError: If validation fails.
        """
        self._machine.transition(ConfigState.LOADING)
        return self._resolve(dict(data), source=None, checksum=None)

    def _read(self, path: Path) -> tuple[dict[str, Any], str]:
        try:
            content = path.read_bytes()
        except FileNotFoundError as e:
            raise self._reject(
                f"Configuration file not found: {path}", path, str(e), "file_not_found"
            ) from e

        try:
            parsed = yaml.safe_load(content.decode("utf-8"))
        except yaml.YAMLError as e:
            raise self._reject(
                f"Invalid YAML in {path}", path, str(e), "yaml_parse_error"
            ) from e

        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            raise self._reject(
                f"Configuration in {path} must be a mapping",
                path,
                "Top level must be a mapping",
                "dict_type",
            )
        return parsed, sha256_hex(content)

    def _reject(
        self, summary: str, path: Path, detail: str, error_type: str
    ) -> ConfigurationError:
        self._machine.transition(ConfigState.FAILED)
        self._errors.append({"loc": "file", "msg": detail, "type": error_type})
        self._log.error("config_load_failed", file_path=str(path), type=error_type)
        return ConfigurationError(
            summary, errors=self.validation_errors, source=str(path)
        )

    def _resolve(
        self, raw: dict[str, Any], source: str | None, checksum: str | None
    ) -> EffectiveConfig:
        started = time.perf_counter()
        try:
            site = SiteConfig.model_validate(raw)
        except ValidationError as e:
            self._machine.transition(ConfigState.FAILED)
            self._errors.extend(
                {
                    "loc": ".".join(str(part) for part in detail["loc"]),
                    "msg": detail["msg"],
                    "type": detail["type"],
                }
                for detail in e.errors()
            )
            self._log.error(
                "config_invalid", error_count=len(self._errors), errors=self._errors
            )
            summary = "; ".join(error["msg"] for error in self._errors)
            raise ConfigurationError(
                f"Invalid configuration: {summary}",
                errors=self.validation_errors,
                source=source,
            ) from e
        self._machine.transition(ConfigState.VALIDATED)

        effective = EffectiveConfig.from_site(
            site,
            root=self._root,
            source_path=source,
            file_checksum=checksum,
            server_url=self._server_url,
        )
        self._machine.transition(ConfigState.READY)
        self._log.info(
            "config_ready",
            stores=list(effective.stores),
            configuration_hash=effective.configuration_hash(),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return effective
