"""Local override fragments layered over fetched resource bodies."""

import json
from pathlib import Path
from typing import Any

import structlog

from src.crawler.models import PendingSave
from src.crawler.slugs import strip_type_prefix


logger = structlog.get_logger()


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` over ``base`` without mutating either.

    Nested mappings merge key by key; any other value in ``override``
    replaces the one in ``base``.

    Args:
        base: Fetched body.
        override: Fragment to layer on top.

    Returns:
        New merged mapping.
    """
    merged = dict(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


class OverrideFolder:
    """A folder of ``<slug>.json`` fragments for one store."""

    def __init__(self, folder: Path) -> None:
        """Initialize the override folder.

        Args:
            folder: Absolute folder path; it need not exist yet.
        """
        self._folder = folder
        self._log = logger.bind(component="overrides", folder=str(folder))

    @property
    def folder(self) -> Path:
        """Get the folder path."""
        return self._folder

    def path_for(self, slug: str) -> Path:
        """Get the fragment file for a slug, without its type prefix."""
        return self._folder / f"{strip_type_prefix(slug)}.json"

    def load(self, slug: str) -> dict[str, Any] | None:
        """Load the fragment for a slug.

        Args:
            slug: Resource slug.

        Returns:
            The fragment, or None if there is none.

        Raises:
            ValueError: If the fragment is not a JSON object.
        """
        path = self.path_for(slug)
        if not path.is_file():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            msg = f"Override {path} must contain a JSON object"
            raise ValueError(msg)
        return data

    def save(self, pending: PendingSave) -> Path:
        """Write a queued body into the folder.

        Args:
            pending: Save queued during the crawl.

        Returns:
            Path of the written file.
        """
        path = Path(pending.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        temp_path.write_text(
            json.dumps(pending.body, indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        temp_path.replace(path)
        self._log.info("override_saved", slug=pending.slug, path=str(path))
        return path
