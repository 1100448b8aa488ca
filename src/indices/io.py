"""Deterministic JSON serialization and write-if-changed file output."""

import json
import os
from pathlib import Path
from typing import Any

import structlog

from src.core.hashing import sha256_hex
from src.indices.models import GeneratedFile
from src.observability.metrics import BuildMetrics


logger = structlog.get_logger()


def dump_json(data: Any) -> str:
    """Serialize a document with sorted keys and two-space indentation."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def dump_jsonl(records: list[Any]) -> str:
    """Serialize records as compact JSON lines."""
    return "".join(
        json.dumps(record, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
        + "\n"
        for record in records
    )


class AtomicWriter:
    """Writes site files so readers never observe a half-written document.

    New content goes to a sibling ``.tmp`` file that is then renamed over the
    target. A file whose bytes already match is not touched at all, which
    keeps its mtime stable across idempotent rebuilds and lets hosts skip
    reloading it.
    """

    def __init__(self, base_dir: Path, build_id: str | None = None) -> None:
        """Initialize the writer.

        Args:
            base_dir: Root that reported paths are relative to.
            build_id: Build id bound to log lines.
        """
        self._base_dir = base_dir
        self._metrics = BuildMetrics.get_instance()
        self._log = logger.bind(component="atomic_writer", build_id=build_id)

    @property
    def base_dir(self) -> Path:
        """Get the output root."""
        return self._base_dir

    def write(self, path: Path, content: str) -> GeneratedFile:
        """Write ``content`` as UTF-8 unless the file already holds it.

        Args:
            path: Absolute target, or a path relative to ``base_dir``.
            content: Text to write.

        Returns:
            GeneratedFile describing the target and whether it changed.
        """
        target = path if path.is_absolute() else self._base_dir / path
        payload = content.encode("utf-8")
        digest = sha256_hex(payload)
        try:
            relative = target.relative_to(self._base_dir).as_posix()
        except ValueError:
            relative = str(target)

        changed = not target.is_file() or target.read_bytes() != payload
        if changed:
            target.parent.mkdir(parents=True, exist_ok=True)
            staging = target.with_name(target.name + ".tmp")
            staging.write_bytes(payload)
            os.replace(staging, target)
            self._log.debug(
                "file_written", path=relative, bytes=len(payload), sha256=digest[:12]
            )
        self._metrics.record_file(changed=changed)

        return GeneratedFile(
            path=relative,
            absolute_path=str(target),
            bytes_written=len(payload),
            sha256=digest,
            changed=changed,
        )

    def write_json(self, path: Path, data: Any) -> GeneratedFile:
        """Write ``data`` through ``dump_json``."""
        return self.write(path, dump_json(data))
