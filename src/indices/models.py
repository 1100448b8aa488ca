"""Data models for emitted artifacts."""

from dataclasses import dataclass, field


@dataclass
class GeneratedFile:
    """Information about an emitted file.

    Attributes:
        path: Relative path from the build directory.
        absolute_path: Absolute path to file.
        bytes_written: Size of the content.
        sha256: SHA-256 checksum of content.
        changed: False when the file already held identical content.
    """

    path: str
    absolute_path: str
    bytes_written: int
    sha256: str
    changed: bool = True


@dataclass
class EmitReport:
    """Files produced by one emission pass.

    Attributes:
        files: Emitted files in write order.
        by_slug: Relative paths grouped by the resource they belong to.
    """

    files: list[GeneratedFile] = field(default_factory=list)
    by_slug: dict[str, list[str]] = field(default_factory=dict)

    def add(self, generated: GeneratedFile, slug: str | None = None) -> None:
        """Record a file, optionally against a resource slug."""
        self.files.append(generated)
        if slug is not None:
            self.by_slug.setdefault(slug, []).append(generated.path)

    def extend(self, other: "EmitReport") -> None:
        """Merge another report into this one."""
        for generated in other.files:
            self.files.append(generated)
        for slug, paths in other.by_slug.items():
            self.by_slug.setdefault(slug, []).extend(paths)

    @property
    def paths(self) -> set[str]:
        """Get every emitted relative path."""
        return {f.path for f in self.files}

    @property
    def written(self) -> int:
        """Count files whose content changed."""
        return sum(1 for f in self.files if f.changed)
