"""Artifact emission and index building."""

from src.indices.builder import IndexBuilder
from src.indices.emitter import ResourceEmitter
from src.indices.io import AtomicWriter, dump_json, dump_jsonl
from src.indices.models import EmitReport, GeneratedFile


__all__ = [
    "AtomicWriter",
    "EmitReport",
    "GeneratedFile",
    "IndexBuilder",
    "ResourceEmitter",
    "dump_json",
    "dump_jsonl",
]
