from __future__ import annotations

from tally.scan._base import ThreadedScannerBase, resolve_root
from tally.scan.python_scanner import PythonScanner
from tally.scan.sources import FileSystemSource, JsonLinesSource, MemorySource, MetadataSource


def default_scanner(workers: int = 8) -> ThreadedScannerBase:
    """Return the scanner used for local trees."""
    return PythonScanner(workers=workers)


__all__ = [
    "FileSystemSource",
    "JsonLinesSource",
    "MemorySource",
    "MetadataSource",
    "PythonScanner",
    "ThreadedScannerBase",
    "default_scanner",
    "resolve_root",
]
