"""Adapters that hand the engine a point-in-time list of entries."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from result import Err

from tally.models.entry import Entry
from tally.models.enums import NodeKind
from tally.models.errors import CapacityUnavailable, MetadataUnavailable
from tally.models.scan import ProgressCallback, ScanOptions, ScanSnapshot
from tally.scan._base import ThreadedScannerBase
from tally.scan.python_scanner import PythonScanner
from tally.services.fs import DEFAULT_FS, FileSystem

logger = logging.getLogger(__name__)


class MetadataSource(Protocol):
    def list_entries(self, kind: NodeKind) -> Sequence[Entry]: ...

    def last_login_times(self) -> Mapping[str, int]: ...

    def total_capacity(self) -> int: ...


class MemorySource:
    def __init__(
        self,
        files: Sequence[Entry] = (),
        dirs: Sequence[Entry] = (),
        logins: Mapping[str, int] | None = None,
        capacity: int | None = 0,
    ) -> None:
        self.files = list(files)
        self.dirs = list(dirs)
        self.logins = dict(logins or {})
        self.capacity = capacity

    def list_entries(self, kind: NodeKind) -> Sequence[Entry]:
        return self.files if kind is NodeKind.FILE else self.dirs

    def last_login_times(self) -> Mapping[str, int]:
        return dict(self.logins)

    def total_capacity(self) -> int:
        if self.capacity is None:
            raise CapacityUnavailable("No capacity known for in-memory source.")
        return self.capacity


class FileSystemSource:
    """Entries of a local directory tree, scanned once on first use."""

    def __init__(
        self,
        root: str,
        workers: int = 4,
        fs: FileSystem = DEFAULT_FS,
        scanner: ThreadedScannerBase | None = None,
        options: ScanOptions | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._root = root
        self._fs = fs
        self._scanner = scanner or PythonScanner(workers=workers, fs=fs)
        self._options = options or ScanOptions()
        self._progress_callback = progress_callback
        self._snapshot: ScanSnapshot | None = None
        self._lock = threading.Lock()

    def _scan(self) -> ScanSnapshot:
        with self._lock:
            if self._snapshot is None:
                result = self._scanner.scan(self._root, self._options, progress_callback=self._progress_callback)
                if isinstance(result, Err):
                    error = result.unwrap_err()
                    raise MetadataUnavailable(f"Scan failed for {error.path}: {error.message}")
                self._snapshot = result.unwrap()
                logger.info(
                    "Scanned %s: %d files, %d dirs, %d access errors.",
                    self._snapshot.root,
                    self._snapshot.stats.files,
                    self._snapshot.stats.directories,
                    self._snapshot.stats.access_errors,
                )
            return self._snapshot

    def list_entries(self, kind: NodeKind) -> Sequence[Entry]:
        snapshot = self._scan()
        return snapshot.files if kind is NodeKind.FILE else snapshot.dirs

    def last_login_times(self) -> Mapping[str, int]:
        return {}

    def total_capacity(self) -> int:
        try:
            return self._fs.disk_total(self._fs.expanduser(self._root))
        except OSError as exc:
            raise CapacityUnavailable(f"Cannot read capacity of {self._root}: {exc}") from exc


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


def entry_from_dict(payload: Mapping[str, Any]) -> Entry:
    kind = NodeKind(str(payload.get("kind", NodeKind.FILE.value)))
    size = int(payload.get("size", 0))
    return Entry(
        path=str(payload["path"]),
        kind=kind,
        owner=str(payload.get("owner", "")),
        size=size,
        disk_space=int(payload.get("diskspace", size)),
        memory=int(payload.get("memory", 0)),
        mtime=float(payload.get("mtime", 0.0)),
        atime=float(payload.get("atime", 0.0)),
        children=int(payload.get("children", 0)),
        ns_quota_ratio=_optional_int(payload.get("nsQuotaRatio")),
        ds_quota_ratio=_optional_int(payload.get("dsQuotaRatio")),
    )


class JsonLinesSource:
    """Entries read from a JSON-lines listing, one object per line.

    Args:
        path: Listing file.
        capacity: Total capacity in bytes, if known.
        logins_path: Optional JSON object mapping user to last-login time.
    """

    def __init__(self, path: str | Path, capacity: int | None = None, logins_path: str | Path | None = None) -> None:
        self._path = Path(path)
        self._capacity = capacity
        self._logins_path = Path(logins_path) if logins_path is not None else None
        self._entries: dict[NodeKind, list[Entry]] | None = None

    def _load(self) -> dict[NodeKind, list[Entry]]:
        if self._entries is not None:
            return self._entries
        entries: dict[NodeKind, list[Entry]] = {NodeKind.FILE: [], NodeKind.DIRECTORY: []}
        try:
            with self._path.open(encoding="utf-8") as handle:
                for lineno, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        entry = entry_from_dict(json.loads(line))
                    except (ValueError, KeyError, TypeError, AttributeError) as exc:
                        raise MetadataUnavailable(f"{self._path}:{lineno}: invalid entry: {exc}") from exc
                    entries[entry.kind].append(entry)
        except (OSError, ValueError) as exc:
            raise MetadataUnavailable(f"Cannot read listing {self._path}: {exc}") from exc
        self._entries = entries
        return entries

    def list_entries(self, kind: NodeKind) -> Sequence[Entry]:
        return self._load()[kind]

    def last_login_times(self) -> Mapping[str, int]:
        if self._logins_path is None:
            return {}
        try:
            payload = json.loads(self._logins_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise MetadataUnavailable(f"Cannot read logins {self._logins_path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise MetadataUnavailable(f"Logins at {self._logins_path} must be a JSON object.")
        try:
            return {str(user): int(ts) for user, ts in payload.items()}
        except (TypeError, ValueError) as exc:
            raise MetadataUnavailable(f"Invalid login time in {self._logins_path}: {exc}") from exc

    def total_capacity(self) -> int:
        if self._capacity is None:
            raise CapacityUnavailable(f"No capacity given for listing {self._path}.")
        return self._capacity
