from __future__ import annotations

import math
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from result import Err, Ok

from tally.models.entry import Entry
from tally.models.enums import NodeKind
from tally.models.scan import (
    CancelCheck,
    ProgressCallback,
    ScanError,
    ScanErrorCode,
    ScanOptions,
    ScanResult,
    ScanSnapshot,
    ScanStats,
)
from tally.services.fs import DEFAULT_FS, FileSystem, StatResult

# Rough per-object metadata cost used for the memory metrics.
OBJECT_BYTES = 150
BLOCK_SIZE = 128 * 1024 * 1024


def estimate_memory(kind: NodeKind, size: int) -> int:
    if kind is NodeKind.DIRECTORY:
        return OBJECT_BYTES
    return OBJECT_BYTES + OBJECT_BYTES * math.ceil(size / BLOCK_SIZE)


def make_entry(path: str, st: StatResult, children: int = 0) -> Entry:
    kind = NodeKind.DIRECTORY if st.is_dir else NodeKind.FILE
    size = 0 if st.is_dir else st.size
    return Entry(
        path=path,
        kind=kind,
        owner=st.owner,
        size=size,
        disk_space=0 if st.is_dir else st.disk_usage,
        memory=estimate_memory(kind, size),
        mtime=st.mtime,
        atime=st.atime,
        children=children,
    )


@dataclass(slots=True, frozen=True)
class _Task:
    path: str
    stat: StatResult
    depth: int
    descend: bool = True


@dataclass(slots=True)
class DirListing:
    """What one directory read produced."""

    children: int
    files: list[Entry]
    subdirs: list[tuple[str, StatResult]]
    errors: int = 0


def resolve_root(path: str, fs: FileSystem) -> tuple[str, StatResult] | ScanError:
    """Validate and resolve a scan root path.

    Returns the resolved absolute path with its stat, or a ``ScanError``.
    """
    expanded = fs.expanduser(path)
    if not fs.exists(expanded):
        return ScanError(
            code=ScanErrorCode.NOT_FOUND,
            path=expanded,
            message="Path does not exist",
        )

    resolved = fs.absolute(expanded)
    try:
        root_stat = fs.stat(resolved)
    except OSError as exc:
        return ScanError(
            code=ScanErrorCode.ROOT_STAT_FAILED,
            path=resolved,
            message=f"Cannot stat root: {exc}",
        )
    if not root_stat.is_dir:
        return ScanError(
            code=ScanErrorCode.NOT_DIRECTORY,
            path=resolved,
            message="Path is not a directory",
        )
    return resolved, root_stat


class ThreadedScannerBase(ABC):
    def __init__(self, workers: int = 8, fs: FileSystem = DEFAULT_FS) -> None:
        self._workers = max(1, workers)
        self._fs = fs

    @property
    def fs(self) -> FileSystem:
        return self._fs

    @abstractmethod
    def _read_dir(self, path: str) -> DirListing:
        """Read one directory and build entries for the files directly in it."""

    def scan(
        self,
        path: str,
        options: ScanOptions,
        progress_callback: ProgressCallback | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> ScanResult:
        resolved = resolve_root(path, self._fs)
        if isinstance(resolved, ScanError):
            return Err(resolved)
        resolved_root, root_stat = resolved

        q: queue.Queue[_Task | None] = queue.Queue()
        q.put(_Task(resolved_root, root_stat, 0))

        files: list[Entry] = []
        dirs: list[Entry] = []
        stats = ScanStats(files=0, directories=0, access_errors=0)
        stats_lock = threading.Lock()
        cancelled = threading.Event()

        def _is_cancelled() -> bool:
            if cancelled.is_set():
                return True
            if cancel_check is not None and cancel_check():
                cancelled.set()
                return True
            return False

        def emit_progress(current_path: str) -> None:
            if progress_callback is None:
                return
            with stats_lock:
                f = stats.files
                d = stats.directories
            progress_callback(current_path, f, d)

        def run_worker() -> None:
            while True:
                task = q.get()
                if task is None:
                    q.task_done()
                    break

                if _is_cancelled():
                    q.task_done()
                    continue

                try:
                    listing = self._read_dir(task.path)
                    dir_entry = make_entry(task.path, task.stat, children=listing.children)
                    new_files = listing.files if task.descend else []
                    if task.descend:
                        within_depth = options.max_depth is None or task.depth < options.max_depth
                        for sub_path, sub_stat in listing.subdirs:
                            q.put(_Task(sub_path, sub_stat, task.depth + 1, descend=within_depth))

                    with stats_lock:
                        prev_total = stats.files + stats.directories
                        dirs.append(dir_entry)
                        files.extend(new_files)
                        stats.directories += 1
                        stats.files += len(new_files)
                        stats.access_errors += listing.errors
                        new_total = stats.files + stats.directories
                    if new_total // 100 > prev_total // 100:
                        emit_progress(task.path)
                except OSError:
                    with stats_lock:
                        stats.access_errors += 1
                finally:
                    q.task_done()

        threads = [threading.Thread(target=run_worker, daemon=True) for _ in range(self._workers)]
        for thread in threads:
            thread.start()
        q.join()
        for _ in threads:
            q.put(None)
        q.join()
        for thread in threads:
            thread.join(timeout=0.3)

        if cancelled.is_set():
            return Err(
                ScanError(
                    code=ScanErrorCode.CANCELLED,
                    path=resolved_root,
                    message="Scan cancelled",
                )
            )

        files.sort(key=lambda e: e.path)
        dirs.sort(key=lambda e: e.path)
        return Ok(ScanSnapshot(root=resolved_root, files=files, dirs=dirs, stats=stats))
