from __future__ import annotations

from result import Err, Ok

from tally.models.enums import NodeKind
from tally.models.scan import ScanErrorCode, ScanOptions
from tally.scan import PythonScanner, default_scanner
from tally.scan._base import BLOCK_SIZE, OBJECT_BYTES, estimate_memory
from tally.services.fs import DirEntry
from tests.fs_mock import MemoryFileSystem


def test_scanner_returns_files_and_dirs() -> None:
    fs = (
        MemoryFileSystem()
        .add_dir("/root")
        .add_file("/root/big.bin", size=128, owner="alice", mtime=10.0, atime=20.0)
        .add_file("/root/small.bin", size=32, owner="bob")
        .add_dir("/root/sub")
        .add_file("/root/sub/nested.bin", size=64, disk_usage=4096)
    )

    result = PythonScanner(workers=1, fs=fs).scan("/root", ScanOptions())

    assert isinstance(result, Ok)
    snapshot = result.unwrap()
    assert snapshot.stats.files == 3
    assert snapshot.stats.directories == 2
    assert [entry.path for entry in snapshot.files] == ["/root/big.bin", "/root/small.bin", "/root/sub/nested.bin"]
    assert [entry.path for entry in snapshot.dirs] == ["/root", "/root/sub"]

    big = snapshot.files[0]
    assert big.kind is NodeKind.FILE
    assert big.owner == "alice"
    assert (big.mtime, big.atime) == (10.0, 20.0)
    assert snapshot.files[2].disk_space == 4096


def test_directory_entries_count_children() -> None:
    fs = MemoryFileSystem().add_dir("/root").add_dir("/root/empty").add_file("/root/a.txt", size=1)

    result = PythonScanner(workers=2, fs=fs).scan("/root", ScanOptions())
    assert isinstance(result, Ok)
    children = {entry.path: entry.children for entry in result.unwrap().dirs}

    assert children == {"/root": 2, "/root/empty": 0}


def test_missing_path_returns_error() -> None:
    fs = MemoryFileSystem()

    result = PythonScanner(workers=1, fs=fs).scan("/does-not-exist", ScanOptions())

    assert isinstance(result, Err)
    error = result.unwrap_err()
    assert error.code is ScanErrorCode.NOT_FOUND
    assert "does not exist" in error.message.lower()


def test_file_root_returns_error() -> None:
    fs = MemoryFileSystem().add_file("/root/file.txt", size=3)

    result = PythonScanner(workers=1, fs=fs).scan("/root/file.txt", ScanOptions())

    assert isinstance(result, Err)
    assert result.unwrap_err().code is ScanErrorCode.NOT_DIRECTORY


def test_max_depth_respected() -> None:
    fs = (
        MemoryFileSystem()
        .add_dir("/root")
        .add_dir("/root/lvl1")
        .add_dir("/root/lvl1/lvl2")
        .add_file("/root/lvl1/lvl2/f.bin", size=20)
    )

    result = PythonScanner(workers=1, fs=fs).scan("/root", ScanOptions(max_depth=0))
    assert isinstance(result, Ok)
    snapshot = result.unwrap()

    assert [entry.path for entry in snapshot.dirs] == ["/root", "/root/lvl1"]
    assert snapshot.files == []


def test_access_error_counted() -> None:
    fs = MemoryFileSystem().add_dir("/root").add_file("/root/ok.bin", size=10)

    original_scandir = fs.scandir

    def patched_scandir(path: str) -> list[DirEntry]:
        entries = original_scandir(path)
        if path == "/root":
            entries.append(DirEntry(path="/root/broken", name="broken", stat=None))
        return entries

    fs.scandir = patched_scandir  # type: ignore[assignment]

    result = PythonScanner(workers=1, fs=fs).scan("/root", ScanOptions())
    assert isinstance(result, Ok)
    snapshot = result.unwrap()
    assert snapshot.stats.access_errors == 1
    assert snapshot.stats.files == 1


def test_progress_callback_invoked() -> None:
    fs = MemoryFileSystem().add_dir("/root")
    for idx in range(150):
        fs.add_file(f"/root/f{idx}.bin", size=1)

    calls: list[tuple[str, int, int]] = []

    def on_progress(path: str, files: int, dirs: int) -> None:
        calls.append((path, files, dirs))

    result = PythonScanner(workers=1, fs=fs).scan("/root", ScanOptions(), progress_callback=on_progress)
    assert isinstance(result, Ok)
    assert len(calls) >= 1
    for _, files, _ in calls:
        assert files > 0


def test_cancellation_respected() -> None:
    # Cancellation is checked between directories, so we need multiple dirs
    fs = MemoryFileSystem().add_dir("/root")
    for idx in range(5):
        fs.add_dir(f"/root/d{idx}")
        for jdx in range(10):
            fs.add_file(f"/root/d{idx}/f{jdx}.bin", size=1)

    calls = 0

    def cancel() -> bool:
        nonlocal calls
        calls += 1
        return calls > 2

    result = PythonScanner(workers=1, fs=fs).scan("/root", ScanOptions(), cancel_check=cancel)
    assert isinstance(result, Err)
    error = result.unwrap_err()
    assert error.code is ScanErrorCode.CANCELLED
    assert "cancel" in error.message.lower()


def test_memory_estimate_per_block() -> None:
    assert estimate_memory(NodeKind.DIRECTORY, 0) == OBJECT_BYTES
    assert estimate_memory(NodeKind.FILE, 0) == OBJECT_BYTES
    assert estimate_memory(NodeKind.FILE, 1) == 2 * OBJECT_BYTES
    assert estimate_memory(NodeKind.FILE, BLOCK_SIZE + 1) == 3 * OBJECT_BYTES


def test_default_scanner_is_python_scanner() -> None:
    assert isinstance(default_scanner(workers=2), PythonScanner)
