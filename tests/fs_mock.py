from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

from tally.services.fs import DirEntry, StatResult


@dataclass
class _MockEntry:
    is_dir: bool
    size: int
    content: str
    disk_usage: int = 0
    owner: str = "root"
    mtime: float = 0.0
    atime: float = 0.0

    def to_stat(self) -> StatResult:
        return StatResult(
            size=self.size,
            is_dir=self.is_dir,
            disk_usage=self.disk_usage,
            mtime=self.mtime,
            atime=self.atime,
            owner=self.owner,
        )


class MemoryFileSystem:
    def __init__(self, capacity: int = 1 << 40) -> None:
        self._entries: dict[str, _MockEntry] = {}
        self.capacity = capacity

    def add_dir(self, path: str, owner: str = "root", mtime: float = 0.0) -> MemoryFileSystem:
        self._entries[self._normalize(path)] = _MockEntry(is_dir=True, size=0, content="", owner=owner, mtime=mtime)
        return self

    def add_file(
        self,
        path: str,
        size: int = 0,
        content: str = "",
        disk_usage: int | None = None,
        owner: str = "root",
        mtime: float = 0.0,
        atime: float = 0.0,
    ) -> MemoryFileSystem:
        key = self._normalize(path)
        # auto-create parent dirs
        for parent in reversed(PurePosixPath(key).parents):
            pk = str(parent)
            if pk not in self._entries:
                self._entries[pk] = _MockEntry(is_dir=True, size=0, content="")
        self._entries[key] = _MockEntry(
            is_dir=False,
            size=size,
            content=content,
            disk_usage=disk_usage if disk_usage is not None else size,
            owner=owner,
            mtime=mtime,
            atime=atime,
        )
        return self

    def expanduser(self, path: str) -> str:
        return path.replace("~", "/mock/home")

    def exists(self, path: str) -> bool:
        return self._normalize(path) in self._entries

    def absolute(self, path: str) -> str:
        return self._normalize(path)

    def stat(self, path: str) -> StatResult:
        key = self._normalize(path)
        entry = self._entries.get(key)
        if entry is None:
            raise OSError(f"No such file or directory: '{key}'")
        return entry.to_stat()

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        key = self._normalize(path)
        entry = self._entries.get(key)
        if entry is None:
            raise OSError(f"No such file or directory: '{key}'")
        return entry.content

    def disk_total(self, path: str) -> int:
        if not self.exists(path):
            raise OSError(f"No such file or directory: '{path}'")
        return self.capacity

    def scandir(self, path: str) -> list[DirEntry]:
        key = self._normalize(path)
        if key not in self._entries:
            raise OSError(f"No such file or directory: '{key}'")
        prefix = key.rstrip("/") + "/"
        result: list[DirEntry] = []
        seen: set[str] = set()
        for p in self._entries:
            if not p.startswith(prefix):
                continue
            child_name = p[len(prefix) :].split("/", 1)[0]
            child_path = prefix + child_name
            if child_path in seen:
                continue
            seen.add(child_path)
            child_entry = self._entries.get(child_path)
            st = child_entry.to_stat() if child_entry is not None else None
            result.append(DirEntry(path=child_path, name=child_name, stat=st))
        return result

    @staticmethod
    def _normalize(path: str) -> str:
        return path.rstrip("/") or "/"
