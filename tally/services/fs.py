from __future__ import annotations

import os
import pwd
import shutil
import stat as statmod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Protocol


@dataclass(slots=True, frozen=True)
class StatResult:
    size: int
    is_dir: bool
    disk_usage: int = 0
    mtime: float = 0.0
    atime: float = 0.0
    owner: str = ""


@dataclass(slots=True, frozen=True)
class DirEntry:
    path: str
    name: str
    stat: StatResult | None = None


class FileSystem(Protocol):
    def expanduser(self, path: str) -> str: ...

    def exists(self, path: str) -> bool: ...

    def absolute(self, path: str) -> str: ...

    def stat(self, path: str) -> StatResult: ...

    def scandir(self, path: str) -> Iterable[DirEntry]: ...

    def read_text(self, path: str, encoding: str = "utf-8") -> str: ...

    def disk_total(self, path: str) -> int: ...


@lru_cache(maxsize=4096)
def owner_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _to_stat(st: os.stat_result) -> StatResult:
    return StatResult(
        size=st.st_size,
        is_dir=statmod.S_ISDIR(st.st_mode),
        disk_usage=getattr(st, "st_blocks", 0) * 512,
        mtime=st.st_mtime,
        atime=st.st_atime,
        owner=owner_name(st.st_uid),
    )


class OsFileSystem:
    def expanduser(self, path: str) -> str:
        return str(Path(path).expanduser())

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def absolute(self, path: str) -> str:
        return str(Path(path).absolute())

    def stat(self, path: str) -> StatResult:
        return _to_stat(os.stat(path, follow_symlinks=False))

    def scandir(self, path: str) -> Iterable[DirEntry]:
        with os.scandir(path) as entries:
            for e in entries:
                try:
                    sr: StatResult | None = _to_stat(e.stat(follow_symlinks=False))
                except OSError:
                    sr = None
                yield DirEntry(path=e.path, name=e.name, stat=sr)

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        return Path(path).read_text(encoding=encoding)

    def disk_total(self, path: str) -> int:
        return shutil.disk_usage(path).total


DEFAULT_FS: FileSystem = OsFileSystem()
