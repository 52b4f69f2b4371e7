from __future__ import annotations

import threading
from collections.abc import Iterable, MutableSet
from dataclasses import dataclass, field

from tally.models.errors import AlreadyWatched, InvalidArgument, NotWatched


@dataclass(slots=True)
class _TrieNode:
    path: str
    watched: bool = False
    children: dict[str, _TrieNode] = field(default_factory=dict)


def _segments(path: str) -> list[str]:
    return [seg for seg in path.split("/") if seg]


class PathTrie:
    """Prefix tree over ``/``-separated path segments."""

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._root = _TrieNode(path="/")
        for path in paths:
            self.add(path)

    def add(self, path: str) -> None:
        node = self._root
        for seg in _segments(path):
            child = node.children.get(seg)
            if child is None:
                prefix = node.path.rstrip("/")
                child = _TrieNode(path=f"{prefix}/{seg}")
                node.children[seg] = child
            node = child
        node.watched = True

    def common_ancestors(self) -> list[str]:
        """Return one ancestor per top-level subtree.

        Each subtree is descended while the current node is not itself a
        watched path and has exactly one child, so the result is the deepest
        path that still covers every watched path below it.
        """
        if self._root.watched:
            return ["/"]
        ancestors: list[str] = []
        for top in self._root.children.values():
            node = top
            while not node.watched and len(node.children) == 1:
                node = next(iter(node.children.values()))
            ancestors.append(node.path)
        return sorted(ancestors)


def normalize_directory(directory: str | None) -> str:
    if not directory:
        raise InvalidArgument("Directory parameter 'dir' not defined.")
    if not directory.startswith("/"):
        raise InvalidArgument(f"Directory {directory!r} must be an absolute path.")
    if directory != "/" and directory.endswith("/"):
        directory = directory[:-1]
    return directory


class DirectoryWatches:
    """Directories that receive exact aggregates on every refresh.

    The backing set is usually provided by the cache store so the watch list
    survives restarts. All access goes through ``_lock``.
    """

    def __init__(self, directories: MutableSet[str] | None = None) -> None:
        self._dirs: MutableSet[str] = directories if directories is not None else set()
        self._lock = threading.Lock()

    def add(self, directory: str) -> str:
        directory = normalize_directory(directory)
        with self._lock:
            if directory in self._dirs:
                raise AlreadyWatched(directory)
            self._dirs.add(directory)
        return directory

    def remove(self, directory: str) -> str:
        directory = normalize_directory(directory)
        with self._lock:
            if directory not in self._dirs:
                raise NotWatched(directory)
            self._dirs.discard(directory)
        return directory

    def current(self) -> MutableSet[str]:
        return self._dirs

    def copy(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._dirs)

    def resolve_common_ancestors(self) -> list[str]:
        return PathTrie(self.copy()).common_ancestors()

    def __contains__(self, directory: object) -> bool:
        with self._lock:
            return directory in self._dirs

    def __len__(self) -> int:
        with self._lock:
            return len(self._dirs)
