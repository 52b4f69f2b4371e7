"""Named collections that outlive a single process.

The engine keeps its long-lived state (watched directories, login times) and
the last published snapshot in these collections. ``SqliteCacheStore`` loads
every collection on :meth:`start` and writes them all back on :meth:`commit`.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from tally.config.schema import AppConfig
from tally.models.errors import PersistenceFailure


class CacheStore(Protocol):
    def start(self, config: AppConfig) -> None: ...

    def stop(self) -> None: ...

    def commit(self) -> None: ...

    def get_or_create_set(self, name: str) -> set[str]: ...

    def get_or_create_map(self, name: str) -> dict[str, int]: ...

    def get_or_create_map_of_maps(self, name: str) -> dict[str, dict[str, int]]: ...


class MemoryCacheStore:
    """Process-local store; nothing survives :meth:`stop`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sets: dict[str, set[str]] = {}
        self._maps: dict[str, dict[str, int]] = {}
        self._nested: dict[str, dict[str, dict[str, int]]] = {}

    def start(self, config: AppConfig) -> None:
        pass

    def stop(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def get_or_create_set(self, name: str) -> set[str]:
        with self._lock:
            return self._sets.setdefault(name, set())

    def get_or_create_map(self, name: str) -> dict[str, int]:
        with self._lock:
            return self._maps.setdefault(name, {})

    def get_or_create_map_of_maps(self, name: str) -> dict[str, dict[str, int]]:
        with self._lock:
            return self._nested.setdefault(name, {})


_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS collections (\n"
    "  name TEXT NOT NULL,\n"
    "  kind TEXT NOT NULL,\n"
    "  payload TEXT NOT NULL,\n"
    "  PRIMARY KEY (name, kind)\n"
    ")"
)


class SqliteCacheStore(MemoryCacheStore):
    """SQLite-backed store, one JSON row per named collection.

    Args:
        path: Database file. Falls back to ``config.cache_path`` on start.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        super().__init__()
        self._path = Path(path) if path is not None else None
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def start(self, config: AppConfig) -> None:
        if self._path is None:
            if config.cache_path is None:
                raise PersistenceFailure("No cache path configured.")
            self._path = Path(config.cache_path).expanduser()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute(_SCHEMA)
            self._conn.commit()
            rows = self._conn.execute("SELECT name, kind, payload FROM collections").fetchall()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceFailure(f"Cannot open cache store at {self._path}: {exc}") from exc

        with self._lock:
            for name, kind, payload in rows:
                data = json.loads(payload)
                if kind == "set":
                    self._sets[name] = set(data)
                elif kind == "map":
                    self._maps[name] = {str(k): int(v) for k, v in data.items()}
                else:
                    self._nested[name] = {
                        str(k): {str(ik): int(iv) for ik, iv in inner.items()} for k, inner in data.items()
                    }

    def commit(self) -> None:
        if self._conn is None:
            raise PersistenceFailure("Cache store is not started.")
        with self._lock:
            rows = [(name, "set", json.dumps(sorted(values))) for name, values in self._sets.items()]
            rows += [(name, "map", json.dumps(dict(values))) for name, values in self._maps.items()]
            rows += [
                (name, "nested", json.dumps({key: dict(inner) for key, inner in values.items()}))
                for name, values in self._nested.items()
            ]
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT OR REPLACE INTO collections (name, kind, payload) VALUES (?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to write cache store: {exc}") from exc

    def stop(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
