from __future__ import annotations

import sqlite3
import threading
from collections.abc import Collection, Mapping
from pathlib import Path
from typing import Protocol

from tally.models.errors import PersistenceFailure

GLOBAL_USER = ""


class HistoryWriter(Protocol):
    def record_snapshot(
        self,
        values: Mapping[str, int],
        maps: Mapping[str, Mapping[str, int]],
        users: Collection[str],
    ) -> None: ...


class SqliteHistoryWriter:
    """Append-only history of scalar and per-user metrics.

    Scalar metrics are stored under the empty user; every ``*Users`` map is
    stored per user with the ``Users`` suffix dropped from the metric name.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._lock = threading.Lock()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.execute(
                (
                    "CREATE TABLE IF NOT EXISTS history (\n"
                    "  report_time INTEGER NOT NULL,\n"
                    "  user TEXT NOT NULL,\n"
                    "  metric TEXT NOT NULL,\n"
                    "  value INTEGER NOT NULL\n"
                    ")"
                )
            )
            self._conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceFailure(f"Cannot open history database at {self._db_path}: {exc}") from exc

    def record_snapshot(
        self,
        values: Mapping[str, int],
        maps: Mapping[str, Mapping[str, int]],
        users: Collection[str],
    ) -> None:
        report_time = int(values.get("reportTime", 0))
        rows = [(report_time, GLOBAL_USER, metric, int(value)) for metric, value in values.items()]
        for name, per_user in maps.items():
            if not name.endswith("Users"):
                continue
            metric = name[: -len("Users")]
            rows.extend((report_time, user, metric, int(per_user[user])) for user in users if user in per_user)
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    "INSERT INTO history (report_time, user, metric, value) VALUES (?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to write history: {exc}") from exc

    def read_user(self, user: str) -> list[tuple[int, str, int]]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT report_time, metric, value FROM history WHERE user = ? ORDER BY report_time, metric",
                (user,),
            )
            return [(int(r[0]), str(r[1]), int(r[2])) for r in cur.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
