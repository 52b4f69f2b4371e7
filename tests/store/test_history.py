from __future__ import annotations

from pathlib import Path

from tally.store.history import GLOBAL_USER, SqliteHistoryWriter


def test_records_scalars_and_user_maps(tmp_path: Path) -> None:
    writer = SqliteHistoryWriter(tmp_path / "history.db")
    writer.record_snapshot(
        values={"reportTime": 1000, "numFiles": 4},
        maps={"numFilesUsers": {"a": 3, "b": 1}, "dirCount": {"/x": 9}},
        users={"a", "b"},
    )

    assert writer.read_user(GLOBAL_USER) == [(1000, "numFiles", 4), (1000, "reportTime", 1000)]
    assert writer.read_user("a") == [(1000, "numFiles", 3)]
    assert writer.read_user("b") == [(1000, "numFiles", 1)]
    writer.close()


def test_history_appends(tmp_path: Path) -> None:
    writer = SqliteHistoryWriter(tmp_path / "history.db")
    for report_time in (1, 2):
        writer.record_snapshot({"reportTime": report_time}, {"emptyFilesUsers": {"a": report_time}}, {"a"})

    assert writer.read_user("a") == [(1, "emptyFiles", 1), (2, "emptyFiles", 2)]
    writer.close()
