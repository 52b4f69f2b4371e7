from __future__ import annotations

from datetime import datetime, timezone

from tally.models.entry import dir_entry, file_entry
from tally.models.enums import QuotaMetric, SumMetric
from tally.services.query import (
    by_user_histogram,
    combined_filter,
    dir_quota_histogram,
    is_under,
    mod_time_histogram,
    owned_by,
    parent_dir,
    parent_dir_histogram,
    slice_to_bottom,
    slice_to_top,
    sort_by_value,
    sum_field,
    under_directory,
)


def _files() -> list:
    return [
        file_entry("/data/a/one.bin", "alice", 100, memory=150),
        file_entry("/data/a/two.bin", "alice", 50, memory=150),
        file_entry("/data/b/three.bin", "bob", 10, memory=150),
        file_entry("/top.bin", "bob", 1, memory=150),
    ]


def test_combined_filter_applies_all_predicates() -> None:
    matched = combined_filter(_files(), owned_by("alice"), under_directory("/data/a"))
    assert [entry.path for entry in matched] == ["/data/a/one.bin", "/data/a/two.bin"]


def test_combined_filter_without_predicates_keeps_everything() -> None:
    assert len(combined_filter(_files())) == 4


def test_sum_field_per_metric() -> None:
    files = _files()
    assert sum_field(files, SumMetric.COUNT) == 4
    assert sum_field(files, SumMetric.DISKSPACE) == 161
    assert sum_field(files, SumMetric.MEMORY) == 600
    assert sum_field([], SumMetric.DISKSPACE) == 0


def test_user_histogram_sums_to_total() -> None:
    files = _files()
    hist = by_user_histogram(files, SumMetric.DISKSPACE)
    assert hist == {"alice": 150, "bob": 11}
    assert sum(hist.values()) == sum_field(files, SumMetric.DISKSPACE)


def test_parent_dir_truncates_to_depth() -> None:
    assert parent_dir("/a/b/c/d/file", 2) == "/a/b"
    assert parent_dir("/a/b/file", 3) == "/a/b"
    assert parent_dir("/file", 3) == "/"


def test_parent_dir_histogram() -> None:
    hist = parent_dir_histogram(_files(), 1, SumMetric.COUNT)
    assert hist == {"/data": 3, "/": 1}


def test_mod_time_histogram_groups_by_utc_month() -> None:
    jan = datetime(2024, 1, 15, tzinfo=timezone.utc).timestamp()
    mar = datetime(2024, 3, 1, tzinfo=timezone.utc).timestamp()
    files = [
        file_entry("/x", "a", 5, mtime=mar),
        file_entry("/y", "a", 7, mtime=jan),
        file_entry("/z", "a", 1, mtime=jan),
    ]

    assert mod_time_histogram(files, SumMetric.COUNT) == {"2024-01": 2, "2024-03": 1}
    assert list(mod_time_histogram(files, SumMetric.DISKSPACE)) == ["2024-01", "2024-03"]


def test_dir_quota_histogram_skips_dirs_without_quota() -> None:
    dirs = [
        dir_entry("/q1", "a", ns_quota_ratio=90),
        dir_entry("/q2", "a", ds_quota_ratio=40),
        dir_entry("/plain", "a"),
    ]
    assert dir_quota_histogram(dirs, QuotaMetric.NAMESPACE) == {"/q1": 90}
    assert dir_quota_histogram(dirs, QuotaMetric.DISKSPACE) == {"/q2": 40}


def test_is_under_respects_segment_boundaries() -> None:
    assert is_under("/data/a/x", "/data/a")
    assert is_under("/data/a", "/data/a")
    assert not is_under("/data/ab/x", "/data/a")
    assert is_under("/anything", "/")


def test_sort_by_value_breaks_ties_on_key() -> None:
    hist = {"c": 2, "a": 2, "b": 5, "d": 1}
    assert list(sort_by_value(hist)) == ["b", "a", "c", "d"]
    assert list(sort_by_value(hist, ascending=True)) == ["d", "a", "c", "b"]


def test_slice_to_top_and_bottom() -> None:
    hist = {"c": 2, "a": 2, "b": 5, "d": 1}
    assert slice_to_top(hist, 2) == {"b": 5, "a": 2}
    assert list(slice_to_top(hist, 2)) == ["b", "a"]
    assert list(slice_to_bottom(hist, 3)) == ["d", "a", "c"]
    assert slice_to_top(hist, 0) == {}
    assert slice_to_top(hist, 10) == sort_by_value(hist)


def test_slicing_is_deterministic() -> None:
    hist = {f"u{idx}": idx % 3 for idx in range(20)}
    assert slice_to_top(hist, 5) == slice_to_top(dict(reversed(list(hist.items()))), 5)
