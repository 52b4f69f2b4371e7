"""Filter, sum and histogram primitives over entry collections.

Every histogram is a plain ``dict[str, int]``. Sorting helpers break ties on
the key so repeated queries over the same data always rank identically.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone

from tally.models.entry import Entry
from tally.models.enums import QuotaMetric, SumMetric

type Predicate = Callable[[Entry], bool]


def _field_value(entry: Entry, metric: SumMetric) -> int:
    if metric is SumMetric.COUNT:
        return 1
    if metric is SumMetric.DISKSPACE:
        return entry.disk_space
    return entry.memory


def combined_filter(entries: Iterable[Entry], *predicates: Predicate) -> list[Entry]:
    return [entry for entry in entries if all(pred(entry) for pred in predicates)]


def sum_field(entries: Iterable[Entry], metric: SumMetric) -> int:
    return sum(_field_value(entry, metric) for entry in entries)


def by_user_histogram(entries: Iterable[Entry], metric: SumMetric) -> dict[str, int]:
    hist: defaultdict[str, int] = defaultdict(int)
    for entry in entries:
        hist[entry.owner] += _field_value(entry, metric)
    return dict(hist)


def parent_dir(path: str, depth: int) -> str:
    """Return the parent directory of *path* cut to at most *depth* segments."""
    segments = [seg for seg in path.split("/") if seg][:-1]
    if not segments:
        return "/"
    return "/" + "/".join(segments[:depth])


def parent_dir_histogram(entries: Iterable[Entry], depth: int, metric: SumMetric) -> dict[str, int]:
    hist: defaultdict[str, int] = defaultdict(int)
    for entry in entries:
        hist[parent_dir(entry.path, depth)] += _field_value(entry, metric)
    return dict(hist)


def month_key(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m")


def mod_time_histogram(entries: Iterable[Entry], metric: SumMetric) -> dict[str, int]:
    hist: defaultdict[str, int] = defaultdict(int)
    for entry in entries:
        hist[month_key(entry.mtime)] += _field_value(entry, metric)
    return dict(sorted(hist.items()))


def dir_quota_histogram(dirs: Iterable[Entry], metric: QuotaMetric) -> dict[str, int]:
    hist: dict[str, int] = {}
    for entry in dirs:
        ratio = entry.ns_quota_ratio if metric is QuotaMetric.NAMESPACE else entry.ds_quota_ratio
        if ratio is not None:
            hist[entry.path] = ratio
    return hist


def is_under(path: str, directory: str) -> bool:
    if directory == "/":
        return path.startswith("/")
    return path == directory or path.startswith(directory + "/")


def under_directory(directory: str) -> Predicate:
    return lambda entry: is_under(entry.path, directory)


def owned_by(user: str) -> Predicate:
    return lambda entry: entry.owner == user


def _rank_key(ascending: bool) -> Callable[[tuple[str, int]], tuple[int, str]]:
    if ascending:
        return lambda kv: (kv[1], kv[0])
    return lambda kv: (-kv[1], kv[0])


def sort_by_value(hist: Mapping[str, int], ascending: bool = False) -> dict[str, int]:
    return dict(sorted(hist.items(), key=_rank_key(ascending)))


def slice_to_top(hist: Mapping[str, int], limit: int) -> dict[str, int]:
    return dict(heapq.nsmallest(max(0, limit), hist.items(), key=_rank_key(False)))


def slice_to_bottom(hist: Mapping[str, int], limit: int) -> dict[str, int]:
    return dict(heapq.nsmallest(max(0, limit), hist.items(), key=_rank_key(True)))
