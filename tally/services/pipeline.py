"""One full aggregation pass over a point-in-time view of the entries.

The pass only reads the entry lists it is handed and writes into its own
staging dicts; the finished :class:`Snapshot` is frozen before it is
returned, so nothing produced here is ever mutated after publication.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Collection, Iterable, Mapping, Sequence

from tally.config.schema import AppConfig
from tally.models.entry import Entry
from tally.models.enums import AgeWindow, QuotaMetric, SizeBucket, SumMetric
from tally.models.errors import RefreshCancelled
from tally.models.scan import CancelCheck
from tally.models.snapshot import DirectoryStats, Snapshot
from tally.services.buckets import exceeds_quota_threshold, in_age_window, is_empty_dir, size_bucket
from tally.services.query import (
    by_user_histogram,
    combined_filter,
    dir_quota_histogram,
    is_under,
    mod_time_histogram,
    parent_dir_histogram,
    slice_to_top,
    sum_field,
    under_directory,
)
from tally.services.watches import PathTrie

logger = logging.getLogger(__name__)

_FILTERED_BUCKETS: dict[SizeBucket, str] = {
    SizeBucket.EMPTY: "emptyFiles",
    SizeBucket.TINY: "tinyFiles",
    SizeBucket.SMALL: "smallFiles",
    SizeBucket.MEDIUM: "mediumFiles",
}

# Buckets that also get 24h and 1yr sub-collections.
_WINDOWED = ("emptyFiles", "emptyDirs", "tinyFiles", "smallFiles")

_MEMORY_METRICS = (
    "emptyFiles",
    "emptyDirs",
    "tinyFiles",
    "smallFiles",
    "emptyFiles24h",
    "emptyDirs24h",
    "tinyFiles24h",
    "smallFiles24h",
)

_DISKSPACE_METRICS = ("tinyFiles", "smallFiles", "tinyFiles24h", "smallFiles24h")

type Collections = dict[str, list[Entry]]


def _checkpoint(cancel_check: CancelCheck | None, step: str) -> None:
    if cancel_check is not None and cancel_check():
        raise RefreshCancelled(f"Refresh cancelled before {step}.")


def _clamped(metric: str, value: int, key: str | None = None) -> int:
    if value < 0:
        logger.warning("Derived %s went negative (%d) for %s; clamping to 0.", metric, value, key or "total")
        return 0
    return value


def partition_files(files: Iterable[Entry]) -> Collections:
    """Split files into the filtered size buckets in a single pass.

    Large files are deliberately not collected; they are derived by
    subtraction from the totals.
    """
    parts: Collections = {name: [] for name in _FILTERED_BUCKETS.values()}
    for entry in files:
        name = _FILTERED_BUCKETS.get(size_bucket(entry.size))
        if name is not None:
            parts[name].append(entry)
    return parts


def _bucket_collections(files: Sequence[Entry], dirs: Sequence[Entry], now: float) -> Collections:
    collections = partition_files(files)
    collections["emptyDirs"] = combined_filter(dirs, is_empty_dir)
    for name in _WINDOWED:
        base = collections[name]
        collections[f"{name}24h"] = combined_filter(base, lambda e: in_age_window(e, AgeWindow.RECENT_24H, now))
        collections[f"{name}1yr"] = combined_filter(base, lambda e: in_age_window(e, AgeWindow.STALE_1YR, now))
    return collections


def _total_collections(files: Sequence[Entry], now: float) -> Collections:
    return {
        "numFiles24h": combined_filter(files, lambda e: in_age_window(e, AgeWindow.RECENT_24H, now)),
        "oldFiles1yr": combined_filter(files, lambda e: in_age_window(e, AgeWindow.STALE_1YR, now)),
        "oldFiles2yr": combined_filter(files, lambda e: in_age_window(e, AgeWindow.STALE_2YR, now)),
    }


def _bucket_metrics(
    files: Sequence[Entry],
    dirs: Sequence[Entry],
    users: Collection[str],
    now: float,
    values: dict[str, int],
    maps: dict[str, dict[str, int]],
) -> list[Entry]:
    """Fill size/age bucket metrics and return the 24h file collection."""
    buckets = _bucket_collections(files, dirs, now)
    totals = _total_collections(files, now)

    values["numFiles"] = values["totalFiles"] = len(files)
    values["numDirs"] = values["totalDirs"] = len(dirs)
    maps["numFilesUsers"] = by_user_histogram(files, SumMetric.COUNT)
    maps["numDirsUsers"] = by_user_histogram(dirs, SumMetric.COUNT)
    values["diskspace"] = sum_field(files, SumMetric.DISKSPACE)
    maps["diskspaceUsers"] = by_user_histogram(files, SumMetric.DISKSPACE)

    files_24h = totals["numFiles24h"]
    values["diskspace24h"] = sum_field(files_24h, SumMetric.DISKSPACE)
    maps["diskspace24hUsers"] = by_user_histogram(files_24h, SumMetric.DISKSPACE)

    for name, entries in (*totals.items(), *buckets.items()):
        values[name] = len(entries)
        maps[f"{name}Users"] = by_user_histogram(entries, SumMetric.COUNT)

    for name in ("oldFiles1yr", "oldFiles2yr"):
        values[f"{name}Ds"] = sum_field(totals[name], SumMetric.DISKSPACE)
        maps[f"{name}DsUsers"] = by_user_histogram(totals[name], SumMetric.DISKSPACE)

    for name in _MEMORY_METRICS:
        values[f"{name}Mem"] = sum_field(buckets[name], SumMetric.MEMORY)
        maps[f"{name}MemUsers"] = by_user_histogram(buckets[name], SumMetric.MEMORY)

    for name in _DISKSPACE_METRICS:
        values[f"{name}Ds"] = sum_field(buckets[name], SumMetric.DISKSPACE)
        maps[f"{name}DsUsers"] = by_user_histogram(buckets[name], SumMetric.DISKSPACE)

    for name in ("emptyFiles", "mediumFiles"):
        values[f"{name}Ds"] = sum_field(buckets[name], SumMetric.DISKSPACE)
        maps[f"{name}DsUsers"] = by_user_histogram(buckets[name], SumMetric.DISKSPACE)

    smaller = tuple(_FILTERED_BUCKETS.values())
    values["largeFiles"] = _clamped("largeFiles", values["numFiles"] - sum(values[name] for name in smaller))
    values["largeFilesDs"] = _clamped(
        "largeFilesDs",
        values["diskspace"] - sum(values[f"{name}Ds"] for name in smaller),
    )
    per_user_files = maps["numFilesUsers"]
    per_user_disk = maps["diskspaceUsers"]
    maps["largeFilesUsers"] = {
        user: _clamped(
            "largeFiles",
            per_user_files.get(user, 0) - sum(maps[f"{name}Users"].get(user, 0) for name in smaller),
            user,
        )
        for user in users
    }
    maps["largeFilesDsUsers"] = {
        user: _clamped(
            "largeFilesDs",
            per_user_disk.get(user, 0) - sum(maps[f"{name}DsUsers"].get(user, 0) for name in smaller),
            user,
        )
        for user in users
    }
    return files_24h


def watched_aggregates(entries: Sequence[Entry], watched: Collection[str]) -> dict[str, tuple[int, int]]:
    """Exact (count, disk space) per watched directory.

    The full collection is filtered once per common ancestor; each watched
    directory below it is then filtered from that smaller subset only.
    """
    result: dict[str, tuple[int, int]] = {}
    for ancestor in PathTrie(watched).common_ancestors():
        subset = combined_filter(entries, under_directory(ancestor))
        for directory in watched:
            if not is_under(directory, ancestor):
                continue
            inodes = subset if directory == ancestor else combined_filter(subset, under_directory(directory))
            result[directory] = (len(inodes), sum_field(inodes, SumMetric.DISKSPACE))
    return result


def _directory_metrics(
    files: Sequence[Entry],
    files_24h: Sequence[Entry],
    watched: Collection[str],
    config: AppConfig,
    maps: dict[str, dict[str, int]],
) -> dict[str, DirectoryStats]:
    depth, top = config.dir_depth, config.top_dirs
    dir_count = slice_to_top(parent_dir_histogram(files, depth, SumMetric.COUNT), top)
    dir_ds = slice_to_top(parent_dir_histogram(files, depth, SumMetric.DISKSPACE), top)
    dir_count_24h = slice_to_top(parent_dir_histogram(files_24h, depth, SumMetric.COUNT), top)
    dir_ds_24h = slice_to_top(parent_dir_histogram(files_24h, depth, SumMetric.DISKSPACE), top)

    exact = watched_aggregates(files, watched)
    exact_24h = watched_aggregates(files_24h, watched)
    stats: dict[str, DirectoryStats] = {}
    for directory in watched:
        count, disk_space = exact.get(directory, (0, 0))
        count_24h, disk_space_24h = exact_24h.get(directory, (0, 0))
        dir_count[directory] = count
        dir_ds[directory] = disk_space
        dir_count_24h[directory] = count_24h
        dir_ds_24h[directory] = disk_space_24h
        stats[directory] = DirectoryStats(count, disk_space, count_24h, disk_space_24h)

    maps["dirCount"] = dir_count
    maps["dirDs"] = dir_ds
    maps["dirCount24h"] = dir_count_24h
    maps["dirDs24h"] = dir_ds_24h
    return stats


def _quota_metrics(
    dirs: Sequence[Entry],
    users: Collection[str],
    values: dict[str, int],
    maps: dict[str, dict[str, int]],
) -> tuple[dict[str, dict[str, int]], dict[str, dict[str, int]]]:
    quota_dirs: defaultdict[str, list[Entry]] = defaultdict(list)
    for entry in dirs:
        if entry.has_quota:
            quota_dirs[entry.owner].append(entry)

    ns_quotas: dict[str, dict[str, int]] = {}
    ds_quotas: dict[str, dict[str, int]] = {}
    counts: dict[str, dict[str, int]] = {
        "nsQuotaCountsUsers": {},
        "dsQuotaCountsUsers": {},
        "nsQuotaThreshCountsUsers": {},
        "dsQuotaThreshCountsUsers": {},
    }
    for user in users:
        owned = quota_dirs.get(user, [])
        for prefix, metric, target in (
            ("ns", QuotaMetric.NAMESPACE, ns_quotas),
            ("ds", QuotaMetric.DISKSPACE, ds_quotas),
        ):
            ratios = dir_quota_histogram(owned, metric)
            target[user] = ratios
            counts[f"{prefix}QuotaCountsUsers"][user] = len(ratios)
            counts[f"{prefix}QuotaThreshCountsUsers"][user] = sum(
                1 for ratio in ratios.values() if exceeds_quota_threshold(ratio)
            )

    for prefix in ("ns", "ds"):
        values[f"{prefix}QuotaCount"] = sum(counts[f"{prefix}QuotaCountsUsers"].values())
        values[f"{prefix}QuotaThreshCount"] = sum(counts[f"{prefix}QuotaThreshCountsUsers"].values())
    maps.update(counts)
    return ns_quotas, ds_quotas


def build_snapshot(
    files: Sequence[Entry],
    dirs: Sequence[Entry],
    *,
    capacity: int = 0,
    watched: Collection[str] = (),
    logins: Mapping[str, int] | None = None,
    fresh_logins: Mapping[str, int] | None = None,
    now: float | None = None,
    config: AppConfig | None = None,
    cancel_check: CancelCheck | None = None,
) -> Snapshot:
    """Compute every suggestion metric from *files* and *dirs*.

    *now* is the single reference time for all age predicates of the pass.
    Raises :class:`RefreshCancelled` when *cancel_check* fires between steps.
    """
    config = config or AppConfig()
    now = time.time() if now is None else now
    started = time.perf_counter()
    watched = frozenset(watched)

    users = {entry.owner for entry in files} | {entry.owner for entry in dirs}
    values: dict[str, int] = {}
    maps: dict[str, dict[str, int]] = {}

    _checkpoint(cancel_check, "bucket metrics")
    files_24h = _bucket_metrics(files, dirs, users, now, values, maps)

    _checkpoint(cancel_check, "directory metrics")
    watched_stats = _directory_metrics(files, files_24h, watched, config, maps)

    _checkpoint(cancel_check, "quota metrics")
    ns_quotas, ds_quotas = _quota_metrics(dirs, users, values, maps)

    _checkpoint(cancel_check, "modification time histograms")
    maps["modTimeCount"] = mod_time_histogram(files, SumMetric.COUNT)
    maps["modTimeDiskspace"] = mod_time_histogram(files, SumMetric.DISKSPACE)

    report_time = int(time.time() * 1000)
    values["capacity"] = capacity
    values["timeTaken"] = int((time.perf_counter() - started) * 1000)
    values["reportTime"] = report_time

    merged_logins = dict(logins or {})
    merged_logins.update(fresh_logins or {})

    logger.debug("Computed %d values and %d maps for %d users.", len(values), len(maps), len(users))
    return Snapshot.create(
        values=values,
        maps=maps,
        ns_quotas=ns_quotas,
        ds_quotas=ds_quotas,
        logins=merged_logins,
        users=users,
        directories=watched,
        watched=watched_stats,
        report_time=report_time,
    )
