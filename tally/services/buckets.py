from __future__ import annotations

from tally.models.entry import Entry
from tally.models.enums import AgeWindow, SizeBucket

TINY_MAX = 1024
SMALL_MAX = 1_048_576
MEDIUM_MAX = 134_217_728

QUOTA_THRESHOLD = 85

HOUR = 3600
DAY = 24 * HOUR
YEAR = 365 * DAY

_WINDOW_YEARS: dict[AgeWindow, int] = {
    AgeWindow.STALE_1YR: 1,
    AgeWindow.STALE_2YR: 2,
}


def size_bucket(size: int) -> SizeBucket:
    if size == 0:
        return SizeBucket.EMPTY
    if 0 < size <= TINY_MAX:
        return SizeBucket.TINY
    if TINY_MAX < size <= SMALL_MAX:
        return SizeBucket.SMALL
    if SMALL_MAX < size <= MEDIUM_MAX:
        return SizeBucket.MEDIUM
    return SizeBucket.LARGE


def in_size_bucket(entry: Entry, bucket: SizeBucket) -> bool:
    return size_bucket(entry.size) is bucket


def is_empty_dir(entry: Entry) -> bool:
    return entry.is_dir and entry.children == 0


def modified_within(entry: Entry, seconds: float, now: float) -> bool:
    return entry.mtime >= now - seconds


def older_than_years(entry: Entry, years: int, now: float) -> bool:
    """Directories are aged by modification time; files by access time."""
    stamp = entry.mtime if entry.is_dir else entry.atime
    return stamp < now - years * YEAR


def in_age_window(entry: Entry, window: AgeWindow, now: float) -> bool:
    if window is AgeWindow.RECENT_24H:
        return modified_within(entry, DAY, now)
    return older_than_years(entry, _WINDOW_YEARS[window], now)


def exceeds_quota_threshold(ratio: int) -> bool:
    return ratio > QUOTA_THRESHOLD
