"""Read API over the currently published snapshot.

Every call reads the published snapshot reference exactly once, so a
response is always composed from a single aggregation pass. Before the first
pass completes every query returns an empty result.
"""

from __future__ import annotations

from enum import Enum
from typing import TypeVar

from tally.models.enums import EngineState, QuotaMetric, SumMetric
from tally.models.errors import InvalidArgument
from tally.models.snapshot import Snapshot
from tally.services.publisher import SnapshotPublisher
from tally.services.query import slice_to_bottom, slice_to_top, sort_by_value
from tally.services.watches import DirectoryWatches, normalize_directory

_E = TypeVar("_E", bound=Enum)

USER_SUGGESTIONS: tuple[str, ...] = (
    "diskspace",
    "diskspace24h",
    "numFiles",
    "numFiles24h",
    "numDirs",
    "emptyFiles",
    "emptyFilesDs",
    "emptyFiles24h",
    "emptyFiles1yr",
    "emptyFilesMem",
    "emptyFiles24hMem",
    "emptyDirs",
    "emptyDirs24h",
    "emptyDirs1yr",
    "emptyDirsMem",
    "emptyDirs24hMem",
    "tinyFiles",
    "tinyFiles24h",
    "tinyFiles1yr",
    "tinyFilesMem",
    "tinyFiles24hMem",
    "tinyFilesDs",
    "tinyFiles24hDs",
    "smallFiles",
    "smallFiles24h",
    "smallFiles1yr",
    "smallFilesMem",
    "smallFiles24hMem",
    "smallFilesDs",
    "smallFiles24hDs",
    "mediumFiles",
    "mediumFilesDs",
    "largeFiles",
    "largeFilesDs",
    "oldFiles1yr",
    "oldFiles1yrDs",
    "oldFiles2yr",
    "oldFiles2yrDs",
    "nsQuotaCount",
    "dsQuotaCount",
    "nsQuotaThreshCount",
    "dsQuotaThreshCount",
)

_IRREGULAR_MAPS = {
    "nsQuotaCount": "nsQuotaCountsUsers",
    "dsQuotaCount": "dsQuotaCountsUsers",
    "nsQuotaThreshCount": "nsQuotaThreshCountsUsers",
    "dsQuotaThreshCount": "dsQuotaThreshCountsUsers",
}


def user_map_name(suggestion: str) -> str:
    return _IRREGULAR_MAPS.get(suggestion, f"{suggestion}Users")


DIRECTORY_MAPS: tuple[str, ...] = ("dirCount", "dirDs", "dirCount24h", "dirDs24h")

GROUPED_METRICS: frozenset[str] = frozenset(
    [user_map_name(name) for name in USER_SUGGESTIONS]
    + list(DIRECTORY_MAPS)
    + ["modTimeCount", "modTimeDiskspace"]
)

# Issue name -> grouped metric it ranks.
ISSUE_METRICS: tuple[tuple[str, str], ...] = (
    ("emptyFiles", "emptyFilesUsers"),
    ("emptyDirs", "emptyDirsUsers"),
    ("tinyFiles", "tinyFilesUsers"),
    ("smallFiles", "smallFilesUsers"),
    ("emptyFiles24h", "emptyFiles24hUsers"),
    ("emptyDirs24h", "emptyDirs24hUsers"),
    ("tinyFiles24h", "tinyFiles24hUsers"),
    ("smallFiles24h", "smallFiles24hUsers"),
    ("oldFiles1yr", "oldFiles1yrUsers"),
    ("dirCount", "dirCount"),
    ("dirDiskspace", "dirDs"),
    ("dirCount24h", "dirCount24h"),
    ("dirDiskspace24h", "dirDs24h"),
)


def _parse(enum_cls: type[_E], value: str | _E | None, allowed: tuple[_E, ...], what: str) -> _E:
    choices = " or ".join(member.value for member in allowed)
    if value is None or value == "":
        raise InvalidArgument(f"Please define a sum of either {choices} for {what}.")
    try:
        parsed = enum_cls(value)
    except ValueError:
        raise InvalidArgument(f"Please choose between {choices} for {what}.") from None
    if parsed not in allowed:
        raise InvalidArgument(f"Please choose between {choices} for {what}.")
    return parsed


_SUMS = (SumMetric.COUNT, SumMetric.DISKSPACE)
_QUOTAS = (QuotaMetric.NAMESPACE, QuotaMetric.DISKSPACE)


class SuggestionsFacade:
    def __init__(self, publisher: SnapshotPublisher, watches: DirectoryWatches | None = None) -> None:
        self._publisher = publisher
        self._watches = watches

    @property
    def state(self) -> EngineState:
        return self._publisher.state

    def _snapshot(self) -> Snapshot | None:
        return self._publisher.current()

    def suggestions(self, user: str | None = None) -> dict[str, int]:
        """Scalar metrics, or the same metrics narrowed to *user*."""
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        result = dict(snapshot.values)
        if not user:
            return result
        for name in USER_SUGGESTIONS:
            result[name] = snapshot.grouped(user_map_name(name)).get(user, 0)
        result["lastLogin"] = snapshot.logins.get(user, 0)
        return result

    def quota_ratios(self, metric: str | QuotaMetric, user: str | None = None) -> dict[str, object]:
        parsed = _parse(QuotaMetric, metric, _QUOTAS, "Quotas")
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        quotas = snapshot.ns_quotas if parsed is QuotaMetric.NAMESPACE else snapshot.ds_quotas
        if user:
            return dict(sort_by_value(quotas.get(user, {}), ascending=False))
        return {name: dict(ratios) for name, ratios in quotas.items()}

    def file_ages(self, metric: str | SumMetric) -> dict[str, int]:
        parsed = _parse(SumMetric, metric, _SUMS, "File ages")
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        name = "modTimeCount" if parsed is SumMetric.COUNT else "modTimeDiskspace"
        return dict(snapshot.grouped(name))

    def users(self, suggestion: str | None = None) -> list[str] | dict[str, int]:
        if suggestion and suggestion not in GROUPED_METRICS:
            raise InvalidArgument(f"{suggestion} is not a valid suggestion query.")
        snapshot = self._snapshot()
        if not suggestion:
            return sorted(snapshot.users) if snapshot is not None else []
        if snapshot is None:
            return {}
        return dict(snapshot.grouped(suggestion))

    def directories(self, metric: str | SumMetric, directory: str | None = None) -> dict[str, int | None]:
        parsed = _parse(SumMetric, metric, _SUMS, "Directories")
        if directory:
            directory = normalize_directory(directory)
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        dir_map = snapshot.grouped("dirCount" if parsed is SumMetric.COUNT else "dirDs")
        if directory:
            return {directory: dir_map.get(directory)}
        return dict(dir_map)

    def issues(self, limit: int, ascending: bool = False) -> dict[str, dict[str, int]]:
        """Rank each problem metric and keep *limit* entries per metric.

        Ties are broken on the key name, ascending, in both directions.
        """
        if limit < 0:
            raise InvalidArgument(f"Limit must not be negative, got {limit}.")
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        slicer = slice_to_bottom if ascending else slice_to_top
        return {name: slicer(snapshot.grouped(source), limit) for name, source in ISSUE_METRICS}

    def last_logins(self) -> dict[str, int]:
        snapshot = self._snapshot()
        if snapshot is None:
            return {}
        return sort_by_value(snapshot.logins, ascending=False)

    def watched_directories(self) -> list[str]:
        if self._watches is None:
            return []
        return sorted(self._watches.copy())
