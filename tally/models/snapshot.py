from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(slots=True, frozen=True)
class DirectoryStats:
    count: int = 0
    disk_space: int = 0
    count_24h: int = 0
    disk_space_24h: int = 0


def _freeze(mapping: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(mapping))


def _freeze_nested(mapping: Mapping[str, Mapping[str, int]]) -> Mapping[str, Mapping[str, int]]:
    return MappingProxyType({key: _freeze(inner) for key, inner in mapping.items()})


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Result of one aggregation pass.

    Built once and never mutated afterwards: every mapping is a read-only
    proxy over a private copy, so readers can hold on to it while the next
    pass runs.
    """

    values: Mapping[str, int]
    maps: Mapping[str, Mapping[str, int]]
    ns_quotas: Mapping[str, Mapping[str, int]]
    ds_quotas: Mapping[str, Mapping[str, int]]
    logins: Mapping[str, int]
    users: frozenset[str]
    directories: frozenset[str] = frozenset()
    watched: Mapping[str, DirectoryStats] = field(default_factory=lambda: MappingProxyType({}))
    report_time: int = 0

    @classmethod
    def create(
        cls,
        *,
        values: Mapping[str, int],
        maps: Mapping[str, Mapping[str, int]],
        ns_quotas: Mapping[str, Mapping[str, int]],
        ds_quotas: Mapping[str, Mapping[str, int]],
        logins: Mapping[str, int],
        users: Iterable[str],
        directories: Iterable[str] = (),
        watched: Mapping[str, DirectoryStats] | None = None,
        report_time: int = 0,
    ) -> Snapshot:
        return cls(
            values=_freeze(values),
            maps=_freeze_nested(maps),
            ns_quotas=_freeze_nested(ns_quotas),
            ds_quotas=_freeze_nested(ds_quotas),
            logins=_freeze(logins),
            users=frozenset(users),
            directories=frozenset(directories),
            watched=MappingProxyType(dict(watched or {})),
            report_time=report_time,
        )

    def value(self, name: str) -> int:
        return self.values.get(name, 0)

    def grouped(self, name: str) -> Mapping[str, int]:
        return self.maps.get(name, MappingProxyType({}))
