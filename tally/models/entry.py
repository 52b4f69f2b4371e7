from __future__ import annotations

from dataclasses import dataclass

from tally.models.enums import NodeKind


@dataclass(slots=True, frozen=True)
class Entry:
    """One file or directory as seen by a single refresh pass.

    Timestamps are epoch seconds. Quota ratios are percent used and only set
    on directories that carry a quota of that type.
    """

    path: str
    kind: NodeKind
    owner: str
    size: int = 0
    disk_space: int = 0
    memory: int = 0
    mtime: float = 0.0
    atime: float = 0.0
    children: int = 0
    ns_quota_ratio: int | None = None
    ds_quota_ratio: int | None = None

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    @property
    def has_quota(self) -> bool:
        return self.ns_quota_ratio is not None or self.ds_quota_ratio is not None


def file_entry(path: str, owner: str, size: int = 0, **fields: object) -> Entry:
    fields.setdefault("disk_space", size)
    return Entry(path=path, kind=NodeKind.FILE, owner=owner, size=size, **fields)  # type: ignore[arg-type]


def dir_entry(path: str, owner: str, **fields: object) -> Entry:
    return Entry(path=path, kind=NodeKind.DIRECTORY, owner=owner, **fields)  # type: ignore[arg-type]
