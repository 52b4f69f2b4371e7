from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class AppConfig:
    cache_path: str | None = None
    history_path: str | None = None
    dir_depth: int = 3
    top_dirs: int = 1000
    scan_workers: int = 4
    refresh_interval: float = 300.0
    top_count: int = 15
    restore_snapshot: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "cachePath": self.cache_path,
            "historyPath": self.history_path,
            "dirDepth": self.dir_depth,
            "topDirs": self.top_dirs,
            "scanWorkers": self.scan_workers,
            "refreshInterval": self.refresh_interval,
            "topCount": self.top_count,
            "restoreSnapshot": self.restore_snapshot,
        }


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def from_dict(data: dict[str, Any], defaults: AppConfig) -> AppConfig:
    return AppConfig(
        cache_path=_optional_str(data.get("cachePath", defaults.cache_path)),
        history_path=_optional_str(data.get("historyPath", defaults.history_path)),
        dir_depth=max(1, int(data.get("dirDepth", defaults.dir_depth))),
        top_dirs=max(1, int(data.get("topDirs", defaults.top_dirs))),
        scan_workers=max(1, int(data.get("scanWorkers", defaults.scan_workers))),
        refresh_interval=max(1.0, float(data.get("refreshInterval", defaults.refresh_interval))),
        top_count=max(1, int(data.get("topCount", defaults.top_count))),
        restore_snapshot=bool(data.get("restoreSnapshot", defaults.restore_snapshot)),
    )
