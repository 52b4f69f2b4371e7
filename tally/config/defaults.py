from __future__ import annotations

from pathlib import Path

from tally.config.schema import AppConfig


def default_config() -> AppConfig:
    cache_dir = Path.home() / ".cache" / "tally"
    return AppConfig(
        cache_path=str(cache_dir / "cache.db"),
        history_path=None,
        dir_depth=3,
        top_dirs=1000,
        scan_workers=4,
        refresh_interval=300.0,
        top_count=15,
        restore_snapshot=True,
    )
