from __future__ import annotations

import logging
import threading

from tally.models.enums import EngineState
from tally.models.snapshot import Snapshot

logger = logging.getLogger(__name__)


class SnapshotPublisher:
    """Holds the snapshot currently served to readers.

    Publishing replaces the whole snapshot reference in one assignment, so a
    reader that fetched :meth:`current` keeps a consistent view even while a
    newer snapshot is published.
    """

    def __init__(self) -> None:
        self._snapshot: Snapshot | None = None
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def state(self) -> EngineState:
        return EngineState.EMPTY if self._snapshot is None else EngineState.READY

    @property
    def generation(self) -> int:
        return self._generation

    def current(self) -> Snapshot | None:
        return self._snapshot

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._generation += 1
            generation = self._generation
        logger.info("Published snapshot #%d (report time %d).", generation, snapshot.report_time)
