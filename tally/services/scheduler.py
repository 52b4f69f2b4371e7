from __future__ import annotations

import logging
import threading
from typing import Callable

from result import Err

from tally.scan.sources import MetadataSource
from tally.services.engine import RefreshResult, SuggestionsEngine

logger = logging.getLogger(__name__)

SourceFactory = Callable[[], MetadataSource]


class RefreshScheduler:
    """Runs ``engine.refresh`` on a fixed interval in a background thread.

    A fresh source is requested from *source_factory* for every pass so each
    pass sees its own point-in-time view. ``max_runs`` stops the loop after
    that many passes; ``None`` runs until :meth:`stop`.
    """

    def __init__(
        self,
        engine: SuggestionsEngine,
        source_factory: SourceFactory,
        interval: float,
        max_runs: int | None = None,
    ) -> None:
        self._engine = engine
        self._source_factory = source_factory
        self._interval = max(0.0, interval)
        self._max_runs = max_runs
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0
        self.last_result: RefreshResult | None = None

    def run_once(self) -> RefreshResult:
        result = self._engine.refresh(self._source_factory(), cancel_check=self._stop.is_set)
        self.runs += 1
        self.last_result = result
        if isinstance(result, Err):
            error = result.unwrap_err()
            logger.error("Scheduled refresh failed (%s): %s", error.code.value, error.message)
        return result

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                self.runs += 1
                logger.exception("Scheduled refresh raised; continuing with the next pass.")
            if self._max_runs is not None and self.runs >= self._max_runs:
                break
            if self._stop.wait(self._interval):
                break

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="tally-refresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
