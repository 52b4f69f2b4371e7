"""Refresh orchestration and long-lived state.

The engine owns the state that outlives a snapshot (watched directories and
the cumulative login map), runs at most one aggregation pass at a time and
publishes its result. The published snapshot is mirrored into the cache
store so a restarted process can serve it again before its first refresh.
"""

from __future__ import annotations

import logging
import threading
import time
from types import TracebackType

from result import Err, Ok, Result

from tally.config.schema import AppConfig
from tally.models.enums import EngineState, NodeKind
from tally.models.errors import (
    CapacityUnavailable,
    MetadataUnavailable,
    PersistenceFailure,
    RefreshCancelled,
    RefreshError,
    RefreshErrorCode,
)
from tally.models.scan import CancelCheck
from tally.models.snapshot import DirectoryStats, Snapshot
from tally.scan.sources import MetadataSource
from tally.services.facade import SuggestionsFacade
from tally.services.pipeline import build_snapshot
from tally.services.publisher import SnapshotPublisher
from tally.services.watches import DirectoryWatches
from tally.store.cache import CacheStore, MemoryCacheStore
from tally.store.history import HistoryWriter

logger = logging.getLogger(__name__)

CACHED_DIRS = "cachedDirs"
CACHED_USERS = "cachedUsers"
CACHED_VALUES = "cachedValues"
CACHED_LOGINS = "cachedLogins"
CACHED_MAPS = "cachedMaps"
CACHED_NS_QUOTAS = "cachedUserNsQuotas"
CACHED_DS_QUOTAS = "cachedUserDsQuotas"

type RefreshResult = Result[Snapshot, RefreshError]


class SuggestionsEngine:
    def __init__(
        self,
        config: AppConfig | None = None,
        store: CacheStore | None = None,
        history: HistoryWriter | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._store: CacheStore = store or MemoryCacheStore()
        self._history = history
        self._publisher = SnapshotPublisher()
        self._refresh_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._logins_lock = threading.Lock()
        self._logins: dict[str, int] = {}
        self._watches: DirectoryWatches | None = None
        self._facade: SuggestionsFacade | None = None

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        self._store.start(self._config)
        self._watches = DirectoryWatches(self._store.get_or_create_set(CACHED_DIRS))
        self._logins = self._store.get_or_create_map(CACHED_LOGINS)
        self._facade = SuggestionsFacade(self._publisher, self._watches)
        if self._config.restore_snapshot:
            restored = self._restore()
            if restored is not None:
                self._publisher.publish(restored)
                logger.info("Restored snapshot (report time %d) from the cache store.", restored.report_time)

    def stop(self) -> None:
        self._store.stop()
        self._watches = None
        self._facade = None

    def __enter__(self) -> SuggestionsEngine:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # -- accessors -------------------------------------------------------

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._publisher.state

    @property
    def publisher(self) -> SnapshotPublisher:
        return self._publisher

    @property
    def watches(self) -> DirectoryWatches:
        if self._watches is None:
            raise RuntimeError("Engine is not started.")
        return self._watches

    @property
    def facade(self) -> SuggestionsFacade:
        if self._facade is None:
            raise RuntimeError("Engine is not started.")
        return self._facade

    def add_watch(self, directory: str) -> str:
        added = self.watches.add(directory)
        self.save()
        return added

    def remove_watch(self, directory: str) -> str:
        removed = self.watches.remove(directory)
        self.save()
        return removed

    # -- refresh ---------------------------------------------------------

    def refresh(self, source: MetadataSource, cancel_check: CancelCheck | None = None) -> RefreshResult:
        """Run one aggregation pass and publish it.

        An overlapping call is rejected with ``RefreshErrorCode.BUSY``. Any
        failure leaves the previously published snapshot in place.
        """
        if not self._refresh_lock.acquire(blocking=False):
            return Err(RefreshError(RefreshErrorCode.BUSY, "A refresh is already running."))
        try:
            return self._refresh(source, cancel_check)
        finally:
            self._refresh_lock.release()

    def _refresh(self, source: MetadataSource, cancel_check: CancelCheck | None) -> RefreshResult:
        watches = self.watches
        started = time.perf_counter()
        try:
            files = source.list_entries(NodeKind.FILE)
            dirs = source.list_entries(NodeKind.DIRECTORY)
            fresh_logins = source.last_login_times()
        except MetadataUnavailable as exc:
            logger.error("Metadata source failed: %s", exc)
            return Err(RefreshError(RefreshErrorCode.SOURCE_FAILED, str(exc)))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Metadata source raised unexpectedly; keeping the previous snapshot.")
            return Err(RefreshError(RefreshErrorCode.SOURCE_FAILED, f"Metadata source failed: {exc}"))

        capacity = self._capacity(source)
        with self._logins_lock:
            known_logins = dict(self._logins)

        try:
            snapshot = build_snapshot(
                files,
                dirs,
                capacity=capacity,
                watched=watches.copy(),
                logins=known_logins,
                fresh_logins=fresh_logins,
                config=self._config,
                cancel_check=cancel_check,
            )
        except RefreshCancelled as exc:
            logger.warning("%s Keeping the previous snapshot.", exc)
            return Err(RefreshError(RefreshErrorCode.CANCELLED, str(exc)))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Refresh pass failed; keeping the previous snapshot.")
            return Err(RefreshError(RefreshErrorCode.INTERNAL, f"Refresh failed: {exc}"))

        with self._logins_lock:
            self._logins.update(fresh_logins)
        self._publisher.publish(snapshot)
        logger.info(
            "Reloading suggestions took %d ms (%d ms aggregating).",
            int((time.perf_counter() - started) * 1000),
            snapshot.value("timeTaken"),
        )

        self._record_history(snapshot)
        self._persist(snapshot)
        return Ok(snapshot)

    def _capacity(self, source: MetadataSource) -> int:
        try:
            return source.total_capacity()
        except CapacityUnavailable as exc:
            logger.warning("Capacity unavailable, using 0: %s", exc)
            return 0

    def _record_history(self, snapshot: Snapshot) -> None:
        if self._history is None:
            logger.info("No historical data written as it is disabled.")
            return
        started = time.perf_counter()
        try:
            self._history.record_snapshot(snapshot.values, snapshot.maps, snapshot.users)
        except PersistenceFailure as exc:
            logger.warning("Failed to write historical data: %s", exc)
            return
        except Exception:  # noqa: BLE001
            logger.exception("History writer failed; snapshot is kept.")
            return
        logger.info("Writing history took %d ms.", int((time.perf_counter() - started) * 1000))

    # -- persistence -----------------------------------------------------

    def save(self) -> bool:
        """Commit the cache store; failures are logged, not raised."""
        with self._persist_lock:
            return self._commit()

    def _commit(self) -> bool:
        try:
            self._store.commit()
        except PersistenceFailure as exc:
            logger.warning("Failed to write cache data: %s", exc)
            return False
        return True

    def _persist(self, snapshot: Snapshot) -> None:
        started = time.perf_counter()
        with self._persist_lock:
            values = self._store.get_or_create_map(CACHED_VALUES)
            values.clear()
            values.update(snapshot.values)
            users = self._store.get_or_create_set(CACHED_USERS)
            users.clear()
            users.update(snapshot.users)
            for name, source in (
                (CACHED_MAPS, snapshot.maps),
                (CACHED_NS_QUOTAS, snapshot.ns_quotas),
                (CACHED_DS_QUOTAS, snapshot.ds_quotas),
            ):
                target = self._store.get_or_create_map_of_maps(name)
                target.clear()
                target.update({key: dict(inner) for key, inner in source.items()})
            committed = self._commit()
        if committed:
            logger.info("Writing to the cache store took %d ms.", int((time.perf_counter() - started) * 1000))

    def _restore(self) -> Snapshot | None:
        values = self._store.get_or_create_map(CACHED_VALUES)
        if not values:
            return None
        maps = self._store.get_or_create_map_of_maps(CACHED_MAPS)
        directories = self.watches.copy()
        watched = {
            directory: DirectoryStats(
                count=maps.get("dirCount", {}).get(directory, 0),
                disk_space=maps.get("dirDs", {}).get(directory, 0),
                count_24h=maps.get("dirCount24h", {}).get(directory, 0),
                disk_space_24h=maps.get("dirDs24h", {}).get(directory, 0),
            )
            for directory in directories
            if directory in maps.get("dirCount", {})
        }
        with self._logins_lock:
            logins = dict(self._logins)
        return Snapshot.create(
            values=values,
            maps=maps,
            ns_quotas=self._store.get_or_create_map_of_maps(CACHED_NS_QUOTAS),
            ds_quotas=self._store.get_or_create_map_of_maps(CACHED_DS_QUOTAS),
            logins=logins,
            users=self._store.get_or_create_set(CACHED_USERS),
            directories=watched.keys(),
            watched=watched,
            report_time=values.get("reportTime", 0),
        )
