from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TallyError(Exception):
    """Base class for errors raised by the suggestions engine."""


class InvalidArgument(TallyError, ValueError):
    pass


class AlreadyWatched(TallyError):
    def __init__(self, directory: str) -> None:
        super().__init__(f"{directory} already set for analysis.")
        self.directory = directory


class NotWatched(TallyError):
    def __init__(self, directory: str) -> None:
        super().__init__(f"{directory} was not scheduled for analysis.")
        self.directory = directory


class CapacityUnavailable(TallyError):
    pass


class MetadataUnavailable(TallyError):
    pass


class PersistenceFailure(TallyError):
    pass


class RefreshCancelled(TallyError):
    pass


class RefreshErrorCode(str, Enum):
    BUSY = "busy"
    CANCELLED = "cancelled"
    SOURCE_FAILED = "source_failed"
    INTERNAL = "internal"


@dataclass(slots=True, frozen=True)
class RefreshError:
    code: RefreshErrorCode
    message: str
