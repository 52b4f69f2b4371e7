from __future__ import annotations

from enum import Enum


class NodeKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class SizeBucket(str, Enum):
    EMPTY = "empty"
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class AgeWindow(str, Enum):
    RECENT_24H = "24h"
    STALE_1YR = "1yr"
    STALE_2YR = "2yr"


class SumMetric(str, Enum):
    COUNT = "count"
    DISKSPACE = "diskspaceConsumed"
    MEMORY = "memoryConsumed"


class QuotaMetric(str, Enum):
    NAMESPACE = "nsQuotaRatioUsed"
    DISKSPACE = "dsQuotaRatioUsed"


class EngineState(str, Enum):
    EMPTY = "empty"
    READY = "ready"
