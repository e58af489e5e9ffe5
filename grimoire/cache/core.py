"""
Core cache data structures.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

# Millisecond wall clock; injectable so tests can move time forward
Clock = Callable[[], int]


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class DataCategory(Enum):
    """Categories of cached data with different freshness windows."""
    RACE_NAMES = "race_names"            # 24 hours, durable snapshot
    WIKI_REFERENCE = "wiki_reference"    # 5 minutes, memory only
    CLASS_FEATURES = "class_features"    # 5 minutes, memory only
    CAMPAIGN_NOTES = "campaign_notes"    # 5 minutes, stale after 2, durable


class ReferenceDataError(Exception):
    """Raised when a data-access collaborator fails on a blocking load."""


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    A cached value and the time it was stored.

    Entries are replaced wholesale, never mutated.
    """
    data: T
    timestamp: int  # epoch millis

    def age_ms(self, now: int) -> int:
        return now - self.timestamp

    def is_valid(self, duration_ms: int, now: int) -> bool:
        """Check if the entry is still inside its freshness window."""
        return self.age_ms(now) < duration_ms


def is_entry_valid(entry: Optional[CacheEntry[Any]], duration_ms: int, now: int) -> bool:
    """Freshness check that treats a missing entry as invalid."""
    if entry is None:
        return False
    return entry.is_valid(duration_ms, now)
