"""
Wiki reference data cache.

Caches classes, races and backgrounds for the wiki pages, plus class
feature lists keyed by base class id. Spells are not cached here as they
change more frequently. Memory only; every read checks freshness and
evicts an expired entry on the spot. There is no background sweep.
"""
import logging
from typing import Any, Dict, List, Optional

from .core import CacheEntry, Clock, DataCategory, is_entry_valid, now_ms
from .ttl_policies import get_ttl_for_category

logger = logging.getLogger("cache.wiki")

Records = List[Any]


class WikiCache:
    def __init__(self, ttl_ms: Optional[int] = None, clock: Clock = now_ms):
        self._ttl_ms = ttl_ms if ttl_ms is not None else get_ttl_for_category(DataCategory.WIKI_REFERENCE)[0]
        self._clock = clock
        self._classes: Optional[CacheEntry[Records]] = None
        self._races: Optional[CacheEntry[Records]] = None
        self._backgrounds: Optional[CacheEntry[Records]] = None
        self._class_features: Dict[str, CacheEntry[Records]] = {}

    def _is_valid(self, entry: Optional[CacheEntry[Records]]) -> bool:
        return is_entry_valid(entry, self._ttl_ms, self._clock())

    def _entry(self, data: Records) -> CacheEntry[Records]:
        return CacheEntry(data=data, timestamp=self._clock())

    # Classes

    def get_classes(self) -> Optional[Records]:
        if self._is_valid(self._classes):
            return self._classes.data
        self._classes = None
        return None

    def set_classes(self, classes: Records) -> None:
        self._classes = self._entry(classes)

    def invalidate_classes(self) -> None:
        """Features derive from class definitions, so they go too."""
        self._classes = None
        self._class_features.clear()

    # Races

    def get_races(self) -> Optional[Records]:
        if self._is_valid(self._races):
            return self._races.data
        self._races = None
        return None

    def set_races(self, races: Records) -> None:
        self._races = self._entry(races)

    def invalidate_races(self) -> None:
        self._races = None

    # Backgrounds

    def get_backgrounds(self) -> Optional[Records]:
        if self._is_valid(self._backgrounds):
            return self._backgrounds.data
        self._backgrounds = None
        return None

    def set_backgrounds(self, backgrounds: Records) -> None:
        self._backgrounds = self._entry(backgrounds)

    def invalidate_backgrounds(self) -> None:
        self._backgrounds = None

    # Class features (keyed by base class id)

    def get_class_features(self, base_class_id: str) -> Optional[Records]:
        cached = self._class_features.get(base_class_id)
        if cached is not None and self._is_valid(cached):
            return cached.data
        if cached is not None:
            del self._class_features[base_class_id]
        return None

    def set_class_features(self, base_class_id: str, features: Records) -> None:
        self._class_features[base_class_id] = self._entry(features)

    def invalidate_class_features(self, base_class_id: Optional[str] = None) -> None:
        if base_class_id:
            self._class_features.pop(base_class_id, None)
        else:
            self._class_features.clear()

    def clear(self) -> None:
        """Reset every slot, e.g. on logout or an explicit refresh."""
        self._classes = None
        self._races = None
        self._backgrounds = None
        self._class_features.clear()
        logger.info("Cleared wiki cache")

    def get_stats(self) -> Dict[str, Any]:
        """
        Report what is held in memory without touching freshness.

        Expired-but-unread entries are still counted here.
        """
        return {
            "classes": self._classes is not None,
            "races": self._races is not None,
            "backgrounds": self._backgrounds is not None,
            "class_feature_keys": sorted(self._class_features.keys()),
        }
