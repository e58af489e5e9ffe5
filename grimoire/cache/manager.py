"""
Composition root for the application's caches.

One CacheRegistry is built at application start and closed at shutdown;
request handlers receive it through a FastAPI dependency instead of a
module-level global, so tests can build a fresh registry per test.
"""
import logging
from typing import Any, Dict, List

from config.settings import Settings
from .campaign_notes import CampaignNotesCache, CampaignNotesService
from .class_features import ClassFeaturesCache
from .core import Clock, DataCategory, now_ms
from .notes_watcher import CampaignNotesWatcher
from .races import RacesCache
from .storage import KeyValueStorage
from .ttl_policies import get_refresh_interval, get_ttl_for_category, is_durable
from .wiki import WikiCache

logger = logging.getLogger("cache.manager")


class CacheRegistry:
    """
    Owns every cache instance for the lifetime of the application.

    All consumers share these instances; values inside them are replaced
    wholesale and treated as immutable snapshots.
    """

    def __init__(
        self,
        races: RacesCache,
        wiki: WikiCache,
        class_features: ClassFeaturesCache,
        campaign_notes: CampaignNotesService,
        notes_refresh_interval: float,
    ):
        self.races = races
        self.wiki = wiki
        self.class_features = class_features
        self.campaign_notes = campaign_notes
        self._notes_refresh_interval = notes_refresh_interval
        self._watchers: List[CampaignNotesWatcher] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        data_access,
        storage: KeyValueStorage,
        clock: Clock = now_ms,
    ) -> "CacheRegistry":
        """
        Build every cache from settings.

        Args:
            settings: Freshness windows and feature switches
            data_access: Object exposing the async load_* / get_campaign_notes calls
            storage: Durable storage for the race names and campaign notes snapshots
            clock: Millisecond clock shared by all caches
        """
        races_ttl, _ = get_ttl_for_category(DataCategory.RACE_NAMES, settings)
        wiki_ttl, _ = get_ttl_for_category(DataCategory.WIKI_REFERENCE, settings)
        features_ttl, _ = get_ttl_for_category(DataCategory.CLASS_FEATURES, settings)
        notes_ttl, notes_stale = get_ttl_for_category(DataCategory.CAMPAIGN_NOTES, settings)

        return cls(
            races=RacesCache(
                storage,
                data_access.load_all_races,
                ttl_ms=races_ttl,
                clock=clock,
                single_flight=settings.races_single_flight,
            ),
            wiki=WikiCache(ttl_ms=wiki_ttl, clock=clock),
            class_features=ClassFeaturesCache(
                data_access.load_class_features,
                ttl_ms=features_ttl,
                clock=clock,
            ),
            campaign_notes=CampaignNotesService(
                CampaignNotesCache(storage, ttl_ms=notes_ttl, stale_ms=notes_stale, clock=clock),
                data_access.get_campaign_notes,
            ),
            notes_refresh_interval=get_refresh_interval(settings),
        )

    def create_notes_watcher(self) -> CampaignNotesWatcher:
        """Create a notes watcher that is closed together with the registry."""
        watcher = CampaignNotesWatcher(
            self.campaign_notes,
            refresh_interval=self._notes_refresh_interval,
        )
        self._watchers.append(watcher)
        return watcher

    def clear(self) -> None:
        """Full cache bust, e.g. on logout. Snapshots in storage go too."""
        self.races.invalidate()
        self.wiki.clear()
        self.class_features.clear()
        self.campaign_notes.invalidate_campaign_notes_cache_entry()
        logger.info("Cleared all caches")

    async def close(self) -> None:
        """Stop every watcher's background work."""
        for watcher in self._watchers:
            await watcher.close()
        self._watchers.clear()
        logger.info("Cache registry closed")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        race_names = self.races.get()
        return {
            "races": {
                "loaded": race_names is not None,
                "entries": len(race_names) if race_names is not None else 0,
                "durable": is_durable(DataCategory.RACE_NAMES),
            },
            "wiki": self.wiki.get_stats(),
            "class_features": self.class_features.get_stats(),
            "campaign_notes": {
                **self.campaign_notes.cache.get_stats(),
                "durable": is_durable(DataCategory.CAMPAIGN_NOTES),
            },
            "watchers": len(self._watchers),
        }
