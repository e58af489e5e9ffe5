"""
Reference-data caching with freshness windows, durable snapshots and
stale-while-revalidate for campaign notes.
"""
from .core import CacheEntry, DataCategory, ReferenceDataError, is_entry_valid, now_ms
from .ttl_policies import TTL_CONFIG, get_ttl_for_category
from .observers import ObserverList
from .storage import KeyValueStorage, MemoryStorage, SqlStorage, StorageResult
from .coalescer import AsyncRequestCoalescer
from .races import RacesCache
from .wiki import WikiCache
from .class_features import ClassFeaturesCache
from .campaign_notes import CampaignNotesCache, CampaignNotesService, NotesResult
from .notes_watcher import CampaignNotesWatcher, NotesState
from .manager import CacheRegistry

__all__ = [
    # Core types
    "CacheEntry",
    "DataCategory",
    "ReferenceDataError",
    "is_entry_valid",
    "now_ms",
    # TTL policies
    "TTL_CONFIG",
    "get_ttl_for_category",
    # Notification and storage
    "ObserverList",
    "KeyValueStorage",
    "MemoryStorage",
    "SqlStorage",
    "StorageResult",
    # Coalescing
    "AsyncRequestCoalescer",
    # Caches
    "RacesCache",
    "WikiCache",
    "ClassFeaturesCache",
    "CampaignNotesCache",
    "CampaignNotesService",
    "NotesResult",
    "CampaignNotesWatcher",
    "NotesState",
    # Registry
    "CacheRegistry",
]
