"""
Race name cache: id -> display name, shared by every character view.

The whole map is held in memory as one value and mirrored to durable
storage with a single timestamp, so a restart within the freshness window
does not need a full-table fetch.
"""
import json
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from .coalescer import AsyncRequestCoalescer
from .core import CacheEntry, Clock, DataCategory, ReferenceDataError, now_ms
from .observers import ObserverList
from .storage import KeyValueStorage, discard_storage_failure
from .ttl_policies import get_ttl_for_category

logger = logging.getLogger("cache.races")

STORAGE_KEY = "uoc.racesById.v1"

RacesById = Mapping[str, str]
FetchAllRaces = Callable[[], Awaitable[Dict[str, Any]]]


def _build_map(records: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    return {str(r["id"]): r["name"] for r in records}


class RacesCache:
    """
    Process-wide cache of race names keyed by race id.

    Every mutation replaces the map wholesale, persists it and notifies
    subscribers with a read-only view of the new map (or None after
    invalidate). Concurrent cold calls to ensure_loaded() each fetch
    unless single_flight is enabled.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        fetch_all_races: FetchAllRaces,
        ttl_ms: Optional[int] = None,
        clock: Clock = now_ms,
        single_flight: bool = False,
    ):
        self._storage = storage
        self._fetch_all_races = fetch_all_races
        self._ttl_ms = ttl_ms if ttl_ms is not None else get_ttl_for_category(DataCategory.RACE_NAMES)[0]
        self._clock = clock
        self._map: Optional[Dict[str, str]] = None
        self._observers: ObserverList[Optional[RacesById]] = ObserverList("races-cache")
        self._coalescer = AsyncRequestCoalescer() if single_flight else None

    # ----- reads -----

    def get(self) -> Optional[RacesById]:
        if self._map is None:
            return None
        return MappingProxyType(self._map)

    def get_name(self, race_id: str) -> Optional[str]:
        if self._map is None:
            return None
        return self._map.get(str(race_id))

    # ----- loading -----

    async def ensure_loaded(self) -> None:
        """
        Make sure the map is in memory.

        Order: memory, then a fresh durable snapshot, then a full fetch.
        Fetch failures propagate as ReferenceDataError; nothing is retried.
        """
        if self._map is not None:
            return

        snapshot = self._load_snapshot()
        if snapshot is not None:
            logger.info(f"Adopted race names from storage ({len(snapshot)} entries)")
            self._replace(snapshot, persist=False)
            return

        if self._coalescer is not None:
            # Only the initiating caller adopts the map
            await self._coalescer.get_or_fetch(STORAGE_KEY, self._fetch_and_adopt)
        else:
            await self._fetch_and_adopt()

    async def _fetch_and_adopt(self) -> None:
        logger.info("Fetching all races")
        try:
            result = await self._fetch_all_races()
        except Exception as e:
            raise ReferenceDataError(f"Failed to load races: {e}") from e
        if result.get("error"):
            raise ReferenceDataError(f"Failed to load races: {result['error']}")
        self._replace(_build_map(result.get("races") or []))

    # ----- mutations -----

    def set_from_list(self, records: Iterable[Mapping[str, Any]]) -> None:
        """Replace the whole map from records carrying id and name."""
        self._replace(_build_map(records))

    def upsert(self, race_id: str, name: str) -> None:
        mapping = dict(self._map or {})
        mapping[str(race_id)] = name
        self._replace(mapping)

    def remove(self, race_id: str) -> None:
        if self._map is None:
            return
        mapping = dict(self._map)
        mapping.pop(str(race_id), None)
        self._replace(mapping)

    def invalidate(self) -> None:
        """Drop the in-memory map and the durable snapshot."""
        self._map = None
        discard_storage_failure(self._storage.remove(STORAGE_KEY), "remove", STORAGE_KEY)
        logger.info("Invalidated race names")
        self._observers.notify(None)

    def subscribe(self, listener: Callable[[Optional[RacesById]], None]) -> Callable[[], None]:
        return self._observers.subscribe(listener)

    # ----- internals -----

    def _replace(self, mapping: Dict[str, str], persist: bool = True) -> None:
        self._map = mapping
        if persist:
            self._save_snapshot(mapping)
        self._observers.notify(MappingProxyType(mapping))

    def _load_snapshot(self) -> Optional[Dict[str, str]]:
        result = self._storage.read(STORAGE_KEY)
        if not result.ok:
            discard_storage_failure(result, "read", STORAGE_KEY)
            return None
        if result.value is None:
            return None
        try:
            parsed = json.loads(result.value)
            entry = CacheEntry(data=parsed["map"], timestamp=int(parsed["ts"]))
        except (ValueError, TypeError, KeyError) as e:
            logger.debug(f"Ignoring unreadable race names snapshot: {e}")
            return None
        if not isinstance(entry.data, dict) or not entry.timestamp:
            return None
        if not all(isinstance(name, str) for name in entry.data.values()):
            logger.debug("Ignoring race names snapshot with non-string names")
            return None
        if not entry.is_valid(self._ttl_ms, self._clock()):
            logger.debug("Race names snapshot expired")
            return None
        return {str(k): v for k, v in entry.data.items()}

    def _save_snapshot(self, mapping: Dict[str, str]) -> None:
        payload = json.dumps({"map": mapping, "ts": self._clock()})
        discard_storage_failure(self._storage.write(STORAGE_KEY, payload), "write", STORAGE_KEY)
