"""
Class features cache.

Caches feature lists per class_id + level + subclass so character sheets
do not hit the database on every render. Entries expire after the class
features freshness window and are evicted lazily on read; cleanup() is an
explicit sweep callers may run on demand.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .core import CacheEntry, Clock, DataCategory, now_ms
from .ttl_policies import get_ttl_for_category

logger = logging.getLogger("cache.class_features")

PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}
PRELOAD_BATCH_SIZE = 3
PRELOAD_BATCH_DELAY_SECONDS = 0.1

LoadClassFeatures = Callable[[str, int, Optional[str]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class PreloadRequest:
    class_id: str
    level: int
    subclass: Optional[str] = None
    priority: str = "medium"


def cache_key(class_id: str, level: int, subclass: Optional[str] = None) -> str:
    return f"{class_id}-{level}-{subclass or 'null'}"


class ClassFeaturesCache:
    def __init__(
        self,
        load_class_features: LoadClassFeatures,
        ttl_ms: Optional[int] = None,
        clock: Clock = now_ms,
        batch_delay: float = PRELOAD_BATCH_DELAY_SECONDS,
    ):
        self._load_class_features = load_class_features
        self._ttl_ms = ttl_ms if ttl_ms is not None else get_ttl_for_category(DataCategory.CLASS_FEATURES)[0]
        self._clock = clock
        self._batch_delay = batch_delay
        self._cache: Dict[str, CacheEntry[List[Any]]] = {}
        self._preload_queue: List[PreloadRequest] = []
        self._is_preloading = False

    def _is_valid(self, entry: CacheEntry[List[Any]]) -> bool:
        return entry.is_valid(self._ttl_ms, self._clock())

    def get(self, class_id: str, level: int, subclass: Optional[str] = None) -> Optional[List[Any]]:
        """Get cached features if they exist and are still fresh."""
        key = cache_key(class_id, level, subclass)
        cached = self._cache.get(key)
        if cached is not None and self._is_valid(cached):
            return cached.data
        if cached is not None:
            del self._cache[key]
        return None

    def set(self, class_id: str, level: int, features: List[Any], subclass: Optional[str] = None) -> None:
        self._cache[cache_key(class_id, level, subclass)] = CacheEntry(
            data=features, timestamp=self._clock()
        )

    def clear(self) -> None:
        self._cache.clear()

    def cleanup(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        expired = [key for key, cached in self._cache.items() if not self._is_valid(cached)]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.info(f"Removed {len(expired)} expired class feature entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "keys": list(self._cache.keys()),
            "entries": [
                {
                    "key": key,
                    "timestamp": cached.timestamp,
                    "feature_count": len(cached.data),
                }
                for key, cached in self._cache.items()
            ],
            "queued": len(self._preload_queue),
        }

    # ----- preloading -----

    def preload(
        self,
        class_id: str,
        level: int,
        subclass: Optional[str] = None,
        priority: str = "medium",
    ) -> None:
        """Queue a load unless the key is cached or already queued."""
        if cache_key(class_id, level, subclass) in self._cache:
            return
        exists = any(
            req.class_id == class_id and req.level == level and req.subclass == subclass
            for req in self._preload_queue
        )
        if not exists:
            self._preload_queue.append(PreloadRequest(class_id, level, subclass, priority))

    async def process_preload_queue(self) -> None:
        """
        Load every queued request, highest priority first, in small batches.

        Failed loads are logged and skipped. The queue is always emptied.
        """
        if self._is_preloading or not self._preload_queue:
            return

        self._is_preloading = True
        try:
            queue = sorted(
                self._preload_queue,
                key=lambda req: PRIORITY_ORDER.get(req.priority, 0),
                reverse=True,
            )
            for i in range(0, len(queue), PRELOAD_BATCH_SIZE):
                batch = queue[i:i + PRELOAD_BATCH_SIZE]
                await asyncio.gather(*(self._preload_one(req) for req in batch))
                if i + PRELOAD_BATCH_SIZE < len(queue):
                    await asyncio.sleep(self._batch_delay)
        finally:
            self._preload_queue = []
            self._is_preloading = False

    async def _preload_one(self, request: PreloadRequest) -> None:
        try:
            result = await self._load_class_features(request.class_id, request.level, request.subclass)
        except Exception as e:
            logger.warning(f"Preload failed for {cache_key(request.class_id, request.level, request.subclass)}: {e}")
            return
        if result.get("error"):
            logger.warning(
                f"Preload failed for {cache_key(request.class_id, request.level, request.subclass)}: "
                f"{result['error']}"
            )
            return
        self.set(request.class_id, request.level, result.get("features") or [], request.subclass)

    async def preload_for_characters(self, characters: Iterable[Dict[str, Any]]) -> None:
        """Queue high-priority loads for every class each character has, then process."""
        for character in characters:
            for char_class in character.get("classes") or []:
                if char_class.get("class_id"):
                    self.preload(
                        char_class["class_id"],
                        char_class.get("level", 1),
                        char_class.get("subclass"),
                        priority="high",
                    )
        await self.process_preload_queue()
