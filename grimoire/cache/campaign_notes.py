"""
Campaign notes cache with stale classification.

Entries expire after the campaign notes freshness window and are
considered stale (served, but refreshed in the background) after the
shorter stale threshold. The whole table is mirrored to durable storage.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .core import Clock, DataCategory, now_ms
from .storage import KeyValueStorage, StorageResult, discard_storage_failure
from .ttl_policies import get_ttl_for_category

logger = logging.getLogger("cache.campaign_notes")

STORAGE_KEY = "uoc.campaign-notes-cache"

Note = Dict[str, Any]
GetCampaignNotes = Callable[[str], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class NotesEntry:
    data: List[Note]
    timestamp: int
    expires_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "NotesEntry":
        return cls(
            data=list(raw["data"]),
            timestamp=int(raw["timestamp"]),
            expires_at=int(raw["expiresAt"]),
        )


@dataclass
class NotesResult:
    """Notes plus how they were obtained."""
    notes: List[Note] = field(default_factory=list)
    from_cache: bool = False
    is_stale: bool = False
    error: Optional[str] = None


class CampaignNotesCache:
    def __init__(
        self,
        storage: KeyValueStorage,
        ttl_ms: Optional[int] = None,
        stale_ms: Optional[int] = None,
        clock: Clock = now_ms,
    ):
        default_ttl, default_stale = get_ttl_for_category(DataCategory.CAMPAIGN_NOTES)
        self._storage = storage
        self._ttl_ms = ttl_ms if ttl_ms is not None else default_ttl
        self._stale_ms = stale_ms if stale_ms is not None else default_stale
        self._clock = clock
        self._entries: Dict[str, NotesEntry] = {}
        self._load_from_storage()

    def _load_from_storage(self) -> None:
        result = self._storage.read(STORAGE_KEY)
        if not result.ok:
            discard_storage_failure(result, "read", STORAGE_KEY)
            return
        if result.value is None:
            return
        try:
            parsed = json.loads(result.value)
            entries = {cid: NotesEntry.from_dict(raw) for cid, raw in parsed.items()}
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Failed to load campaign notes cache from storage: {e}")
            return
        now = self._clock()
        self._entries = {cid: e for cid, e in entries.items() if e.expires_at > now}

    def _save_to_storage(self) -> None:
        try:
            payload = json.dumps({cid: e.to_dict() for cid, e in self._entries.items()})
        except (TypeError, ValueError) as e:
            discard_storage_failure(StorageResult.failure(f"unserializable notes: {e}"), "write", STORAGE_KEY)
            return
        discard_storage_failure(self._storage.write(STORAGE_KEY, payload), "write", STORAGE_KEY)

    def get(self, campaign_id: str) -> Optional[List[Note]]:
        entry = self._entries.get(campaign_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[campaign_id]
            self._save_to_storage()
            return None
        return entry.data

    def set(self, campaign_id: str, notes: List[Note]) -> None:
        now = self._clock()
        self._entries[campaign_id] = NotesEntry(data=notes, timestamp=now, expires_at=now + self._ttl_ms)
        self._save_to_storage()

    def is_stale(self, campaign_id: str) -> bool:
        """Absent entries count as stale."""
        entry = self._entries.get(campaign_id)
        if entry is None:
            return True
        return entry.timestamp + self._stale_ms <= self._clock()

    def invalidate(self, campaign_id: str) -> None:
        self._entries.pop(campaign_id, None)
        self._save_to_storage()

    def invalidate_all(self) -> None:
        self._entries = {}
        self._save_to_storage()

    # In-place edits keep the cache warm after a local write

    def add_note(self, campaign_id: str, note: Note) -> None:
        cached = self.get(campaign_id)
        if cached is not None:
            self.set(campaign_id, [note] + cached)

    def update_note(self, campaign_id: str, note_id: str, updates: Dict[str, Any]) -> None:
        cached = self.get(campaign_id)
        if cached is not None:
            self.set(
                campaign_id,
                [{**note, **updates} if note.get("id") == note_id else note for note in cached],
            )

    def remove_note(self, campaign_id: str, note_id: str) -> None:
        cached = self.get(campaign_id)
        if cached is not None:
            self.set(campaign_id, [note for note in cached if note.get("id") != note_id])

    def get_stats(self) -> Dict[str, int]:
        now = self._clock()
        expired = 0
        stale = 0
        for entry in self._entries.values():
            if entry.expires_at <= now:
                expired += 1
            elif entry.timestamp + self._stale_ms <= now:
                stale += 1
        return {
            "total_entries": len(self._entries),
            "expired_entries": expired,
            "stale_entries": stale,
        }


class CampaignNotesService:
    """
    Cache-aware access to campaign notes.

    Wraps the get_campaign_notes data-access call with cache hit/stale/fresh
    classification and a best-effort refresh for stale entries.
    """

    def __init__(self, cache: CampaignNotesCache, get_campaign_notes: GetCampaignNotes):
        self.cache = cache
        self._get_campaign_notes = get_campaign_notes

    async def fetch_all_campaign_notes_with_cache(
        self,
        campaign_id: str,
        force_refresh: bool = False,
    ) -> NotesResult:
        if not force_refresh:
            cached = self.cache.get(campaign_id)
            if cached is not None:
                is_stale = self.cache.is_stale(campaign_id)
                logger.debug(f"CACHE HIT ({'stale' if is_stale else 'fresh'}): campaign {campaign_id}")
                return NotesResult(notes=cached, from_cache=True, is_stale=is_stale)

        try:
            result = await self._get_campaign_notes(campaign_id)
        except Exception as e:
            logger.error(f"Error fetching campaign notes for {campaign_id}: {e}")
            return NotesResult(error="Failed to fetch campaign notes")

        if result.get("error"):
            return NotesResult(error=result["error"])

        notes = result.get("notes") or []
        self.cache.set(campaign_id, notes)
        return NotesResult(notes=notes)

    async def refresh_stale_campaign_notes(self, campaign_id: str) -> None:
        if not self.cache.is_stale(campaign_id):
            return
        result = await self.fetch_all_campaign_notes_with_cache(campaign_id, force_refresh=True)
        if result.error:
            logger.warning(f"Failed to refresh stale cache for campaign {campaign_id}: {result.error}")

    def invalidate_campaign_notes_cache_entry(self, campaign_id: Optional[str] = None) -> None:
        if campaign_id:
            self.cache.invalidate(campaign_id)
        else:
            self.cache.invalidate_all()

    def add_note_to_cache(self, campaign_id: str, note: Note) -> None:
        self.cache.add_note(campaign_id, note)

    def update_note_in_cache(self, campaign_id: str, note_id: str, updates: Dict[str, Any]) -> None:
        self.cache.update_note(campaign_id, note_id, updates)

    def remove_note_from_cache(self, campaign_id: str, note_id: str) -> None:
        self.cache.remove_note(campaign_id, note_id)
