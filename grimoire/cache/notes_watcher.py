"""
Stale-while-revalidate view over one campaign's notes.

The watcher shows whatever the notes source returns straight away, then
keeps refreshing in the background while that data is stale:
- one background refresh right after a stale load
- a periodic refresh every refresh_interval seconds while still stale
Background failures are logged only; the stale notes stay visible.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Protocol, Set

from .campaign_notes import Note, NotesResult
from .observers import ObserverList
from .ttl_policies import STALE_REFRESH_INTERVAL_SECONDS

logger = logging.getLogger("cache.notes_watcher")

LOAD_ERROR_MESSAGE = "Failed to load campaign notes"


class NotesSource(Protocol):
    async def fetch_all_campaign_notes_with_cache(
        self, campaign_id: str, force_refresh: bool = False
    ) -> NotesResult:
        ...

    async def refresh_stale_campaign_notes(self, campaign_id: str) -> None:
        ...

    def invalidate_campaign_notes_cache_entry(self, campaign_id: Optional[str] = None) -> None:
        ...


@dataclass(frozen=True)
class NotesState:
    notes: List[Note] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    from_cache: bool = False
    is_stale: bool = False


class CampaignNotesWatcher:
    """
    Holds the notes state for the currently selected campaign.

    Results that arrive after the campaign changed are dropped, so a slow
    load for the previous campaign can never overwrite the current one.
    """

    def __init__(
        self,
        source: NotesSource,
        refresh_interval: float = STALE_REFRESH_INTERVAL_SECONDS,
    ):
        self._source = source
        self._refresh_interval = refresh_interval
        self._campaign_id: Optional[str] = None
        self._generation = 0
        self._state = NotesState()
        self._observers: ObserverList[NotesState] = ObserverList("campaign-notes")
        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def campaign_id(self) -> Optional[str]:
        return self._campaign_id

    @property
    def state(self) -> NotesState:
        return self._state

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def subscribe(self, listener: Callable[[NotesState], None]) -> Callable[[], None]:
        return self._observers.subscribe(listener)

    async def set_campaign(self, campaign_id: Optional[str]) -> None:
        """Switch to another campaign (or none) and load its notes."""
        if campaign_id == self._campaign_id:
            return
        self._campaign_id = campaign_id
        self._generation += 1
        self._stop_timer()
        self._set_state(NotesState())
        if campaign_id:
            await self._load()

    async def refresh(self) -> None:
        """Reload, bypassing the freshness check."""
        await self._load(force_refresh=True)

    async def invalidate_cache(self) -> None:
        """Purge this campaign's cache entry, then reload."""
        if not self._campaign_id:
            return
        self._source.invalidate_campaign_notes_cache_entry(self._campaign_id)
        await self._load(force_refresh=True)

    async def close(self) -> None:
        """Stop the periodic refresh and any background refresh still running."""
        self._stop_timer()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ----- loading -----

    async def _load(self, force_refresh: bool = False) -> None:
        campaign_id = self._campaign_id
        if not campaign_id:
            self._set_state(NotesState())
            return

        generation = self._generation
        self._set_state(replace(self._state, loading=True, error=None))

        try:
            result = await self._source.fetch_all_campaign_notes_with_cache(campaign_id, force_refresh)
        except Exception as e:
            if generation != self._generation:
                return
            logger.error(f"Error loading campaign notes for {campaign_id}: {e}")
            self._set_state(NotesState(error=LOAD_ERROR_MESSAGE))
            self._sync_timer()
            return

        if generation != self._generation:
            logger.debug(f"Discarding notes for {campaign_id}; campaign changed")
            return

        self._mirror(result)

        if result.is_stale and not force_refresh:
            self._spawn(self._background_refresh(campaign_id, generation, "Background refresh"))

    def _mirror(self, result: NotesResult, loading: bool = False) -> None:
        self._set_state(NotesState(
            notes=list(result.notes),
            loading=loading,
            error=result.error,
            from_cache=result.from_cache,
            is_stale=result.is_stale,
        ))
        self._sync_timer()

    async def _background_refresh(self, campaign_id: str, generation: int, label: str) -> None:
        try:
            await self._source.refresh_stale_campaign_notes(campaign_id)
        except Exception as e:
            logger.warning(f"{label} failed for campaign {campaign_id}: {e}")
            return

        # Re-read through the cache so the view picks up the refreshed notes
        if generation != self._generation:
            return
        try:
            result = await self._source.fetch_all_campaign_notes_with_cache(campaign_id, False)
        except Exception as e:
            logger.warning(f"{label} re-read failed for campaign {campaign_id}: {e}")
            return
        if generation != self._generation or result.error:
            return
        self._mirror(result, loading=self._state.loading)

    # ----- periodic refresh -----

    def _sync_timer(self) -> None:
        should_run = bool(self._campaign_id) and self._state.is_stale
        if should_run and not self.timer_active:
            self._timer = asyncio.create_task(
                self._periodic_refresh(self._campaign_id, self._generation)
            )
        elif not should_run:
            self._stop_timer()

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _periodic_refresh(self, campaign_id: str, generation: int) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            if generation != self._generation:
                return
            # Firings are not coalesced: a slow refresh may overlap the next one
            self._spawn(self._background_refresh(campaign_id, generation, "Periodic background refresh"))

    # ----- helpers -----

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_state(self, state: NotesState) -> None:
        self._state = state
        self._observers.notify(state)
