"""
Tests for the stale-while-revalidate campaign notes watcher.
"""
import asyncio

from grimoire.cache import CampaignNotesWatcher, NotesResult, NotesState

NOTE_A = {"id": "n1", "title": "A"}
NOTE_B = {"id": "n2", "title": "B"}
NOTE_C = {"id": "n3", "title": "C"}


class FakeNotesSource:
    """
    Scripted notes source.

    results maps campaign id -> list of NotesResult returned in order (the
    last one repeats). Campaigns listed in gates wait for their event.
    """

    def __init__(self, results=None, exc=None, gates=None):
        self.results = results or {}
        self.exc = exc
        self.gates = gates or {}
        self.fetch_calls = []
        self.refresh_calls = []
        self.invalidated = []

    async def fetch_all_campaign_notes_with_cache(self, campaign_id, force_refresh=False):
        self.fetch_calls.append((campaign_id, force_refresh))
        if campaign_id in self.gates:
            await self.gates[campaign_id].wait()
        if self.exc is not None:
            raise self.exc
        queue = self.results.get(campaign_id) or [NotesResult()]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def refresh_stale_campaign_notes(self, campaign_id):
        self.refresh_calls.append(campaign_id)

    def invalidate_campaign_notes_cache_entry(self, campaign_id=None):
        self.invalidated.append(campaign_id)


def stale(*notes):
    return NotesResult(notes=list(notes), from_cache=True, is_stale=True)


def fresh(*notes):
    return NotesResult(notes=list(notes), from_cache=False, is_stale=False)


class TestInitialLoad:

    def test_stale_result_is_mirrored_and_refreshed_once_in_background(self):
        source = FakeNotesSource({"c1": [stale(NOTE_A, NOTE_B)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=3600)
            await watcher.set_campaign("c1")
            at_resolution = (watcher.state, list(source.refresh_calls))
            await asyncio.sleep(0.01)
            after = (watcher.state, list(source.refresh_calls), watcher.timer_active)
            await watcher.close()
            return at_resolution, after

        (state, refreshes_at_resolution), (later_state, refreshes, timer_active) = asyncio.run(scenario())

        assert state.notes == [NOTE_A, NOTE_B]
        assert state.from_cache is True
        assert state.is_stale is True
        assert state.loading is False
        assert state.error is None
        assert refreshes_at_resolution == []
        assert refreshes == ["c1"]
        assert later_state.notes == [NOTE_A, NOTE_B]
        assert timer_active is True

    def test_fresh_result_triggers_no_refresh(self):
        source = FakeNotesSource({"c1": [fresh(NOTE_A)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=0.01)
            await watcher.set_campaign("c1")
            await asyncio.sleep(0.05)
            timer_active = watcher.timer_active
            await watcher.close()
            return watcher.state, timer_active

        state, timer_active = asyncio.run(scenario())

        assert state == NotesState(notes=[NOTE_A])
        assert source.refresh_calls == []
        assert timer_active is False

    def test_load_failure_resets_state_with_generic_error(self):
        source = FakeNotesSource(exc=ConnectionError("network down"))

        async def scenario():
            watcher = CampaignNotesWatcher(source)
            await watcher.set_campaign("c1")
            return watcher.state, watcher.timer_active

        state, timer_active = asyncio.run(scenario())

        assert state.notes == []
        assert state.error == "Failed to load campaign notes"
        assert state.from_cache is False
        assert state.is_stale is False
        assert state.loading is False
        assert timer_active is False

    def test_error_from_source_is_copied(self):
        source = FakeNotesSource({"c1": [NotesResult(error="Failed to fetch campaign notes")]})

        async def scenario():
            watcher = CampaignNotesWatcher(source)
            await watcher.set_campaign("c1")
            return watcher.state

        state = asyncio.run(scenario())

        assert state.error == "Failed to fetch campaign notes"
        assert state.notes == []

    def test_loading_is_published_to_subscribers(self):
        source = FakeNotesSource({"c1": [fresh(NOTE_A)]})
        seen = []

        async def scenario():
            watcher = CampaignNotesWatcher(source)
            watcher.subscribe(seen.append)
            await watcher.set_campaign("c1")

        asyncio.run(scenario())

        assert [s.loading for s in seen] == [False, True, False]
        assert seen[-1].notes == [NOTE_A]


class TestPeriodicRefresh:

    def test_timer_fires_while_stale(self):
        source = FakeNotesSource({"c1": [stale(NOTE_A)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=0.02)
            await watcher.set_campaign("c1")
            await asyncio.sleep(0.15)
            await watcher.close()

        asyncio.run(scenario())

        assert source.refresh_calls.count("c1") >= 3

    def test_changing_campaign_cancels_old_timer(self):
        source = FakeNotesSource({"c1": [stale(NOTE_A)], "c2": [fresh(NOTE_C)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=0.02)
            await watcher.set_campaign("c1")
            await asyncio.sleep(0)
            await watcher.set_campaign("c2")
            calls_at_switch = source.refresh_calls.count("c1")
            await asyncio.sleep(0.1)
            timer_active = watcher.timer_active
            await watcher.close()
            return calls_at_switch, watcher.state, timer_active

        calls_at_switch, state, timer_active = asyncio.run(scenario())

        assert source.refresh_calls.count("c1") == calls_at_switch
        assert "c2" not in source.refresh_calls
        assert state.notes == [NOTE_C]
        assert timer_active is False

    def test_timer_stops_once_staleness_clears(self):
        source = FakeNotesSource({"c1": [stale(NOTE_A), fresh(NOTE_A, NOTE_B)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=0.02)
            await watcher.set_campaign("c1")
            await asyncio.sleep(0.1)
            timer_active = watcher.timer_active
            await watcher.close()
            return watcher.state, timer_active

        state, timer_active = asyncio.run(scenario())

        # the background refresh re-read picked up the fresh notes
        assert state.notes == [NOTE_A, NOTE_B]
        assert state.is_stale is False
        assert timer_active is False
        assert source.refresh_calls == ["c1"]

    def test_clearing_campaign_stops_timer(self):
        source = FakeNotesSource({"c1": [stale(NOTE_A)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=0.02)
            await watcher.set_campaign("c1")
            await watcher.set_campaign(None)
            return watcher.state, watcher.timer_active

        state, timer_active = asyncio.run(scenario())

        assert state == NotesState()
        assert timer_active is False


class TestCampaignSwitching:

    def test_result_for_previous_campaign_is_discarded(self):
        async def scenario():
            gate = asyncio.Event()
            source = FakeNotesSource(
                {"c1": [fresh(NOTE_A)], "c2": [fresh(NOTE_C)]},
                gates={"c1": gate},
            )
            watcher = CampaignNotesWatcher(source)
            slow = asyncio.create_task(watcher.set_campaign("c1"))
            await asyncio.sleep(0)
            await watcher.set_campaign("c2")
            gate.set()
            await slow
            return watcher.campaign_id, watcher.state

        campaign_id, state = asyncio.run(scenario())

        assert campaign_id == "c2"
        assert state.notes == [NOTE_C]
        assert state.loading is False

    def test_same_campaign_is_not_reloaded(self):
        source = FakeNotesSource({"c1": [fresh(NOTE_A)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source)
            await watcher.set_campaign("c1")
            await watcher.set_campaign("c1")

        asyncio.run(scenario())

        assert source.fetch_calls == [("c1", False)]


class TestManualActions:

    def test_refresh_forces_reload_without_background_refresh(self):
        source = FakeNotesSource({"c1": [fresh(NOTE_A), stale(NOTE_A, NOTE_B)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source, refresh_interval=3600)
            await watcher.set_campaign("c1")
            await watcher.refresh()
            await asyncio.sleep(0.01)
            await watcher.close()
            return watcher.state

        state = asyncio.run(scenario())

        assert source.fetch_calls == [("c1", False), ("c1", True)]
        assert source.refresh_calls == []
        assert state.notes == [NOTE_A, NOTE_B]

    def test_invalidate_cache_purges_then_reloads(self):
        source = FakeNotesSource({"c1": [fresh(NOTE_A), fresh(NOTE_B)]})

        async def scenario():
            watcher = CampaignNotesWatcher(source)
            await watcher.set_campaign("c1")
            await watcher.invalidate_cache()
            return watcher.state

        state = asyncio.run(scenario())

        assert source.invalidated == ["c1"]
        assert source.fetch_calls[-1] == ("c1", True)
        assert state.notes == [NOTE_B]

    def test_invalidate_without_campaign_is_noop(self):
        source = FakeNotesSource()

        asyncio.run(CampaignNotesWatcher(source).invalidate_cache())

        assert source.invalidated == []
        assert source.fetch_calls == []
