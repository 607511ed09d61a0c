"""Tests for the hydration & sync layer."""

import asyncio
from datetime import timedelta

import pytest

from progress_engine.clock import ManualClock
from progress_engine.documents import QUEST_STATES
from progress_engine.engine import ProgressEngine
from progress_engine.models import DocumentChange, QuestState
from progress_engine.store import MemoryStore, StoreError
from progress_engine.sync import EventBus, HydrationSync


class Recorder:
    """Collects every payload published on a bus, per topic."""

    def __init__(self, bus: EventBus) -> None:
        self.events: dict[str, list] = {}
        for topic in ("overview", "quests", "coins", "streak", "pet_names", "signed_out"):
            bus.subscribe(topic, lambda payload, t=topic: self.events.setdefault(t, []).append(payload))

    def last(self, topic: str):
        return self.events[topic][-1]


@pytest.fixture
def sync(engine: ProgressEngine) -> HydrationSync:
    return HydrationSync(engine)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------

class TestEventBus:
    def test_publish_and_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe("coins", seen.append)
        bus.publish("coins", 10)
        unsubscribe()
        bus.publish("coins", 20)
        assert seen == [10]

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        seen = []

        def boom(_payload):
            raise RuntimeError("handler bug")

        bus.subscribe("coins", boom)
        bus.subscribe("coins", seen.append)
        bus.publish("coins", 10)
        assert seen == [10]


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------

class TestSignIn:
    async def test_seeds_cache_and_publishes(self, sync: HydrationSync) -> None:
        events = Recorder(sync.bus)
        cache = await sync.on_sign_in("u1")
        assert cache.user_id == "u1"
        assert [q.pet for q in cache.quests] == ["hamster", "dog"]
        assert events.last("coins") == 0
        assert events.last("streak") == 0
        assert [q.pet for q in events.last("quests")] == ["hamster", "dog"]

    async def test_owned_pets_are_authoritative(self, sync: HydrationSync, engine: ProgressEngine) -> None:
        await engine.record_progress("u1", "cat", 1)
        cache = await sync.on_sign_in("u1", ["fox"])
        assert [q.pet for q in cache.quests] == ["fox"]

    async def test_live_updates_reach_cache(self, sync: HydrationSync, engine: ProgressEngine) -> None:
        events = Recorder(sync.bus)
        await sync.on_sign_in("u1", ["fox"])
        await engine.record_progress("u1", "fox", 3)
        assert sync.cache.overview.coins == 30
        assert events.last("coins") == 30
        assert sync.cache.quests[0].progress == 3
        assert sync.cache.overview.pets["fox"].total_correct == 3

    async def test_rolls_over_due_pets(self, sync: HydrationSync, engine: ProgressEngine, clock: ManualClock) -> None:
        await engine.record_progress("u1", "fox", 5)
        clock.advance(hours=9)
        cache = await sync.on_sign_in("u1", ["fox"])
        assert cache.quests[0].activity == "friend"
        assert cache.quests[0].progress == 0

    async def test_streak_failure_is_logged_not_raised(
        self, sync: HydrationSync, engine: ProgressEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def failing(_user_id):
            raise StoreError("offline")

        monkeypatch.setattr(engine, "apply_sign_in_streak", failing)
        cache = await sync.on_sign_in("u1")
        assert cache.user_id == "u1"

    async def test_stale_snapshot_ignored(self, sync: HydrationSync) -> None:
        await sync.on_sign_in("u1", ["fox"])
        version = sync.cache.quest_version
        generation = sync._generation
        sync._on_quest_change(generation, DocumentChange(version - 1, QuestState()))
        assert sync.cache.quest_version == version
        assert [q.pet for q in sync.cache.quests] == ["fox"]


# ---------------------------------------------------------------------------
# Throttled rollover
# ---------------------------------------------------------------------------

class TestThrottle:
    async def test_focus_throttled_within_interval(self, sync: HydrationSync, clock: ManualClock) -> None:
        await sync.on_sign_in("u1", ["fox"])
        assert await sync.on_focus_regained()
        clock.advance(seconds=30)
        assert not await sync.on_focus_regained()
        clock.advance(seconds=31)
        assert await sync.on_focus_regained()

    async def test_focus_advances_after_cooldown(
        self, sync: HydrationSync, engine: ProgressEngine, clock: ManualClock
    ) -> None:
        await sync.on_sign_in("u1", ["fox"])
        await engine.record_progress("u1", "fox", 5)
        clock.advance(hours=8, minutes=1)
        assert await sync.on_focus_regained()
        assert sync.cache.quests[0].activity == "friend"

    async def test_focus_without_session(self, sync: HydrationSync) -> None:
        assert not await sync.on_focus_regained()

    async def test_rollover_failure_is_logged_not_raised(
        self, sync: HydrationSync, engine: ProgressEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await sync.on_sign_in("u1", ["fox"])

        async def failing(*_args):
            raise StoreError("offline")

        monkeypatch.setattr(engine, "rollover", failing)
        assert not await sync.on_focus_regained()

    async def test_reactive_rollover_on_snapshot(
        self, engine: ProgressEngine, store: MemoryStore, clock: ManualClock
    ) -> None:
        sync = HydrationSync(engine, throttle=timedelta(seconds=60))
        await sync.on_sign_in("u1", ["fox"])
        await engine.record_progress("u1", "fox", 5)
        clock.advance(hours=9)
        # Any write to the quest document delivers a snapshot showing fox is due
        await engine.start_sleep("u1", "fox", timedelta(minutes=5))
        await _settle()
        pets = (await store.get(QUEST_STATES, "u1")).to_dict()["pets"]
        assert pets["fox"]["activityIndex"] == 1


# ---------------------------------------------------------------------------
# Sign-out
# ---------------------------------------------------------------------------

class TestSignOut:
    async def test_clears_cache_and_publishes(self, sync: HydrationSync) -> None:
        events = Recorder(sync.bus)
        await sync.on_sign_in("u1")
        await sync.on_sign_out()
        assert sync.cache.user_id is None
        assert events.last("signed_out") == {"user_id": "u1"}
        assert events.last("coins") == 0

    async def test_no_updates_after_sign_out(self, sync: HydrationSync, engine: ProgressEngine) -> None:
        await sync.on_sign_in("u1", ["fox"])
        await sync.on_sign_out()
        await engine.record_progress("u1", "fox", 3)
        assert sync.cache.overview.coins == 0
        assert sync.cache.quests == []

    async def test_pending_rollover_cancelled(
        self, engine: ProgressEngine, store: MemoryStore, clock: ManualClock
    ) -> None:
        sync = HydrationSync(engine)
        await sync.on_sign_in("u1", ["fox"])
        await engine.record_progress("u1", "fox", 5)
        clock.advance(hours=9)
        await engine.start_sleep("u1", "fox")  # schedules a rollover task
        await sync.on_sign_out()
        await _settle()
        pets = (await store.get(QUEST_STATES, "u1")).to_dict()["pets"]
        assert pets["fox"]["activityIndex"] == 0

    async def test_switching_users(self, sync: HydrationSync, engine: ProgressEngine) -> None:
        await engine.record_progress("u1", "fox", 2)
        await sync.on_sign_in("u1", ["fox"])
        await sync.on_sign_in("u2", ["dog"])
        await engine.record_progress("u1", "fox", 2)
        assert sync.cache.user_id == "u2"
        assert sync.cache.overview.coins == 0
        assert [q.pet for q in sync.cache.quests] == ["dog"]
