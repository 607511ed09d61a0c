"""Hydration & sync — keeps a local view of one signed-in user current.

Lifecycle signals from the auth/UI layer drive it:

    on_sign_in(user)     ensure documents, streak transaction, open both
                         subscriptions, coalesced read, seed the cache,
                         publish, roll over if a pet is due
    on_focus_regained()  throttled rollover attempt
    on_sign_out()        unsubscribe, cancel pending rollover tasks,
                         clear the cache, publish `signed_out`

Consumers listen on an EventBus instead of global events. Topics:

    overview    Overview            coins   int
    quests      list[QuestStatus]   streak  int
    pet_names   dict[str, str]      signed_out  {"user_id": str}

Rollover attempts (reactive or on focus) run at most once per throttle
interval. Every session bumps a generation counter; callbacks and tasks
from an earlier session see the mismatch and do nothing, so a late
snapshot or rollover can never touch the next user's state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from progress_engine.engine import ProgressEngine
from progress_engine.models import (
    DocumentChange,
    Overview,
    QuestState,
    QuestStatus,
    UserState,
)
from progress_engine.overview import build_overview, build_quest_states, default_owned_pets
from progress_engine.rules import ROLLOVER_THROTTLE, check_user_id
from progress_engine.store import StoreError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Minimal synchronous topic pub/sub."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[topic]:
                self._handlers[topic].remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        for handler in list(self._handlers.get(topic, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for topic %r failed", topic)


@dataclass
class LocalCache:
    user_id: str | None = None
    user_state: UserState = field(default_factory=UserState)
    quest_state: QuestState = field(default_factory=QuestState)
    user_version: int = -1
    quest_version: int = -1
    overview: Overview = field(default_factory=Overview)
    quests: list[QuestStatus] = field(default_factory=list)


class HydrationSync:
    def __init__(
        self,
        engine: ProgressEngine,
        *,
        bus: EventBus | None = None,
        throttle: timedelta = ROLLOVER_THROTTLE,
    ) -> None:
        self.engine = engine
        self.bus = bus or EventBus()
        self.throttle = throttle
        self.cache = LocalCache()
        self._owned_pets: list[str] | None = None
        self._generation = 0
        self._unsubscribers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._last_rollover_attempt: datetime | None = None

    @property
    def user_id(self) -> str | None:
        return self.cache.user_id

    # -- lifecycle ----------------------------------------------------------

    async def on_sign_in(
        self,
        user_id: str,
        owned_pets: list[str] | None = None,
        *,
        initial_pets: list[str] | None = None,
    ) -> LocalCache:
        """`owned_pets` is authoritative (rollover prunes to it). Without it,
        `initial_pets` only seeds a new account."""
        user_id = check_user_id(user_id)
        if self.cache.user_id is not None:
            await self.on_sign_out()
        self._generation += 1
        generation = self._generation
        self.cache = LocalCache(user_id=user_id)
        self._owned_pets = list(owned_pets) if owned_pets is not None else None
        logger.info("sign-in user=%s", user_id)

        try:
            await self.engine.ensure_documents(
                user_id, owned_pets if owned_pets is not None else initial_pets,
            )
        except StoreError as e:
            logger.warning("document initialisation failed for user=%s: %s", user_id, e)
        try:
            await self.engine.apply_sign_in_streak(user_id)
        except StoreError as e:
            logger.warning("streak update failed for user=%s: %s", user_id, e)
        if generation != self._generation:
            return self.cache

        # Subscribe before reading; the version check drops whichever copy is older
        self._unsubscribers = [
            self.engine.subscribe(
                user_id, lambda c: self._on_user_change(generation, c), document="user_state",
            ),
            self.engine.subscribe(
                user_id, lambda c: self._on_quest_change(generation, c), document="quest_state",
            ),
        ]
        user_change, quest_change = await self.engine.read_documents(user_id)
        if generation != self._generation:
            return self.cache
        self._apply_user(user_change)
        self._apply_quests(quest_change)

        if any(q.ready_to_advance for q in self.cache.quests):
            await self._maybe_rollover(generation)
        return self.cache

    async def on_focus_regained(self) -> bool:
        """Attempt a rollover unless one ran within the throttle interval."""
        if self.cache.user_id is None:
            return False
        return await self._maybe_rollover(self._generation)

    async def on_sign_out(self) -> None:
        user_id = self.cache.user_id
        self._generation += 1
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        self.cache = LocalCache()
        self._owned_pets = None
        self._last_rollover_attempt = None
        if user_id is None:
            return
        logger.info("sign-out user=%s", user_id)
        self.bus.publish("coins", 0)
        self.bus.publish("streak", 0)
        self.bus.publish("signed_out", {"user_id": user_id})

    # -- subscription callbacks ---------------------------------------------

    def _on_user_change(self, generation: int, change: DocumentChange) -> None:
        if generation != self._generation:
            return
        self._apply_user(change)

    def _on_quest_change(self, generation: int, change: DocumentChange) -> None:
        if generation != self._generation:
            return
        if self._apply_quests(change) and any(q.ready_to_advance for q in self.cache.quests):
            self._schedule_rollover(generation)

    def _apply_user(self, change: DocumentChange) -> bool:
        if change.version <= self.cache.user_version:
            logger.debug("stale user state v%d dropped (have v%d)", change.version, self.cache.user_version)
            return False
        self.cache.user_state = change.document
        self.cache.user_version = change.version
        self.cache.overview = build_overview(change.document)
        self.bus.publish("overview", self.cache.overview)
        self.bus.publish("coins", self.cache.overview.coins)
        self.bus.publish("streak", self.cache.overview.streak)
        self.bus.publish("pet_names", dict(change.document.pet_names))
        if self._owned_pets is None and self.cache.quest_version >= 0:
            self._refresh_quests()
        return True

    def _apply_quests(self, change: DocumentChange) -> bool:
        if change.version <= self.cache.quest_version:
            logger.debug("stale quest state v%d dropped (have v%d)", change.version, self.cache.quest_version)
            return False
        self.cache.quest_state = change.document
        self.cache.quest_version = change.version
        self._refresh_quests()
        return True

    def _refresh_quests(self) -> None:
        owned = self._owned_pets
        if owned is None:
            owned = default_owned_pets(self.cache.user_state, self.cache.quest_state)
        self.cache.quests = build_quest_states(
            self.cache.quest_state, owned, self.engine.clock.now(),
        )
        self.bus.publish("quests", list(self.cache.quests))

    # -- throttled rollover -------------------------------------------------

    def _throttle_open(self) -> bool:
        if self._last_rollover_attempt is None:
            return True
        return self.engine.clock.now() - self._last_rollover_attempt > self.throttle

    def _schedule_rollover(self, generation: int) -> None:
        if not self._throttle_open():
            return
        task = asyncio.get_running_loop().create_task(self._maybe_rollover(generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _maybe_rollover(self, generation: int) -> bool:
        user_id = self.cache.user_id
        if generation != self._generation or user_id is None:
            return False
        if not self._throttle_open():
            logger.debug("rollover for user=%s throttled", user_id)
            return False
        self._last_rollover_attempt = self.engine.clock.now()
        try:
            await self.engine.rollover(user_id, self._owned_pets)
        except StoreError as e:
            logger.warning("rollover failed for user=%s: %s", user_id, e)
            return False
        return True
