"""ProgressEngine — one object exposing every engine operation.

Construct it with a store and (optionally) a clock; every component shares
them:

    engine = ProgressEngine(MemoryStore(), ManualClock())
    await engine.record_progress("u1", "fox", 3)
    overview = await engine.get_overview("u1")
"""

from __future__ import annotations

import logging
from datetime import date, timedelta, timezone, tzinfo
from typing import Callable, Literal

from progress_engine.accounts import AccountService
from progress_engine.clock import Clock, SystemClock
from progress_engine.documents import (
    QUEST_STATES,
    USER_STATES,
    quest_state_change,
    user_state_change,
)
from progress_engine.ingestion import ProgressIngestion
from progress_engine.mood import MoodService
from progress_engine.models import (
    DocumentChange,
    MoodPeriod,
    Overview,
    ProgressReceipt,
    QuestState,
    QuestStatus,
    RolloverReport,
    SadnessAssignment,
    SleepWindow,
    UserState,
)
from progress_engine.overview import StateReader
from progress_engine.rollover import QuestRolloverScheduler
from progress_engine.rules import check_user_id
from progress_engine.sleep import SleepWindowManager
from progress_engine.store import DocumentStore, Snapshot
from progress_engine.streak import StreakCalculator

logger = logging.getLogger(__name__)

RootDocument = Literal["user_state", "quest_state"]


class ProgressEngine:
    def __init__(self, store: DocumentStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.ingestion = ProgressIngestion(store, self.clock)
        self.scheduler = QuestRolloverScheduler(store, self.clock)
        self.streaks = StreakCalculator(store, self.clock)
        self.sleep = SleepWindowManager(store, self.clock)
        self.accounts = AccountService(store, self.clock)
        self.moods = MoodService(store, self.clock)
        self.reader = StateReader(store, self.clock)

    # -- writes -------------------------------------------------------------

    async def record_progress(
        self, user_id: str, pet_id: str, questions_solved: int,
        adventure_key: str | None = None,
    ) -> ProgressReceipt | None:
        return await self.ingestion.record_progress(
            user_id, pet_id, questions_solved, adventure_key,
        )

    async def deduct_coins(
        self, user_id: str, amount: int, *, clamp: bool = True, client_coins: int | None = None,
    ) -> bool:
        return await self.accounts.deduct_coins(
            user_id, amount, clamp=clamp, client_coins=client_coins,
        )

    async def rollover(self, user_id: str, owned_pets: list[str] | None = None) -> RolloverReport:
        return await self.scheduler.rollover(user_id, owned_pets)

    async def force_expire_cooldowns(
        self, user_id: str, owned_pets: list[str] | None = None
    ) -> RolloverReport:
        return await self.scheduler.force_expire_cooldowns(user_id, owned_pets)

    async def simulate_cooldown_elapsed(self, user_id: str) -> RolloverReport:
        return await self.scheduler.simulate_cooldown_elapsed(user_id)

    async def apply_sign_in_streak(self, user_id: str) -> int:
        return await self.streaks.apply_sign_in(user_id)

    async def increment_quest_day(
        self, user_id: str, local_date: date | str, tz: tzinfo = timezone.utc
    ) -> int:
        return await self.streaks.increment_quest_day(user_id, local_date, tz)

    async def start_sleep(
        self, user_id: str, pet_id: str, duration: timedelta | int | None = None
    ) -> SleepWindow:
        return await self.sleep.start_sleep(user_id, pet_id, duration)

    async def clear_sleep(self, user_id: str, pet_id: str) -> None:
        await self.sleep.clear_sleep(user_id, pet_id)

    async def set_pet_name(self, user_id: str, pet_id: str, name: str) -> None:
        await self.accounts.set_pet_name(user_id, pet_id, name)

    async def set_weekly_heart(
        self, user_id: str, week_key: str, day: date | str, filled: bool = True
    ) -> None:
        await self.accounts.set_weekly_heart(user_id, week_key, day, filled)

    async def ensure_daily_sadness(self, user_id: str) -> SadnessAssignment:
        return await self.moods.ensure_daily_sadness(user_id)

    async def ensure_pet_sad(self, user_id: str, pet_id: str) -> SadnessAssignment:
        return await self.moods.ensure_pet_sad(user_id, pet_id)

    async def set_mood_period(self, user_id: str, period: MoodPeriod) -> MoodPeriod:
        return await self.moods.set_mood_period(user_id, period)

    async def ensure_documents(
        self, user_id: str, initial_pets: list[str] | None = None
    ) -> tuple[UserState, QuestState]:
        return await self.accounts.ensure_documents(user_id, initial_pets)

    # -- reads --------------------------------------------------------------

    async def get_overview(self, user_id: str) -> Overview:
        return await self.reader.get_overview(user_id)

    async def get_quest_states(
        self, user_id: str, owned_pets: list[str] | None = None
    ) -> list[QuestStatus]:
        return await self.reader.get_quest_states(user_id, owned_pets)

    async def get_pet_names(self, user_id: str) -> dict[str, str]:
        return await self.accounts.get_pet_names(user_id)

    async def get_mood_period(self, user_id: str) -> MoodPeriod | None:
        return await self.moods.get_mood_period(user_id)

    async def read_documents(self, user_id: str) -> tuple[DocumentChange, DocumentChange]:
        return await self.reader.read_documents(user_id)

    def subscribe(
        self,
        user_id: str,
        on_change: Callable[[DocumentChange], None],
        *,
        document: RootDocument = "user_state",
    ) -> Callable[[], None]:
        """Watch one root document. `on_change` receives the typed document
        with its version after every committed change. Returns unsubscribe."""
        user_id = check_user_id(user_id)
        if document == "user_state":
            collection, parse = USER_STATES, user_state_change
        elif document == "quest_state":
            collection, parse = QUEST_STATES, quest_state_change
        else:
            raise ValueError(f"Unknown root document {document!r}")

        def _deliver(snapshot: Snapshot) -> None:
            on_change(parse(snapshot))

        logger.debug("subscribed user=%s document=%s", user_id, document)
        return self.store.subscribe(collection, user_id, _deliver)
