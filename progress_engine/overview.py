"""Read side: the Overview and the per-pet quest status list.

Readers never write. A missing document reads as its defaults; creating it
is left to the next writer.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from progress_engine.clock import Clock
from progress_engine.documents import (
    QUEST_STATES,
    USER_STATES,
    load_quest_state,
    load_user_state,
    quest_state_change,
    user_state_change,
)
from progress_engine.models import (
    DocumentChange,
    Overview,
    PetOverview,
    PetQuest,
    QuestState,
    QuestStatus,
    UserState,
)
from progress_engine.rules import (
    COINS_PER_QUESTION,
    QUEST_TARGET,
    check_key,
    check_user_id,
    pet_level,
)
from progress_engine.sleep import sleep_window
from progress_engine.store import DocumentStore


def build_overview(state: UserState) -> Overview:
    pets = {}
    for pet, total in state.pets.items():
        info = pet_level(total)
        pets[pet] = PetOverview(
            total_correct=total,
            level=info.level,
            next_threshold=info.next_threshold,
            to_next=info.to_next,
        )
    return Overview(
        coins=state.coins,
        streak=state.streak,
        lifetime_coins=sum(state.pets.values()) * COINS_PER_QUESTION,
        pets=pets,
        updated_at=state.updated_at,
    )


def build_quest_states(
    quests: QuestState, owned_pets: list[str], now: datetime
) -> list[QuestStatus]:
    """One status per owned pet, in `owned_pets` order.

    An owned pet without a sub-record shows as a fresh quest.
    """
    statuses = []
    for pet in owned_pets:
        record = quests.pets.get(pet) or PetQuest.fresh()
        sleep = sleep_window(record, now)
        statuses.append(QuestStatus(
            pet=pet,
            activity=record.activity,
            progress=record.active_progress,
            target=QUEST_TARGET,
            completed=record.completed,
            activity_index=record.activity_index,
            cooldown_until=record.cooldown_until,
            completed_at=record.completed_at,
            last_completed_activity=record.last_completed_activity,
            sleep_start_at=sleep.start_at,
            sleep_end_at=sleep.end_at,
            sleeping=sleep.sleeping,
            ready_to_advance=record.ready_to_advance(now),
        ))
    return statuses


def default_owned_pets(state: UserState, quests: QuestState) -> list[str]:
    """Pets known to the user state, falling back to the quest document."""
    return state.owned_pets() or list(quests.pets)


class StateReader:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def get_overview(self, user_id: str) -> Overview:
        user_id = check_user_id(user_id)
        state = load_user_state(await self._store.get(USER_STATES, user_id))
        return build_overview(state)

    async def get_quest_states(
        self, user_id: str, owned_pets: list[str] | None = None
    ) -> list[QuestStatus]:
        user_id = check_user_id(user_id)
        user_snap, quest_snap = await asyncio.gather(
            self._store.get(USER_STATES, user_id),
            self._store.get(QUEST_STATES, user_id),
        )
        quests = load_quest_state(quest_snap)
        if owned_pets is None:
            owned = default_owned_pets(load_user_state(user_snap), quests)
        else:
            owned = [check_key("owned pet", p) for p in owned_pets]
        return build_quest_states(quests, owned, self._clock.now())

    async def read_documents(self, user_id: str) -> tuple[DocumentChange, DocumentChange]:
        """Both root documents with their versions, for seeding a local cache."""
        user_id = check_user_id(user_id)
        user_snap, quest_snap = await asyncio.gather(
            self._store.get(USER_STATES, user_id),
            self._store.get(QUEST_STATES, user_id),
        )
        return user_state_change(user_snap), quest_state_change(quest_snap)
