"""Pet moods — which pets are sad today, and the shared mood period.

Daily sadness rotation. Once per calendar day (UTC) up to
SADNESS_CAP_PER_DAY owned pets are marked sad:

    owned    sorted petNames keys, else sorted pets keys
    pool     owned pets not asleep right now (all owned if every pet sleeps)
    pick     pool[(pointer + i) mod len(pool)] for i in 0 .. k-1,
             k = min(cap, len(owned), len(pool))
    pointer  advances by k, modulo len(owned)

The pick is published on dailyQuests.sadness; userStates.sadnessRotation
keeps the pointer. A second call on the same day returns the stored pick.
ensure_pet_sad() forces one pet into today's pick (a newly adopted pet)
without moving the pointer.

The mood period is opaque to the engine: the UI computes it and the engine
only stores it on dailyQuests.moodPeriod so every device reads the same one.
"""

from __future__ import annotations

import logging
from datetime import datetime

from progress_engine.clock import Clock
from progress_engine.documents import (
    QUEST_STATES,
    USER_STATES,
    load_quest_state,
    stage_quest_state,
    stage_user_state,
)
from progress_engine.models import (
    MoodPeriod,
    QuestState,
    SadnessAssignment,
    SadnessRotation,
    UserState,
)
from progress_engine.rules import (
    MOOD_PERIOD,
    SADNESS_CAP_PER_DAY,
    InvariantViolation,
    check_key,
    check_user_id,
)
from progress_engine.sleep import sleep_window
from progress_engine.store import DocumentStore, Transaction

logger = logging.getLogger(__name__)


def rotation_pets(state: UserState) -> list[str]:
    return sorted(state.pet_names) if state.pet_names else sorted(state.pets)


def pick_sad_pets(
    owned: list[str],
    quests: QuestState,
    pointer: int,
    now: datetime,
    cap: int = SADNESS_CAP_PER_DAY,
) -> tuple[list[str], int]:
    """Return today's sad pets and the pointer for the next day."""
    if not owned:
        return [], 0
    start = pointer % len(owned)
    awake = [p for p in owned if not sleep_window(quests.pets.get(p), now).sleeping]
    pool = awake or owned
    count = min(cap, len(owned), len(pool))
    picked = [pool[(start + i) % len(pool)] for i in range(count)]
    return picked, (start + count) % len(owned)


class MoodService:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def ensure_daily_sadness(self, user_id: str) -> SadnessAssignment:
        """Assign today's sad pets once; later calls the same day return it."""
        user_id = check_user_id(user_id)
        now = self._clock.now()
        today = now.date().isoformat()

        async def _apply(txn: Transaction) -> tuple[SadnessAssignment, bool]:
            user_snap = await txn.get(USER_STATES, user_id)
            quest_snap = await txn.get(QUEST_STATES, user_id)
            state = stage_user_state(txn, user_id, user_snap, now)
            quests = stage_quest_state(txn, user_id, quest_snap, now)
            if quests.sadness is not None and quests.sadness.day == today:
                return quests.sadness, False

            rotation = state.sadness_rotation or SadnessRotation()
            picked, pointer = pick_sad_pets(rotation_pets(state), quests, rotation.pointer, now)
            assignment = SadnessAssignment(day=today, assigned_pets=picked)
            _write(txn, user_id, now, assignment, pointer)
            return assignment, True

        assignment, assigned = await self._store.run_transaction(_apply)
        if assigned:
            logger.info("sad pets user=%s %s: %s", user_id, today, assignment.assigned_pets)
        return assignment

    async def ensure_pet_sad(self, user_id: str, pet_id: str) -> SadnessAssignment:
        """Make sure `pet_id` is among today's sad pets.

        When today's pick is already full the newest pet goes first and the
        last pick drops off. The rotation pointer does not move.
        """
        user_id = check_user_id(user_id)
        pet = check_key("pet_id", pet_id)
        now = self._clock.now()
        today = now.date().isoformat()

        async def _apply(txn: Transaction) -> SadnessAssignment:
            user_snap = await txn.get(USER_STATES, user_id)
            quest_snap = await txn.get(QUEST_STATES, user_id)
            state = stage_user_state(txn, user_id, user_snap, now)
            quests = stage_quest_state(txn, user_id, quest_snap, now, pets=[pet])

            assigned: list[str] = []
            if quests.sadness is not None and quests.sadness.day == today:
                assigned = list(quests.sadness.assigned_pets)
            if pet not in assigned:
                if len(assigned) < SADNESS_CAP_PER_DAY:
                    assigned.append(pet)
                else:
                    assigned = [pet, *assigned[:SADNESS_CAP_PER_DAY - 1]]
            assignment = SadnessAssignment(day=today, assigned_pets=assigned)
            pointer = state.sadness_rotation.pointer if state.sadness_rotation else 0
            _write(txn, user_id, now, assignment, pointer)
            return assignment

        assignment = await self._store.run_transaction(_apply)
        logger.debug("pet sad today user=%s pet=%s: %s", user_id, pet, assignment.assigned_pets)
        return assignment

    async def get_mood_period(self, user_id: str) -> MoodPeriod | None:
        user_id = check_user_id(user_id)
        return load_quest_state(await self._store.get(QUEST_STATES, user_id)).mood_period

    async def set_mood_period(self, user_id: str, period: MoodPeriod) -> MoodPeriod:
        """Store the current mood period. A missing reset time defaults to
        anchor + 8h."""
        user_id = check_user_id(user_id)
        if not isinstance(period, MoodPeriod):
            raise InvariantViolation("period must be a MoodPeriod")
        for pet in period.sad_pet_ids:
            check_key("sad pet", pet)
        if period.next_reset_at is None:
            period = period.model_copy(update={"next_reset_at": period.anchor_at + MOOD_PERIOD})
        elif period.next_reset_at <= period.anchor_at:
            raise InvariantViolation("next_reset_at must be after anchor_at")
        now = self._clock.now()

        async def _apply(txn: Transaction) -> None:
            snap = await txn.get(QUEST_STATES, user_id)
            stage_quest_state(txn, user_id, snap, now)
            txn.update(QUEST_STATES, user_id, {
                "moodPeriod": period.to_document(),
                "updatedAt": now,
            })

        await self._store.run_transaction(_apply)
        logger.debug("mood period user=%s %s until %s", user_id, period.period_id, period.next_reset_at)
        return period


def _write(
    txn: Transaction,
    user_id: str,
    now: datetime,
    assignment: SadnessAssignment,
    pointer: int,
) -> None:
    txn.update(QUEST_STATES, user_id, {
        "sadness": assignment.to_document(),
        "updatedAt": now,
    })
    rotation = SadnessRotation(
        day=assignment.day,
        pointer=pointer,
        last_assigned_pets=assignment.assigned_pets,
    )
    txn.update(USER_STATES, user_id, {
        "sadnessRotation": rotation.to_document(),
        "updatedAt": now,
    })
