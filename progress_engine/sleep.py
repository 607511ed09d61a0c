"""Sleep windows — a timed "resting" interval per pet.

start_sleep() and clear_sleep() write `sleepStartAt` / `sleepEndAt` on the
pet's quest sub-record inside a transaction. Expiry is never written: a window
whose end lies in the past simply reads as not sleeping (see sleep_window()).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from progress_engine.clock import Clock
from progress_engine.documents import QUEST_STATES, stage_quest_state
from progress_engine.models import PetQuest, SleepWindow
from progress_engine.rules import (
    DEFAULT_SLEEP_DURATION,
    InvariantViolation,
    check_key,
    check_user_id,
)
from progress_engine.store import DocumentStore, StoreError, Transaction

logger = logging.getLogger(__name__)


def sleep_window(record: PetQuest | None, now: datetime) -> SleepWindow:
    """Derive the sleep state of one pet at `now`."""
    if record is None or record.sleep_end_at is None:
        return SleepWindow()
    sleeping = now < record.sleep_end_at
    return SleepWindow(
        start_at=record.sleep_start_at,
        end_at=record.sleep_end_at,
        sleeping=sleeping,
        remaining=record.sleep_end_at - now if sleeping else None,
    )


def _duration(value: timedelta | int | None) -> timedelta:
    if value is None:
        return DEFAULT_SLEEP_DURATION
    if isinstance(value, bool):
        raise InvariantViolation("duration must be a timedelta or milliseconds")
    if isinstance(value, int):
        value = timedelta(milliseconds=value)
    if not isinstance(value, timedelta):
        raise InvariantViolation("duration must be a timedelta or milliseconds")
    if value <= timedelta(0):
        raise InvariantViolation(f"duration must be positive, got {value}")
    return value


class SleepWindowManager:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def start_sleep(
        self, user_id: str, pet_id: str, duration: timedelta | int | None = None
    ) -> SleepWindow:
        """Put a pet to sleep for `duration` (timedelta or milliseconds, default 8h)."""
        user_id = check_user_id(user_id)
        pet = check_key("pet_id", pet_id)
        length = _duration(duration)
        now = self._clock.now()
        end = now + length

        async def _apply(txn: Transaction) -> None:
            snap = await txn.get(QUEST_STATES, user_id)
            quests = stage_quest_state(txn, user_id, snap, now, pets=[pet])
            if pet not in quests.pets:
                txn.update(QUEST_STATES, user_id, {f"pets.{pet}": PetQuest.fresh().to_document()})
            txn.update(QUEST_STATES, user_id, {
                f"pets.{pet}.sleepStartAt": now,
                f"pets.{pet}.sleepEndAt": end,
                "updatedAt": now,
            })

        await self._run(_apply, "start_sleep", user_id, pet)
        logger.debug("sleep user=%s pet=%s until %s", user_id, pet, end.isoformat())
        return SleepWindow(start_at=now, end_at=end, sleeping=True, remaining=length)

    async def clear_sleep(self, user_id: str, pet_id: str) -> None:
        user_id = check_user_id(user_id)
        pet = check_key("pet_id", pet_id)
        now = self._clock.now()

        async def _apply(txn: Transaction) -> bool:
            snap = await txn.get(QUEST_STATES, user_id)
            quests = stage_quest_state(txn, user_id, snap, now)
            record = quests.pets.get(pet)
            if record is None or (record.sleep_start_at is None and record.sleep_end_at is None):
                return False
            txn.update(QUEST_STATES, user_id, {
                f"pets.{pet}.sleepStartAt": None,
                f"pets.{pet}.sleepEndAt": None,
                "updatedAt": now,
            })
            return True

        if await self._run(_apply, "clear_sleep", user_id, pet):
            logger.debug("sleep cleared user=%s pet=%s", user_id, pet)
        else:
            logger.debug("clear_sleep user=%s pet=%s: not sleeping", user_id, pet)

    async def _run(self, fn, op: str, user_id: str, pet: str):
        try:
            return await self._store.run_transaction(fn)
        except StoreError as e:
            logger.warning("%s failed for user=%s pet=%s: %s", op, user_id, pet, e)
            raise
