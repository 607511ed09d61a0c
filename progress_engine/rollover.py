"""Quest rollover — moves completed quests through cooldown to the next activity.

For each pet, with `active = ACTIVITY_SEQUENCE[activityIndex mod len]`:

    progress(active) < 5                  nothing to do
    progress ≥ 5, no cooldown yet         completedAt = now, cooldownUntil = now + 8h
    progress ≥ 5, now < cooldownUntil     wait (progress above 5 is trimmed to 5)
    progress ≥ 5, now ≥ cooldownUntil     drop `active`, start next activity at 0,
                                          clear completedAt / cooldownUntil

When an owned-pets list is supplied, missing pets get a fresh sub-record and
sub-records of pets no longer owned are deleted.

The decision and the writes happen in one transaction, and nothing is written
when nothing changes, so calling rollover() repeatedly is harmless: it
advances a pet at most once per cooldown period.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from progress_engine.clock import Clock
from progress_engine.documents import QUEST_STATES, stage_quest_state
from progress_engine.models import PetQuest, RolloverReport
from progress_engine.rules import (
    QUEST_COOLDOWN,
    QUEST_TARGET,
    activity_for_index,
    check_key,
    check_user_id,
    next_activity_index,
)
from progress_engine.store import DELETE_FIELD, DocumentStore, Transaction

logger = logging.getLogger(__name__)


class QuestRolloverScheduler:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def rollover(
        self, user_id: str, owned_pets: list[str] | None = None
    ) -> RolloverReport:
        user_id = check_user_id(user_id)
        owned = _dedupe(check_key("owned pet", p) for p in owned_pets or [])
        now = self._clock.now()

        async def _apply(txn: Transaction) -> RolloverReport:
            snap = await txn.get(QUEST_STATES, user_id)
            report = RolloverReport(created_document=not snap.exists)
            quests = stage_quest_state(txn, user_id, snap, now, pets=owned)

            updates: dict[str, Any] = {}
            if owned:
                for pet in quests.pets:
                    if pet not in owned:
                        updates[f"pets.{pet}"] = DELETE_FIELD
                        report.pruned.append(pet)
                for pet in owned:
                    if pet not in quests.pets:
                        updates[f"pets.{pet}"] = PetQuest.fresh().to_document()
                        report.created.append(pet)

            for pet in owned or list(quests.pets):
                record = quests.pets.get(pet)
                if record is not None:
                    updates.update(plan_pet_rollover(pet, record, now, report))

            if updates:
                updates["updatedAt"] = now
                txn.update(QUEST_STATES, user_id, updates)
            return report

        report = await self._store.run_transaction(_apply)
        if report.changed:
            logger.info(
                "rollover user=%s advanced=%s cooling=%s trimmed=%s created=%s pruned=%s",
                user_id, report.advanced, report.cooling, report.trimmed,
                report.created, report.pruned,
            )
        else:
            logger.debug("rollover user=%s: nothing to do", user_id)
        return report

    async def force_expire_cooldowns(
        self, user_id: str, owned_pets: list[str] | None = None
    ) -> RolloverReport:
        """Dev utility: treat every completed quest's cooldown as already over,
        then run a normal rollover so those pets advance immediately."""
        user_id = check_user_id(user_id)
        owned = _dedupe(check_key("owned pet", p) for p in owned_pets or [])
        now = self._clock.now()
        expired = now - timedelta(milliseconds=1)

        async def _expire(txn: Transaction) -> list[str]:
            snap = await txn.get(QUEST_STATES, user_id)
            if not snap.exists:
                return []
            quests = stage_quest_state(txn, user_id, snap, now)
            updates: dict[str, Any] = {}
            for pet in owned or list(quests.pets):
                record = quests.pets.get(pet)
                if record is None or not record.completed:
                    continue
                updates[f"pets.{pet}.cooldownUntil"] = expired
                if record.completed_at is None:
                    updates[f"pets.{pet}.completedAt"] = now
            if updates:
                updates["updatedAt"] = now
                txn.update(QUEST_STATES, user_id, updates)
            return [key.split(".")[1] for key in updates if key.endswith("cooldownUntil")]

        pets = await self._store.run_transaction(_expire)
        logger.info("force-expired cooldowns user=%s pets=%s", user_id, pets)
        return await self.rollover(user_id, owned_pets=owned or None)

    async def simulate_cooldown_elapsed(self, user_id: str) -> RolloverReport:
        """Dev utility: act as if the cooldown period has passed.

        Every completed quest's cooldown and every running sleep end just
        before now, stray progress keys are removed, then a normal rollover
        runs. A missing document is left missing.
        """
        user_id = check_user_id(user_id)
        now = self._clock.now()
        past = now - timedelta(seconds=1)

        async def _expire(txn: Transaction) -> bool:
            snap = await txn.get(QUEST_STATES, user_id)
            if not snap.exists:
                return False
            quests = stage_quest_state(txn, user_id, snap, now)
            updates: dict[str, Any] = {}
            for pet, record in quests.pets.items():
                base = f"pets.{pet}"
                if record.completed:
                    updates[f"{base}.cooldownUntil"] = past
                    if record.completed_at is None:
                        updates[f"{base}.completedAt"] = now
                if record.sleep_end_at is not None and record.sleep_end_at > now:
                    updates[f"{base}.sleepEndAt"] = past
                for key in record.progress:
                    if key != record.activity:
                        updates[f"{base}.progress.{key}"] = DELETE_FIELD
            updates["updatedAt"] = now
            txn.update(QUEST_STATES, user_id, updates)
            return True

        if not await self._store.run_transaction(_expire):
            logger.debug("simulate elapsed user=%s: no quest document", user_id)
            return RolloverReport()
        logger.info("simulated cooldown elapsed user=%s", user_id)
        return await self.rollover(user_id)


def plan_pet_rollover(
    pet: str, record: PetQuest, now: datetime, report: RolloverReport
) -> dict[str, Any]:
    """Return the field updates one pet needs; record the outcome in `report`."""
    activity = record.activity
    progress = record.active_progress
    base = f"pets.{pet}"
    if progress < QUEST_TARGET:
        return {}

    if record.cooldown_until is None:
        report.cooling.append(pet)
        fields: dict[str, Any] = {
            f"{base}.completedAt": now,
            f"{base}.cooldownUntil": now + QUEST_COOLDOWN,
        }
        if progress > QUEST_TARGET:
            fields[f"{base}.progress.{activity}"] = QUEST_TARGET
            report.trimmed.append(pet)
        return fields

    if now >= record.cooldown_until:
        next_index = next_activity_index(record.activity_index)
        next_activity = activity_for_index(next_index)
        report.advanced.append(pet)
        fields = {
            f"{base}.progress.{key}": DELETE_FIELD
            for key in record.progress
            if key != next_activity
        }
        fields.update({
            f"{base}.progress.{next_activity}": 0,
            f"{base}.activityIndex": next_index,
            f"{base}.completedAt": None,
            f"{base}.cooldownUntil": None,
            f"{base}.lastCompletedActivity": None,
        })
        return fields

    if progress > QUEST_TARGET:
        report.trimmed.append(pet)
        return {f"{base}.progress.{activity}": QUEST_TARGET}
    return {}


def _dedupe(pets) -> list[str]:
    seen: list[str] = []
    for pet in pets:
        if pet not in seen:
            seen.append(pet)
    return seen
