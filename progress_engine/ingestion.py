"""Progress ingestion — turns correctly-answered questions into credit.

One call to record_progress(user, pet, q, adventure_key) applies, in a
single transaction over both root documents:

    userStates.pets[pet]                      += q
    userStates.coins                          += q × 10
    userStates.petQuestions[pet][bucket]      += q     bucket = adventure_key or active activity
    dailyQuests.pets[pet].progress[active]    += q

Counters change only through Increment sentinels. The completion decision
(first time progress reaches the target while no cooldown is set) reads the
pre-increment progress inside the same transaction, so two concurrent calls
can never both miss, or both claim, the completion.
"""

from __future__ import annotations

import logging

from progress_engine.clock import Clock
from progress_engine.documents import (
    QUEST_STATES,
    USER_STATES,
    stage_quest_state,
    stage_user_state,
)
from progress_engine.models import PetQuest, ProgressReceipt
from progress_engine.rules import (
    QUEST_COOLDOWN,
    QUEST_TARGET,
    check_count,
    check_key,
    check_user_id,
    coins_for,
)
from progress_engine.store import DocumentStore, Increment, Transaction

logger = logging.getLogger(__name__)


class ProgressIngestion:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def record_progress(
        self,
        user_id: str,
        pet_id: str,
        questions_solved: int,
        adventure_key: str | None = None,
    ) -> ProgressReceipt | None:
        """Credit `questions_solved` correct answers to a pet.

        Returns None when nothing was solved. Raises InvariantViolation for
        negative counts or malformed ids, before touching the store.
        """
        user_id = check_user_id(user_id)
        pet = check_key("pet_id", pet_id)
        solved = check_count("questions_solved", questions_solved)
        adventure = None
        if adventure_key is not None and adventure_key != "":
            adventure = check_key("adventure_key", adventure_key)
        if solved == 0:
            logger.debug("record_progress no-op user=%s pet=%s", user_id, pet)
            return None

        now = self._clock.now()

        async def _apply(txn: Transaction) -> ProgressReceipt:
            quest_snap = await txn.get(QUEST_STATES, user_id)
            user_snap = await txn.get(USER_STATES, user_id)
            quests = stage_quest_state(txn, user_id, quest_snap, now, pets=[pet])
            stage_user_state(txn, user_id, user_snap, now)

            record = quests.pets.get(pet)
            if record is None:
                record = PetQuest.fresh()
                txn.update(QUEST_STATES, user_id, {f"pets.{pet}": record.to_document()})

            activity = record.activity
            progress = record.active_progress + solved
            bucket = adventure or activity
            base = f"pets.{pet}"

            quest_fields: dict = {
                f"{base}.progress.{activity}": Increment(solved),
                "updatedAt": now,
            }
            completed_now = progress >= QUEST_TARGET and record.cooldown_until is None
            if completed_now:
                quest_fields.update({
                    f"{base}.completedAt": now,
                    f"{base}.cooldownUntil": now + QUEST_COOLDOWN,
                    f"{base}.lastCompletedActivity": bucket,
                })
            elif record.completed_at is not None and record.completed_at.date() == now.date():
                # Keep the "finished today" label pointing at the latest adventure
                quest_fields[f"{base}.lastCompletedActivity"] = bucket
            txn.update(QUEST_STATES, user_id, quest_fields)

            txn.update(USER_STATES, user_id, {
                f"pets.{pet}": Increment(solved),
                "coins": Increment(coins_for(solved)),
                f"petQuestions.{pet}.{bucket}": Increment(solved),
                "updatedAt": now,
            })
            return ProgressReceipt(
                pet=pet,
                activity=activity,
                progress=progress,
                coins_awarded=coins_for(solved),
                completed_now=completed_now,
            )

        receipt = await self._store.run_transaction(_apply)
        logger.debug(
            "progress user=%s pet=%s +%d → %s=%d",
            user_id, pet, solved, receipt.activity, receipt.progress,
        )
        if receipt.completed_now:
            logger.info(
                "quest completed user=%s pet=%s activity=%s, cooling down for %s",
                user_id, pet, receipt.activity, QUEST_COOLDOWN,
            )
        return receipt
