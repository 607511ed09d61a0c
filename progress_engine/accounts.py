"""Account-level writes: document initialisation, coin spending, pet names,
weekly hearts."""

from __future__ import annotations

import logging
from datetime import date

from progress_engine.clock import Clock
from progress_engine.documents import (
    QUEST_STATES,
    USER_STATES,
    load_user_state,
    stage_quest_state,
    stage_user_state,
)
from progress_engine.models import PetQuest, QuestState, UserState
from progress_engine.rules import (
    InvariantViolation,
    check_count,
    check_key,
    check_user_id,
)
from progress_engine.store import DELETE_FIELD, DocumentStore, StoreError, Transaction

logger = logging.getLogger(__name__)

DEFAULT_PETS = ("hamster", "dog")


class AccountService:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def ensure_documents(
        self, user_id: str, initial_pets: list[str] | None = None
    ) -> tuple[UserState, QuestState]:
        """Create (or migrate) both root documents and give every listed pet a
        quest sub-record. Pets already present are left alone, nothing is pruned.
        """
        user_id = check_user_id(user_id)
        pets = [check_key("pet", p) for p in (initial_pets if initial_pets is not None else DEFAULT_PETS)]
        now = self._clock.now()

        async def _apply(txn: Transaction) -> tuple[UserState, QuestState]:
            user_snap = await txn.get(USER_STATES, user_id)
            quest_snap = await txn.get(QUEST_STATES, user_id)
            state = stage_user_state(txn, user_id, user_snap, now)
            quests = stage_quest_state(txn, user_id, quest_snap, now, pets=pets)
            missing = {p: PetQuest.fresh() for p in pets if p not in quests.pets}
            if missing:
                txn.update(QUEST_STATES, user_id, {
                    **{f"pets.{p}": record.to_document() for p, record in missing.items()},
                    "updatedAt": now,
                })
                quests.pets.update(missing)
            return state, quests

        state, quests = await self._store.run_transaction(_apply)
        logger.debug("documents ready user=%s pets=%s", user_id, list(quests.pets))
        return state, quests

    async def deduct_coins(
        self,
        user_id: str,
        amount: int,
        *,
        clamp: bool = True,
        client_coins: int | None = None,
    ) -> bool:
        """Spend coins. Returns True when the purchase goes ahead.

        With `clamp` an uncovered amount still goes ahead and the balance drops
        to 0. Without it the deduction is refused, nothing is written and the
        result is False. `client_coins` is the balance the caller last saw;
        the larger of it and the stored balance is spent from, so a stale
        server copy never zeroes the wallet.
        """
        user_id = check_user_id(user_id)
        amount = check_count("amount", amount)
        if client_coins is not None:
            client_coins = check_count("client_coins", client_coins)
        if amount == 0:
            return True
        now = self._clock.now()

        async def _apply(txn: Transaction) -> tuple[int, int, bool]:
            snap = await txn.get(USER_STATES, user_id)
            state = stage_user_state(txn, user_id, snap, now)
            base = max(state.coins, client_coins or 0)
            if base < amount and not clamp:
                return base, base, False
            balance = max(0, base - amount)
            txn.update(USER_STATES, user_id, {"coins": balance, "updatedAt": now})
            return base, balance, True

        before, after, spent = await self._store.run_transaction(_apply)
        if not spent:
            logger.info("coins user=%s: deduction of %d refused, balance %d", user_id, amount, before)
        elif before < amount:
            logger.info("coins user=%s: deduction of %d clamped, %d → 0", user_id, amount, before)
        else:
            logger.debug("coins user=%s %d → %d", user_id, before, after)
        return spent

    async def set_pet_name(self, user_id: str, pet_id: str, name: str) -> None:
        """Set a pet's display name; a blank name removes it.

        Naming a pet owns it, so a missing quest sub-record is created too.
        """
        user_id = check_user_id(user_id)
        pet = check_key("pet_id", pet_id)
        if not isinstance(name, str):
            raise InvariantViolation("name must be a string")
        name = name.strip()
        now = self._clock.now()

        async def _apply(txn: Transaction) -> None:
            user_snap = await txn.get(USER_STATES, user_id)
            quest_snap = await txn.get(QUEST_STATES, user_id)
            stage_user_state(txn, user_id, user_snap, now)
            if name:
                quests = stage_quest_state(txn, user_id, quest_snap, now, pets=[pet])
                if pet not in quests.pets:
                    txn.update(QUEST_STATES, user_id, {
                        f"pets.{pet}": PetQuest.fresh().to_document(),
                        "updatedAt": now,
                    })
            txn.update(USER_STATES, user_id, {
                f"petNames.{pet}": name or DELETE_FIELD,
                "updatedAt": now,
            })

        await self._run(_apply, "set_pet_name", user_id)

    async def get_pet_names(self, user_id: str) -> dict[str, str]:
        user_id = check_user_id(user_id)
        return load_user_state(await self._store.get(USER_STATES, user_id)).pet_names

    async def set_weekly_heart(
        self, user_id: str, week_key: str, day: date | str, filled: bool = True
    ) -> None:
        """Mark (or unmark) one day of a week's heart chart."""
        user_id = check_user_id(user_id)
        week = check_key("week_key", week_key)
        day_key = check_key("day", day.isoformat() if isinstance(day, date) else day)
        now = self._clock.now()

        async def _apply(txn: Transaction) -> None:
            snap = await txn.get(USER_STATES, user_id)
            stage_user_state(txn, user_id, snap, now)
            txn.update(USER_STATES, user_id, {
                f"weeklyHearts.{week}.{day_key}": bool(filled),
                "updatedAt": now,
            })

        await self._run(_apply, "set_weekly_heart", user_id)

    async def _run(self, fn, op: str, user_id: str) -> None:
        try:
            await self._store.run_transaction(fn)
        except StoreError as e:
            logger.warning("%s failed for user=%s: %s", op, user_id, e)
            raise
