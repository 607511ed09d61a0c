"""Streak accounting.

Login streak, applied once per sign-in:

    diff = now − previous lastLoginAt

    0 < diff ≤ 24h    streak += 1, unless the last increment was within 24h
    otherwise         streak = 0   (diff zero, negative, absent, or > 24h)

lastLoginAt is always moved to now. The read of both documents and the
write-back happen in one transaction, so concurrent sign-ins from several
devices cannot double-count.

Quest-day streak (increment_quest_day): counts calendar days on which at
least one pet finished a quest. Once per local date, and only if some pet's
completedAt falls on that date, the streak continues (+1) or restarts at 1.
Weekends are a bonus: playing on them counts, skipping them does not break
the streak.

    Saturday     continues from Friday
    Sunday       continues from Saturday or Friday
    Monday       continues from Sunday, Saturday or Friday
    Tue to Fri   continues from the previous day only
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo

from progress_engine.clock import Clock
from progress_engine.documents import (
    LOGINS,
    QUEST_STATES,
    USER_STATES,
    load_quest_state,
    stage_login_record,
    stage_user_state,
)
from progress_engine.rules import STREAK_WINDOW, InvariantViolation, check_user_id
from progress_engine.store import DocumentStore, Transaction

logger = logging.getLogger(__name__)


def next_streak(
    current: int,
    last_increment_at: datetime | None,
    previous_login_at: datetime | None,
    now: datetime,
) -> tuple[int, datetime | None]:
    """Return the new streak and the new lastStreakIncrementAt."""
    if previous_login_at is None:
        return 0, last_increment_at
    diff = now - previous_login_at
    if diff.total_seconds() <= 0 or diff > STREAK_WINDOW:
        return 0, last_increment_at
    if last_increment_at is not None and now - last_increment_at <= STREAK_WINDOW:
        return current, last_increment_at
    return current + 1, now


def continues_streak(previous: date | None, current: date) -> bool:
    """Whether a quest day on `current` extends a streak last counted on `previous`."""
    if previous is None:
        return False
    gap = (current - previous).days
    if gap <= 0:
        return False
    weekday = current.weekday()
    if weekday == 6:
        return gap in (1, 2)
    if weekday == 0:
        return gap in (1, 2, 3)
    return gap == 1


def _parse_day(value: date | str | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvariantViolation(f"not an ISO date: {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvariantViolation(f"not an ISO date: {value!r}") from e


class StreakCalculator:
    def __init__(self, store: DocumentStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def apply_sign_in(self, user_id: str) -> int:
        """Run the streak transaction for one sign-in and return the new streak."""
        user_id = check_user_id(user_id)
        now = self._clock.now()

        async def _apply(txn: Transaction) -> tuple[int, int]:
            login_snap = await txn.get(LOGINS, user_id)
            user_snap = await txn.get(USER_STATES, user_id)
            login = stage_login_record(txn, user_id, login_snap, now)
            state = stage_user_state(txn, user_id, user_snap, now)

            streak, increment_at = next_streak(
                state.streak, state.last_streak_increment_at, login.last_login_at, now,
            )
            txn.update(USER_STATES, user_id, {
                "streak": streak,
                "lastStreakIncrementAt": increment_at,
                "updatedAt": now,
            })
            txn.update(LOGINS, user_id, {"lastLoginAt": now})
            return state.streak, streak

        before, after = await self._store.run_transaction(_apply)
        if after != before:
            logger.info("streak user=%s %d → %d", user_id, before, after)
        else:
            logger.debug("streak user=%s unchanged at %d", user_id, after)
        return after

    async def increment_quest_day(
        self, user_id: str, local_date: date | str, tz: tzinfo = timezone.utc
    ) -> int:
        """Count `local_date` as a quest day if any pet completed a quest on it.

        `tz` is the user's zone; completion timestamps are compared in it.
        Returns the streak, changed or not.
        """
        user_id = check_user_id(user_id)
        day = _parse_day(local_date)
        if day is None:
            raise InvariantViolation("local_date is required")
        now = self._clock.now()

        async def _apply(txn: Transaction) -> tuple[int, int]:
            user_snap = await txn.get(USER_STATES, user_id)
            quest_snap = await txn.get(QUEST_STATES, user_id)
            state = stage_user_state(txn, user_id, user_snap, now)
            if state.last_streak_local_date == day.isoformat():
                return state.streak, state.streak

            quests = load_quest_state(quest_snap)
            finished = any(
                record.completed_at is not None
                and record.completed_at.astimezone(tz).date() == day
                for record in quests.pets.values()
            )
            if not finished:
                return state.streak, state.streak

            try:
                previous = _parse_day(state.last_streak_local_date)
            except InvariantViolation:
                previous = None
            streak = state.streak + 1 if continues_streak(previous, day) else 1
            txn.update(USER_STATES, user_id, {
                "streak": streak,
                "lastStreakIncrementAt": now,
                "lastStreakLocalDate": day.isoformat(),
                "updatedAt": now,
            })
            return state.streak, streak

        before, after = await self._store.run_transaction(_apply)
        if after != before:
            logger.info("quest-day streak user=%s %s: %d → %d", user_id, day, before, after)
        return after
