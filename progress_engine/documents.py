"""Root document addresses, typed loading, and lazy initialisation.

Each user owns three documents, all keyed by user id:

    userStates/{uid}    UserState
    dailyQuests/{uid}   QuestState
    users/{uid}         LoginRecord

load_*() turn a snapshot into a typed document without writing (absent →
defaults). stage_*() do the same inside a transaction or batch, and also
stage a full write when the stored document is absent or has an older
schema, so the caller's own field-path updates land on a current document.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, TypeVar

from pydantic import BaseModel

from progress_engine.models import (
    DocumentChange,
    LoginRecord,
    PetQuest,
    QuestState,
    UserState,
    is_current,
    migrate_quest_state,
    migrate_user_state,
)
from progress_engine.store import Snapshot, Writer

logger = logging.getLogger(__name__)

USER_STATES = "userStates"
QUEST_STATES = "dailyQuests"
LOGINS = "users"

M = TypeVar("M", bound=BaseModel)


def _identity(raw: dict[str, Any]) -> dict[str, Any]:
    return raw


def _load(snapshot: Snapshot, model: type[M], migrate: Callable[[dict], dict]) -> M:
    if not snapshot.exists:
        return model()
    return model.model_validate(migrate(snapshot.to_dict()))


def load_user_state(snapshot: Snapshot) -> UserState:
    return _load(snapshot, UserState, migrate_user_state)


def load_quest_state(snapshot: Snapshot) -> QuestState:
    return _load(snapshot, QuestState, migrate_quest_state)


def load_login_record(snapshot: Snapshot) -> LoginRecord:
    return _load(snapshot, LoginRecord, _identity)


def user_state_change(snapshot: Snapshot) -> DocumentChange:
    return DocumentChange(snapshot.version, load_user_state(snapshot))


def quest_state_change(snapshot: Snapshot) -> DocumentChange:
    return DocumentChange(snapshot.version, load_quest_state(snapshot))


# ---------------------------------------------------------------------------
# Staging (lazy creation + migration write-back)
# ---------------------------------------------------------------------------

def stage_user_state(
    writer: Writer, user_id: str, snapshot: Snapshot, now: datetime
) -> UserState:
    if not snapshot.exists:
        state = UserState(created_at=now, updated_at=now)
        writer.set(USER_STATES, user_id, state.to_document())
        logger.debug("created %s/%s", USER_STATES, user_id)
        return state
    raw = snapshot.to_dict()
    state = UserState.model_validate(migrate_user_state(raw))
    if not is_current(raw):
        writer.set(USER_STATES, user_id, state.to_document())
        logger.info("migrated %s/%s to schema %d", USER_STATES, user_id, state.schema_version)
    return state


def stage_quest_state(
    writer: Writer,
    user_id: str,
    snapshot: Snapshot,
    now: datetime,
    pets: list[str] | None = None,
) -> QuestState:
    """`pets` seeds fresh sub-records only when the document is created."""
    if not snapshot.exists:
        quests = QuestState(
            pets={pet: PetQuest.fresh() for pet in pets or []},
            created_at=now, updated_at=now,
        )
        writer.set(QUEST_STATES, user_id, quests.to_document())
        logger.debug("created %s/%s with pets %s", QUEST_STATES, user_id, list(quests.pets))
        return quests
    raw = snapshot.to_dict()
    quests = QuestState.model_validate(migrate_quest_state(raw))
    if not is_current(raw):
        writer.set(QUEST_STATES, user_id, quests.to_document())
        logger.info("migrated %s/%s to schema %d", QUEST_STATES, user_id, quests.schema_version)
    return quests


def stage_login_record(
    writer: Writer, user_id: str, snapshot: Snapshot, now: datetime
) -> LoginRecord:
    if not snapshot.exists:
        record = LoginRecord(created_at=now)
        writer.set(LOGINS, user_id, record.to_document())
        return record
    return load_login_record(snapshot)
