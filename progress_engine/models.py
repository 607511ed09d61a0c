"""Core domain models.

Stored documents and the read models derived from them. Pydantic validates
every document coming out of the store; field names are camelCase on the
wire (aliases) and snake_case in Python.

Stored documents (schema version 2):

    userStates/{uid}    UserState
    dailyQuests/{uid}   QuestState  — one PetQuest per owned pet
    users/{uid}         LoginRecord

Documents written before schema versioning (no `schemaVersion` field) are
migrated on read by migrate_user_state() / migrate_quest_state().
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from progress_engine.rules import (
    QUEST_TARGET,
    SADNESS_CAP_PER_DAY,
    activity_for_index,
)

SCHEMA_VERSION = 2


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*")
    @classmethod
    def _naive_is_utc(cls, value: Any) -> Any:
        # Older documents may carry timestamps without an offset
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Stored documents
# ---------------------------------------------------------------------------

class SadnessAssignment(_CamelModel):
    """Pets that are sad on `day` (ISO date), at most `cap` of them."""

    day: str
    assigned_pets: list[str] = Field(default_factory=list)
    cap: int = SADNESS_CAP_PER_DAY


class SadnessRotation(_CamelModel):
    """Fairness bookkeeping: `pointer` is where the next day's pick starts."""

    day: str | None = None
    pointer: int = 0
    last_assigned_pets: list[str] = Field(default_factory=list)
    cap: int = SADNESS_CAP_PER_DAY


class MoodPeriod(_CamelModel):
    """The current mood rotation period, kept so every device agrees on it."""

    period_id: str
    anchor_at: datetime
    next_reset_at: datetime | None = None
    sad_pet_ids: list[str] = Field(default_factory=list)
    baseline_coins_by_pet: dict[str, int] = Field(default_factory=dict)
    last_assignment_reason: str = "init"


class UserState(_CamelModel):
    """Per-user counters, balance and streak."""

    schema_version: int = SCHEMA_VERSION
    pets: dict[str, int] = Field(default_factory=dict)
    pet_names: dict[str, str] = Field(default_factory=dict)
    pet_questions: dict[str, dict[str, int]] = Field(default_factory=dict)
    coins: int = 0
    streak: int = 0
    last_streak_increment_at: datetime | None = None
    last_streak_local_date: str | None = None
    weekly_hearts: dict[str, dict[str, bool]] = Field(default_factory=dict)
    sadness_rotation: SadnessRotation | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def owned_pets(self) -> list[str]:
        """Named pets first, then any pet that has earned progress."""
        owned = list(self.pet_names)
        owned.extend(p for p in self.pets if p not in self.pet_names)
        return owned


class PetQuest(_CamelModel):
    """One pet's quest sub-record.

    `progress` holds a single live key: the activity selected by
    `activity_index`. Stray keys from older data are ignored on read and
    removed on the next advancement.
    """

    activity_index: int = 0
    progress: dict[str, int] = Field(default_factory=dict)
    completed_at: datetime | None = None
    cooldown_until: datetime | None = None
    sleep_start_at: datetime | None = None
    sleep_end_at: datetime | None = None
    last_completed_activity: str | None = None

    @classmethod
    def fresh(cls, activity_index: int = 0) -> PetQuest:
        return cls(
            activity_index=activity_index,
            progress={activity_for_index(activity_index): 0},
        )

    @property
    def activity(self) -> str:
        return activity_for_index(self.activity_index)

    @property
    def active_progress(self) -> int:
        return self.progress.get(self.activity, 0)

    @property
    def completed(self) -> bool:
        return self.active_progress >= QUEST_TARGET

    def ready_to_advance(self, now: datetime) -> bool:
        """Completed and either not yet cooling down or past the cooldown."""
        if not self.completed:
            return False
        return self.cooldown_until is None or now >= self.cooldown_until


class QuestState(_CamelModel):
    schema_version: int = SCHEMA_VERSION
    pets: dict[str, PetQuest] = Field(default_factory=dict)
    sadness: SadnessAssignment | None = None
    mood_period: MoodPeriod | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoginRecord(_CamelModel):
    """Companion profile document; only the login timestamp matters here."""

    last_login_at: datetime | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Read models and operation results
# ---------------------------------------------------------------------------

class PetOverview(_CamelModel):
    total_correct: int
    level: int
    next_threshold: int | None
    to_next: int | None


class Overview(_CamelModel):
    coins: int = 0
    streak: int = 0
    lifetime_coins: int = 0  # coin-equivalent of every correct answer ever
    pets: dict[str, PetOverview] = Field(default_factory=dict)
    updated_at: datetime | None = None


class QuestStatus(_CamelModel):
    pet: str
    activity: str
    progress: int
    target: int = QUEST_TARGET
    completed: bool
    activity_index: int
    cooldown_until: datetime | None = None
    completed_at: datetime | None = None
    last_completed_activity: str | None = None
    sleep_start_at: datetime | None = None
    sleep_end_at: datetime | None = None
    sleeping: bool = False
    ready_to_advance: bool = False


class SleepWindow(_CamelModel):
    start_at: datetime | None = None
    end_at: datetime | None = None
    sleeping: bool = False
    remaining: timedelta | None = None


class ProgressReceipt(_CamelModel):
    pet: str
    activity: str
    progress: int
    coins_awarded: int
    completed_now: bool


class RolloverReport(_CamelModel):
    created_document: bool = False
    created: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    cooling: list[str] = Field(default_factory=list)
    advanced: list[str] = Field(default_factory=list)
    trimmed: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any((
            self.created_document, self.created, self.pruned,
            self.cooling, self.advanced, self.trimmed,
        ))


class DocumentChange(NamedTuple):
    """A typed document plus the store version it was read at."""

    version: int
    document: Any


# ---------------------------------------------------------------------------
# Migration of pre-versioned documents
# ---------------------------------------------------------------------------

_LEGACY_PET_FIELDS = {
    "_activityIndex": "activityIndex",
    "_completedAt": "completedAt",
    "_cooldownUntil": "cooldownUntil",
    "_sleepStartAt": "sleepStartAt",
    "_sleepEndAt": "sleepEndAt",
    "_lastCompletedActivity": "lastCompletedActivity",
}

_QUEST_STATE_FIELDS = {"schemaVersion", "pets", "sadness", "moodPeriod", "createdAt", "updatedAt"}


def is_current(raw: dict[str, Any]) -> bool:
    return int(raw.get("schemaVersion") or 1) >= SCHEMA_VERSION


def migrate_user_state(raw: dict[str, Any]) -> dict[str, Any]:
    """Lowercase `petnames` / `petquestions` → `petNames` / `petQuestions`;
    `sadnessRotation` switches to `day` / `cap` keys."""
    if is_current(raw):
        return raw
    data = dict(raw)
    for legacy, current in (("petnames", "petNames"), ("petquestions", "petQuestions")):
        if legacy in data:
            merged = dict(data.pop(legacy) or {})
            merged.update(data.get(current) or {})
            data[current] = merged
    rotation = data.pop("sadnessRotation", None)
    if isinstance(rotation, dict):
        data["sadnessRotation"] = {
            "day": rotation.get("date"),
            "pointer": int(rotation.get("pointer") or 0),
            "lastAssignedPets": list(rotation.get("lastAssignedPets") or []),
            "cap": int(rotation.get("max") or SADNESS_CAP_PER_DAY),
        }
    data["schemaVersion"] = SCHEMA_VERSION
    return data


def migrate_quest_state(raw: dict[str, Any]) -> dict[str, Any]:
    """Move top-level pet entries under `pets` and rename `_`-prefixed fields.

    `_sadness` and `_moodPeriod` become `sadness` and `moodPeriod`. Other
    user-scoped keys of the old layout (`_userCurrentActivity`,
    `_userCooldownUntil`, ...) have no counterpart and are dropped.
    """
    if is_current(raw):
        return raw
    pets: dict[str, Any] = {
        pet: dict(record)
        for pet, record in (raw.get("pets") or {}).items()
        if isinstance(record, dict)
    }
    for key, value in raw.items():
        if key in _QUEST_STATE_FIELDS or key.startswith("_") or not isinstance(value, dict):
            continue
        pets[key] = _migrate_pet(value)
    return {
        "schemaVersion": SCHEMA_VERSION,
        "pets": pets,
        "sadness": _migrate_sadness(raw.get("_sadness")),
        "moodPeriod": _migrate_mood_period(raw.get("_moodPeriod")),
        "createdAt": raw.get("createdAt"),
        "updatedAt": raw.get("updatedAt"),
    }


def _migrate_sadness(legacy: Any) -> dict[str, Any] | None:
    if not isinstance(legacy, dict) or not legacy.get("date"):
        return None
    if not isinstance(legacy.get("assignedPets"), list):
        return None
    return {
        "day": str(legacy["date"]),
        "assignedPets": [str(p) for p in legacy["assignedPets"]],
        "cap": int(legacy.get("max") or SADNESS_CAP_PER_DAY),
    }


def _migrate_mood_period(legacy: Any) -> dict[str, Any] | None:
    if not isinstance(legacy, dict) or not legacy.get("anchorAt"):
        return None
    return {
        "periodId": str(legacy.get("periodId") or ""),
        "anchorAt": legacy["anchorAt"],
        "nextResetAt": legacy.get("nextResetAt"),
        "sadPetIds": list(legacy.get("sadPetIds") or []),
        "baselineCoinsByPet": dict(legacy.get("baselineCoinsByPet") or {}),
        "lastAssignmentReason": str(legacy.get("lastAssignmentReason") or "init"),
    }


def _migrate_pet(legacy: dict[str, Any]) -> dict[str, Any]:
    record: dict[str, Any] = {}
    counters: dict[str, int] = {}
    for key, value in legacy.items():
        if key in _LEGACY_PET_FIELDS:
            record[_LEGACY_PET_FIELDS[key]] = value
        elif key.startswith("_"):
            continue
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            counters[key] = int(value)
    active = activity_for_index(int(record.get("activityIndex") or 0))
    record["progress"] = {active: counters.get(active, 0)}
    return record
