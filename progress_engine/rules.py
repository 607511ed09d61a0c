"""Game rules — constants, the activity sequence, pet levels, input checks.

Everything here is pure: no store access, no clock. Components import the
constants from this module so the numbers live in exactly one place.

Level thresholds (total correct answers):

    level 1    0 – 4
    level 2    5 – 11
    level 3   12 – 19
    level 4   20 – 29
    level 5   30+
"""

from __future__ import annotations

from datetime import timedelta
from typing import NamedTuple

ACTIVITY_SEQUENCE: tuple[str, ...] = (
    "house",
    "friend",
    "dressing-competition",
    "who-made-the-pets-sick",
    "travel",
    "food",
    "plant-dreams",
    "pet-school",
    "pet-theme-park",
    "pet-mall",
    "pet-care",
    "story",
)

QUEST_TARGET = 5
QUEST_COOLDOWN = timedelta(hours=8)
COINS_PER_QUESTION = 10
STREAK_WINDOW = timedelta(hours=24)
DEFAULT_SLEEP_DURATION = timedelta(hours=8)
ROLLOVER_THROTTLE = timedelta(seconds=60)
SADNESS_CAP_PER_DAY = 2
MOOD_PERIOD = timedelta(hours=8)

# (minimum total, level), checked highest first
LEVEL_THRESHOLDS: tuple[tuple[int, int], ...] = (
    (30, 5),
    (20, 4),
    (12, 3),
    (5, 2),
    (0, 1),
)


class InvariantViolation(ValueError):
    """Raised at the call boundary when an input would break a state invariant."""


class LevelInfo(NamedTuple):
    level: int
    next_threshold: int | None
    to_next: int | None


def activity_for_index(index: int) -> str:
    """Map any integer index onto the cyclic activity sequence."""
    return ACTIVITY_SEQUENCE[index % len(ACTIVITY_SEQUENCE)]


def next_activity_index(index: int) -> int:
    return (index + 1) % len(ACTIVITY_SEQUENCE)


def pet_level(total_correct: int) -> LevelInfo:
    """Return the level for a pet's cumulative correct-answer count.

    `next_threshold` and `to_next` are None at the top level.
    """
    total = max(0, total_correct)
    for i, (minimum, level) in enumerate(LEVEL_THRESHOLDS):
        if total >= minimum:
            if i == 0:
                return LevelInfo(level, None, None)
            nxt = LEVEL_THRESHOLDS[i - 1][0]
            return LevelInfo(level, nxt, nxt - total)
    raise AssertionError("unreachable: lowest threshold is 0")


def coins_for(questions_solved: int) -> int:
    return questions_solved * COINS_PER_QUESTION


# ---------------------------------------------------------------------------
# Boundary checks
# ---------------------------------------------------------------------------

def check_count(name: str, value: object) -> int:
    """Reject non-integer or negative counts. Zero is allowed (callers no-op)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvariantViolation(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvariantViolation(f"{name} must not be negative, got {value}")
    return value


def check_key(name: str, value: object) -> str:
    """Pet ids and adventure keys become document field-path segments."""
    if not isinstance(value, str) or not value.strip():
        raise InvariantViolation(f"{name} must be a non-empty string")
    if "." in value:
        raise InvariantViolation(f"{name} must not contain '.', got {value!r}")
    return value.strip()


def check_user_id(value: object) -> str:
    if not isinstance(value, str) or not value.strip() or "/" in value:
        raise InvariantViolation("user_id must be a non-empty string without '/'")
    return value
