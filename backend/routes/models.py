"""Pydantic request models for API endpoints."""

from pydantic import BaseModel


class SignInBody(BaseModel):
    owned_pets: list[str] | None = None


class ProgressBody(BaseModel):
    pet_id: str
    questions_solved: int
    adventure_key: str | None = None


class DeductBody(BaseModel):
    amount: int
    clamp: bool = True
    client_coins: int | None = None


class QuestDayBody(BaseModel):
    local_date: str


class RolloverBody(BaseModel):
    owned_pets: list[str] | None = None
    force_expire: bool = False


class SleepBody(BaseModel):
    duration_ms: int | None = None


class PetNameBody(BaseModel):
    name: str


class WeeklyHeartBody(BaseModel):
    filled: bool = True
