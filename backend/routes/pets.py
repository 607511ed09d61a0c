"""Pet sleep windows, pet names and weekly hearts."""

from fastapi import APIRouter, Depends

from progress_engine.engine import ProgressEngine

from .deps import get_engine
from .models import PetNameBody, SleepBody, WeeklyHeartBody

router = APIRouter()


# ── Sleep ────────────────────────────────────


@router.post("/users/{user_id}/pets/{pet_id}/sleep")
async def start_sleep(
    user_id: str,
    pet_id: str,
    body: SleepBody | None = None,
    engine: ProgressEngine = Depends(get_engine),
):
    """Put a pet to sleep (default 8 hours)."""
    duration = body.duration_ms if body else None
    return await engine.start_sleep(user_id, pet_id, duration)


@router.delete("/users/{user_id}/pets/{pet_id}/sleep")
async def clear_sleep(user_id: str, pet_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Wake a pet up."""
    await engine.clear_sleep(user_id, pet_id)
    return {"ok": True}


# ── Names ────────────────────────────────────


@router.get("/users/{user_id}/pet-names")
async def get_pet_names(user_id: str, engine: ProgressEngine = Depends(get_engine)):
    return await engine.get_pet_names(user_id)


@router.put("/users/{user_id}/pets/{pet_id}/name")
async def set_pet_name(
    user_id: str, pet_id: str, body: PetNameBody, engine: ProgressEngine = Depends(get_engine)
):
    """Set a pet's display name; an empty name removes it."""
    await engine.set_pet_name(user_id, pet_id, body.name)
    return await engine.get_pet_names(user_id)


# ── Weekly hearts ────────────────────────────────────


@router.put("/users/{user_id}/weekly-hearts/{week_key}/{day}")
async def set_weekly_heart(
    user_id: str,
    week_key: str,
    day: str,
    body: WeeklyHeartBody | None = None,
    engine: ProgressEngine = Depends(get_engine),
):
    """Fill (or clear) one day's heart in a week's chart."""
    await engine.set_weekly_heart(user_id, week_key, day, body.filled if body else True)
    return {"ok": True}
