"""Daily sad-pet rotation and the shared mood period."""

from fastapi import APIRouter, Depends, HTTPException

from progress_engine.engine import ProgressEngine
from progress_engine.models import MoodPeriod

from .deps import get_engine

router = APIRouter()


@router.post("/users/{user_id}/sadness")
async def ensure_daily_sadness(user_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Today's sad pets, assigned on the first call of the day."""
    return await engine.ensure_daily_sadness(user_id)


@router.post("/users/{user_id}/pets/{pet_id}/sad")
async def ensure_pet_sad(user_id: str, pet_id: str, engine: ProgressEngine = Depends(get_engine)):
    return await engine.ensure_pet_sad(user_id, pet_id)


@router.get("/users/{user_id}/mood-period")
async def get_mood_period(user_id: str, engine: ProgressEngine = Depends(get_engine)):
    period = await engine.get_mood_period(user_id)
    if period is None:
        raise HTTPException(404, "No mood period")
    return period


@router.put("/users/{user_id}/mood-period")
async def set_mood_period(
    user_id: str, body: MoodPeriod, engine: ProgressEngine = Depends(get_engine)
):
    return await engine.set_mood_period(user_id, body)
