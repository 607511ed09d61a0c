"""Quest state and rollover endpoints."""

from fastapi import APIRouter, Depends, Query

from progress_engine.engine import ProgressEngine

from .deps import get_engine
from .models import RolloverBody

router = APIRouter()


@router.get("/users/{user_id}/quests")
async def get_quest_states(
    user_id: str,
    owned: list[str] | None = Query(None),
    engine: ProgressEngine = Depends(get_engine),
):
    """Per-pet quest status. `owned` limits and orders the pets listed."""
    return await engine.get_quest_states(user_id, owned)


@router.post("/users/{user_id}/quests/rollover")
async def rollover(
    user_id: str,
    body: RolloverBody | None = None,
    engine: ProgressEngine = Depends(get_engine),
):
    """Run quest rollover; `force_expire` ends every pending cooldown first."""
    body = body or RolloverBody()
    if body.force_expire:
        return await engine.force_expire_cooldowns(user_id, body.owned_pets)
    return await engine.rollover(user_id, body.owned_pets)


@router.post("/users/{user_id}/quests/simulate-elapsed")
async def simulate_cooldown_elapsed(user_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Dev: end every cooldown and sleep, then roll over."""
    return await engine.simulate_cooldown_elapsed(user_id)
