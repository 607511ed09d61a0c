"""Progress ingestion, coin spending, streaks and overview endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from progress_engine.engine import ProgressEngine

from .deps import get_engine
from .models import DeductBody, ProgressBody, QuestDayBody

router = APIRouter()


@router.post("/users/{user_id}/progress")
async def record_progress(
    user_id: str, body: ProgressBody, engine: ProgressEngine = Depends(get_engine)
):
    """Credit correctly-answered questions to a pet."""
    receipt = await engine.record_progress(
        user_id, body.pet_id, body.questions_solved, body.adventure_key,
    )
    if receipt is None:
        return {"recorded": False}
    return {"recorded": True, "receipt": receipt}


@router.post("/users/{user_id}/coins/deduct")
async def deduct_coins(
    user_id: str, body: DeductBody, engine: ProgressEngine = Depends(get_engine)
):
    """Spend coins. With `clamp` (default) the purchase always goes ahead and
    the balance stops at 0; without it an uncovered amount is a 409."""
    spent = await engine.deduct_coins(
        user_id, body.amount, clamp=body.clamp, client_coins=body.client_coins,
    )
    if not spent:
        raise HTTPException(409, "Insufficient coins")
    overview = await engine.get_overview(user_id)
    return {"ok": True, "coins": overview.coins}


@router.post("/users/{user_id}/streak/quest-day")
async def increment_quest_day(
    user_id: str, body: QuestDayBody, engine: ProgressEngine = Depends(get_engine)
):
    """Count a local date toward the quest-day streak."""
    return {"streak": await engine.increment_quest_day(user_id, body.local_date)}


@router.get("/users/{user_id}/overview")
async def get_overview(user_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Coins, streak and per-pet levels."""
    return await engine.get_overview(user_id)
