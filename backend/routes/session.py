"""Sign-in / sign-out / focus lifecycle endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from backend.sessions import SessionRegistry

from .deps import get_sessions
from .models import SignInBody

router = APIRouter()


@router.post("/users/{user_id}/sign-in")
async def sign_in(
    user_id: str,
    body: SignInBody | None = None,
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Hydrate a session: streak update, snapshot, live subscriptions."""
    cache = await sessions.sign_in(user_id, body.owned_pets if body else None)
    return {
        "user_id": cache.user_id,
        "overview": cache.overview,
        "quests": cache.quests,
        "pet_names": cache.user_state.pet_names,
    }


@router.post("/users/{user_id}/focus")
async def focus(user_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    """App regained focus: throttled rollover attempt."""
    attempted = await sessions.focus(user_id)
    if attempted is None:
        raise HTTPException(404, "No active session")
    return {"rollover_attempted": attempted}


@router.post("/users/{user_id}/sign-out")
async def sign_out(user_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    """Tear down the user's session."""
    if not await sessions.sign_out(user_id):
        raise HTTPException(404, "No active session")
    return {"ok": True}
