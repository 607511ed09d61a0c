"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, session lifecycle (sign-in, focus,
sign-out), progress + coins + streak + overview, quests + rollover, pets
(sleep, names, weekly hearts) and moods (sad pets, mood period). Everything
user-scoped is nested under /api/users/{user_id}/.
"""

from fastapi import APIRouter

from .mood import router as mood_router
from .pets import router as pets_router
from .progress import router as progress_router
from .quests import router as quests_router
from .session import router as session_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(session_router)
router.include_router(progress_router)
router.include_router(quests_router)
router.include_router(pets_router)
router.include_router(mood_router)
