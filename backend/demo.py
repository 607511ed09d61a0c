"""Seed a demo account for development/testing."""

import logging
from datetime import date

from progress_engine.engine import ProgressEngine

logger = logging.getLogger(__name__)

DEMO_USER = "demo"

DEMO_PETS = {
    "fox": "Rusty",
    "hamster": "Biscuit",
    "dog": "Pepper",
}

# (pet, questions solved, adventure key)
DEMO_PROGRESS = [
    ("fox", 3, "house"),
    ("fox", 2, "house"),
    ("hamster", 4, None),
    ("dog", 7, "friend"),
]


async def create_demo_data(engine: ProgressEngine, user_id: str = DEMO_USER) -> None:
    """Create the demo user's documents with names, progress, a sleeping pet
    and a couple of weekly hearts. Safe to run on an existing demo user:
    counters simply grow."""
    await engine.ensure_documents(user_id, list(DEMO_PETS))
    for pet, name in DEMO_PETS.items():
        await engine.set_pet_name(user_id, pet, name)

    for pet, solved, adventure in DEMO_PROGRESS:
        await engine.record_progress(user_id, pet, solved, adventure)
    await engine.rollover(user_id, list(DEMO_PETS))

    await engine.start_sleep(user_id, "hamster")
    today = date.today()
    week = today.strftime("%G-W%V")
    await engine.set_weekly_heart(user_id, week, today)

    overview = await engine.get_overview(user_id)
    logger.info("demo user %r ready: %d coins, pets %s", user_id, overview.coins, list(overview.pets))
