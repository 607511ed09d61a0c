"""End-to-end: one pet through a full quest cycle."""

from datetime import timedelta

from progress_engine.clock import ManualClock
from progress_engine.engine import ProgressEngine


async def _fox(engine: ProgressEngine):
    [fox] = await engine.get_quest_states("u1", ["fox"])
    return fox


async def test_fox_house_to_friend(engine: ProgressEngine, clock: ManualClock) -> None:
    await engine.rollover("u1", ["fox"])
    fox = await _fox(engine)
    assert (fox.activity, fox.progress, fox.target) == ("house", 0, 5)

    await engine.record_progress("u1", "fox", 3)
    fox = await _fox(engine)
    assert fox.progress == 3
    assert not fox.completed

    await engine.record_progress("u1", "fox", 2)
    fox = await _fox(engine)
    assert fox.progress == 5
    assert fox.completed_at == clock.now()
    assert fox.cooldown_until == clock.now() + timedelta(hours=8)

    await engine.rollover("u1", ["fox"])
    fox = await _fox(engine)
    assert (fox.activity, fox.progress) == ("house", 5)

    clock.advance(hours=8)
    await engine.rollover("u1", ["fox"])
    fox = await _fox(engine)
    assert (fox.activity, fox.progress) == ("friend", 0)
    assert fox.cooldown_until is None
    assert fox.completed_at is None

    overview = await engine.get_overview("u1")
    assert overview.coins == 50
    assert overview.pets["fox"].level == 2


async def test_spending_never_goes_negative(engine: ProgressEngine) -> None:
    await engine.record_progress("u1", "fox", 5)
    await engine.deduct_coins("u1", 1000)
    assert (await engine.get_overview("u1")).coins == 0
