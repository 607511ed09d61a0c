"""Tests for JsonFileStore — persistence and lazy loading."""

import json
from datetime import datetime, timezone

import pytest

from progress_engine.store import Increment, JsonFileStore, StoreError


async def test_commit_writes_json_file(tmp_path) -> None:
    store = JsonFileStore(tmp_path)
    batch = store.batch()
    batch.update("userStates", "u1", {"coins": Increment(30)})
    await batch.commit()
    data = json.loads((tmp_path / "userStates" / "u1.json").read_text())
    assert data == {"coins": 30}


async def test_timestamps_stored_as_iso_strings(tmp_path) -> None:
    store = JsonFileStore(tmp_path)
    when = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    batch = store.batch()
    batch.set("users", "u1", {"lastLoginAt": when})
    await batch.commit()
    data = json.loads((tmp_path / "users" / "u1.json").read_text())
    assert data["lastLoginAt"].startswith("2026-03-02T09:00:00")


async def test_new_instance_loads_existing_documents(tmp_path) -> None:
    first = JsonFileStore(tmp_path)
    batch = first.batch()
    batch.set("dailyQuests", "u1", {"pets": {"fox": {"progress": {"house": 2}}}})
    await batch.commit()

    second = JsonFileStore(tmp_path)
    snap = await second.get("dailyQuests", "u1")
    assert snap.exists
    assert snap.version == 1
    assert snap.data["pets"]["fox"]["progress"]["house"] == 2

    batch = second.batch()
    batch.update("dailyQuests", "u1", {"pets.fox.progress.house": Increment(3)})
    await batch.commit()
    assert (await second.get("dailyQuests", "u1")).version == 2
    reloaded = json.loads((tmp_path / "dailyQuests" / "u1.json").read_text())
    assert reloaded["pets"]["fox"]["progress"]["house"] == 5


async def test_corrupt_file_keeps_raising(tmp_path) -> None:
    from progress_engine.clock import ManualClock
    from progress_engine.engine import ProgressEngine

    (tmp_path / "userStates").mkdir()
    path = tmp_path / "userStates" / "u1.json"
    path.write_text('{"coins": 999, ')
    store = JsonFileStore(tmp_path)
    for _ in range(2):
        with pytest.raises(StoreError):
            await store.get("userStates", "u1")

    engine = ProgressEngine(store, ManualClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)))
    with pytest.raises(StoreError):
        await engine.set_pet_name("u1", "fox", "Rusty")
    batch = store.batch()
    batch.update("userStates", "u1", {"coins": Increment(10)})
    with pytest.raises(StoreError):
        await batch.commit()
    assert path.read_text() == '{"coins": 999, '


async def test_non_object_file_raises_store_error(tmp_path) -> None:
    (tmp_path / "userStates").mkdir()
    (tmp_path / "userStates" / "u1.json").write_text("[1, 2]")
    with pytest.raises(StoreError):
        await JsonFileStore(tmp_path).get("userStates", "u1")


async def test_engine_round_trip_over_files(tmp_path) -> None:
    from progress_engine.clock import ManualClock
    from progress_engine.engine import ProgressEngine

    clock = ManualClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
    await ProgressEngine(JsonFileStore(tmp_path), clock).record_progress("u1", "fox", 5)

    reopened = ProgressEngine(JsonFileStore(tmp_path), clock)
    [fox] = await reopened.get_quest_states("u1", ["fox"])
    assert fox.completed
    assert fox.cooldown_until == datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)
    assert (await reopened.get_overview("u1")).coins == 50
