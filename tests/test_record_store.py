from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from watchlog.records.model import DailyGoal, PlaybackRecord
from watchlog.records.store import RecordStore

UTC = timezone.utc


def _rec(session_id: str, date: str, duration: int = 600, title: str = "A") -> PlaybackRecord:
    return PlaybackRecord(
        session_id=session_id,
        title=title,
        language="english",
        duration=duration,
        date=datetime.fromisoformat(date.replace("Z", "+00:00")),
    )


async def test_save_and_get_all(store) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))
    await store.save_record(_rec("s2", "2024-03-01T11:00:00Z"))

    records = await store.get_all_records()

    assert sorted(r.session_id for r in records) == ["s1", "s2"]


async def test_save_upserts_by_session_id(store) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z", title="old"))
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z", title="new"))

    records = await store.get_all_records()

    assert len(records) == 1
    assert records[0].title == "new"


async def test_records_persist_across_handles(store, tmp_path) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))

    other = RecordStore(tmp_path / "data")

    assert (await other.get_record("s1")).duration == 600


async def test_file_uses_export_field_names(store) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))

    doc = json.loads(store.records_path.read_text(encoding="utf-8"))

    [raw] = doc["records"]
    assert raw["sessionId"] == "s1"
    assert raw["date"] == "2024-03-01T10:00:00.000Z"
    assert raw["channelName"] is None


async def test_delete_record(store) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))
    await store.save_record(_rec("s2", "2024-03-01T11:00:00Z"))

    await store.delete_record("s1")
    await store.delete_record("missing")

    assert [r.session_id for r in await store.get_all_records()] == ["s2"]
    assert await RecordStore(store.data_dir).get_record("s1") is None


async def test_records_between_is_inclusive_and_ordered(store) -> None:
    await store.save_record(_rec("late", "2024-03-02T00:00:00Z"))
    await store.save_record(_rec("mid", "2024-03-01T12:00:00Z"))
    await store.save_record(_rec("start", "2024-03-01T00:00:00Z"))
    await store.save_record(_rec("before", "2024-02-29T23:59:59Z"))

    found = await store.get_records_between(
        datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 3, 2, tzinfo=UTC)
    )

    assert [r.session_id for r in found] == ["start", "mid", "late"]


async def test_today_records(store) -> None:
    now = datetime.now(UTC)
    await store.save_record(_rec("now", now.isoformat()))
    await store.save_record(_rec("old", "2020-01-01T00:00:00Z"))

    today = await store.get_today_records(UTC)

    assert [r.session_id for r in today] == ["now"]


async def test_daily_goal_exact_lookup_and_upsert(store) -> None:
    await store.save_daily_goal(DailyGoal(date=date(2024, 1, 1), goals={"english": 10}))
    saved = await store.save_daily_goal(DailyGoal(date=date(2024, 1, 1), goals={"english": 20}))

    assert saved.updated_at is not None
    assert (await store.get_daily_goal(date(2024, 1, 1))).goals == {"english": 20}
    assert await store.get_daily_goal(date(2024, 1, 2)) is None
    assert len(await store.get_all_daily_goals()) == 1


async def test_goal_file_format(store) -> None:
    await store.save_daily_goal(DailyGoal(date=date(2024, 1, 1), goals={"english": 10}))

    doc = json.loads(store.goals_path.read_text(encoding="utf-8"))

    [raw] = doc["goals"]
    assert raw["date"] == "2024-01-01"
    assert raw["updatedAt"].endswith("Z")


async def test_reloads_when_another_writer_changes_files(tmp_path) -> None:
    reader = RecordStore(tmp_path / "data")
    writer = RecordStore(tmp_path / "data")

    assert await reader.get_all_records() == []
    await writer.save_record(_rec("s1", "2024-03-01T10:00:00Z"))

    assert [r.session_id for r in await reader.get_all_records()] == ["s1"]


async def test_context_manager_opens_and_closes(store) -> None:
    async with store as opened:
        assert opened is store
        assert store.is_open
        await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))
    assert not store.is_open

    # A closed handle reopens lazily.
    assert len(await store.get_all_records()) == 1


async def test_corrupt_file_propagates(store) -> None:
    store.data_dir.mkdir(parents=True)
    store.records_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(json.JSONDecodeError):
        await store.get_all_records()


async def test_loads_exported_camel_case_documents(store) -> None:
    store.data_dir.mkdir(parents=True)
    store.records_path.write_text(
        json.dumps(
            {
                "records": [
                    {
                        "sessionId": "abc",
                        "title": "Peppa Pig",
                        "url": "https://www.youtube.com/watch?v=1",
                        "language": "cantonese",
                        "duration": 312,
                        "date": "2024-05-01T08:00:00.000Z",
                        "channelName": None,
                        "channelLogo": None,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    [record] = await store.get_all_records()

    assert record.session_id == "abc"
    assert record.date == datetime(2024, 5, 1, 8, tzinfo=UTC)


async def test_failed_write_propagates_and_keeps_disk_state(store, monkeypatch) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))

    def fail(path, data):
        raise OSError("disk full")

    monkeypatch.setattr(RecordStore, "_write_json", staticmethod(fail))

    with pytest.raises(OSError, match="disk full"):
        await store.save_record(_rec("s2", "2024-03-01T11:00:00Z"))

    assert not store.is_open
    assert [r.session_id for r in await store.get_all_records()] == ["s1"]


async def test_interrupted_replace_leaves_previous_file(store, monkeypatch) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))
    before = store.records_path.read_text(encoding="utf-8")

    def fail(src, dst):
        raise OSError("replace failed")

    monkeypatch.setattr("watchlog.records.store.os.replace", fail)

    with pytest.raises(OSError):
        await store.save_record(_rec("s2", "2024-03-01T11:00:00Z"))

    assert store.records_path.read_text(encoding="utf-8") == before
    assert sorted(p.name for p in store.data_dir.iterdir()) == ["records.json"]
