from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from watchlog.records.model import DailyGoal, PlaybackRecord
from watchlog.records.store import RecordStore
from watchlog.transfer import (
    InvalidImportError,
    build_export,
    default_export_name,
    export_to_file,
    import_from_file,
    import_history,
    parse_import,
)

UTC = timezone.utc


def _rec(session_id: str, date: str, title: str = "A") -> PlaybackRecord:
    return PlaybackRecord(
        session_id=session_id,
        title=title,
        language="english",
        duration=600,
        date=datetime.fromisoformat(date.replace("Z", "+00:00")),
    )


def _raw(session_id: str, **overrides) -> dict:
    raw = {
        "sessionId": session_id,
        "title": "Some video",
        "url": "https://www.youtube.com/watch?v=1",
        "language": "japanese",
        "duration": 300,
        "date": "2024-03-01T10:00:00.000Z",
    }
    raw.update(overrides)
    return raw


def test_build_export_envelope() -> None:
    doc = build_export(
        [_rec("old", "2024-03-01T10:00:00Z"), _rec("new", "2024-03-02T10:00:00Z")],
        [DailyGoal(date=date(2024, 3, 1), goals={"english": 10})],
        exported_at=datetime(2024, 3, 3, 12, tzinfo=UTC),
    )

    assert doc["version"] == "1.0"
    assert doc["exportDate"] == "2024-03-03T12:00:00.000Z"
    assert [r["sessionId"] for r in doc["records"]] == ["new", "old"]
    assert doc["goals"][0]["date"] == "2024-03-01"


def test_default_export_name() -> None:
    assert default_export_name(date(2024, 3, 1)) == "video-history-2024-03-01.json"


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"records": []},
        {"version": "", "records": []},
        {"version": "1.0"},
        {"version": "1.0", "records": {"a": 1}},
        {"version": "1.0", "records": [], "goals": "nope"},
    ],
)
def test_parse_import_rejects_bad_envelopes(document) -> None:
    with pytest.raises(InvalidImportError):
        parse_import(document)


def test_parse_import_rejects_bad_records() -> None:
    with pytest.raises(InvalidImportError, match="Record 1"):
        parse_import({"version": "1.0", "records": [_raw("ok"), _raw("bad", duration=-1)]})


def test_unknown_language_is_accepted() -> None:
    records, _ = parse_import({"version": "1.0", "records": [_raw("x", language="korean")]})
    assert records[0].language == "korean"


async def test_import_upserts_records_and_goals(store) -> None:
    await store.save_record(_rec("s1", "2024-03-01T08:00:00Z", title="before"))

    counts = await import_history(
        store,
        {
            "version": "1.0",
            "exportDate": "2024-03-05T00:00:00.000Z",
            "records": [_raw("s1", title="after"), _raw("s2")],
            "goals": [{"date": "2024-03-01", "goals": {"japanese": 20}, "updatedAt": "2024-03-01T00:00:00.000Z"}],
        },
    )

    assert counts == (2, 1)
    assert (await store.get_record("s1")).title == "after"
    assert (await store.get_record("s2")).language == "japanese"
    assert (await store.get_daily_goal(date(2024, 3, 1))).goals == {"japanese": 20}


async def test_malformed_import_writes_nothing(store) -> None:
    with pytest.raises(InvalidImportError):
        await import_history(
            store,
            {"version": "1.0", "records": [_raw("s1"), _raw("s2", date="not a date")]},
        )
    assert await store.get_all_records() == []


async def test_file_export_then_import(store, tmp_path) -> None:
    await store.save_record(_rec("s1", "2024-03-01T10:00:00Z"))
    await store.save_daily_goal(DailyGoal(date=date(2024, 3, 1), goals={"english": 10}))
    path = await export_to_file(store, tmp_path / "export.json")

    fresh = RecordStore(tmp_path / "other")
    counts = await import_from_file(fresh, path)

    assert counts == (1, 1)
    assert (await fresh.get_record("s1")).date == datetime(2024, 3, 1, 10, tzinfo=UTC)


async def test_import_invalid_json_file(store, tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(InvalidImportError):
        await import_from_file(store, path)


def test_export_is_json_serializable() -> None:
    doc = build_export([_rec("s1", "2024-03-01T10:00:00Z")], [])
    assert json.loads(json.dumps(doc))["records"][0]["duration"] == 600


async def test_fractional_goal_minutes_are_floored(store) -> None:
    counts = await import_history(
        store,
        {
            "version": "1.0",
            "records": [_raw("s1")],
            "goals": [{"date": "2024-03-01", "goals": {"english": 22.5, "japanese": 30}}],
        },
    )

    assert counts == (1, 1)
    assert (await store.get_daily_goal(date(2024, 3, 1))).goals == {"english": 22, "japanese": 30}


async def test_invalid_goal_snapshot_does_not_block_records(store) -> None:
    counts = await import_history(
        store,
        {
            "version": "1.0",
            "records": [_raw("s1")],
            "goals": [
                {"date": "2024-03-01", "goals": {"english": -5}},
                {"date": "2024-03-02", "goals": {"english": 15}},
            ],
        },
    )

    assert counts == (1, 1)
    assert (await store.get_record("s1")) is not None
    assert await store.get_daily_goal(date(2024, 3, 1)) is None
    assert (await store.get_daily_goal(date(2024, 3, 2))).goals == {"english": 15}
