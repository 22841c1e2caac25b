"""JSON import/export of the whole history.

Document format::

    {"version": "1.0", "exportDate": "...Z", "records": [...], "goals": [...]}

Import checks the envelope and validates every record before the first write,
so a malformed document leaves the store untouched. Goal snapshots are
secondary: fractional minutes are floored and invalid snapshots are skipped
with a warning. Writes that have already been issued are not rolled back if
the store fails part way.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from watchlog.config import settings
from watchlog.logger import log
from watchlog.records.model import DailyGoal, PlaybackRecord, format_instant

if TYPE_CHECKING:
    from watchlog.records.store import RecordStore


class InvalidImportError(ValueError):
    """The import document is not a valid history export."""


def default_export_name(today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"video-history-{today.isoformat()}.json"


def build_export(
    records: list[PlaybackRecord],
    goals: list[DailyGoal],
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    return {
        "version": settings.export_version,
        "exportDate": format_instant(exported_at or datetime.now(timezone.utc)),
        "records": [r.to_document() for r in sorted(records, key=lambda r: r.date, reverse=True)],
        "goals": [g.to_document() for g in sorted(goals, key=lambda g: g.date)],
    }


def parse_import(data: Any) -> tuple[list[PlaybackRecord], list[DailyGoal]]:
    """Validate an export document. Raises ``InvalidImportError``."""
    if not isinstance(data, dict):
        raise InvalidImportError("Import document must be a JSON object")
    if not data.get("version"):
        raise InvalidImportError("Import document is missing 'version'")
    if not isinstance(data.get("records"), list):
        raise InvalidImportError("Import document 'records' must be a list")
    raw_goals = data.get("goals") or []
    if not isinstance(raw_goals, list):
        raise InvalidImportError("Import document 'goals' must be a list")

    records = []
    for idx, raw in enumerate(data["records"]):
        try:
            records.append(PlaybackRecord.model_validate(raw))
        except ValidationError as e:
            raise InvalidImportError(f"Record {idx} is invalid: {e}") from e

    goals = []
    for idx, raw in enumerate(raw_goals):
        try:
            goals.append(DailyGoal.model_validate(raw))
        except ValidationError as e:
            log("WARN", "Skipping invalid goal snapshot in import", {"index": idx, "error": str(e)})

    return records, goals


async def export_history(store: RecordStore) -> dict[str, Any]:
    records = await store.get_all_records()
    goals = await store.get_all_daily_goals()
    return build_export(records, goals)


async def export_to_file(store: RecordStore, path: Path) -> Path:
    document = await export_history(store)
    path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    log("INFO", "History exported", {"path": str(path), "records": len(document["records"])})
    return path


async def import_history(store: RecordStore, data: Any) -> tuple[int, int]:
    """Upsert every record and goal of *data*. Returns ``(records, goals)`` counts."""
    records, goals = parse_import(data)
    for record in records:
        await store.save_record(record)
    for goal in goals:
        await store.save_daily_goal(goal)
    log("INFO", "History imported", {"records": len(records), "goals": len(goals)})
    return len(records), len(goals)


async def import_from_file(store: RecordStore, path: Path) -> tuple[int, int]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidImportError(f"Invalid JSON in {path}: {e}") from e
    return await import_history(store, data)
