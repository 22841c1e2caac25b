"""Record store: JSON-file persistence for playback records and goal snapshots.

records.json:      {"records": [...]}  keyed by sessionId
daily_goals.json:  {"goals": [...]}    keyed by date (YYYY-MM-DD)

The store is an explicit handle. It loads both files on first use (or on
``async with``), serves reads from memory and rewrites the affected file on
every mutation. The cache is dropped by ``close()``/``invalidate()`` and when
either file is modified on disk by another writer, so the next call reloads.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from datetime import date, datetime, timezone, tzinfo
from pathlib import Path

from watchlog.logger import log
from watchlog.records.model import DailyGoal, PlaybackRecord
from watchlog.timeutil import day_bounds, local_today


class RecordStore:
    """Local JSON-backed store of playback records and daily goals."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.records_path = data_dir / "records.json"
        self.goals_path = data_dir / "daily_goals.json"

        self._records: dict[str, PlaybackRecord] | None = None
        self._goals: dict[date, DailyGoal] | None = None
        self._mtimes: tuple[int | None, int | None] = (None, None)

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._records is not None and self._goals is not None

    async def open(self) -> RecordStore:
        """Load the store files, reusing the cache while it is still current."""
        if self.is_open:
            if self._mtimes == self._stat():
                return self
            log("INFO", "Store files changed on disk, reloading", {"dir": str(self.data_dir)})
        await asyncio.to_thread(self._load)
        return self

    def invalidate(self) -> None:
        """Drop cached state; the next call reloads from disk."""
        self._records = None
        self._goals = None
        self._mtimes = (None, None)

    def close(self) -> None:
        if self.is_open:
            log("DEBUG", "Store closed", {"dir": str(self.data_dir)})
        self.invalidate()

    async def __aenter__(self) -> RecordStore:
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    # ── Playback records ──────────────────────────────────────────

    async def get_all_records(self) -> list[PlaybackRecord]:
        records = await self._records_map()
        return list(records.values())

    async def get_record(self, session_id: str) -> PlaybackRecord | None:
        records = await self._records_map()
        return records.get(session_id)

    async def get_records_between(
        self, start: datetime, end: datetime
    ) -> list[PlaybackRecord]:
        """Records with ``start <= date <= end``, oldest first."""
        records = await self._records_map()
        matched = [r for r in records.values() if start <= r.date <= end]
        matched.sort(key=lambda r: r.date)
        return matched

    async def get_today_records(self, tz: tzinfo | None = None) -> list[PlaybackRecord]:
        start, end = day_bounds(local_today(tz), tz)
        return await self.get_records_between(start, end)

    async def save_record(self, record: PlaybackRecord) -> None:
        """Insert or replace by ``session_id``."""
        records = await self._records_map()
        records[record.session_id] = record
        await self._flush_records()
        log("DEBUG", "Saved record", {"session_id": record.session_id})

    async def delete_record(self, session_id: str) -> None:
        """Delete by ``session_id``. Unknown ids are a no-op."""
        records = await self._records_map()
        if records.pop(session_id, None) is None:
            log("DEBUG", "Delete of unknown record ignored", {"session_id": session_id})
            return
        await self._flush_records()
        log("INFO", "Deleted record", {"session_id": session_id})

    # ── Daily goals ───────────────────────────────────────────────

    async def get_daily_goal(self, day: date) -> DailyGoal | None:
        """Exact snapshot for *day*; carry-forward lives in the goal resolver."""
        goals = await self._goals_map()
        return goals.get(day)

    async def get_all_daily_goals(self) -> list[DailyGoal]:
        goals = await self._goals_map()
        return list(goals.values())

    async def save_daily_goal(self, goal: DailyGoal) -> DailyGoal:
        """Insert or replace by ``date``. Returns the snapshot as stored."""
        goals = await self._goals_map()
        stamped = goal.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        goals[stamped.date] = stamped
        await self._flush_goals()
        log("DEBUG", "Saved daily goal", {"date": stamped.date.isoformat()})
        return stamped

    # ── Helpers ────────────────────────────────────────────────────

    async def _records_map(self) -> dict[str, PlaybackRecord]:
        await self.open()
        assert self._records is not None
        return self._records

    async def _goals_map(self) -> dict[date, DailyGoal]:
        await self.open()
        assert self._goals is not None
        return self._goals

    def _load(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

        records_doc = self._read_json(self.records_path, {"records": []})
        records: dict[str, PlaybackRecord] = {}
        for raw in records_doc.get("records", []):
            record = PlaybackRecord.model_validate(raw)
            records[record.session_id] = record

        goals_doc = self._read_json(self.goals_path, {"goals": []})
        goals: dict[date, DailyGoal] = {}
        for raw in goals_doc.get("goals", []):
            goal = DailyGoal.model_validate(raw)
            goals[goal.date] = goal

        self._records = records
        self._goals = goals
        self._mtimes = self._stat()
        log(
            "DEBUG",
            "Store loaded",
            {"dir": str(self.data_dir), "records": len(records), "goals": len(goals)},
        )

    async def _flush_records(self) -> None:
        assert self._records is not None
        doc = {"records": [r.to_document() for r in self._records.values()]}
        await self._flush(self.records_path, doc)

    async def _flush_goals(self) -> None:
        assert self._goals is not None
        ordered = sorted(self._goals.values(), key=lambda g: g.date)
        doc = {"goals": [g.to_document() for g in ordered]}
        await self._flush(self.goals_path, doc)

    async def _flush(self, path: Path, doc: dict) -> None:
        try:
            await asyncio.to_thread(self._write_json, path, doc)
        except OSError:
            # The cache already holds the mutation; drop it so reads match disk.
            self.invalidate()
            raise
        self._mtimes = self._stat()

    def _stat(self) -> tuple[int | None, int | None]:
        return _mtime_ns(self.records_path), _mtime_ns(self.goals_path)

    @staticmethod
    def _read_json(path: Path, default: dict) -> dict:
        if not path.exists():
            return default
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _write_json(path: Path, data: dict):
        """Write to a sibling temp file, then swap it in with ``os.replace``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
