"""Manual record entry, edits and deletes.

Validation happens before anything touches the store. Deletes of several ids
run one at a time and are not atomic: if one fails, the ids before it stay
deleted and the error propagates to the caller.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Iterable

from pydantic import ValidationError

from watchlog.logger import log
from watchlog.records.model import LANGUAGE_KEYS, PlaybackRecord, ensure_aware, is_known_language
from watchlog.timeutil import day_key

if TYPE_CHECKING:
    from watchlog.records.store import RecordStore

MANUAL_ENTRY_URL = "manual-entry"

_BASE36 = string.digits + string.ascii_lowercase


class RecordValidationError(ValueError):
    """A manual entry or edit is missing fields or carries invalid values."""


class RecordNotFoundError(KeyError):
    """No stored record has the given session id."""


def generate_session_id() -> str:
    """``manual_session_<epoch ms>_<9 random base-36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"manual_session_{int(time.time() * 1000)}_{suffix}"


def parse_entry_date(value: datetime | str) -> datetime:
    """Accept a datetime or an ISO date/datetime string; naive values are local time."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise RecordValidationError(f"Invalid date {value!r}: {e}") from e
    return ensure_aware(parsed)


def _parse_minutes(value: int | str | None) -> int:
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise RecordValidationError(f"Duration must be a whole number of minutes, got {value!r}")
    if minutes <= 0:
        raise RecordValidationError(f"Duration must be at least 1 minute, got {minutes}")
    return minutes


def _check_required(
    date: datetime | str | None,
    title: str | None,
    duration_minutes: int | str | None,
    language: str | None,
) -> None:
    missing = [
        name
        for name, value in (
            ("date", date),
            ("title", title.strip() if isinstance(title, str) else title),
            ("duration", duration_minutes),
            ("language", language),
        )
        if value in (None, "")
    ]
    if missing:
        raise RecordValidationError(f"Missing required fields: {', '.join(missing)}")
    if not is_known_language(language):
        raise RecordValidationError(
            f"Unknown language {language!r}. Expected one of: {', '.join(LANGUAGE_KEYS)}"
        )


def build_manual_record(
    date: datetime | str | None,
    title: str | None,
    duration_minutes: int | str | None,
    language: str | None,
    url: str | None = None,
) -> PlaybackRecord:
    """Validate form input and build a new record with a fresh session id."""
    _check_required(date, title, duration_minutes, language)
    minutes = _parse_minutes(duration_minutes)
    try:
        return PlaybackRecord(
            session_id=generate_session_id(),
            title=title.strip(),  # type: ignore[union-attr]
            url=url or MANUAL_ENTRY_URL,
            language=language,  # type: ignore[arg-type]
            duration=minutes * 60,
            date=parse_entry_date(date),  # type: ignore[arg-type]
        )
    except ValidationError as e:
        raise RecordValidationError(str(e)) from e


def apply_edit(
    record: PlaybackRecord,
    *,
    title: str | None,
    duration_minutes: int | str | None,
    language: str | None,
    date: datetime | str | None,
    url: str | None = None,
    tz: tzinfo | None = None,
) -> PlaybackRecord:
    """Return *record* with the edited fields applied.

    Minutes and day are what the user sees, so the exact stored duration is
    kept when the minute value is unchanged and the exact timestamp is kept
    when the calendar day is unchanged.
    """
    _check_required(date, title, duration_minutes, language)
    minutes = _parse_minutes(duration_minutes)
    new_date = parse_entry_date(date)  # type: ignore[arg-type]

    duration = record.duration if minutes == record.duration // 60 else minutes * 60
    if day_key(new_date, tz) == day_key(record.date, tz):
        new_date = record.date

    return record.model_copy(
        update={
            "title": title.strip(),  # type: ignore[union-attr]
            "url": url or record.url,
            "duration": duration,
            "language": language,
            "date": new_date,
        }
    )


async def add_manual_entry(
    store: RecordStore,
    date: datetime | str | None,
    title: str | None,
    duration_minutes: int | str | None,
    language: str | None,
    url: str | None = None,
) -> PlaybackRecord:
    record = build_manual_record(date, title, duration_minutes, language, url)
    await store.save_record(record)
    log("INFO", "Manual entry added", {"session_id": record.session_id, "title": record.title})
    return record


async def edit_record(
    store: RecordStore,
    session_id: str,
    *,
    title: str | None,
    duration_minutes: int | str | None,
    language: str | None,
    date: datetime | str | None,
    url: str | None = None,
    tz: tzinfo | None = None,
) -> PlaybackRecord:
    """Apply an edit to a stored record. Raises ``RecordNotFoundError`` for unknown ids."""
    existing = await store.get_record(session_id)
    if existing is None:
        raise RecordNotFoundError(session_id)
    updated = apply_edit(
        existing,
        title=title,
        duration_minutes=duration_minutes,
        language=language,
        date=date,
        url=url,
        tz=tz,
    )
    await store.save_record(updated)
    log("INFO", "Record updated", {"session_id": session_id})
    return updated


async def delete_records(store: RecordStore, session_ids: Iterable[str]) -> list[str]:
    """Delete each id once, in order. Not atomic; see module docstring."""
    unique_ids = list(dict.fromkeys(session_ids))
    deleted: list[str] = []
    for session_id in unique_ids:
        try:
            await store.delete_record(session_id)
        except Exception as e:
            log(
                "ERROR",
                "Delete failed; earlier deletes were kept",
                {"failed": session_id, "deleted": deleted, "error": str(e)},
            )
            raise
        deleted.append(session_id)
    return deleted
