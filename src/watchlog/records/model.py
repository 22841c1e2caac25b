"""Playback records, daily goal snapshots and the views derived from them.

Stored and exported documents use camelCase keys (``sessionId``,
``channelName``, ``updatedAt``); Python attributes are snake_case. Timestamps
are always held timezone-aware and written as UTC ISO strings with a ``Z``
suffix.
"""

import datetime as dt
import enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class Language(str, enum.Enum):
    CANTONESE = "cantonese"
    ENGLISH = "english"
    JAPANESE = "japanese"
    SPANISH = "spanish"


LANGUAGE_KEYS: tuple[str, ...] = tuple(lang.value for lang in Language)


def is_known_language(value: Any) -> bool:
    return isinstance(value, str) and value in LANGUAGE_KEYS


def ensure_aware(moment: dt.datetime) -> dt.datetime:
    """Attach the local zone to naive datetimes."""
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def format_instant(moment: dt.datetime) -> str:
    """UTC ISO string with millisecond precision, e.g. ``2024-03-01T10:00:00.000Z``."""
    utc = ensure_aware(moment).astimezone(dt.timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Document(BaseModel):
    """Base for everything that round-trips through the store or export files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PlaybackRecord(Document):
    """One raw playback session as captured (or entered by hand)."""

    session_id: str = Field(min_length=1)
    title: str = ""
    url: str | None = None
    # Kept as a plain string: records with unknown tags still load and export.
    language: str
    duration: int = Field(ge=0)  # seconds
    date: dt.datetime
    channel_name: str | None = None
    channel_logo: str | None = None

    @field_validator("duration", mode="before")
    @classmethod
    def _round_fractional_seconds(cls, value: Any) -> Any:
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator("date")
    @classmethod
    def _aware_date(cls, value: dt.datetime) -> dt.datetime:
        return ensure_aware(value)

    @field_serializer("date")
    def _serialize_date(self, value: dt.datetime) -> str:
        return format_instant(value)

    @property
    def end(self) -> dt.datetime:
        return self.date + dt.timedelta(seconds=self.duration)


class Segment(Document):
    """A ``[start, end]`` interval on the timeline of a display record."""

    start: dt.datetime
    end: dt.datetime

    @field_serializer("start", "end")
    def _serialize_bounds(self, value: dt.datetime) -> str:
        return format_instant(value)

    @property
    def seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class DisplayRecord(PlaybackRecord):
    """One or more playback records shown as a single viewing session.

    Computed on every pass from the raw records; never persisted.
    """

    merged_session_ids: list[str]
    total_duration: int
    start_date: dt.datetime
    span_start: dt.datetime
    span_end: dt.datetime
    segments: list[Segment]
    is_merged: bool = False

    @field_serializer("start_date", "span_start", "span_end")
    def _serialize_instants(self, value: dt.datetime) -> str:
        return format_instant(value)


class DailyGoal(Document):
    """Goal and visibility snapshot saved for one calendar day."""

    date: dt.date
    goals: dict[str, int] = Field(default_factory=dict)  # language -> minutes/day
    visibility: dict[str, bool] | None = None
    updated_at: dt.datetime | None = None

    @field_validator("goals", mode="before")
    @classmethod
    def _whole_minutes(cls, value: Any) -> Any:
        # Exported goals may carry fractional minutes (22.5); keep whole ones.
        if not isinstance(value, dict):
            return value
        return {
            language: math.floor(minutes)
            if isinstance(minutes, float) and math.isfinite(minutes)
            else minutes
            for language, minutes in value.items()
        }

    @field_validator("goals")
    @classmethod
    def _non_negative_goals(cls, value: dict[str, int]) -> dict[str, int]:
        for language, minutes in value.items():
            if minutes < 0:
                raise ValueError(f"goal for {language!r} must be non-negative, got {minutes}")
        return value

    @field_serializer("updated_at")
    def _serialize_updated_at(self, value: dt.datetime | None) -> str | None:
        return format_instant(value) if value is not None else None


class Achievement(Document):
    language: str
    target_minutes: int
    actual_minutes: int
    percentage: float
    achieved: bool


class DailyAchievement(Document):
    date: dt.date
    achievements: list[Achievement]
    has_achieved: bool
