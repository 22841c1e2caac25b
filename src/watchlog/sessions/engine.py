"""Session engine: folds raw playback records into display sessions.

A video watched in several bursts is captured as several playback records.
With merging on, consecutive records of the same video (same merge key) are
shown as one display record whose segments keep the individual bursts for the
timeline. Records on the same local day always merge; across a day boundary
they merge only while the gap stays within ``max_gap_hours``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable

from watchlog.records.model import DisplayRecord, PlaybackRecord, Segment
from watchlog.timeutil import day_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAP_HOURS = 2.0


def merge_key(record: PlaybackRecord) -> str:
    """Identity of the video behind *record*: channel, title and language.

    The URL is not part of the key, so links decorated with different
    timestamps or tracking parameters still match.
    """
    channel = (record.channel_name or "").strip().lower()
    title = (record.title or "").strip().lower()
    return f"{channel}::{title}::{record.language}"


@dataclass
class _Accumulator:
    """Display record under construction."""

    base: PlaybackRecord
    key: str
    session_ids: list[str]
    total_duration: int
    start_date: datetime
    span_start: datetime
    span_end: datetime
    segments: list[Segment]
    channel_name: str | None
    channel_logo: str | None
    last_merged: datetime

    @classmethod
    def start(cls, record: PlaybackRecord, key: str) -> _Accumulator:
        end = record.end
        return cls(
            base=record,
            key=key,
            session_ids=[record.session_id],
            total_duration=record.duration,
            start_date=record.date,
            span_start=record.date,
            span_end=end,
            segments=[Segment(start=record.date, end=end)],
            channel_name=record.channel_name,
            channel_logo=record.channel_logo,
            last_merged=record.date,
        )

    def accepts(
        self, record: PlaybackRecord, key: str, tz: tzinfo | None, max_gap: timedelta
    ) -> bool:
        if key != self.key:
            return False
        crosses_day = day_key(self.last_merged, tz) != day_key(record.date, tz)
        gap = abs(record.date - self.last_merged)
        return not (crosses_day and gap > max_gap)

    def add(self, record: PlaybackRecord) -> None:
        end = record.end
        self.session_ids.append(record.session_id)
        self.total_duration += record.duration
        self.start_date = min(self.start_date, record.date)
        self.span_start = min(self.span_start, record.date)
        self.span_end = max(self.span_end, end)
        self.segments.append(Segment(start=record.date, end=end))
        self.last_merged = record.date
        if not self.channel_logo:
            self.channel_logo = record.channel_logo
        if not self.channel_name:
            self.channel_name = record.channel_name

    def emit(self) -> DisplayRecord:
        return DisplayRecord(
            **self.base.model_dump(exclude={"channel_name", "channel_logo"}),
            channel_name=self.channel_name,
            channel_logo=self.channel_logo,
            merged_session_ids=list(self.session_ids),
            total_duration=self.total_duration,
            start_date=self.start_date,
            span_start=self.span_start,
            span_end=self.span_end,
            segments=list(self.segments),
            is_merged=len(self.session_ids) > 1,
        )


def build_display_records(
    records: Iterable[PlaybackRecord],
    merge_enabled: bool,
    tz: tzinfo | None = None,
    max_gap_hours: float = DEFAULT_MAX_GAP_HOURS,
) -> list[DisplayRecord]:
    """Turn raw records into display records, oldest first.

    Input order does not matter: records are sorted by start time (stable)
    before grouping. With *merge_enabled* off every record becomes its own
    single-segment display record.
    """
    ordered = sorted(records, key=lambda r: r.date)

    if not merge_enabled:
        return [_Accumulator.start(r, merge_key(r)).emit() for r in ordered]

    max_gap = timedelta(hours=max_gap_hours)
    merged: list[DisplayRecord] = []
    current: _Accumulator | None = None

    for record in ordered:
        key = merge_key(record)
        if current is not None and current.accepts(record, key, tz, max_gap):
            current.add(record)
            continue
        if current is not None:
            merged.append(current.emit())
        current = _Accumulator.start(record, key)

    if current is not None:
        merged.append(current.emit())

    logger.debug("Merged %d records into %d display records", len(ordered), len(merged))
    return merged
