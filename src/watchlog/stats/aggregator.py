"""Aggregation of playback durations per day and language, plus goal evaluation.

Day totals are always computed from raw records, never from merged display
records, so a session split across midnight credits each day with its own
time.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Mapping

from watchlog.goals.resolver import ResolvedGoal, resolve_from
from watchlog.logger import log
from watchlog.records.model import (
    LANGUAGE_KEYS,
    Achievement,
    DailyAchievement,
    DailyGoal,
    PlaybackRecord,
    is_known_language,
)
from watchlog.timeutil import day_key, local_now, start_of_day

PERIODS = ("all", "today", "week", "month")


def _empty_totals() -> dict[str, int]:
    return {language: 0 for language in LANGUAGE_KEYS}


def aggregate_by_day(
    records: Iterable[PlaybackRecord], tz: tzinfo | None = None
) -> dict[date, dict[str, int]]:
    """Seconds watched per local calendar day and language."""
    by_day: dict[date, dict[str, int]] = {}
    skipped = 0
    for record in records:
        if not is_known_language(record.language):
            skipped += 1
            continue
        totals = by_day.setdefault(day_key(record.date, tz), _empty_totals())
        totals[record.language] += record.duration
    if skipped:
        log("WARN", "Records with unknown language excluded from day totals", {"count": skipped})
    return by_day


def aggregate_totals(records: Iterable[PlaybackRecord]) -> dict[str, int]:
    """Seconds watched per language over all *records*."""
    totals = _empty_totals()
    skipped = 0
    for record in records:
        if not is_known_language(record.language):
            skipped += 1
            continue
        totals[record.language] += record.duration
    if skipped:
        log("WARN", "Records with unknown language excluded from totals", {"count": skipped})
    return totals


def is_achieved(seconds: int, goal_minutes: int) -> bool:
    """Whole minutes watched reach a positive goal. A zero goal is never achieved."""
    return goal_minutes > 0 and seconds // 60 >= goal_minutes


def evaluate_day(
    day: date, totals: Mapping[str, int], goals: Mapping[str, int]
) -> DailyAchievement:
    achievements = []
    for language in LANGUAGE_KEYS:
        seconds = totals.get(language, 0)
        target = goals.get(language, 0)
        actual = seconds // 60
        achievements.append(
            Achievement(
                language=language,
                target_minutes=target,
                actual_minutes=actual,
                percentage=round(actual / target * 100, 1) if target > 0 else 0.0,
                achieved=is_achieved(seconds, target),
            )
        )
    with_goal = [a for a in achievements if a.target_minutes > 0]
    return DailyAchievement(
        date=day,
        achievements=achievements,
        has_achieved=bool(with_goal) and all(a.achieved for a in with_goal),
    )


def achievements_by_day(
    records: Iterable[PlaybackRecord],
    snapshots: Iterable[DailyGoal],
    tz: tzinfo | None = None,
) -> list[DailyAchievement]:
    """Evaluate every day with playback against the goals in force that day."""
    snapshots = list(snapshots)
    by_day = aggregate_by_day(records, tz)
    return [
        evaluate_day(day, by_day[day], resolve_from(snapshots, day).goals)
        for day in sorted(by_day)
    ]


def filter_records(
    records: Iterable[PlaybackRecord],
    language: str = "all",
    period: str = "all",
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[PlaybackRecord]:
    """Records matching a language and a period (``all``, ``today``, ``week``, ``month``).

    Weeks start on Sunday. Periods are open-ended: everything from the start
    of the period onward is kept.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period {period!r}. Expected one of: {', '.join(PERIODS)}")

    since: datetime | None = None
    if period != "all":
        today = day_key(now if now is not None else local_now(tz), tz)
        if period == "today":
            first = today
        elif period == "week":
            # date.weekday(): Monday=0 .. Sunday=6
            first = today - timedelta(days=(today.weekday() + 1) % 7)
        else:
            first = today.replace(day=1)
        since = start_of_day(first, tz)

    return [
        record
        for record in records
        if (language == "all" or record.language == language)
        and (since is None or record.date >= since)
    ]


@dataclass
class CalendarDay:
    day: date
    totals: dict[str, int] = field(default_factory=_empty_totals)
    achieved: list[str] = field(default_factory=list)
    is_today: bool = False

    @property
    def has_playback(self) -> bool:
        return any(self.totals.values())


def month_summary(
    by_day: Mapping[date, Mapping[str, int]],
    year: int,
    month: int,
    goals: ResolvedGoal | Mapping[date, ResolvedGoal],
    today: date | None = None,
) -> list[CalendarDay]:
    """One entry per day of the month with its totals and achieved languages.

    *goals* is either a single resolution used for every day or a mapping of
    per-day resolutions.
    """
    _, days_in_month = calendar.monthrange(year, month)
    summary = []
    for number in range(1, days_in_month + 1):
        day = date(year, month, number)
        totals = dict(by_day.get(day) or _empty_totals())
        resolved = goals if isinstance(goals, ResolvedGoal) else goals.get(day)
        day_goals = resolved.goals if resolved is not None else {}
        achieved = [
            language
            for language in LANGUAGE_KEYS
            if is_achieved(totals.get(language, 0), day_goals.get(language, 0))
        ]
        summary.append(
            CalendarDay(day=day, totals=totals, achieved=achieved, is_today=day == today)
        )
    return summary
