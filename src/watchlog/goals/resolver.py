"""Goal resolver: daily goal and language-visibility snapshots with carry-forward.

A snapshot saved on a given day applies to that day and every later day until
the next snapshot. Days before the first snapshot get ``DEFAULT_DAILY_GOAL``
with every language visible. Saving never rewrites an earlier snapshot;
carry-forward happens only when reading.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, tzinfo
from typing import TYPE_CHECKING, Iterable, Mapping

from watchlog.logger import log
from watchlog.records.model import LANGUAGE_KEYS, DailyGoal, is_known_language
from watchlog.timeutil import local_today

if TYPE_CHECKING:
    from watchlog.records.store import RecordStore

DEFAULT_DAILY_GOAL: dict[str, int] = {language: 0 for language in LANGUAGE_KEYS}


def normalize_goals(goals: Mapping[str, int] | None) -> dict[str, int]:
    """Goal minutes for every known language; missing ones are 0, unknown keys dropped."""
    goals = goals or {}
    return {language: int(goals.get(language) or 0) for language in LANGUAGE_KEYS}


def normalize_visibility(visibility: Mapping[str, bool] | None) -> dict[str, bool]:
    """Visibility for every known language; missing ones are visible."""
    visibility = visibility or {}
    return {language: bool(visibility.get(language, True)) for language in LANGUAGE_KEYS}


@dataclass(frozen=True)
class ResolvedGoal:
    """Goals and visibility that apply on a given day."""

    goals: dict[str, int]
    visibility: dict[str, bool]
    source_date: date | None = None  # snapshot the values came from; None = defaults

    @classmethod
    def from_snapshot(cls, snapshot: DailyGoal | None) -> ResolvedGoal:
        if snapshot is None:
            return cls(goals=normalize_goals(None), visibility=normalize_visibility(None))
        return cls(
            goals=normalize_goals(snapshot.goals),
            visibility=normalize_visibility(snapshot.visibility),
            source_date=snapshot.date,
        )

    @property
    def visible_languages(self) -> list[str]:
        return [language for language in LANGUAGE_KEYS if self.visibility[language]]


def resolve_from(snapshots: Iterable[DailyGoal], target: date) -> ResolvedGoal:
    """Pick the most recent snapshot dated on or before *target*."""
    for snapshot in sorted(snapshots, key=lambda s: s.date, reverse=True):
        if snapshot.date <= target:
            return ResolvedGoal.from_snapshot(snapshot)
    return ResolvedGoal.from_snapshot(None)


class GoalResolver:
    """Reads and updates goal snapshots in a ``RecordStore``.

    Updates for one date must be serialized by the caller: two concurrent
    partial updates are last-write-wins.
    """

    def __init__(self, store: RecordStore, tz: tzinfo | None = None):
        self.store = store
        self.tz = tz

    def today(self) -> date:
        return local_today(self.tz)

    async def resolve(self, target: date | None = None) -> ResolvedGoal:
        target = target or self.today()
        snapshots = await self.store.get_all_daily_goals()
        return resolve_from(snapshots, target)

    async def update_goal(
        self, language: str, minutes: int, on: date | None = None
    ) -> DailyGoal:
        """Change one language's goal, keeping every other value of the snapshot."""
        _check_language(language)
        if minutes < 0:
            raise ValueError(f"Goal minutes must be non-negative, got {minutes}")

        on = on or self.today()
        current = await self.resolve(on)
        goals = dict(current.goals)
        goals[language] = int(minutes)
        saved = await self.save_snapshot(goals, current.visibility, on)
        log("INFO", "Goal updated", {"date": on.isoformat(), "language": language, "minutes": minutes})
        return saved

    async def set_visibility(
        self, language: str, visible: bool, on: date | None = None
    ) -> DailyGoal:
        """Show or hide one language, keeping every other value of the snapshot."""
        _check_language(language)

        on = on or self.today()
        current = await self.resolve(on)
        visibility = dict(current.visibility)
        visibility[language] = bool(visible)
        saved = await self.save_snapshot(current.goals, visibility, on)
        log("INFO", "Visibility updated", {"date": on.isoformat(), "language": language, "visible": visible})
        return saved

    async def save_snapshot(
        self,
        goals: Mapping[str, int],
        visibility: Mapping[str, bool] | None = None,
        on: date | None = None,
    ) -> DailyGoal:
        """Write a full snapshot for *on*, replacing any snapshot of that date."""
        snapshot = DailyGoal(
            date=on or self.today(),
            goals=normalize_goals(goals),
            visibility=normalize_visibility(visibility),
        )
        return await self.store.save_daily_goal(snapshot)


def _check_language(language: str) -> None:
    if not is_known_language(language):
        raise ValueError(
            f"Unknown language {language!r}. Expected one of: {', '.join(LANGUAGE_KEYS)}"
        )
