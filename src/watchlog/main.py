"""Main entry point: text front end over the record store, merge engine,
aggregator and goal resolver.

Every subcommand opens the store once, runs inside a single asyncio loop and
closes the store on exit. Hidden languages (per today's resolved visibility)
are left out of history, stats and calendar output.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime
from pathlib import Path

from watchlog.config import settings
from watchlog.goals.resolver import GoalResolver, ResolvedGoal, resolve_from
from watchlog.logger import log
from watchlog.records.entries import (
    RecordNotFoundError,
    RecordValidationError,
    add_manual_entry,
    delete_records,
    edit_record,
)
from watchlog.records.model import LANGUAGE_KEYS, DisplayRecord
from watchlog.records.store import RecordStore
from watchlog.sessions.engine import build_display_records
from watchlog.stats.aggregator import (
    PERIODS,
    aggregate_by_day,
    aggregate_totals,
    filter_records,
    month_summary,
)
from watchlog.timeutil import local_today, to_local
from watchlog.transfer import (
    InvalidImportError,
    default_export_name,
    export_to_file,
    import_from_file,
)

TIMELINE_WIDTH = 24


# =============================================================================
# FORMATTING
# =============================================================================


def format_duration(seconds: int) -> str:
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def render_timeline(record: DisplayRecord, width: int = TIMELINE_WIDTH) -> str:
    """Text bar over the record's span; filled cells are covered by a segment."""
    span = max((record.span_end - record.span_start).total_seconds(), 1.0)
    cells = ["·"] * width
    for segment in sorted(record.segments, key=lambda s: s.start):
        left = (segment.start - record.span_start).total_seconds() / span
        right = (segment.end - record.span_start).total_seconds() / span
        first = min(int(left * width), width - 1)
        last = max(first, min(int(right * width + 0.999) - 1, width - 1))
        for i in range(first, last + 1):
            cells[i] = "█"
    return "".join(cells)


def _print_history(records: list[DisplayRecord]) -> None:
    tz = settings.tzinfo
    if not records:
        print("No records")
        return
    for record in records:
        start = to_local(record.span_start, tz)
        end = to_local(record.span_end, tz)
        merged = f"  [{len(record.merged_session_ids)} plays]" if record.is_merged else ""
        channel = record.channel_name or record.language.title()
        print(f"{start:%Y-%m-%d %H:%M}  {channel}  {format_duration(record.total_duration)}{merged}")
        print(f"    {record.title}")
        print(f"    {render_timeline(record)} {end:%H:%M}")
        print(f"    id: {', '.join(record.merged_session_ids)}")


def _print_goals(resolved: ResolvedGoal, target: date) -> None:
    source = resolved.source_date.isoformat() if resolved.source_date else "defaults"
    print(f"Goals for {target.isoformat()} (from {source}):")
    for language in LANGUAGE_KEYS:
        shown = "shown" if resolved.visibility[language] else "hidden"
        print(f"  {language:<10} {resolved.goals[language]:>4} min/day  ({shown})")


# =============================================================================
# COMMANDS
# =============================================================================


async def cmd_history(store: RecordStore, args: argparse.Namespace) -> int:
    tz = settings.tzinfo
    visibility = (await GoalResolver(store, tz).resolve()).visibility
    records = filter_records(await store.get_all_records(), args.language, args.period, tz=tz)
    display = build_display_records(
        records, args.merge, tz=tz, max_gap_hours=settings.merge_max_gap_hours
    )
    display = [r for r in reversed(display) if visibility.get(r.language, True)]

    if args.json:
        print(json.dumps([r.to_document() for r in display], indent=2, ensure_ascii=False))
    else:
        _print_history(display)
    return 0


async def cmd_stats(store: RecordStore, args: argparse.Namespace) -> int:
    tz = settings.tzinfo
    resolved = await GoalResolver(store, tz).resolve()
    records = filter_records(await store.get_all_records(), args.language, args.period, tz=tz)
    totals = aggregate_totals(records)

    if not resolved.visible_languages:
        print("All languages are hidden.")
        return 0
    for language in resolved.visible_languages:
        print(f"  {language:<10} {format_duration(totals[language])}")
    return 0


async def cmd_calendar(store: RecordStore, args: argparse.Namespace) -> int:
    tz = settings.tzinfo
    today = local_today(tz)
    year, month = today.year, today.month
    if args.month:
        year, month = (int(part) for part in args.month.split("-"))

    snapshots = await store.get_all_daily_goals()
    visible = resolve_from(snapshots, today).visible_languages
    if args.language != "all":
        visible = [lang for lang in visible if lang == args.language]

    by_day = aggregate_by_day(await store.get_all_records(), tz)
    goals_per_day = {day: resolve_from(snapshots, day) for day in by_day}
    summary = month_summary(by_day, year, month, goals_per_day, today=today)

    print(f"{year}/{month}")
    for entry in summary:
        parts = [
            f"{lang}:{entry.totals[lang] // 60}m" + ("✓" if lang in entry.achieved else "")
            for lang in visible
            if entry.totals.get(lang, 0) > 0
        ]
        marker = "*" if entry.is_today else " "
        print(f"{marker}{entry.day.day:>3}  {'  '.join(parts)}")
    return 0


async def cmd_goals(store: RecordStore, args: argparse.Namespace) -> int:
    resolver = GoalResolver(store, settings.tzinfo)
    target = args.date or resolver.today()
    _print_goals(await resolver.resolve(target), target)
    return 0


async def cmd_set_goal(store: RecordStore, args: argparse.Namespace) -> int:
    resolver = GoalResolver(store, settings.tzinfo)
    saved = await resolver.update_goal(args.language, args.minutes, on=args.date)
    print(f"Goal saved: {args.language} = {args.minutes} min/day from {saved.date.isoformat()}")
    return 0


async def cmd_visibility(store: RecordStore, args: argparse.Namespace) -> int:
    resolver = GoalResolver(store, settings.tzinfo)
    saved = await resolver.set_visibility(args.language, args.state == "show", on=args.date)
    print(f"{args.language} is now {'shown' if args.state == 'show' else 'hidden'} from {saved.date.isoformat()}")
    return 0


async def cmd_add(store: RecordStore, args: argparse.Namespace) -> int:
    record = await add_manual_entry(
        store, args.date, args.title, args.minutes, args.language, url=args.url
    )
    print(f"Record added: {record.session_id}")
    return 0


async def cmd_edit(store: RecordStore, args: argparse.Namespace) -> int:
    existing = await store.get_record(args.session_id)
    if existing is None:
        raise RecordNotFoundError(args.session_id)
    updated = await edit_record(
        store,
        args.session_id,
        title=args.title if args.title is not None else existing.title,
        duration_minutes=args.minutes if args.minutes is not None else existing.duration // 60,
        language=args.language or existing.language,
        date=args.date or existing.date,
        url=args.url,
        tz=settings.tzinfo,
    )
    print(f"Record updated: {updated.session_id}")
    return 0


async def cmd_delete(store: RecordStore, args: argparse.Namespace) -> int:
    deleted = await delete_records(store, args.session_ids)
    print(f"Deleted {len(deleted)} record(s)")
    return 0


async def cmd_export(store: RecordStore, args: argparse.Namespace) -> int:
    path = await export_to_file(store, args.output or Path(default_export_name()))
    print(f"Exported to {path}")
    return 0


async def cmd_import(store: RecordStore, args: argparse.Namespace) -> int:
    records, goals = await import_from_file(store, args.path)
    print(f"Imported {records} record(s) and {goals} goal snapshot(s)")
    return 0


COMMANDS = {
    "history": cmd_history,
    "stats": cmd_stats,
    "calendar": cmd_calendar,
    "goals": cmd_goals,
    "set-goal": cmd_set_goal,
    "visibility": cmd_visibility,
    "add": cmd_add,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "export": cmd_export,
    "import": cmd_import,
}


# =============================================================================
# CLI INTERFACE
# =============================================================================


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def _year_month(value: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m")
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}")
    return value


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watchlog",
        description="Track language-immersion video watching against daily goals.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding records.json and daily_goals.json (default: $WATCHLOG_HOME/data)",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    language_filter = ["all", *LANGUAGE_KEYS]

    history = sub.add_parser("history", help="List viewing sessions, newest first")
    history.add_argument("--period", choices=PERIODS, default="all")
    history.add_argument("--language", choices=language_filter, default="all")
    history.add_argument(
        "--merge",
        action=argparse.BooleanOptionalAction,
        default=settings.merge_consecutive,
        help="Merge consecutive plays of the same video",
    )
    history.add_argument("--json", action="store_true", help="Print display records as JSON")

    stats = sub.add_parser("stats", help="Total watch time per language")
    stats.add_argument("--period", choices=PERIODS, default="all")
    stats.add_argument("--language", choices=language_filter, default="all")

    cal = sub.add_parser("calendar", help="Per-day minutes for one month")
    cal.add_argument("--month", type=_year_month, default=None, help="YYYY-MM (default: this month)")
    cal.add_argument("--language", choices=language_filter, default="all")

    goals = sub.add_parser("goals", help="Show the goals in force on a date")
    goals.add_argument("--date", type=_iso_date, default=None)

    set_goal = sub.add_parser("set-goal", help="Set one language's daily goal")
    set_goal.add_argument("language", choices=LANGUAGE_KEYS)
    set_goal.add_argument("minutes", type=int)
    set_goal.add_argument("--date", type=_iso_date, default=None, help="Snapshot date (default: today)")

    visibility = sub.add_parser("visibility", help="Show or hide a language")
    visibility.add_argument("language", choices=LANGUAGE_KEYS)
    visibility.add_argument("state", choices=("show", "hide"))
    visibility.add_argument("--date", type=_iso_date, default=None, help="Snapshot date (default: today)")

    add = sub.add_parser("add", help="Add a record by hand")
    add.add_argument("--date", required=True, help="ISO date or datetime (local time if no offset)")
    add.add_argument("--title", required=True)
    add.add_argument("--minutes", type=int, required=True)
    add.add_argument("--language", choices=LANGUAGE_KEYS, required=True)
    add.add_argument("--url", default=None)

    edit = sub.add_parser("edit", help="Edit a stored record")
    edit.add_argument("session_id")
    edit.add_argument("--date", default=None)
    edit.add_argument("--title", default=None)
    edit.add_argument("--minutes", type=int, default=None)
    edit.add_argument("--language", choices=LANGUAGE_KEYS, default=None)
    edit.add_argument("--url", default=None)

    delete = sub.add_parser("delete", help="Delete records (all ids of a merged session)")
    delete.add_argument("session_ids", nargs="+")

    export = sub.add_parser("export", help="Export all records and goals to JSON")
    export.add_argument("--output", type=Path, default=None)

    imp = sub.add_parser("import", help="Import records and goals from an export file")
    imp.add_argument("path", type=Path)

    return parser


async def async_main(args: argparse.Namespace) -> int:
    store = RecordStore(args.data_dir or settings.data_dir)
    async with store:
        return await COMMANDS[args.command](store, args)


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)

    try:
        return asyncio.run(async_main(args))
    except RecordNotFoundError as e:
        print(f"Unknown record: {e.args[0]}", file=sys.stderr)
    except (RecordValidationError, InvalidImportError) as e:
        print(f"Invalid input: {e}", file=sys.stderr)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
    except OSError as e:
        log("ERROR", "Store failure", {"error": str(e)})
        print(f"Storage error: {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
