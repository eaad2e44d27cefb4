#!/usr/bin/env python3
"""
Visitor Analytics - command line tools.

Usage:
    python main.py serve                          # Run the API server
    python main.py serve --port 8080              # Run on a specific port
    python main.py stats --time-range 7d          # Print aggregate statistics
    python main.py uniques --field session.sessionId   # Count distinct values
    python main.py breakdown --field device.browser     # Events per value
    python main.py export --output output/events.json  # Dump recent events
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from db import EventStore, init_storage
from db.base import FIELD_PATHS
from errors import AnalyticsError, ConfigError
from services.aggregation import compute_stats
from settings import Settings
from utils.clock import utcnow
from utils.timerange import TIME_RANGES, parse_date_param, resolve_window


async def _open_store(settings: Settings) -> EventStore:
    store = await init_storage(settings)
    if not store.is_connected():
        print("Warning: no event store available, results will be empty", file=sys.stderr)
    return store


async def run_stats(settings: Settings, time_range: Optional[str], start: Optional[str], end: Optional[str]) -> Dict[str, Any]:
    """Compute AggregateStats against the configured store."""
    now = utcnow()
    window = resolve_window(now, time_range, start, end)
    store = await _open_store(settings)
    try:
        stats = await compute_stats(store, window, now=now, tz=settings.tz)
    finally:
        await store.close()
    return stats.to_response()


async def run_uniques(settings: Settings, field_path: str, time_range: Optional[str]) -> Tuple[int, int]:
    """Return (distinct values, total events) for the window."""
    now = utcnow()
    window = resolve_window(now, time_range)
    store = await _open_store(settings)
    try:
        distinct = await store.count_distinct(field_path, window.start, window.end)
        total = await store.count(window.start, window.end)
        return distinct, total
    finally:
        await store.close()


async def run_breakdown(settings: Settings, field_path: str, time_range: Optional[str]) -> Dict[Any, int]:
    now = utcnow()
    window = resolve_window(now, time_range)
    store = await _open_store(settings)
    try:
        return await store.count_by(field_path, window.start, window.end)
    finally:
        await store.close()


async def run_export(settings: Settings, start: Optional[str], end: Optional[str], limit: int) -> List[Dict[str, Any]]:
    store = await _open_store(settings)
    try:
        events = await store.recent(
            parse_date_param(start, "startDate"),
            parse_date_param(end, "endDate"),
            limit,
        )
    finally:
        await store.close()
    return [e.to_dict() for e in events]


def save_to_json(events: List[Dict[str, Any]], output_path: Path):
    """Save events to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(events, f, indent=2, ensure_ascii=False)

    print(f"Saved {len(events)} events to {output_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Visitor analytics ingestion and reporting"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, help="Port (default: PORT env or 3001)")

    stats = commands.add_parser("stats", help="Print aggregate statistics as JSON")
    stats.add_argument(
        "--time-range",
        choices=sorted(TIME_RANGES),
        help="Named window (default: 24h)",
    )
    stats.add_argument("--start-date", help="ISO-8601 window start")
    stats.add_argument("--end-date", help="ISO-8601 window end")

    uniques = commands.add_parser("uniques", help="Count distinct values of a field")
    uniques.add_argument(
        "--field",
        choices=FIELD_PATHS,
        default="id",
        help="Dotted field name (default: id)",
    )
    uniques.add_argument("--time-range", choices=sorted(TIME_RANGES), default="24h")

    breakdown = commands.add_parser("breakdown", help="Count events per value of a field")
    breakdown.add_argument(
        "--field",
        choices=FIELD_PATHS,
        default="location.country",
        help="Dotted field name (default: location.country)",
    )
    breakdown.add_argument("--time-range", choices=sorted(TIME_RANGES), default="24h")

    export = commands.add_parser("export", help="Export recent events to JSON")
    export.add_argument("--start-date", help="ISO-8601 lower bound")
    export.add_argument("--end-date", help="ISO-8601 upper bound")
    export.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum number of events (default: 1000)",
    )
    export.add_argument(
        "--output",
        type=str,
        default="output/events.json",
        help="Output file path (default: output/events.json)",
    )
    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()

        if args.command == "serve":
            import uvicorn
            from api import create_app

            uvicorn.run(create_app(settings), host=args.host, port=args.port or settings.port)
        elif args.command == "stats":
            result = asyncio.run(run_stats(settings, args.time_range, args.start_date, args.end_date))
            print(json.dumps(result, indent=2))
        elif args.command == "uniques":
            distinct, total = asyncio.run(run_uniques(settings, args.field, args.time_range))
            print(f"Distinct {args.field} in last {args.time_range}: {distinct} (of {total} events)")
        elif args.command == "breakdown":
            counts = asyncio.run(run_breakdown(settings, args.field, args.time_range))
            for value, count in sorted(counts.items(), key=lambda item: item[1], reverse=True):
                print(f"{count:>8}  {value}")
        elif args.command == "export":
            events = asyncio.run(run_export(settings, args.start_date, args.end_date, args.limit))
            save_to_json(events, Path(args.output))

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(1)
    except (AnalyticsError, ConfigError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
