"""
Command line entry point for tripmap.

Usage:
    python -m tripmap.main init-db
    python -m tripmap.main list-trips
    python -m tripmap.main search-airports "new" --limit 5
    python -m tripmap.main resolve "Paris, France" --mode train
    python -m tripmap.main clear-geocode-cache
    python -m tripmap.main load-airports airports.csv
"""

import argparse
import asyncio
import csv
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from tripmap.services.trip_service import TripService
from tripmap.utils.config import get_config

logger = logging.getLogger(__name__)


def read_airport_csv(path: str) -> List[Dict[str, Any]]:
    """Rows of a ``code,name,lat,lng`` CSV file with a header line."""
    with open(path, newline="", encoding="utf-8") as handle:
        return [
            {
                "code": (row.get("code") or "").strip().upper(),
                "name": (row.get("name") or "").strip(),
                "lat": row.get("lat"),
                "lng": row.get("lng"),
            }
            for row in csv.DictReader(handle)
        ]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tripmap", description="Trip store and location resolver")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the backing tables")
    subparsers.add_parser("list-trips", help="Print every trip with resolved legs")

    search = subparsers.add_parser("search-airports", help="Airport autocomplete")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)

    resolve = subparsers.add_parser("resolve", help="Resolve a location for a transport mode")
    resolve.add_argument("location")
    resolve.add_argument("--mode", default="flight")

    subparsers.add_parser("clear-geocode-cache", help="Delete every cached geocode")

    load = subparsers.add_parser("load-airports", help="Replace the airport directory from a CSV file")
    load.add_argument("csv_path")

    return parser


async def run(args: argparse.Namespace) -> Any:
    service = await TripService.from_config(create_tables=args.command == "init-db")
    try:
        if args.command == "init-db":
            return {"success": True, "database": service.row_store.db.database_url}
        if args.command == "list-trips":
            return await service.get_trip_data()
        if args.command == "search-airports":
            return await service.search_airports(args.query, args.limit)
        if args.command == "resolve":
            resolved = await service.resolver.resolve(args.location, args.mode)
            return resolved.to_payload() if resolved else None
        if args.command == "clear-geocode-cache":
            return await service.clear_geocode_cache()
        if args.command == "load-airports":
            return await service.reload_airports(read_airport_csv(args.csv_path))
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await service.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the tripmap CLI."""
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        result = asyncio.run(run(args))
    except Exception as e:
        logger.error(f"Command {args.command} failed: {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
