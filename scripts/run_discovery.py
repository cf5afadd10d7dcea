#!/usr/bin/env python3
"""Run discovery from the command line.

Either regenerates one user's results or runs the full batch (shared pool
refresh, then every enabled user). Can also prune stale pool entries first.

Usage:
    python scripts/run_discovery.py --all
    python scripts/run_discovery.py --user-id=3 [--media-type=movie|series]
    python scripts/run_discovery.py --clear-pool-days=30 --all
    python scripts/run_discovery.py --clear-cache --all
    python scripts/run_discovery.py --all --print-metrics

Options:
    --all               Run the batch for every enabled user
    --user-id           Regenerate discovery for a single user
    --media-type        Media type for --user-id (default: both)
    --clear-pool-days   Delete pool entries not refreshed for this many days
    --clear-cache       Drop cached TMDB details before running
    --print-metrics     Print run and API metrics (Prometheus text format) at the end
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reelscout.db.database import async_session_maker, init_db
from reelscout.discovery import DiscoveryError, DiscoveryPipeline, DiscoveryStorage
from reelscout.discovery.types import LogEvent, ProgressEvent
from reelscout.models.media import MediaType
from reelscout.utils.cache import cache
from reelscout.utils.http_client import close_all_clients
from reelscout.utils.logging import setup_logging
from reelscout.utils.metrics import metrics

logger = logging.getLogger("run_discovery")


def print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.progress:3d}%] {event.step}: {event.status}")


def print_log(event: LogEvent) -> None:
    if event.level in ("warning", "error"):
        print(f"  {event.level.upper()}: {event.message}")


async def run(args: argparse.Namespace) -> int:
    await init_db()
    await cache.connect()

    failures = 0
    try:
        async with async_session_maker() as session:
            storage = DiscoveryStorage(session)
            pipeline = DiscoveryPipeline(storage)

            if args.clear_cache:
                dropped = await cache.delete_pattern("tmdb:*")
                print(f"Dropped {dropped} cached TMDB entries")

            if args.clear_pool_days is not None:
                removed = await pipeline.pool.prune(args.clear_pool_days)
                print(f"Removed {removed} stale pool entries")

            if args.user_id is not None:
                media_types = (
                    [MediaType(args.media_type)] if args.media_type else list(MediaType)
                )
                for media_type in media_types:
                    try:
                        result = await pipeline.regenerate_user_discovery(args.user_id, media_type)
                    except DiscoveryError as e:
                        print(f"Error: {e}")
                        return 1
                    except Exception as e:
                        print(f"{media_type.value}: run failed: {e}")
                        failures += 1
                        continue
                    print(
                        f"{media_type.value}: fetched={result.candidates_fetched} "
                        f"filtered={result.candidates_filtered} "
                        f"scored={result.candidates_scored} "
                        f"stored={result.candidates_stored} ({result.duration_ms}ms)"
                    )

            if args.all:
                batch = await pipeline.generate_for_all_users(
                    on_progress=print_progress, on_log=print_log
                )
                print(f"\nBatch done: {batch.success} succeeded, {batch.failed} failed")
                failures += batch.failed
    finally:
        await close_all_clients()
        await cache.close()
        if args.print_metrics:
            print()
            print(metrics.format_prometheus())

    return 1 if failures else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate discovery candidates")
    parser.add_argument("--all", action="store_true", help="Run for every enabled user")
    parser.add_argument("--user-id", type=int, help="Only run for this user")
    parser.add_argument(
        "--media-type",
        choices=[m.value for m in MediaType],
        help="Media type for --user-id (default: both)",
    )
    parser.add_argument(
        "--clear-pool-days",
        type=int,
        help="Delete pool entries not refreshed for this many days",
    )
    parser.add_argument(
        "--clear-cache", action="store_true", help="Drop cached TMDB details first"
    )
    parser.add_argument(
        "--print-metrics",
        action="store_true",
        help="Print metrics in Prometheus text format when done",
    )
    args = parser.parse_args()

    if not (args.all or args.clear_cache) and args.user_id is None and args.clear_pool_days is None:
        parser.error("nothing to do: pass --all, --user-id, --clear-pool-days or --clear-cache")
    if args.media_type and args.user_id is None:
        parser.error("--media-type only applies with --user-id")

    setup_logging()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
