#!/usr/bin/env python3
"""Report object maps stuck on a temporary id.

Usage:
    uv run python scripts/failed_object_maps.py
    uv run python scripts/failed_object_maps.py --json
    uv run python scripts/failed_object_maps.py --delete 12 15

Push errors are rows whose remote id is still a push placeholder (the remote
create never completed); pull errors are rows whose local id is still a pull
placeholder. --delete removes the listed rows in one transaction so the
records are treated as new on the next sync.

Reads DATABASE_URL from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.objectsync.core.database import close_db, get_session  # noqa: E402
from src.objectsync.core.logging import configure_structlog  # noqa: E402
from src.objectsync.mapping.ledger import ObjectMapLedger  # noqa: E402
from src.objectsync.mapping.schemas import ObjectMapRead  # noqa: E402

logger = structlog.get_logger(__name__)


def _format_row(row: ObjectMapRead) -> str:
    status = "-" if row.last_sync_status is None else str(row.last_sync_status)
    return (
        f"  #{row.id:<6} {row.local_object}:{row.local_id} -> {row.remote_id}"
        f"  status={status}  {row.last_sync_message or ''}"
    )


async def main_async(args: argparse.Namespace) -> None:
    ledger = ObjectMapLedger(get_session)
    try:
        if args.delete:
            deleted = await ledger.delete_object_map(args.delete)
            logger.info("failed_object_maps.deleted", ids=args.delete, success=deleted)
            return

        failed = await ledger.get_failed_object_maps()

        if args.json:
            print(json.dumps(failed.model_dump(mode="json"), indent=2))
            return

        if failed.is_empty:
            print("No failed object maps.")
            return

        print(f"Push errors ({len(failed.push_errors)}):")
        for row in failed.push_errors:
            print(_format_row(row))
        print(f"Pull errors ({len(failed.pull_errors)}):")
        for row in failed.pull_errors:
            print(_format_row(row))
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Report object maps stuck on a temporary id")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument(
        "--delete",
        type=int,
        nargs="+",
        metavar="ID",
        help="Delete these object map rows instead of reporting",
    )
    args = parser.parse_args()

    configure_structlog()
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
