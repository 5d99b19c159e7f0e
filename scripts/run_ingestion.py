from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

import httpx

from app.logging import setup_logging
from app.settings import Settings
from ingest.scheduler import CycleReport, run_ingestion_cycle, seed_sources
from store.db import close_database, open_database


async def _run(settings: Settings) -> CycleReport:
    db = open_database(settings.db_path)
    try:
        seed_sources(db, settings.feeds_dir)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await run_ingestion_cycle(settings, db, client)
    finally:
        close_database(db)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one ingestion cycle now.")
    parser.add_argument("--db", type=Path, default=None)
    parser.add_argument("--feeds", type=Path, default=None)
    parser.add_argument("--json", action="store_true", help="print the full report")
    args = parser.parse_args()

    settings = Settings()
    if args.db is not None:
        settings = settings.model_copy(update={"db_path": args.db})
    if args.feeds is not None:
        settings = settings.model_copy(update={"feeds_dir": args.feeds})
    setup_logging(settings)

    report = asyncio.run(_run(settings))
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(
            f"processed={report.processed} skipped={report.skipped} "
            f"failed={report.failed} correlations={report.correlations}"
        )
    if report.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
