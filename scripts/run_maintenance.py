#!/usr/bin/env python
"""Run a catalog maintenance routine.

Usage:
    python -m scripts.run_maintenance dedupe --seed data/movies.json
    python -m scripts.run_maintenance orphans --repair --output report.json

The routine runs against the configured embedding provider and vector
backend. The record store lives in this process only, so every run starts
from an empty catalog: records are seeded from a JSON file (a list of record
objects) given with --seed, which is required.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cinesearch.config import get_settings
from cinesearch.container import Services, build_services
from cinesearch.exceptions import CineSearchError, IngestionError, InputError
from cinesearch.logging_config import get_logger, setup_logging
from cinesearch.stores.models import RecordFields

logger = get_logger(__name__)

ROUTINES = ("dedupe", "backfill-posters", "orphans", "missing-posters")


async def seed_records(services: Services, path: Path) -> int:
    """Ingest every record in a JSON list file; returns the number ingested."""
    items = json.loads(path.read_text())
    if not isinstance(items, list):
        raise IngestionError(
            f"{path} must contain a JSON list of records",
            details={"path": str(path)},
        )

    ingested = 0
    for index, item in enumerate(items):
        try:
            await services.orchestrator.ingest(RecordFields.model_validate(item))
            ingested += 1
        except (ValidationError, CineSearchError) as e:
            logger.warning(f"Skipping seed record {index}: {e}")

    logger.info(f"Seeded {ingested} of {len(items)} records from {path}")
    return ingested


async def run_routine(
    routine: str,
    seed_path: Path | None = None,
    repair: bool = False,
    limit: int = 500,
) -> dict[str, Any]:
    """Build services, seed them, and run one routine.

    Returns:
        The routine's report as a JSON-serializable dict.

    Raises:
        InputError: If no seed file is given.
    """
    if seed_path is None:
        raise InputError(
            "A --seed file is required: the record store starts empty on every run",
            details={"routine": routine},
        )

    settings = get_settings()
    setup_logging(level=settings.log_level)

    services = build_services(settings)
    try:
        await services.orchestrator.ensure_collection()
        await seed_records(services, seed_path)

        maintenance = services.maintenance
        if routine == "dedupe":
            return (await maintenance.dedupe()).model_dump()
        if routine == "backfill-posters":
            return (await maintenance.backfill_posters()).model_dump()
        if routine == "orphans":
            return (await maintenance.detect_orphans(repair=repair)).model_dump()

        records = await maintenance.list_missing_posters(limit)
        return {
            "count": len(records),
            "records": [{"id": r.id, "title": r.title} for r in records],
        }
    finally:
        await services.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a catalog maintenance routine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("routine", choices=ROUTINES, help="Routine to run")
    parser.add_argument(
        "--seed",
        type=Path,
        required=True,
        help="JSON file of records to ingest first",
    )
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Drop dangling embedding keys (orphans routine)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=500,
        help="Maximum records listed (missing-posters routine)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to save the report JSON",
    )

    args = parser.parse_args()

    try:
        report = asyncio.run(
            run_routine(
                routine=args.routine,
                seed_path=args.seed,
                repair=args.repair,
                limit=args.limit,
            )
        )
    except CineSearchError as e:
        logger.error(f"Maintenance failed: {e.message}", extra={"error_code": e.code.value})
        sys.exit(1)

    output = json.dumps(report, indent=2)
    print(output)
    if args.output:
        args.output.write_text(output)
        logger.info(f"Report saved to {args.output}")


if __name__ == "__main__":
    main()
