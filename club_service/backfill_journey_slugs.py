"""
Assign slugs to journeys created before slugs existed

Dry run by default; set DRY_RUN=false to write.

    python -m club_service.backfill_journey_slugs
"""
from dataclasses import dataclass
from datetime import datetime, timezone
import asyncio
import logging
import os
import sys

from .application.slugs import JOURNEYS_COLLECTION, resolve_journey_slug
from .database import mongodb
from .domain.repositories import IJourneyRepository, ITransaction, ITransactionRunner
from .infrastructure.repositories import JourneyRepository, MongoTransactionRunner

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    processed: int = 0
    updated: int = 0
    skipped: int = 0


async def backfill_journey_slugs(
    runner: ITransactionRunner,
    journeys: IJourneyRepository,
    dry_run: bool = True
) -> BackfillReport:
    mode = "DRY_RUN" if dry_run else "LIVE"
    missing = await journeys.find_missing_slug()
    logger.info(f"Inspecting {len(missing)} journeys without a slug ({mode})")

    report = BackfillReport()
    for journey in missing:
        title = (journey.title or "").strip()
        if not title:
            report.skipped += 1
            logger.warning(f"Skipping journey {journey.id} of club {journey.club_id}: missing a title")
            continue
        if not journey.club_id:
            report.skipped += 1
            logger.warning(f"Skipping journey {journey.id}: missing a club id")
            continue

        report.processed += 1

        async def assign(tx: ITransaction, journey=journey, title=title) -> str:
            slug = await resolve_journey_slug(tx, journey.club_id, title)
            if not dry_run:
                await tx.update(JOURNEYS_COLLECTION, journey.club_id, journey.id, {
                    "slug": slug,
                    "updated_at": datetime.now(timezone.utc),
                })
            return slug

        slug = await runner.run_transaction(assign)
        if not dry_run:
            report.updated += 1
        logger.info(f"[{'DRY_RUN' if dry_run else 'UPDATE'}] clubs/{journey.club_id}/journeys/{journey.id} -> {slug}")

    logger.info(f"Processed {report.processed} journeys missing slugs (skipped {report.skipped})")
    logger.info(
        f"{'Would update' if dry_run else 'Updated'} "
        f"{report.processed if dry_run else report.updated} journey documents"
    )
    return report


async def main() -> int:
    dry_run = os.getenv("DRY_RUN", "true").lower() != "false"

    await mongodb.connect()
    try:
        await backfill_journey_slugs(
            MongoTransactionRunner(mongodb),
            JourneyRepository(mongodb.db),
            dry_run=dry_run,
        )
    except Exception as e:
        logger.error(f"Journey slug backfill failed: {e}")
        return 1
    finally:
        await mongodb.disconnect()

    logger.info("Journey slug backfill complete")
    return 0


def run():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
