from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func, select

from app.config import settings
from app.db import AsyncSessionLocal, engine
from app.logger import logger
from app.models import BusinessPlan, utcnow
from app.plan.store import PlanStore
from app.services.plan_status import PLAN_STATUS_QUEUED, PLAN_STATUS_RUNNING


@dataclass(frozen=True)
class StaleCounts:
    queued: int
    running: int


async def _get_stale_counts(max_running_seconds: int) -> StaleCounts:
    cutoff = utcnow() - timedelta(seconds=max_running_seconds)
    async with AsyncSessionLocal() as db:
        counts = {}
        for status in (PLAN_STATUS_QUEUED, PLAN_STATUS_RUNNING):
            counts[status] = (
                await db.execute(
                    select(func.count())
                    .select_from(BusinessPlan)
                    .where(BusinessPlan.status == status, BusinessPlan.updated_at < cutoff)
                )
            ).scalar_one()

        return StaleCounts(
            queued=int(counts[PLAN_STATUS_QUEUED]),
            running=int(counts[PLAN_STATUS_RUNNING]),
        )


async def sweep_stale_plans(*, max_running_seconds: int, dry_run: bool) -> int:
    try:
        before = await _get_stale_counts(max_running_seconds)
        logger.warning(
            "Stale plan sweep requested",
            extra={
                "max_running_seconds": max_running_seconds,
                "stale": {"queued": before.queued, "running": before.running},
                "dry_run": dry_run,
            },
        )

        if dry_run:
            return before.queued + before.running

        swept = await PlanStore(AsyncSessionLocal).fail_stale(max_running_seconds)
        logger.warning("Stale plan sweep completed", extra={"swept": swept})
        return swept
    finally:
        await engine.dispose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mark business plans stuck in queued/running as errored.",
    )
    parser.add_argument(
        "--max-running-seconds",
        type=int,
        default=settings.JOB_MAX_RUNNING_SECONDS,
        help="Plans untouched for longer than this are failed (default: JOB_MAX_RUNNING_SECONDS).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many plans would be failed.",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(sweep_stale_plans(max_running_seconds=args.max_running_seconds, dry_run=bool(args.dry_run)))


if __name__ == "__main__":
    main()
