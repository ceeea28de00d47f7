from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import get_settings
from .db import AsyncSessionLocal
from .services.backfill import OwnerBackfillSummary, backfill_owner, local_today
from .services.stores import SqlRuleStore, SqlTransactionSink


logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None


async def run_backfill_all(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> list[OwnerBackfillSummary]:
    store = SqlRuleStore(session_factory or AsyncSessionLocal)
    sink = SqlTransactionSink(session_factory or AsyncSessionLocal)
    today = local_today()

    summaries: list[OwnerBackfillSummary] = []
    for owner_id in await store.list_owner_ids():
        summary = await backfill_owner(owner_id, store, sink, today)
        logger.info(
            "Owner %s: %d rules processed, %d transactions created",
            owner_id, summary.rules_processed, summary.transactions_created,
        )
        summaries.append(summary)
    return summaries


def start_scheduler() -> AsyncIOScheduler:
    global scheduler
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)
    # once a day, catch every rule up to today
    scheduler.add_job(
        run_backfill_all,
        CronTrigger(hour=settings.BACKFILL_CRON_HOUR, minute=settings.BACKFILL_CRON_MINUTE, timezone=settings.TIMEZONE),
        id="recurring-backfill",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
