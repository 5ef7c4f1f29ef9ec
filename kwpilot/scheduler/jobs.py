"""KWPilot: Scheduler Jobs.

APScheduler jobs:
  daily_cache_cleanup   cron at the configured hour, deletes expired cache rows
  process_request_queue every few minutes, retries parked keyword fetches
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from kwpilot.config import settings
from kwpilot.database import get_session
from kwpilot.core.errors import KeywordSourceError
from kwpilot.research.ideas import process_queued_fetch
from kwpilot.store import cache_store, queue_store
from kwpilot.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()

QUEUE_INTERVAL_MINUTES = 5
QUEUE_ITEMS_PER_RUN = 10


def run_cleanup(session: Session) -> dict:
    """Delete every expired cache row; returns deleted counts per table."""
    return {
        "keyword_cache": cache_store.clear_expired_keywords(session),
        "report_cache": cache_store.clear_expired_reports(session),
        "keyword_volumes": cache_store.clear_expired_volumes(session),
        "rate_limits": cache_store.clear_expired_rate_limits(session),
        "request_queue": queue_store.clear_old(session, days=7),
    }


async def daily_cache_cleanup():
    logger.info("🧹 Scheduled cache cleanup starting...")
    try:
        session = next(get_session())
        counts = run_cleanup(session)
        logger.info(f"✅ Cache cleanup complete: {counts}")
    except Exception as e:
        logger.error(f"❌ Cache cleanup failed: {e}")


async def process_request_queue():
    """Drain up to QUEUE_ITEMS_PER_RUN due items from the request queue."""
    try:
        session = next(get_session())
        processed = 0
        for _ in range(QUEUE_ITEMS_PER_RUN):
            outcome = await process_queued_fetch(session)
            if outcome is None:
                break
            processed += 1
            logger.info(f"📬 Queue item {outcome[0]} → {outcome[1]}")
        if processed:
            logger.info(f"Queue run processed {processed} items")
    except (KeywordSourceError, ValueError) as e:
        logger.error(f"❌ Queue processing failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_cache_cleanup,
        "cron",
        hour=settings.cleanup_hour,
        minute=0,
        id="daily_cache_cleanup",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        process_request_queue,
        "interval",
        minutes=QUEUE_INTERVAL_MINUTES,
        id="process_request_queue",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Cache cleanup at {settings.cleanup_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
