"""KWPilot: Cache, Queue & Rate-limit Routes."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from kwpilot.database import get_session
from kwpilot.store import cache_store, queue_store
from kwpilot.core.logging import get_logger

logger = get_logger("api.cache")

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.get("/keywords/stats")
async def keyword_cache_stats(session: Session = Depends(get_session)):
    return {"status": "success", "stats": cache_store.get_keyword_cache_stats(session)}


@router.delete("/keywords/expired")
async def clear_expired_keywords(session: Session = Depends(get_session)):
    deleted = cache_store.clear_expired_keywords(session)
    logger.info(f"🧹 Cleared {deleted} expired keyword cache entries")
    return {"status": "success", "deleted": deleted}


@router.delete("/keywords")
async def clear_keyword_cache(session: Session = Depends(get_session)):
    deleted = cache_store.clear_all_keywords(session)
    logger.warning(f"🗑️ Cleared all {deleted} keyword cache entries")
    return {"status": "success", "deleted": deleted}


@router.get("/queue")
async def queue_status(session: Session = Depends(get_session)):
    return {"status": "success", "queue": queue_store.get_queue_status(session)}


@router.get("/rate-limits")
async def rate_limits(session: Session = Depends(get_session)):
    return {"status": "success", "rate_limits": cache_store.list_rate_limits(session)}
