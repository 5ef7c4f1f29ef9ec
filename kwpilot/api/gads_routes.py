"""KWPilot: Google Ads Account & Report Routes.

Report routes read through the report cache; pass refresh=true to bypass it.
The "all-accounts" alias fans out over every sub-account.
"""

from typing import Any, Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.config import settings
from kwpilot.connectors.google_ads import reports
from kwpilot.connectors.google_ads.client import (
    ALL_ACCOUNTS,
    GOOGLE_ADS_ACCOUNTS,
    GoogleAdsAPIError,
    GoogleAdsClient,
    get_account_name,
    resolve_account_ids,
)
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session
from kwpilot.store import cache_store

logger = get_logger("api.gads")

router = APIRouter(prefix="/gads", tags=["Google Ads"])


def _require_configured() -> None:
    if not settings.google_ads_configured:
        raise HTTPException(status_code=503, detail="Google Ads API is not configured")


def _check_date_range(date_range: str) -> str:
    if date_range not in reports.DATE_RANGES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid date_range. Use one of: {', '.join(reports.DATE_RANGES)}",
        )
    return date_range


async def _read_through(
    session: Session,
    customer_ids: List[str],
    refresh: bool,
    get_cached: Callable[[str], Optional[Any]],
    set_cached: Callable[[str, Any], None],
    fetch: Callable[[GoogleAdsClient, str], Awaitable[Any]],
    action: str,
) -> tuple:
    """Per-account cached fetch. Returns ({customer_id: data}, from_cache)."""
    results = {}
    all_cached = True
    client = GoogleAdsClient(session=session)
    try:
        for cid in customer_ids:
            cached = None if refresh else get_cached(cid)
            if cached is not None:
                results[cid] = cached
                continue
            all_cached = False
            data = await fetch(client, cid)
            set_cached(cid, data)
            results[cid] = data
    except GoogleAdsAPIError as e:
        raise to_http_exception(e, action)
    finally:
        await client.close()
    return results, all_cached


@router.get("/accounts")
async def list_accounts():
    """Configured sub-accounts under the manager account."""
    return {
        "status": "success",
        "configured": settings.google_ads_configured,
        "accounts": GOOGLE_ADS_ACCOUNTS,
    }


@router.get("/performance")
async def campaign_performance(
    account_id: str = Query(ALL_ACCOUNTS),
    date_range: str = Query(reports.DEFAULT_DATE_RANGE),
    refresh: bool = False,
    session: Session = Depends(get_session),
):
    _require_configured()
    date_range = _check_date_range(date_range)
    by_account, from_cache = await _read_through(
        session,
        resolve_account_ids(account_id),
        refresh,
        lambda cid: cache_store.get_campaign_performance(session, cid, date_range),
        lambda cid, data: cache_store.set_campaign_performance(session, cid, date_range, data),
        lambda client, cid: reports.get_campaign_performance(client, cid, date_range),
        "Campaign performance",
    )
    campaigns = [
        {**c, "account_name": get_account_name(cid)}
        for cid, rows in by_account.items()
        for c in rows
    ]
    return {
        "status": "success",
        "date_range": date_range,
        "from_cache": from_cache,
        "campaigns": campaigns,
        "totals": reports.calculate_totals(campaigns),
    }


@router.get("/recommendations")
async def recommendations(
    account_id: str = Query(ALL_ACCOUNTS),
    refresh: bool = False,
    session: Session = Depends(get_session),
):
    _require_configured()
    by_account, from_cache = await _read_through(
        session,
        resolve_account_ids(account_id),
        refresh,
        lambda cid: cache_store.get_recommendations(session, cid),
        lambda cid, data: cache_store.set_recommendations(session, cid, data),
        reports.get_recommendations,
        "Recommendations",
    )
    items = [
        {**r, "account_name": get_account_name(cid)}
        for cid, rows in by_account.items()
        for r in rows
    ]
    return {
        "status": "success",
        "from_cache": from_cache,
        "summary": reports.summarize_recommendations(items),
        "recommendations": items,
    }


@router.get("/optimization-score")
async def optimization_score(
    account_id: str = Query(ALL_ACCOUNTS),
    refresh: bool = False,
    session: Session = Depends(get_session),
):
    _require_configured()
    by_account, from_cache = await _read_through(
        session,
        resolve_account_ids(account_id),
        refresh,
        lambda cid: cache_store.get_optimization_score(session, cid),
        lambda cid, data: cache_store.set_optimization_score(session, cid, data),
        reports.get_optimization_score,
        "Optimization score",
    )
    return {
        "status": "success",
        "from_cache": from_cache,
        "accounts": [
            {"customer_id": cid, "account_name": get_account_name(cid), **score}
            for cid, score in by_account.items()
        ],
    }


@router.get("/summary")
async def account_summary(
    account_id: str = Query(ALL_ACCOUNTS),
    date_range: str = Query(reports.DEFAULT_DATE_RANGE),
    refresh: bool = False,
    session: Session = Depends(get_session),
):
    _require_configured()
    date_range = _check_date_range(date_range)
    by_account, from_cache = await _read_through(
        session,
        resolve_account_ids(account_id),
        refresh,
        lambda cid: cache_store.get_account_summary(session, cid, date_range),
        lambda cid, data: cache_store.set_account_summary(session, cid, date_range, data),
        lambda client, cid: reports.get_account_summary(client, cid, date_range),
        "Account summary",
    )
    return {
        "status": "success",
        "date_range": date_range,
        "from_cache": from_cache,
        "accounts": [{"customer_id": cid, **summary} for cid, summary in by_account.items()],
    }


@router.get("/quality-scores")
async def quality_scores(
    account_id: str = Query(..., description="A single sub-account id or customer id"),
    limit: int = Query(100, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    """Lowest quality-score keywords first. Not cached."""
    _require_configured()
    if account_id in (ALL_ACCOUNTS, "ALL"):
        raise HTTPException(status_code=400, detail="quality-scores needs a single account")
    customer_id = resolve_account_ids(account_id)[0]
    client = GoogleAdsClient(session=session)
    try:
        keywords = await reports.get_keyword_quality_scores(client, customer_id, limit=limit)
    except GoogleAdsAPIError as e:
        raise to_http_exception(e, "Quality scores")
    finally:
        await client.close()
    return {
        "status": "success",
        "account_name": get_account_name(customer_id),
        "count": len(keywords),
        "keywords": keywords,
    }
