"""KWPilot: TTL Cache Store.

Reads only return rows whose expires_at is still in the future. Expired rows
stay in place until one of the clear_expired_* functions runs (daily job).
"""

import json
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete
from sqlmodel import Session, select

from kwpilot.config import settings
from kwpilot.core.clock import utcnow
from kwpilot.core.logging import get_logger
from kwpilot.models.cache_models import (
    REPORT_TTLS,
    AccountKeywordsCache,
    KeywordCache,
    KeywordVolume,
    RateLimitState,
    ReportCache,
    ReportType,
)

logger = get_logger("store.cache")

ACCOUNT_KEYWORDS_TTL = timedelta(minutes=30)
KEYWORD_VOLUME_TTL = timedelta(days=30)


# ── Report caches ──


def get_report(
    session: Session, report_type: ReportType, account_id: str, date_range: str = ""
) -> Optional[Any]:
    row = session.exec(
        select(ReportCache).where(
            ReportCache.report_type == report_type.value,
            ReportCache.account_id == account_id,
            ReportCache.date_range == date_range,
            ReportCache.expires_at > utcnow(),
        )
    ).first()
    if row is None:
        return None
    return json.loads(row.payload_json)


def set_report(
    session: Session,
    report_type: ReportType,
    account_id: str,
    payload: Any,
    date_range: str = "",
) -> None:
    now = utcnow()
    expires_at = now + timedelta(seconds=REPORT_TTLS[report_type])
    row = session.exec(
        select(ReportCache).where(
            ReportCache.report_type == report_type.value,
            ReportCache.account_id == account_id,
            ReportCache.date_range == date_range,
        )
    ).first()
    if row:
        row.payload_json = json.dumps(payload)
        row.fetched_at = now
        row.expires_at = expires_at
    else:
        row = ReportCache(
            report_type=report_type.value,
            account_id=account_id,
            date_range=date_range,
            payload_json=json.dumps(payload),
            fetched_at=now,
            expires_at=expires_at,
        )
    session.add(row)
    session.commit()


def get_campaign_performance(session: Session, account_id: str, date_range: str):
    return get_report(session, ReportType.CAMPAIGN_PERFORMANCE, account_id, date_range)


def set_campaign_performance(session: Session, account_id: str, date_range: str, data) -> None:
    set_report(session, ReportType.CAMPAIGN_PERFORMANCE, account_id, data, date_range)


def get_recommendations(session: Session, account_id: str):
    return get_report(session, ReportType.RECOMMENDATIONS, account_id)


def set_recommendations(session: Session, account_id: str, data) -> None:
    set_report(session, ReportType.RECOMMENDATIONS, account_id, data)


def get_optimization_score(session: Session, account_id: str):
    return get_report(session, ReportType.OPTIMIZATION_SCORE, account_id)


def set_optimization_score(session: Session, account_id: str, data) -> None:
    set_report(session, ReportType.OPTIMIZATION_SCORE, account_id, data)


def get_account_summary(session: Session, account_id: str, date_range: str):
    return get_report(session, ReportType.ACCOUNT_SUMMARY, account_id, date_range)


def set_account_summary(session: Session, account_id: str, date_range: str, data) -> None:
    set_report(session, ReportType.ACCOUNT_SUMMARY, account_id, data, date_range)


def clear_expired_reports(session: Session) -> int:
    result = session.exec(delete(ReportCache).where(ReportCache.expires_at <= utcnow()))
    session.commit()
    return result.rowcount or 0


# ── Keyword idea cache ──


def get_cached_keywords(session: Session, cache_key: str) -> Optional[KeywordCache]:
    return session.exec(
        select(KeywordCache).where(
            KeywordCache.cache_key == cache_key,
            KeywordCache.expires_at > utcnow(),
        )
    ).first()


def cached_keyword_list(entry: KeywordCache) -> List[dict]:
    return json.loads(entry.keywords_json or "[]")


def set_cached_keywords(
    session: Session,
    cache_key: str,
    keywords: List[dict],
    source: str,
    geo_target: str,
    course_name: str = "",
    course_url: str = "",
    seeds: Optional[List[str]] = None,
    ttl_hours: Optional[int] = None,
) -> KeywordCache:
    """Replace whatever is stored under cache_key."""
    ttl = ttl_hours if ttl_hours is not None else settings.keyword_cache_ttl_hours
    session.exec(delete(KeywordCache).where(KeywordCache.cache_key == cache_key))
    now = utcnow()
    entry = KeywordCache(
        cache_key=cache_key,
        course_name=course_name,
        course_url=course_url,
        seeds_json=json.dumps(seeds or []),
        keywords_json=json.dumps(keywords),
        source=source,
        geo_target=geo_target,
        keywords_count=len(keywords),
        created_at=now,
        expires_at=now + timedelta(hours=ttl),
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    logger.info(f"💾 Cached {len(keywords)} keywords under {cache_key}")
    return entry


def clear_expired_keywords(session: Session) -> int:
    result = session.exec(delete(KeywordCache).where(KeywordCache.expires_at <= utcnow()))
    session.commit()
    return result.rowcount or 0


def clear_all_keywords(session: Session) -> int:
    result = session.exec(delete(KeywordCache))
    session.commit()
    return result.rowcount or 0


def get_keyword_cache_stats(session: Session) -> dict:
    rows = session.exec(select(KeywordCache)).all()
    now = utcnow()
    active = [r for r in rows if r.expires_at > now]
    return {
        "total_entries": len(rows),
        "expired_entries": len(rows) - len(active),
        "active_entries": len(active),
        "total_keywords": sum(r.keywords_count for r in active),
        "by_source": dict(Counter(r.source for r in active)),
        "by_geo": dict(Counter(r.geo_target for r in active)),
    }


# ── Account keywords ──


def get_account_keywords(session: Session, account_id: str) -> Optional[List[str]]:
    row = session.exec(
        select(AccountKeywordsCache).where(
            AccountKeywordsCache.account_id == account_id,
            AccountKeywordsCache.expires_at > utcnow(),
        )
    ).first()
    return json.loads(row.keywords_json) if row else None


def set_account_keywords(session: Session, account_id: str, keywords: Iterable[str]) -> None:
    normalized = sorted({k.strip().lower() for k in keywords if k and k.strip()})
    now = utcnow()
    row = session.exec(
        select(AccountKeywordsCache).where(AccountKeywordsCache.account_id == account_id)
    ).first()
    if row is None:
        row = AccountKeywordsCache(account_id=account_id, expires_at=now)
    row.keywords_json = json.dumps(normalized)
    row.fetched_at = now
    row.expires_at = now + ACCOUNT_KEYWORDS_TTL
    session.add(row)
    session.commit()


# ── Keyword volumes ──


def get_keyword_volumes(
    session: Session, keywords: Iterable[str], country: str, source: str = "keywords_everywhere"
) -> Tuple[Dict[str, KeywordVolume], List[str]]:
    """Split keywords into (cached rows by lowercase keyword, missing keywords)."""
    wanted = []
    seen = set()
    for kw in keywords:
        key = kw.strip().lower()
        if key and key not in seen:
            seen.add(key)
            wanted.append(key)
    if not wanted:
        return {}, []

    rows = session.exec(
        select(KeywordVolume).where(
            KeywordVolume.keyword.in_(wanted),  # type: ignore
            KeywordVolume.country == country,
            KeywordVolume.source == source,
            KeywordVolume.expires_at > utcnow(),
        )
    ).all()
    cached = {r.keyword: r for r in rows}
    missing = [k for k in wanted if k not in cached]
    return cached, missing


def save_keyword_volumes(
    session: Session, volumes: Iterable[dict], country: str, source: str = "keywords_everywhere"
) -> int:
    """Upsert volume rows. Each dict uses KeywordIdea field names."""
    now = utcnow()
    count = 0
    for v in volumes:
        key = v["keyword"].strip().lower()
        row = session.exec(
            select(KeywordVolume).where(
                KeywordVolume.keyword == key,
                KeywordVolume.country == country,
                KeywordVolume.source == source,
            )
        ).first()
        if row is None:
            row = KeywordVolume(keyword=key, country=country, source=source, expires_at=now)
        row.avg_monthly_searches = int(v.get("avg_monthly_searches") or 0)
        row.competition = str(v.get("competition") or "UNSPECIFIED")
        row.competition_index = int(v.get("competition_index") or 0)
        row.low_bid_micros = v.get("low_top_of_page_bid_micros")
        row.high_bid_micros = v.get("high_top_of_page_bid_micros")
        row.fetched_at = now
        row.expires_at = now + KEYWORD_VOLUME_TTL
        session.add(row)
        count += 1
    session.commit()
    return count


def volume_to_idea(row: KeywordVolume) -> dict:
    return {
        "keyword": row.keyword,
        "avg_monthly_searches": row.avg_monthly_searches,
        "competition": row.competition,
        "competition_index": row.competition_index,
        "low_top_of_page_bid_micros": row.low_bid_micros,
        "high_top_of_page_bid_micros": row.high_bid_micros,
    }


def clear_expired_volumes(session: Session) -> int:
    result = session.exec(delete(KeywordVolume).where(KeywordVolume.expires_at <= utcnow()))
    session.commit()
    return result.rowcount or 0


# ── Rate limits ──


def mark_quota_exhausted(session: Session, key: str, minutes: int = 5, reason: str = "") -> None:
    now = utcnow()
    row = session.exec(select(RateLimitState).where(RateLimitState.key == key)).first()
    if row is None:
        row = RateLimitState(key=key, exhausted_until=now)
    row.exhausted_until = now + timedelta(minutes=minutes)
    row.reason = reason
    row.updated_at = now
    session.add(row)
    session.commit()
    logger.warning(f"⛔ Quota exhausted for {key} for {minutes} min: {reason}")


def is_quota_exhausted(session: Session, key: str) -> bool:
    row = session.exec(
        select(RateLimitState).where(
            RateLimitState.key == key, RateLimitState.exhausted_until > utcnow()
        )
    ).first()
    return row is not None


def list_rate_limits(session: Session) -> List[dict]:
    now = utcnow()
    return [
        {
            "key": r.key,
            "exhausted_until": r.exhausted_until.isoformat(),
            "active": r.exhausted_until > now,
            "reason": r.reason,
        }
        for r in session.exec(select(RateLimitState)).all()
    ]


def clear_expired_rate_limits(session: Session) -> int:
    result = session.exec(delete(RateLimitState).where(RateLimitState.exhausted_until <= utcnow()))
    session.commit()
    return result.rowcount or 0
