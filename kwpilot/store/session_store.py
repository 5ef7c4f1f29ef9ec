"""KWPilot: Research Session Store."""

import json
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_
from sqlmodel import Session, select

from kwpilot.core.clock import utcnow
from kwpilot.core.logging import get_logger
from kwpilot.models.session_models import ResearchSession, SessionStatus

logger = get_logger("store.sessions")

JSON_FIELDS = {
    "seed_keywords": "seed_keywords_json",
    "keyword_ideas": "keyword_ideas_json",
    "analyzed_keywords": "analyzed_keywords_json",
}


def _apply(row: ResearchSession, data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if key in JSON_FIELDS:
            setattr(row, JSON_FIELDS[key], json.dumps(value or []))
        elif key in ("id", "created_at"):
            continue
        elif hasattr(row, key):
            setattr(row, key, value.value if isinstance(value, SessionStatus) else value)
        else:
            raise ValueError(f"Unknown session field: {key}")


def session_to_dict(row: ResearchSession, include_keywords: bool = True) -> dict:
    data = {
        "id": row.id,
        "course_name": row.course_name,
        "course_url": row.course_url,
        "vendor": row.vendor,
        "certification_code": row.certification_code,
        "seed_keywords": json.loads(row.seed_keywords_json or "[]"),
        "keywords_count": row.keywords_count,
        "analyzed_count": row.analyzed_count,
        "to_add_count": row.to_add_count,
        "urgent_count": row.urgent_count,
        "high_priority_count": row.high_priority_count,
        "geo_target": row.geo_target,
        "data_source": row.data_source,
        "seed_prompt_version": row.seed_prompt_version,
        "analysis_prompt_version": row.analysis_prompt_version,
        "status": row.status,
        "error": row.error,
        "created_at": row.created_at.isoformat(),
        "updated_at": row.updated_at.isoformat(),
    }
    if include_keywords:
        data["keyword_ideas"] = json.loads(row.keyword_ideas_json or "[]")
        data["analyzed_keywords"] = json.loads(row.analyzed_keywords_json or "[]")
    return data


# ── Mutations ──


def save_session(session: Session, data: Dict[str, Any]) -> ResearchSession:
    if not data.get("course_name"):
        raise ValueError("course_name is required")
    row = ResearchSession(course_name=data["course_name"])
    _apply(row, data)
    now = utcnow()
    row.created_at = now
    row.updated_at = now
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info(f"💾 Saved research session {row.id} for '{row.course_name}'")
    return row


def update_session(session: Session, session_id: int, **changes: Any) -> ResearchSession:
    row = session.get(ResearchSession, session_id)
    if row is None:
        raise LookupError(f"Session {session_id} not found")
    _apply(row, changes)
    row.updated_at = utcnow()
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def delete_session(session: Session, session_id: int) -> bool:
    row = session.get(ResearchSession, session_id)
    if row is None:
        return False
    session.delete(row)
    session.commit()
    return True


def bulk_delete_sessions(session: Session, session_ids: Iterable[int]) -> int:
    ids = list(session_ids)
    if not ids:
        return 0
    result = session.exec(delete(ResearchSession).where(ResearchSession.id.in_(ids)))  # type: ignore
    session.commit()
    deleted = result.rowcount or 0
    logger.info(f"🗑️ Bulk-deleted {deleted} sessions")
    return deleted


def clear_all_sessions(session: Session) -> int:
    result = session.exec(delete(ResearchSession))
    session.commit()
    return result.rowcount or 0


# ── Queries ──


def get_session_by_id(session: Session, session_id: int) -> Optional[ResearchSession]:
    return session.get(ResearchSession, session_id)


def _filters(vendor: Optional[str], search: Optional[str]) -> list:
    clauses = []
    if vendor:
        clauses.append(ResearchSession.vendor == vendor)
    if search:
        pattern = f"%{search.strip().lower()}%"
        clauses.append(
            or_(
                func.lower(ResearchSession.course_name).like(pattern),
                func.lower(ResearchSession.course_url).like(pattern),
                func.lower(func.coalesce(ResearchSession.vendor, "")).like(pattern),
            )
        )
    return clauses


def list_sessions(
    session: Session,
    limit: int = 20,
    cursor: Optional[int] = None,
    vendor: Optional[str] = None,
    search: Optional[str] = None,
) -> dict:
    """Newest first. The cursor is the id of the last session already returned."""
    clauses = _filters(vendor, search)
    total = session.exec(
        select(func.count()).select_from(ResearchSession).where(*clauses)
    ).one()

    query = select(ResearchSession).where(*clauses)
    if cursor is not None:
        query = query.where(ResearchSession.id < cursor)
    rows = session.exec(
        query.order_by(ResearchSession.id.desc()).limit(limit + 1)  # type: ignore
    ).all()

    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "sessions": rows,
        "next_cursor": rows[-1].id if has_more and rows else None,
        "has_more": has_more,
        "total_count": total,
    }


def get_session_stats(session: Session) -> dict:
    rows = session.exec(select(ResearchSession)).all()
    week_ago = utcnow() - timedelta(days=7)
    by_vendor = Counter(r.vendor for r in rows if r.vendor)
    return {
        "total_sessions": len(rows),
        "total_keywords": sum(r.analyzed_count for r in rows),
        "total_to_add": sum(r.to_add_count for r in rows),
        "total_urgent": sum(r.urgent_count for r in rows),
        "vendors": len(by_vendor),
        "by_vendor": dict(by_vendor),
        "recent_count": sum(1 for r in rows if r.created_at >= week_ago),
    }


def get_vendors(session: Session) -> List[str]:
    vendors = session.exec(
        select(ResearchSession.vendor).where(ResearchSession.vendor.is_not(None)).distinct()  # type: ignore
    ).all()
    return sorted(v for v in vendors if v)


def _seed_signature(seeds: Iterable[Any]) -> List[str]:
    words = []
    for s in seeds:
        text = s.get("keyword", "") if isinstance(s, dict) else str(s)
        text = text.strip().lower()
        if text:
            words.append(text)
    return sorted(words)


def find_matching_session(
    session: Session,
    course_url: str,
    geo_target: str,
    seed_prompt_version: Optional[int],
    analysis_prompt_version: Optional[int],
    seed_keywords: Optional[Iterable[Any]] = None,
) -> Optional[ResearchSession]:
    """Newest completed session that would produce the same result."""
    candidates = session.exec(
        select(ResearchSession)
        .where(
            ResearchSession.course_url == course_url,
            ResearchSession.geo_target == geo_target,
            ResearchSession.seed_prompt_version == seed_prompt_version,
            ResearchSession.analysis_prompt_version == analysis_prompt_version,
            ResearchSession.status == SessionStatus.COMPLETED.value,
        )
        .order_by(ResearchSession.id.desc())  # type: ignore
    ).all()

    if seed_keywords is None:
        return candidates[0] if candidates else None

    wanted = _seed_signature(seed_keywords)
    for row in candidates:
        if _seed_signature(json.loads(row.seed_keywords_json or "[]")) == wanted:
            return row
    return None
