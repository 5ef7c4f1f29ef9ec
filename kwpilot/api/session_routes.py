"""KWPilot: Research Session History Routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.database import get_session
from kwpilot.store import session_store
from kwpilot.core.logging import get_logger

logger = get_logger("api.sessions")

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# ── Request Models ──


class SaveSessionRequest(BaseModel):
    """Request body for POST /sessions."""

    course_name: str
    course_url: str = ""
    vendor: Optional[str] = None
    certification_code: Optional[str] = None
    seed_keywords: List[Any] = []
    keyword_ideas: List[Dict[str, Any]] = []
    analyzed_keywords: List[Dict[str, Any]] = []
    keywords_count: int = 0
    analyzed_count: int = 0
    to_add_count: int = 0
    urgent_count: int = 0
    high_priority_count: int = 0
    geo_target: str = "india"
    data_source: Optional[str] = None
    seed_prompt_version: Optional[int] = None
    analysis_prompt_version: Optional[int] = None
    status: str = "completed"
    error: Optional[str] = None


class FindMatchRequest(BaseModel):
    """Request body for POST /sessions/find-match."""

    course_url: str
    geo_target: str = "india"
    seed_prompt_version: Optional[int] = None
    analysis_prompt_version: Optional[int] = None
    seed_keywords: Optional[List[str]] = None


class BulkDeleteRequest(BaseModel):
    session_ids: List[int]


# ── Endpoints ──


@router.get("")
async def list_sessions(
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[int] = Query(None, description="Id of the last session already returned"),
    vendor: Optional[str] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Session history, newest first, without keyword payloads."""
    page = session_store.list_sessions(
        session, limit=limit, cursor=cursor, vendor=vendor, search=search
    )
    return {
        "status": "success",
        "sessions": [
            session_store.session_to_dict(r, include_keywords=False) for r in page["sessions"]
        ],
        "next_cursor": page["next_cursor"],
        "has_more": page["has_more"],
        "total_count": page["total_count"],
    }


@router.get("/stats")
async def get_stats(session: Session = Depends(get_session)):
    return {"status": "success", "stats": session_store.get_session_stats(session)}


@router.get("/vendors")
async def get_vendors(session: Session = Depends(get_session)):
    return {"status": "success", "vendors": session_store.get_vendors(session)}


@router.post("/find-match")
async def find_match(request: FindMatchRequest, session: Session = Depends(get_session)):
    """Newest completed session for the same URL, geo, prompt versions and seeds."""
    row = session_store.find_matching_session(
        session,
        request.course_url,
        request.geo_target,
        request.seed_prompt_version,
        request.analysis_prompt_version,
        seed_keywords=request.seed_keywords,
    )
    return {
        "status": "success",
        "found": row is not None,
        "session": session_store.session_to_dict(row) if row else None,
    }


@router.post("/bulk-delete")
async def bulk_delete(request: BulkDeleteRequest, session: Session = Depends(get_session)):
    deleted = session_store.bulk_delete_sessions(session, request.session_ids)
    return {"status": "success", "deleted": deleted}


@router.get("/{session_id}")
async def get_session_detail(session_id: int, session: Session = Depends(get_session)):
    row = session_store.get_session_by_id(session, session_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"status": "success", "session": session_store.session_to_dict(row)}


@router.post("")
async def save_session(request: SaveSessionRequest, session: Session = Depends(get_session)):
    try:
        row = session_store.save_session(session, request.model_dump(exclude_none=True))
    except ValueError as e:
        raise to_http_exception(e)
    return {"status": "success", "session_id": row.id}


@router.patch("/{session_id}")
async def update_session(
    session_id: int, changes: Dict[str, Any], session: Session = Depends(get_session)
):
    """Partial update; unknown fields are rejected."""
    try:
        row = session_store.update_session(session, session_id, **changes)
    except (LookupError, ValueError) as e:
        raise to_http_exception(e)
    return {"status": "success", "session": session_store.session_to_dict(row, include_keywords=False)}


@router.delete("/{session_id}")
async def delete_session(session_id: int, session: Session = Depends(get_session)):
    if not session_store.delete_session(session, session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"status": "success", "deleted": session_id}


@router.delete("")
async def clear_sessions(session: Session = Depends(get_session)):
    deleted = session_store.clear_all_sessions(session)
    logger.warning(f"🗑️ Cleared all {deleted} research sessions")
    return {"status": "success", "deleted": deleted}
