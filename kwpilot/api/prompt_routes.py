"""KWPilot: Prompt Version Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.database import get_session
from kwpilot.store import prompt_store
from kwpilot.core.logging import get_logger

logger = get_logger("api.prompts")

router = APIRouter(prefix="/prompts", tags=["Prompts"])


# ── Request Models ──


class SavePromptRequest(BaseModel):
    """Request body for POST /prompts/{type}. Creates a new active version."""

    prompt: str
    name: str = ""
    description: str = ""
    variables: Optional[List[str]] = None
    created_by: str = "user"
    change_note: str = ""


# ── Endpoints ──


@router.get("")
async def get_active_prompts(session: Session = Depends(get_session)):
    """Active prompt of every type (null where none exists yet)."""
    active = prompt_store.get_all_active_prompts(session)
    return {
        "status": "success",
        "prompts": {t: prompt_store.prompt_to_dict(p) if p else None for t, p in active.items()},
    }


@router.get("/stats")
async def get_prompt_stats(session: Session = Depends(get_session)):
    return {"status": "success", "stats": prompt_store.get_prompt_stats(session)}


@router.post("/seed-defaults")
async def seed_defaults(session: Session = Depends(get_session)):
    """Install version 1 of the default prompts for types with no versions."""
    seeded = prompt_store.seed_default_prompts(session)
    return {"status": "success", "seeded": seeded}


@router.get("/{prompt_type}")
async def get_active_prompt(prompt_type: str, session: Session = Depends(get_session)):
    try:
        prompt = prompt_store.get_active_prompt(session, prompt_type)
    except ValueError as e:
        raise to_http_exception(e)
    if not prompt:
        raise HTTPException(status_code=404, detail=f"No active {prompt_type} prompt")
    return {"status": "success", "prompt": prompt_store.prompt_to_dict(prompt)}


@router.get("/{prompt_type}/versions")
async def get_versions(
    prompt_type: str,
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    try:
        versions = prompt_store.get_prompt_versions(session, prompt_type, limit=limit)
    except ValueError as e:
        raise to_http_exception(e)
    return {
        "status": "success",
        "count": len(versions),
        "versions": [prompt_store.prompt_to_dict(p) for p in versions],
    }


@router.get("/{prompt_type}/versions/{version}")
async def get_version(prompt_type: str, version: int, session: Session = Depends(get_session)):
    try:
        prompt = prompt_store.get_prompt_by_version(session, prompt_type, version)
    except ValueError as e:
        raise to_http_exception(e)
    if not prompt:
        raise HTTPException(status_code=404, detail=f"Version {version} not found for type {prompt_type}")
    return {"status": "success", "prompt": prompt_store.prompt_to_dict(prompt)}


@router.post("/{prompt_type}")
async def save_prompt(
    prompt_type: str,
    request: SavePromptRequest,
    session: Session = Depends(get_session),
):
    try:
        prompt = prompt_store.save_prompt(
            session,
            prompt_type,
            request.prompt,
            name=request.name,
            description=request.description,
            variables=request.variables,
            created_by=request.created_by,
            change_note=request.change_note,
        )
    except ValueError as e:
        raise to_http_exception(e)
    return {"status": "success", "prompt": prompt_store.prompt_to_dict(prompt)}


@router.post("/{prompt_type}/versions/{version}/activate")
async def activate_version(prompt_type: str, version: int, session: Session = Depends(get_session)):
    """Roll back (or forward) to an existing version."""
    try:
        prompt = prompt_store.activate_version(session, prompt_type, version)
    except (LookupError, ValueError) as e:
        raise to_http_exception(e)
    return {"status": "success", "prompt": prompt_store.prompt_to_dict(prompt)}


@router.delete("/{prompt_type}/versions/{version}")
async def delete_version(prompt_type: str, version: int, session: Session = Depends(get_session)):
    try:
        prompt_store.delete_version(session, prompt_type, version)
    except (LookupError, ValueError) as e:
        raise to_http_exception(e)
    return {"status": "success", "deleted": {"prompt_type": prompt_type, "version": version}}
