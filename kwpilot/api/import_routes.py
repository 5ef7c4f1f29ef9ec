"""KWPilot: CSV Import Routes (knowledge base)."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session
from kwpilot.importers.campaign_performance import import_campaign_performance
from kwpilot.importers.editor_export import import_editor_export
from kwpilot.store import knowledge_base

logger = get_logger("api.import")

router = APIRouter(prefix="/import", tags=["Import"])

MAX_UPLOAD_BYTES = 200 * 1024 * 1024


async def _read_upload(file: UploadFile) -> bytes:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="Uploaded file is too large")
    return content


@router.post("/campaign-performance")
async def upload_campaign_performance(
    file: UploadFile = File(...),
    customer_id: str = Form(...),
    account_name: Optional[str] = Form(None),
    session: Session = Depends(get_session),
):
    """Campaign report CSV from the Google Ads web UI."""
    content = await _read_upload(file)
    try:
        result = import_campaign_performance(session, content, customer_id, account_name)
    except ValueError as e:
        raise to_http_exception(e)
    logger.info(f"📥 Imported {file.filename}: {result['campaigns_imported']} campaigns")
    return {"status": "success", "filename": file.filename, **result}


@router.post("/editor-export")
async def upload_editor_export(
    file: UploadFile = File(...),
    customer_id: Optional[str] = Form(None),
    account_name: Optional[str] = Form(None),
    session: Session = Depends(get_session),
):
    """Google Ads Editor export (UTF-16, tab-separated)."""
    content = await _read_upload(file)
    try:
        result = import_editor_export(session, content, customer_id, account_name)
    except ValueError as e:
        raise to_http_exception(e)
    return {"status": "success", "filename": file.filename, **result}


@router.get("/knowledge-base")
async def knowledge_base_counts(session: Session = Depends(get_session)):
    return {"status": "success", "counts": knowledge_base.get_knowledge_base_counts(session)}
