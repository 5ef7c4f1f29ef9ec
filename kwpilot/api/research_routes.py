"""KWPilot: End-to-end Research Routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session
from kwpilot.research.pipeline import (
    CourseInput,
    ResearchOptions,
    run_batch_research,
    run_course_research,
)

logger = get_logger("api.research")

router = APIRouter(prefix="/research", tags=["Research"])

MAX_BATCH_COURSES = 50


class RunResearchRequest(BaseModel):
    """Request body for POST /research/run."""

    course: CourseInput
    options: ResearchOptions = ResearchOptions()


class BatchResearchRequest(BaseModel):
    """Request body for POST /research/batch."""

    courses: List[CourseInput]
    options: ResearchOptions = ResearchOptions()


@router.post("/run")
async def run_research(request: RunResearchRequest, session: Session = Depends(get_session)):
    """Seeds → ideas → analysis for one course, reusing a matching completed session."""
    try:
        result = await run_course_research(session, request.course, request.options)
    except (ValueError, LookupError) as e:
        raise to_http_exception(e, "Research")
    return {"status": "success", "result": result.model_dump(mode="json")}


@router.post("/batch")
async def run_batch(request: BatchResearchRequest, session: Session = Depends(get_session)):
    if not request.courses:
        raise HTTPException(status_code=400, detail="No courses provided")
    if len(request.courses) > MAX_BATCH_COURSES:
        raise HTTPException(
            status_code=400, detail=f"At most {MAX_BATCH_COURSES} courses per batch"
        )
    results = await run_batch_research(session, request.courses, request.options)
    return {
        "status": "success",
        "total": len(results),
        "completed": sum(1 for r in results if r.status == "completed"),
        "reused": sum(1 for r in results if r.reused),
        "failed": sum(1 for r in results if r.status == "error"),
        "results": [r.model_dump(mode="json") for r in results],
    }
