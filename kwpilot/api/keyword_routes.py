"""KWPilot: Keyword Research Step Routes.

The three pipeline steps exposed individually: seed generation, keyword
idea fetch and LLM classification.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from kwpilot.ai.base_provider import AIProviderError
from kwpilot.api.errors import to_http_exception
from kwpilot.connectors.google_ads.client import ALL_ACCOUNTS
from kwpilot.core.errors import KeywordSourceError
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session
from kwpilot.models.keyword_models import KeywordIdea
from kwpilot.research.aggregator import sort_for_action
from kwpilot.research.classifier import analyze_keywords
from kwpilot.research.ideas import IdeasRequest, fetch_keyword_ideas
from kwpilot.research.seeds import generate_seeds
from kwpilot.store import prompt_store

logger = get_logger("api.keywords")

router = APIRouter(prefix="/keywords", tags=["Keywords"])


# ── Request Models ──


class GenerateSeedsRequest(BaseModel):
    """Request body for POST /keywords/generate-seeds."""

    course_name: str
    course_url: str
    vendor: Optional[str] = None
    prompt: Optional[str] = None
    """Prompt text override. Defaults to the active seed prompt."""
    provider: str = "auto"


class FetchIdeasRequest(BaseModel):
    """Request body for POST /keywords/fetch-ideas."""

    seed_keywords: List[str]
    page_url: Optional[str] = None
    course_name: Optional[str] = None
    geo_target: str = "india"
    source: str = "auto"
    """One of: "auto", "google", "keywords_everywhere"."""
    skip_cache: bool = False
    account_id: str = ALL_ACCOUNTS

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "seed_keywords": ["aws solutions architect", "aws certification"],
                    "page_url": "https://example.com/courses/aws-saa",
                    "geo_target": "india",
                    "source": "auto",
                }
            ]
        }
    }


class AnalyzeRequest(BaseModel):
    """Request body for POST /keywords/analyze."""

    course_name: str
    keywords: List[KeywordIdea]
    certification_code: Optional[str] = None
    vendor: Optional[str] = None
    related_terms: Optional[str] = None
    prompt: Optional[str] = None
    """Prompt text override. Defaults to the active analysis prompt."""
    provider: str = "auto"


# ── Endpoints ──


@router.post("/generate-seeds")
async def generate_seed_keywords(
    request: GenerateSeedsRequest, session: Session = Depends(get_session)
):
    try:
        prompt = request.prompt or prompt_store.resolve_prompt(session, "seed").prompt
        seeds = await generate_seeds(
            prompt,
            request.course_name,
            request.course_url,
            vendor=request.vendor,
            provider=request.provider,
        )
    except (ValueError, LookupError, AIProviderError) as e:
        raise to_http_exception(e, "Seed generation")
    return {"status": "success", "count": len(seeds), "seeds": [s.model_dump() for s in seeds]}


@router.post("/fetch-ideas")
async def fetch_ideas(request: FetchIdeasRequest, session: Session = Depends(get_session)):
    """Keyword ideas with volume data, served from cache when possible."""
    try:
        result = await fetch_keyword_ideas(session, IdeasRequest(**request.model_dump()))
    except (ValueError, KeywordSourceError) as e:
        raise to_http_exception(e, "Keyword fetch")
    return {
        "status": "success",
        "total_count": result.total_count,
        **result.model_dump(mode="json"),
    }


@router.post("/analyze")
async def analyze(request: AnalyzeRequest, session: Session = Depends(get_session)):
    """Classify keywords in batches. Failed batches come back as needs-review rows."""
    try:
        prompt = request.prompt or prompt_store.resolve_prompt(session, "analysis").prompt
        result = await analyze_keywords(
            prompt,
            request.course_name,
            request.keywords,
            certification_code=request.certification_code,
            vendor=request.vendor,
            related_terms=request.related_terms,
            provider=request.provider,
        )
    except (ValueError, LookupError, AIProviderError) as e:
        raise to_http_exception(e, "Keyword analysis")

    if not result.analyzed_keywords:
        raise HTTPException(status_code=500, detail="Failed to analyze any keywords")

    return {
        "status": "success",
        "provider": result.provider,
        "summary": result.summary.model_dump(),
        "batches": [b.model_dump() for b in result.batches],
        "analyzed_keywords": [
            k.model_dump(mode="json") for k in sort_for_action(result.analyzed_keywords)
        ],
    }
