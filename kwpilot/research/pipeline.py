"""KWPilot: Keyword Research Pipeline Orchestrator.

Runs the full flow for one course:
  smart match → seeds → keyword ideas → LLM classification → saved session

Batch runs process courses concurrently, staggering the Google Ads fetches.
"""

import asyncio
import json
from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import Session

from kwpilot.ai.base_provider import AIProviderError
from kwpilot.config import settings
from kwpilot.connectors.google_ads.client import ALL_ACCOUNTS
from kwpilot.core.errors import KeywordSourceError
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import AnalysisSummary, AnalyzedKeyword, SeedKeyword
from kwpilot.models.session_models import ResearchSession, SessionStatus
from kwpilot.research.aggregator import summarize
from kwpilot.research.classifier import analyze_keywords
from kwpilot.research.ideas import IdeasRequest, fetch_keyword_ideas
from kwpilot.research.seeds import generate_seeds
from kwpilot.store import prompt_store, session_store

logger = get_logger("research.pipeline")

# Failures recorded on the session rather than raised
PIPELINE_ERRORS = (ValueError, LookupError, AIProviderError, KeywordSourceError)


class CourseInput(BaseModel):
    course_name: str
    course_url: str
    vendor: Optional[str] = None
    certification_code: Optional[str] = None
    related_terms: Optional[str] = None
    seed_keywords: Optional[List[str]] = None  # manual seeds skip generation


class ResearchOptions(BaseModel):
    geo_target: str = "india"
    source: str = "auto"
    account_id: str = ALL_ACCOUNTS
    provider: str = "auto"
    skip_cache: bool = False
    force: bool = False  # ignore a matching completed session


class CourseResearchResult(BaseModel):
    course_name: str
    status: str
    session_id: Optional[int] = None
    reused: bool = False
    seeds: List[SeedKeyword] = []
    keywords_count: int = 0
    data_source: Optional[str] = None
    summary: Optional[AnalysisSummary] = None
    error: Optional[str] = None


def _summary_from_row(row: ResearchSession) -> AnalysisSummary:
    """Recount the stored analysis so review and exclusion totals survive reuse."""
    return summarize(
        [AnalyzedKeyword(**k) for k in json.loads(row.analyzed_keywords_json or "[]")]
    )


def _reused_result(row: ResearchSession) -> CourseResearchResult:
    return CourseResearchResult(
        course_name=row.course_name,
        status=row.status,
        session_id=row.id,
        reused=True,
        seeds=[
            SeedKeyword(**s) if isinstance(s, dict) else SeedKeyword(keyword=str(s))
            for s in json.loads(row.seed_keywords_json or "[]")
        ],
        keywords_count=row.keywords_count,
        data_source=row.data_source,
        summary=_summary_from_row(row),
    )


async def run_course_research(
    session: Session,
    course: CourseInput,
    options: ResearchOptions,
    stagger_seconds: float = 0.0,
) -> CourseResearchResult:
    if not course.course_name or not course.course_url:
        raise ValueError("Missing required fields: course_name, course_url")

    seed_prompt = prompt_store.resolve_prompt(session, "seed")
    analysis_prompt = prompt_store.resolve_prompt(session, "analysis")
    manual_seeds = [s.strip() for s in course.seed_keywords or [] if s.strip()]

    # ── Step 1: Smart match ──
    if not options.force:
        match = session_store.find_matching_session(
            session,
            course.course_url,
            options.geo_target,
            seed_prompt.version,
            analysis_prompt.version,
            seed_keywords=manual_seeds or None,
        )
        if match:
            logger.info(
                f"♻️ Reusing session {match.id} for '{course.course_name}' (no API calls)",
                extra={"entity_id": str(match.id)},
            )
            return _reused_result(match)

    row = session_store.save_session(
        session,
        {
            "course_name": course.course_name,
            "course_url": course.course_url,
            "vendor": course.vendor,
            "certification_code": course.certification_code,
            "geo_target": options.geo_target,
            "seed_prompt_version": seed_prompt.version,
            "analysis_prompt_version": analysis_prompt.version,
            "status": SessionStatus.GENERATING_SEEDS,
        },
    )
    result = CourseResearchResult(
        course_name=course.course_name, status=row.status, session_id=row.id
    )
    logger.info(f"🚀 Research started for '{course.course_name}'", extra={"entity_id": str(row.id)})

    try:
        # ── Step 2: Seeds ──
        if manual_seeds:
            seeds = [SeedKeyword(keyword=s, source="manual") for s in manual_seeds]
        else:
            seeds = await generate_seeds(
                seed_prompt.prompt,
                course.course_name,
                course.course_url,
                vendor=course.vendor,
                provider=options.provider,
            )
        result.seeds = seeds
        session_store.update_session(
            session,
            row.id,
            status=SessionStatus.FETCHING_KEYWORDS,
            seed_keywords=[s.model_dump() for s in seeds],
        )

        # ── Step 3: Keyword ideas ──
        if stagger_seconds:
            await asyncio.sleep(stagger_seconds)
        ideas = await fetch_keyword_ideas(
            session,
            IdeasRequest(
                seed_keywords=[s.keyword for s in seeds],
                page_url=course.course_url,
                course_name=course.course_name,
                geo_target=options.geo_target,
                source=options.source,
                skip_cache=options.skip_cache,
                account_id=options.account_id,
            ),
        )
        result.keywords_count = ideas.total_count
        result.data_source = ideas.source
        session_store.update_session(
            session,
            row.id,
            status=SessionStatus.ANALYZING,
            keyword_ideas=[k.model_dump(mode="json") for k in ideas.keywords],
            keywords_count=ideas.total_count,
            data_source=ideas.source,
        )
        if not ideas.keywords:
            raise ValueError("No keyword ideas found for this course")

        # ── Step 4: Classification ──
        analysis = await analyze_keywords(
            analysis_prompt.prompt,
            course.course_name,
            ideas.keywords,
            certification_code=course.certification_code,
            vendor=course.vendor,
            related_terms=course.related_terms,
            provider=options.provider,
        )

        # ── Step 5: Persist ──
        summary = analysis.summary
        session_store.update_session(
            session,
            row.id,
            status=SessionStatus.COMPLETED,
            analyzed_keywords=[k.model_dump(mode="json") for k in analysis.analyzed_keywords],
            analyzed_count=summary.total_analyzed,
            to_add_count=summary.to_add,
            urgent_count=summary.urgent_count,
            high_priority_count=summary.high_priority_count,
        )
        result.status = SessionStatus.COMPLETED.value
        result.summary = summary
        logger.info(
            f"✅ Research complete for '{course.course_name}': {summary.total_analyzed} analyzed, {summary.to_add} to add",
            extra={"entity_id": str(row.id)},
        )
    except PIPELINE_ERRORS as e:
        session_store.update_session(session, row.id, status=SessionStatus.ERROR, error=str(e)[:1000])
        result.status = SessionStatus.ERROR.value
        result.error = str(e)
        logger.error(f"❌ Research failed for '{course.course_name}': {e}", extra={"entity_id": str(row.id)})
    except Exception as e:
        session.rollback()
        session_store.update_session(session, row.id, status=SessionStatus.ERROR, error=str(e)[:1000])
        logger.error(f"💥 Research crashed for '{course.course_name}': {e}", extra={"entity_id": str(row.id)})
        raise

    return result


async def run_batch_research(
    session: Session, courses: List[CourseInput], options: ResearchOptions
) -> List[CourseResearchResult]:
    """Research several courses concurrently; course i waits i × stagger before fetching."""
    stagger = settings.batch_stagger_ms / 1000
    logger.info(f"📚 Batch research for {len(courses)} courses")
    outcomes = await asyncio.gather(
        *(
            run_course_research(session, course, options, stagger_seconds=i * stagger)
            for i, course in enumerate(courses)
        ),
        return_exceptions=True,
    )

    results: List[CourseResearchResult] = []
    for course, outcome in zip(courses, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(f"❌ Course '{course.course_name}' crashed: {outcome}")
            results.append(
                CourseResearchResult(course_name=course.course_name, status="error", error=str(outcome))
            )
        else:
            results.append(outcome)
    return results
