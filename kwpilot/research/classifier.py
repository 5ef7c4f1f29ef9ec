"""KWPilot: Batched LLM Keyword Classification.

Splits keyword ideas into fixed-size batches, classifies each batch with one
JSON-mode completion, and merges the model's scores back onto the input
records. A batch that keeps failing degrades to "needs review" entries, so
the output always has one entry per distinct input keyword, in input order.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from kwpilot.ai.base_provider import AIProviderError
from kwpilot.ai.client import chat_completion_with_fallback, select_provider
from kwpilot.config import settings
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import (
    COMPETITION_BONUS,
    SCORE_FIELDS,
    Action,
    AnalysisResult,
    AnalyzedKeyword,
    BatchOutcome,
    KeywordIdea,
    MatchType,
    Priority,
    RelevanceStatus,
    Tier,
)
from kwpilot.research.aggregator import summarize
from kwpilot.research.json_repair import LLMResponseParseError, extract_keyword_records
from kwpilot.research.prompts import fill_prompt_variables

logger = get_logger("research.classifier")

CSV_HEADER = "Keyword,Avg Monthly Searches,Competition,Competition Index"
NEUTRAL_SCORE = 5.0
BATCH_MAX_TOKENS = 8000

# snake_case field → camelCase key the model is asked to emit
RECORD_KEYS = {
    "course_relevance": "courseRelevance",
    "conversion_potential": "conversionPotential",
    "search_intent": "searchIntent",
    "vendor_specificity": "vendorSpecificity",
    "keyword_specificity": "keywordSpecificity",
    "action_word_strength": "actionWordStrength",
    "commercial_signals": "commercialSignals",
    "negative_signals": "negativeSignals",
    "koenig_fit": "koenigFit",
    "relevance_status": "relevanceStatus",
    "base_score": "baseScore",
    "competition_bonus": "competitionBonus",
    "final_score": "finalScore",
    "tier": "tier",
    "match_type": "matchType",
    "action": "action",
    "exclusion_reason": "exclusionReason",
    "priority": "priority",
}

CLASSIFIER_SYSTEM_PROMPT = """You are a Google Ads keyword strategist for Koenig Solutions, analyzing keywords for IT training courses.

Output your analysis as a valid JSON object with this exact structure:
{{
  "analyzedKeywords": [...]
}}

Each keyword in analyzedKeywords should have these fields:
- keyword (string, exactly as given)
- courseRelevance (number 0-10)
- relevanceStatus (string: EXACT_MATCH, DIRECT_RELATED, STRONGLY_RELATED, RELATED, LOOSELY_RELATED, TANGENTIAL, WEAK_CONNECTION, DIFFERENT_PRODUCT, DIFFERENT_VENDOR, NOT_RELEVANT)
- conversionPotential (number 0-10)
- searchIntent (number 0-10)
- vendorSpecificity (number 0-10)
- keywordSpecificity (number 0-10)
- actionWordStrength (number 0-10)
- commercialSignals (number 0-10)
- negativeSignals (number 0-10)
- koenigFit (number 0-10)
- baseScore (number 0-100)
- competitionBonus (number: 10 for Low, 5 for Medium, 0 for High)
- finalScore (number 0-100)
- tier ("Tier 1" | "Tier 2" | "Tier 3" | "Tier 4" | "Review" | "Exclude")
- matchType ("[EXACT]" | "PHRASE" | "BROAD" | "N/A")
- action ("ADD" | "BOOST" | "MONITOR" | "OPTIMIZE" | "REVIEW" | "EXCLUDE" | "EXCLUDE_RELEVANCE")
- exclusionReason (string, only if excluded)
- priority ("🔴 URGENT" | "🟠 HIGH" | "🟡 MEDIUM" | "⚪ STANDARD" | "🔵 REVIEW", only for ADD action)

IMPORTANT: Return ONLY the JSON object, no markdown formatting or code blocks. Analyze ALL {count} keywords provided."""


# ── Input shaping ──


def format_keywords_csv(ideas: Sequence[KeywordIdea]) -> str:
    rows = [
        f"{k.keyword},{k.avg_monthly_searches},{k.competition.value},{k.competition_index}"
        for k in ideas
    ]
    return "\n".join([CSV_HEADER, *rows])


def dedupe_keywords(ideas: Sequence[KeywordIdea]) -> List[KeywordIdea]:
    seen = set()
    unique = []
    for idea in ideas:
        key = idea.keyword.strip().lower()
        if key and key not in seen:
            seen.add(key)
            unique.append(idea)
    return unique


def chunk(items: Sequence[Any], size: int) -> List[List[Any]]:
    size = max(1, size)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


# ── Record coercion ──


def _field(record: Dict[str, Any], name: str) -> Any:
    if name in record:
        return record[name]
    return record.get(RECORD_KEYS.get(name, name))


def _number(value: Any, default: float, upper: float) -> float:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), upper)


def _label(enum_cls: Type[Enum], value: Any, missing: Any, unknown: Any) -> Any:
    """Map a model-supplied label onto enum_cls, tolerating case and emoji."""
    if value is None or str(value).strip() == "":
        return missing
    text = str(value).strip().lower()
    for member in enum_cls:
        plain = member.value.rsplit(" ", 1)[-1]
        if text in (member.value.lower(), member.name.lower(), plain.lower()):
            return member
    return unknown


def merge_record(idea: KeywordIdea, record: Dict[str, Any]) -> AnalyzedKeyword:
    """Combine an input idea with the model's record for it.

    Volume, competition, bids and in-account data always come from the idea.
    Missing fields take exclusion defaults; unrecognised labels fall to review.
    """
    scores = {
        name: _number(_field(record, name), 10.0 if name == "negative_signals" else 0.0, 10.0)
        for name in SCORE_FIELDS
    }
    exclusion_reason = _field(record, "exclusion_reason")
    return AnalyzedKeyword(
        **idea.model_dump(),
        **scores,
        relevance_status=_label(
            RelevanceStatus,
            _field(record, "relevance_status"),
            RelevanceStatus.NOT_RELEVANT,
            RelevanceStatus.NOT_RELEVANT,
        ),
        base_score=_number(_field(record, "base_score"), 0.0, 100.0),
        competition_bonus=_number(_field(record, "competition_bonus"), 0.0, 10.0),
        final_score=_number(_field(record, "final_score"), 0.0, 100.0),
        tier=_label(Tier, _field(record, "tier"), Tier.EXCLUDE, Tier.REVIEW),
        match_type=_label(
            MatchType,
            _field(record, "match_type"),
            MatchType.NOT_APPLICABLE,
            MatchType.NOT_APPLICABLE,
        ),
        action=_label(Action, _field(record, "action"), Action.EXCLUDE, Action.REVIEW),
        exclusion_reason=str(exclusion_reason) if exclusion_reason else None,
        priority=_label(Priority, _field(record, "priority"), None, None),
    )


def needs_review_keyword(idea: KeywordIdea, reason: str) -> AnalyzedKeyword:
    """Neutral placeholder for a keyword the model never classified."""
    base = NEUTRAL_SCORE * len(SCORE_FIELDS)
    bonus = COMPETITION_BONUS[idea.competition]
    return AnalyzedKeyword(
        **idea.model_dump(),
        **{name: NEUTRAL_SCORE for name in SCORE_FIELDS},
        relevance_status=RelevanceStatus.NOT_RELEVANT,
        base_score=base,
        competition_bonus=bonus,
        final_score=min(base + bonus, 100.0),
        tier=Tier.REVIEW,
        match_type=MatchType.NOT_APPLICABLE,
        action=Action.REVIEW,
        priority=Priority.REVIEW,
        needs_review=True,
        review_reason=reason,
    )


def merge_batch(
    batch: Sequence[KeywordIdea], records: Sequence[Dict[str, Any]]
) -> Tuple[List[AnalyzedKeyword], int]:
    """Merge records onto a batch. Returns (results in batch order, missing count)."""
    by_keyword: Dict[str, Dict[str, Any]] = {}
    wanted = {idea.keyword.strip().lower() for idea in batch}
    for record in records:
        key = str(record.get("keyword") or "").strip().lower()
        if not key:
            continue
        if key not in wanted:
            logger.warning(f"Dropping classification for unknown keyword '{key}'")
            continue
        by_keyword.setdefault(key, record)

    results: List[AnalyzedKeyword] = []
    missing = 0
    for idea in batch:
        record = by_keyword.get(idea.keyword.strip().lower())
        if record is None:
            missing += 1
            results.append(needs_review_keyword(idea, "Not returned by the model"))
        else:
            results.append(merge_record(idea, record))
    return results, missing


# ── Batch execution ──


class KeywordClassifier:
    """Runs classification batches with a concurrency cap and retry backoff."""

    def __init__(
        self,
        provider: str = "auto",
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.provider = provider
        self.batch_size = batch_size or settings.analysis_batch_size
        self.concurrency = concurrency or settings.analysis_concurrency
        self.max_retries = (
            settings.analysis_max_retries if max_retries is None else max_retries
        )
        self.retry_base_delay = (
            settings.analysis_retry_base_delay
            if retry_base_delay is None
            else retry_base_delay
        )
        self.provider_used: Optional[str] = None

    async def _classify_once(self, system_prompt: str, user_prompt: str) -> List[Dict[str, Any]]:
        result = await chat_completion_with_fallback(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.3,
            max_tokens=BATCH_MAX_TOKENS,
            json_mode=True,
            provider=self.provider,
        )
        self.provider_used = result.provider
        records = extract_keyword_records(result.content)
        if not records:
            raise LLMResponseParseError("Response contained an empty keyword list")
        return records

    async def run_batch(
        self,
        index: int,
        batch: List[KeywordIdea],
        prompt: str,
        variables: Dict[str, str],
        semaphore: asyncio.Semaphore,
    ) -> Tuple[List[AnalyzedKeyword], BatchOutcome]:
        user_prompt = fill_prompt_variables(
            prompt, {**variables, "KEYWORDS_DATA": format_keywords_csv(batch)}
        )
        system_prompt = CLASSIFIER_SYSTEM_PROMPT.format(count=len(batch))
        attempts = self.max_retries + 1
        last_error = ""

        async with semaphore:
            for attempt in range(1, attempts + 1):
                try:
                    records = await self._classify_once(system_prompt, user_prompt)
                    results, missing = merge_batch(batch, records)
                    status = "partial" if missing else "ok"
                    logger.info(
                        f"✅ Batch {index + 1}: {len(batch) - missing}/{len(batch)} classified (attempt {attempt})",
                        extra={"batch": index + 1},
                    )
                    return results, BatchOutcome(
                        index=index,
                        size=len(batch),
                        status=status,
                        attempts=attempt,
                        recovered=len(batch) - missing,
                    )
                except (AIProviderError, LLMResponseParseError) as e:
                    last_error = str(e)
                    if attempt < attempts:
                        wait = self.retry_base_delay * (2 ** (attempt - 1))
                        logger.warning(
                            f"Batch {index + 1} failed: {e}. Retrying in {wait}s (attempt {attempt}/{attempts})",
                            extra={"batch": index + 1},
                        )
                        await asyncio.sleep(wait)

        logger.error(
            f"❌ Batch {index + 1} failed after {attempts} attempts; marking {len(batch)} keywords for review",
            extra={"batch": index + 1},
        )
        reason = f"Classification failed: {last_error}"[:300]
        return [needs_review_keyword(idea, reason) for idea in batch], BatchOutcome(
            index=index,
            size=len(batch),
            status="failed",
            attempts=attempts,
            error=last_error[:300],
        )

    async def classify(
        self, prompt: str, keywords: Sequence[KeywordIdea], variables: Dict[str, str]
    ) -> AnalysisResult:
        unique = dedupe_keywords(keywords)
        if not unique:
            raise ValueError("No keywords to analyze")
        # Fail fast with a 503 when nothing is configured
        select_provider(self.provider)

        batches = chunk(unique, self.batch_size)
        semaphore = asyncio.Semaphore(self.concurrency)
        logger.info(
            f"🧠 Classifying {len(unique)} keywords in {len(batches)} batches "
            f"(size {self.batch_size}, concurrency {self.concurrency})"
        )
        outcomes = await asyncio.gather(
            *(
                self.run_batch(i, batch, prompt, variables, semaphore)
                for i, batch in enumerate(batches)
            )
        )

        analyzed: List[AnalyzedKeyword] = []
        batch_outcomes: List[BatchOutcome] = []
        for results, outcome in outcomes:
            analyzed.extend(results)
            batch_outcomes.append(outcome)

        summary = summarize(analyzed)
        summary.failed_batches = sum(1 for o in batch_outcomes if o.status == "failed")
        return AnalysisResult(
            analyzed_keywords=analyzed,
            summary=summary,
            batches=batch_outcomes,
            provider=self.provider_used,
        )


async def analyze_keywords(
    prompt: str,
    course_name: str,
    keywords: Sequence[KeywordIdea],
    certification_code: Optional[str] = None,
    vendor: Optional[str] = None,
    related_terms: Optional[str] = None,
    provider: str = "auto",
) -> AnalysisResult:
    if not prompt or not course_name:
        raise ValueError("Missing required fields: prompt, course_name, keywords")
    variables = {
        "COURSE_NAME": course_name,
        "CERTIFICATION_CODE": certification_code or "N/A",
        "VENDOR": vendor or "Not specified",
        "RELATED_TERMS": related_terms or course_name,
    }
    return await KeywordClassifier(provider=provider).classify(prompt, keywords, variables)
