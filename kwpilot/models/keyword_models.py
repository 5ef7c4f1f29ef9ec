"""KWPilot: Keyword Research Schemas."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


# ─────────────────────────────────────────────
# LABEL SETS
# ─────────────────────────────────────────────


class Competition(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    UNSPECIFIED = "UNSPECIFIED"


class RelevanceStatus(str, Enum):
    EXACT_MATCH = "EXACT_MATCH"
    DIRECT_RELATED = "DIRECT_RELATED"
    STRONGLY_RELATED = "STRONGLY_RELATED"
    RELATED = "RELATED"
    LOOSELY_RELATED = "LOOSELY_RELATED"
    TANGENTIAL = "TANGENTIAL"
    WEAK_CONNECTION = "WEAK_CONNECTION"
    DIFFERENT_PRODUCT = "DIFFERENT_PRODUCT"
    DIFFERENT_VENDOR = "DIFFERENT_VENDOR"
    NOT_RELEVANT = "NOT_RELEVANT"


class Tier(str, Enum):
    TIER_1 = "Tier 1"
    TIER_2 = "Tier 2"
    TIER_3 = "Tier 3"
    TIER_4 = "Tier 4"
    REVIEW = "Review"
    EXCLUDE = "Exclude"


class MatchType(str, Enum):
    EXACT = "[EXACT]"
    PHRASE = "PHRASE"
    BROAD = "BROAD"
    NOT_APPLICABLE = "N/A"


class Action(str, Enum):
    ADD = "ADD"
    BOOST = "BOOST"
    MONITOR = "MONITOR"
    OPTIMIZE = "OPTIMIZE"
    REVIEW = "REVIEW"
    EXCLUDE = "EXCLUDE"
    EXCLUDE_RELEVANCE = "EXCLUDE_RELEVANCE"


class Priority(str, Enum):
    URGENT = "🔴 URGENT"
    HIGH = "🟠 HIGH"
    MEDIUM = "🟡 MEDIUM"
    STANDARD = "⚪ STANDARD"
    REVIEW = "🔵 REVIEW"


SCORE_FIELDS = (
    "course_relevance",
    "conversion_potential",
    "search_intent",
    "vendor_specificity",
    "keyword_specificity",
    "action_word_strength",
    "commercial_signals",
    "negative_signals",
    "koenig_fit",
)

COMPETITION_BONUS = {
    Competition.LOW: 10,
    Competition.MEDIUM: 5,
    Competition.HIGH: 0,
    Competition.UNSPECIFIED: 0,
}


# ─────────────────────────────────────────────
# PIPELINE RECORDS
# ─────────────────────────────────────────────


class SeedKeyword(BaseModel):
    keyword: str
    source: str = "ai_generated"  # ai_generated | manual


class KeywordIdea(BaseModel):
    """A keyword with volume metrics from Google Ads or Keywords Everywhere."""

    keyword: str
    avg_monthly_searches: int = 0
    competition: Competition = Competition.UNSPECIFIED
    competition_index: int = 0
    low_top_of_page_bid_micros: Optional[int] = None
    high_top_of_page_bid_micros: Optional[int] = None
    in_account: bool = False
    in_account_names: List[str] = Field(default_factory=list)


class AnalyzedKeyword(KeywordIdea):
    """A keyword idea plus the LLM's scores and labels."""

    course_relevance: float = 0
    conversion_potential: float = 0
    search_intent: float = 0
    vendor_specificity: float = 0
    keyword_specificity: float = 0
    action_word_strength: float = 0
    commercial_signals: float = 0
    negative_signals: float = 10
    koenig_fit: float = 0
    relevance_status: RelevanceStatus = RelevanceStatus.NOT_RELEVANT
    base_score: float = 0
    competition_bonus: float = 0
    final_score: float = 0
    tier: Tier = Tier.EXCLUDE
    match_type: MatchType = MatchType.NOT_APPLICABLE
    action: Action = Action.EXCLUDE
    exclusion_reason: Optional[str] = None
    priority: Optional[Priority] = None
    needs_review: bool = False
    review_reason: Optional[str] = None


class AnalysisSummary(BaseModel):
    total_analyzed: int = 0
    to_add: int = 0
    to_review: int = 0
    excluded: int = 0
    urgent_count: int = 0
    high_priority_count: int = 0
    needs_review_count: int = 0
    failed_batches: int = 0


class BatchOutcome(BaseModel):
    """How one classification batch ended."""

    index: int
    size: int
    status: str  # ok | partial | failed
    attempts: int
    recovered: int = 0
    error: Optional[str] = None


class AnalysisResult(BaseModel):
    analyzed_keywords: List[AnalyzedKeyword]
    summary: AnalysisSummary
    batches: List[BatchOutcome] = Field(default_factory=list)
    provider: Optional[str] = None
