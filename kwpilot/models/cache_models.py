"""KWPilot: TTL Cache Models.

Every cache row carries an absolute expires_at. Reads ignore expired rows and
the daily cleanup job deletes them; nothing else evicts.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from kwpilot.core.clock import UTCDateTime, utcnow


class ReportType(str, Enum):
    CAMPAIGN_PERFORMANCE = "campaign_performance"
    RECOMMENDATIONS = "recommendations"
    OPTIMIZATION_SCORE = "optimization_score"
    ACCOUNT_SUMMARY = "account_summary"


# TTL per report type, in seconds
REPORT_TTLS = {
    ReportType.CAMPAIGN_PERFORMANCE: 60 * 60,
    ReportType.RECOMMENDATIONS: 4 * 60 * 60,
    ReportType.OPTIMIZATION_SCORE: 24 * 60 * 60,
    ReportType.ACCOUNT_SUMMARY: 60 * 60,
}


class KeywordCache(SQLModel, table=True):
    """Keyword ideas for a seeds/url/course lookup."""

    __tablename__ = "keyword_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    cache_key: str = Field(index=True, unique=True)
    course_name: str = Field(default="")
    course_url: str = Field(default="")
    seeds_json: str = Field(default="[]")
    keywords_json: str = Field(default="[]", description="JSON list of KeywordIdea")
    source: str = Field(default="google_ads", index=True)
    geo_target: str = Field(default="india", index=True)
    keywords_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class ReportCache(SQLModel, table=True):
    """Google Ads report payload keyed by type, account and date range."""

    __tablename__ = "report_cache"
    __table_args__ = (
        UniqueConstraint(
            "report_type", "account_id", "date_range", name="uq_report_cache_key"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    report_type: str = Field(index=True)
    account_id: str = Field(index=True)
    date_range: str = Field(default="", description="Empty for account-wide reports")
    payload_json: str = Field(default="null")
    fetched_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class AccountKeywordsCache(SQLModel, table=True):
    """Lowercased keyword texts already live in a Google Ads account."""

    __tablename__ = "account_keywords_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: str = Field(index=True, unique=True)
    keywords_json: str = Field(default="[]")
    fetched_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class KeywordVolume(SQLModel, table=True):
    """Per-keyword volume lookup, so repeat research only pays for new terms."""

    __tablename__ = "keyword_volumes"
    __table_args__ = (
        UniqueConstraint("keyword", "country", "source", name="uq_keyword_volume"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    keyword: str = Field(index=True)
    country: str = Field(default="in")
    source: str = Field(default="keywords_everywhere")
    avg_monthly_searches: int = Field(default=0)
    competition: str = Field(default="UNSPECIFIED")
    competition_index: int = Field(default=0)
    low_bid_micros: Optional[int] = Field(default=None)
    high_bid_micros: Optional[int] = Field(default=None)
    fetched_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class RateLimitState(SQLModel, table=True):
    """Marks an upstream key (e.g. google_ads:<account>) as temporarily exhausted."""

    __tablename__ = "rate_limit_state"

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True, unique=True)
    exhausted_until: datetime = Field(sa_type=UTCDateTime)
    reason: str = Field(default="")
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
