"""KWPilot: Research Session Models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field

from kwpilot.core.clock import UTCDateTime, utcnow


class SessionStatus(str, Enum):
    GENERATING_SEEDS = "generating_seeds"
    FETCHING_KEYWORDS = "fetching_keywords"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


class ResearchSession(SQLModel, table=True):
    """A saved keyword-research run for one course."""

    __tablename__ = "research_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    course_name: str = Field(index=True)
    course_url: str = Field(default="", index=True)
    vendor: Optional[str] = Field(default=None, index=True)
    certification_code: Optional[str] = Field(default=None)
    seed_keywords_json: str = Field(default="[]")
    keywords_count: int = Field(default=0)
    analyzed_count: int = Field(default=0)
    to_add_count: int = Field(default=0)
    urgent_count: int = Field(default=0)
    high_priority_count: int = Field(default=0)
    geo_target: str = Field(default="india")
    data_source: str = Field(default="google_ads")
    seed_prompt_version: Optional[int] = Field(default=None)
    analysis_prompt_version: Optional[int] = Field(default=None)
    keyword_ideas_json: str = Field(default="[]")
    analyzed_keywords_json: str = Field(default="[]")
    status: str = Field(default=SessionStatus.COMPLETED.value, index=True)
    error: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
