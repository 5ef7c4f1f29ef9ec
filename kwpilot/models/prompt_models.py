"""KWPilot: Versioned Prompt Models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from kwpilot.core.clock import UTCDateTime, utcnow


class PromptType(str, Enum):
    SEED = "seed"
    ANALYSIS = "analysis"


class PromptVersion(SQLModel, table=True):
    """One saved revision of a prompt template.

    Versions are monotonic per prompt_type and at most one row per type
    carries is_active=True.
    """

    __tablename__ = "prompt_versions"
    __table_args__ = (
        UniqueConstraint("prompt_type", "version", name="uq_prompt_type_version"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    prompt_type: str = Field(index=True, description="seed | analysis")
    version: int = Field(description="Monotonic per prompt_type, starting at 1")
    name: str = Field(default="")
    description: str = Field(default="")
    prompt: str = Field(description="Template text with {{VARIABLE}} placeholders")
    variables_json: str = Field(default="[]", description="JSON list of variable names")
    is_active: bool = Field(default=False, index=True)
    created_by: str = Field(default="user")
    change_note: str = Field(default="")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
