"""KWPilot: Outbound Request Queue Models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field

from kwpilot.core.clock import UTCDateTime, utcnow


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueuedRequest(SQLModel, table=True):
    __tablename__ = "request_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    request_type: str = Field(index=True)
    payload_json: str = Field(default="{}")
    status: str = Field(default=QueueStatus.PENDING.value, index=True)
    priority: int = Field(default=0)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    next_retry_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    result_json: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
