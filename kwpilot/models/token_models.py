"""KWPilot: OAuth Token Models."""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from kwpilot.core.clock import UTCDateTime, utcnow


class OAuthToken(SQLModel, table=True):
    """Runtime OAuth credentials for an ad platform."""

    __tablename__ = "oauth_tokens"
    __table_args__ = (
        UniqueConstraint("provider", "token_id", name="uq_oauth_provider_token"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: str = Field(index=True, description="google_ads | linkedin")
    token_id: str = Field(default="primary")
    access_token: str = Field(default="")
    refresh_token: Optional[str] = Field(default=None)
    access_token_expires_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    refresh_token_expires_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    scopes_json: str = Field(default="[]")
    user_id: Optional[str] = Field(default=None)
    user_name: Optional[str] = Field(default=None)
    user_email: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_verified_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
