"""KWPilot: Google Ads Knowledge Base Models.

Relational snapshot of account structure (accounts → campaigns → ad groups →
keywords). Populated only by the CSV importers, always via upsert on the
unique keys declared below.
"""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from kwpilot.core.clock import UTCDateTime, utcnow


class GadsAccount(SQLModel, table=True):
    __tablename__ = "gads_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: str = Field(index=True, unique=True, description="Digits only")
    name: str = Field(default="")
    currency: str = Field(default="INR")
    timezone: str = Field(default="Asia/Kolkata")
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class GadsCampaign(SQLModel, table=True):
    __tablename__ = "gads_campaigns"
    __table_args__ = (
        UniqueConstraint("account_id", "name", name="uq_gads_campaign"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="gads_accounts.id", index=True)
    name: str = Field(index=True)
    campaign_type: Optional[str] = Field(default=None)
    status: Optional[str] = Field(default=None)
    budget: Optional[float] = Field(default=None)
    bid_strategy: Optional[str] = Field(default=None)
    target_cpa: Optional[float] = Field(default=None)
    target_roas: Optional[float] = Field(default=None)
    labels: Optional[str] = Field(default=None)

    # Last imported performance snapshot
    clicks: Optional[int] = Field(default=None)
    impressions: Optional[int] = Field(default=None)
    ctr: Optional[float] = Field(default=None)
    avg_cpc: Optional[float] = Field(default=None)
    cost: Optional[float] = Field(default=None)
    conversions: Optional[float] = Field(default=None)
    currency_code: Optional[str] = Field(default=None)
    date_range: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class GadsAdGroup(SQLModel, table=True):
    __tablename__ = "gads_ad_groups"
    __table_args__ = (
        UniqueConstraint("campaign_id", "name", name="uq_gads_ad_group"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    campaign_id: int = Field(foreign_key="gads_campaigns.id", index=True)
    name: str = Field(index=True)
    status: Optional[str] = Field(default=None)
    max_cpc: Optional[float] = Field(default=None)
    final_url: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class GadsKeyword(SQLModel, table=True):
    __tablename__ = "gads_keywords"
    __table_args__ = (
        UniqueConstraint(
            "ad_group_id",
            "keyword_text",
            "match_type",
            "is_negative",
            name="uq_gads_keyword",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    ad_group_id: int = Field(foreign_key="gads_ad_groups.id", index=True)
    keyword_text: str = Field(index=True, description="Stored lowercased")
    match_type: str = Field(default="BROAD", description="EXACT | PHRASE | BROAD")
    is_negative: bool = Field(default=False)
    status: Optional[str] = Field(default=None)
    max_cpc: Optional[float] = Field(default=None)
    final_url: Optional[str] = Field(default=None)
    quality_score: Optional[int] = Field(default=None)
    first_page_bid: Optional[float] = Field(default=None)
    top_of_page_bid: Optional[float] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
