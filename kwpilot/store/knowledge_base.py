"""KWPilot: Google Ads Knowledge Base Upserts & Lookups."""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from kwpilot.core.clock import utcnow
from kwpilot.models.knowledge_base_models import (
    GadsAccount,
    GadsAdGroup,
    GadsCampaign,
    GadsKeyword,
)


def _apply(row: Any, fields: Dict[str, Any]) -> None:
    """Copy non-None values onto the row."""
    for key, value in fields.items():
        if value is not None:
            setattr(row, key, value)
    row.updated_at = utcnow()


def normalize_customer_id(customer_id: str) -> str:
    return "".join(ch for ch in str(customer_id) if ch.isdigit())


def upsert_account(
    session: Session, customer_id: str, name: str = "", **fields: Any
) -> Tuple[GadsAccount, bool]:
    cid = normalize_customer_id(customer_id)
    if not cid:
        raise ValueError("customer_id must contain digits")
    row = session.exec(select(GadsAccount).where(GadsAccount.customer_id == cid)).first()
    created = row is None
    if created:
        row = GadsAccount(customer_id=cid, name=name or cid)
    elif name:
        row.name = name
    _apply(row, fields)
    session.add(row)
    session.flush()
    return row, created


def upsert_campaign(
    session: Session, account_id: int, name: str, **fields: Any
) -> Tuple[GadsCampaign, bool]:
    row = session.exec(
        select(GadsCampaign).where(
            GadsCampaign.account_id == account_id, GadsCampaign.name == name
        )
    ).first()
    created = row is None
    if created:
        row = GadsCampaign(account_id=account_id, name=name)
    _apply(row, fields)
    session.add(row)
    session.flush()
    return row, created


def upsert_ad_group(
    session: Session, campaign_id: int, name: str, **fields: Any
) -> Tuple[GadsAdGroup, bool]:
    row = session.exec(
        select(GadsAdGroup).where(
            GadsAdGroup.campaign_id == campaign_id, GadsAdGroup.name == name
        )
    ).first()
    created = row is None
    if created:
        row = GadsAdGroup(campaign_id=campaign_id, name=name)
    _apply(row, fields)
    session.add(row)
    session.flush()
    return row, created


def upsert_keyword(
    session: Session,
    ad_group_id: int,
    keyword_text: str,
    match_type: str = "BROAD",
    is_negative: bool = False,
    **fields: Any,
) -> Tuple[GadsKeyword, bool]:
    text = keyword_text.strip().lower()
    row = session.exec(
        select(GadsKeyword).where(
            GadsKeyword.ad_group_id == ad_group_id,
            GadsKeyword.keyword_text == text,
            GadsKeyword.match_type == match_type,
            GadsKeyword.is_negative == is_negative,
        )
    ).first()
    created = row is None
    if created:
        row = GadsKeyword(
            ad_group_id=ad_group_id,
            keyword_text=text,
            match_type=match_type,
            is_negative=is_negative,
        )
    _apply(row, fields)
    session.add(row)
    session.flush()
    return row, created


def find_keywords_in_accounts(
    session: Session, keywords: Iterable[str], customer_ids: Optional[List[str]] = None
) -> Dict[str, List[str]]:
    """Map lowercase keyword → account names where it is a live positive keyword."""
    wanted = list({k.strip().lower() for k in keywords if k and k.strip()})
    if not wanted:
        return {}
    query = (
        select(GadsKeyword.keyword_text, GadsAccount.name)
        .join(GadsAdGroup, GadsKeyword.ad_group_id == GadsAdGroup.id)
        .join(GadsCampaign, GadsAdGroup.campaign_id == GadsCampaign.id)
        .join(GadsAccount, GadsCampaign.account_id == GadsAccount.id)
        .where(
            GadsKeyword.keyword_text.in_(wanted),  # type: ignore
            GadsKeyword.is_negative == False,  # noqa: E712
        )
    )
    if customer_ids:
        query = query.where(
            GadsAccount.customer_id.in_([normalize_customer_id(c) for c in customer_ids])  # type: ignore
        )
    found: Dict[str, List[str]] = defaultdict(list)
    for text, account_name in session.exec(query).all():
        if account_name not in found[text]:
            found[text].append(account_name)
    return dict(found)


def get_knowledge_base_counts(session: Session) -> dict:
    def _count(model) -> int:
        return session.exec(select(func.count()).select_from(model)).one()

    return {
        "accounts": _count(GadsAccount),
        "campaigns": _count(GadsCampaign),
        "ad_groups": _count(GadsAdGroup),
        "keywords": _count(GadsKeyword),
    }
