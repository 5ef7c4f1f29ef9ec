"""KWPilot: Google Ads Editor export importer.

Editor exports are UTF-16 LE, tab-separated, one flat sheet holding every
entity. The row kind follows from which columns are filled:
  Campaign only                 → campaign
  Campaign + Ad Group           → ad group
  Campaign + Ad Group + Keyword → keyword (negative if Criterion Type says so)
Ad rows and anything else are skipped.
"""

from typing import Dict, Optional, Tuple, Union

from sqlmodel import Session

from kwpilot.core.logging import get_logger
from kwpilot.importers.csv_utils import (
    cell,
    decode_bytes,
    header_index,
    parse_int,
    parse_number,
    read_rows,
)
from kwpilot.store import knowledge_base

logger = get_logger("importers.editor_export")

MATCH_TYPES = ("EXACT", "PHRASE", "BROAD")
ENTITIES = ("accounts", "campaigns", "ad_groups", "keywords")


def parse_criterion_type(value: str) -> Tuple[str, bool]:
    """'Negative Phrase' → ('PHRASE', True); blank → ('BROAD', False)."""
    text = (value or "").strip()
    is_negative = text.lower().startswith("negative") or text.lower().startswith("campaign negative")
    upper = text.upper()
    match_type = next((m for m in MATCH_TYPES if m in upper), "BROAD")
    return match_type, is_negative


def row_kind(campaign: str, ad_group: str, keyword: str) -> Optional[str]:
    if not campaign:
        return None
    if keyword and ad_group:
        return "keywords"
    if ad_group:
        return "ad_groups"
    if keyword:
        return None  # campaign-level negatives have no ad group to attach to
    return "campaigns"


def import_editor_export(
    session: Session,
    content: Union[str, bytes],
    customer_id: Optional[str] = None,
    account_name: Optional[str] = None,
) -> dict:
    text = decode_bytes(content) if isinstance(content, bytes) else content
    rows = read_rows(text)
    if len(rows) < 2:
        raise ValueError("Invalid editor export: no data rows")

    index = header_index(rows[0])
    if "campaign" not in index:
        raise ValueError("Invalid editor export: no 'Campaign' column")

    counts: Dict[str, Dict[str, int]] = {e: {"created": 0, "updated": 0} for e in ENTITIES}
    skipped = 0
    accounts: Dict[str, int] = {}
    campaigns: Dict[Tuple[int, str], int] = {}
    ad_groups: Dict[Tuple[int, str], int] = {}

    def _tally(entity: str, created: bool) -> None:
        counts[entity]["created" if created else "updated"] += 1

    def _account_id(row) -> int:
        cid = customer_id or cell(row, index, "customer id", "account")
        name = account_name or cell(row, index, "account name")
        key = knowledge_base.normalize_customer_id(cid)
        if key not in accounts:
            account, created = knowledge_base.upsert_account(session, cid, name)
            _tally("accounts", created)
            accounts[key] = account.id
        return accounts[key]

    def _campaign_id(account_id: int, name: str) -> int:
        if (account_id, name) not in campaigns:
            campaign, created = knowledge_base.upsert_campaign(session, account_id, name)
            if created:
                _tally("campaigns", True)
            campaigns[(account_id, name)] = campaign.id
        return campaigns[(account_id, name)]

    def _ad_group_id(campaign_id: int, name: str) -> int:
        if (campaign_id, name) not in ad_groups:
            ad_group, created = knowledge_base.upsert_ad_group(session, campaign_id, name)
            if created:
                _tally("ad_groups", True)
            ad_groups[(campaign_id, name)] = ad_group.id
        return ad_groups[(campaign_id, name)]

    for row in rows[1:]:
        campaign_name = cell(row, index, "campaign")
        ad_group_name = cell(row, index, "ad group")
        keyword_text = cell(row, index, "keyword")
        kind = row_kind(campaign_name, ad_group_name, keyword_text)
        if kind is None:
            skipped += 1
            continue

        try:
            account_id = _account_id(row)
        except ValueError:
            skipped += 1
            continue

        if kind == "campaigns":
            key = (account_id, campaign_name)
            seen = key in campaigns
            campaign, created = knowledge_base.upsert_campaign(
                session,
                account_id,
                campaign_name,
                campaign_type=cell(row, index, "campaign type") or None,
                status=cell(row, index, "campaign status") or None,
                budget=parse_number(cell(row, index, "budget")),
                bid_strategy=cell(row, index, "bid strategy type") or None,
                target_cpa=parse_number(cell(row, index, "target cpa")),
                target_roas=parse_number(cell(row, index, "target roas")),
                labels=cell(row, index, "labels") or None,
            )
            campaigns[key] = campaign.id
            if not seen:
                _tally("campaigns", created)
            continue

        campaign_id = _campaign_id(account_id, campaign_name)
        if kind == "ad_groups":
            key = (campaign_id, ad_group_name)
            seen = key in ad_groups
            ad_group, created = knowledge_base.upsert_ad_group(
                session,
                campaign_id,
                ad_group_name,
                status=cell(row, index, "ad group status", "status") or None,
                max_cpc=parse_number(cell(row, index, "max cpc")),
                final_url=cell(row, index, "final url") or None,
            )
            ad_groups[key] = ad_group.id
            if not seen:
                _tally("ad_groups", created)
            continue

        match_type, is_negative = parse_criterion_type(cell(row, index, "criterion type", "match type"))
        _, created = knowledge_base.upsert_keyword(
            session,
            _ad_group_id(campaign_id, ad_group_name),
            keyword_text,
            match_type=match_type,
            is_negative=is_negative,
            status=cell(row, index, "status") or None,
            max_cpc=parse_number(cell(row, index, "max cpc")),
            final_url=cell(row, index, "final url") or None,
            quality_score=parse_int(cell(row, index, "quality score")),
            first_page_bid=parse_number(cell(row, index, "first page bid")),
            top_of_page_bid=parse_number(cell(row, index, "top of page bid")),
        )
        _tally("keywords", created)

    session.commit()
    logger.info(
        "📥 Editor import: "
        + ", ".join(f"{e} +{c['created']}/~{c['updated']}" for e, c in counts.items())
        + f", {skipped} skipped"
    )
    return {**counts, "skipped": skipped, "rows": len(rows) - 1}
