"""KWPilot: Campaign Performance report importer.

Google Ads web UI "Campaign report" download:
  line 1  report title
  line 2  date range (e.g. "1 January 2026 - 31 January 2026")
  line 3  headers
  line 4+ one row per campaign, followed by "Total: ..." rows
"""

from typing import Optional, Union

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

logger = get_logger("importers.campaign_performance")

HEADER_ROW = 2


def import_campaign_performance(
    session: Session,
    content: Union[str, bytes],
    customer_id: str,
    account_name: Optional[str] = None,
) -> dict:
    text = decode_bytes(content) if isinstance(content, bytes) else content
    rows = read_rows(text)
    if len(rows) <= HEADER_ROW:
        raise ValueError("Invalid campaign performance CSV: expected title, date range and header rows")

    date_range = " ".join(rows[1]).strip().strip('"')
    index = header_index(rows[HEADER_ROW])
    if "campaign" not in index:
        raise ValueError("Invalid campaign performance CSV: no 'Campaign' column")

    account, _ = knowledge_base.upsert_account(session, customer_id, account_name or "")
    created = updated = skipped = 0

    for row in rows[HEADER_ROW + 1 :]:
        name = cell(row, index, "campaign")
        status = cell(row, index, "campaign state", "campaign status")
        if not name or name.lower().startswith("total") or status.lower() == "removed":
            skipped += 1
            continue

        _, was_created = knowledge_base.upsert_campaign(
            session,
            account.id,
            name,
            status=status or None,
            campaign_type=cell(row, index, "campaign type") or None,
            clicks=parse_int(cell(row, index, "clicks")),
            impressions=parse_int(cell(row, index, "impr.", "impressions")),
            ctr=parse_number(cell(row, index, "ctr")),
            avg_cpc=parse_number(cell(row, index, "avg. cpc")),
            cost=parse_number(cell(row, index, "cost")),
            conversions=parse_number(cell(row, index, "conversions")),
            currency_code=cell(row, index, "currency code") or None,
            date_range=date_range,
        )
        if was_created:
            created += 1
        else:
            updated += 1

    session.commit()
    logger.info(
        f"📥 Campaign performance import for {account.name}: {created} created, {updated} updated, {skipped} skipped"
    )
    return {
        "campaigns_imported": created + updated,
        "created": created,
        "updated": updated,
        "skipped": skipped,
        "date_range": date_range,
    }
