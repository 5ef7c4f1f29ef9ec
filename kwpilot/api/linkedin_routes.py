"""KWPilot: LinkedIn Lead-gen Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.connectors.linkedin.client import LEAD_TYPES, LinkedInAPIError, LinkedInClient
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session

logger = get_logger("api.linkedin")

router = APIRouter(prefix="/linkedin", tags=["LinkedIn"])


@router.get("/accounts")
async def ad_accounts(session: Session = Depends(get_session)):
    client = None
    try:
        client = await LinkedInClient.from_store(session)
        accounts = await client.get_ad_accounts()
    except LinkedInAPIError as e:
        raise to_http_exception(e, "LinkedIn ad accounts")
    finally:
        if client:
            await client.close()
    return {"status": "success", "count": len(accounts), "accounts": accounts}


@router.get("/forms")
async def lead_forms(
    owner: str = Query(..., description="Owner URN, e.g. urn:li:sponsoredAccount:123"),
    count: int = Query(50, ge=1, le=100),
    start: int = Query(0, ge=0),
    session: Session = Depends(get_session),
):
    client = None
    try:
        client = await LinkedInClient.from_store(session)
        result = await client.list_lead_forms(owner, count=count, start=start)
    except LinkedInAPIError as e:
        raise to_http_exception(e, "LinkedIn lead forms")
    finally:
        if client:
            await client.close()
    return {"status": "success", **result}


@router.get("/leads")
async def leads(
    owner: str = Query(..., description="Owner URN, e.g. urn:li:sponsoredAccount:123"),
    lead_type: str = Query("SPONSORED", description=" | ".join(LEAD_TYPES)),
    form: Optional[str] = Query(None, description="Versioned lead form URN"),
    count: int = Query(100, ge=1, le=500),
    start: int = Query(0, ge=0),
    test_leads_only: bool = False,
    session: Session = Depends(get_session),
):
    client = None
    try:
        client = await LinkedInClient.from_store(session)
        result = await client.get_lead_responses(
            owner,
            lead_type=lead_type,
            form_urn=form,
            count=count,
            start=start,
            test_leads_only=test_leads_only,
        )
    except (LinkedInAPIError, ValueError) as e:
        raise to_http_exception(e, "LinkedIn leads")
    finally:
        if client:
            await client.close()
    return {"status": "success", "count": len(result["leads"]), **result}
