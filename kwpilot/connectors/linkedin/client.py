"""KWPilot: LinkedIn Marketing API Client.

Ad accounts, lead-gen forms and lead responses. Tokens come from the token
store (OAuth callback); an access token past its buffer is refreshed first.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx
from sqlmodel import Session

from kwpilot.config import settings
from kwpilot.connectors.http_client import AsyncAPIClient, UpstreamAPIError
from kwpilot.core.logging import get_logger
from kwpilot.store import token_store
from kwpilot.store.token_store import TokenValidity

logger = get_logger("linkedin.client")

LINKEDIN_API_BASE = "https://api.linkedin.com"
AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"

LEAD_TYPES = ("SPONSORED", "EVENT", "COMPANY", "ORGANIZATION_PRODUCT")


class LinkedInAPIError(UpstreamAPIError):
    """Raised when the LinkedIn API returns an error."""


def _iso_from_millis(value: Any) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).isoformat()


def owner_param(owner_urn: str) -> str:
    """Rest.li owner tuple, e.g. (sponsoredAccount:urn%3Ali%3AsponsoredAccount%3A123)."""
    encoded = owner_urn.replace(":", "%3A")
    kind = "sponsoredAccount" if "sponsoredAccount" in owner_urn else "organization"
    return f"({kind}:{encoded})"


# ── OAuth ──


def build_authorization_url(state: str, redirect_uri: Optional[str] = None) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.linkedin_client_id,
        "redirect_uri": redirect_uri or settings.linkedin_redirect_uri,
        "state": state,
        "scope": settings.linkedin_scopes,
    }
    return f"{AUTH_URL}?{urlencode(params, quote_via=quote)}"


async def _token_request(data: Dict[str, str]) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=30.0) as client:
        resp = await client.post(
            TOKEN_URL,
            data={
                **data,
                "client_id": settings.linkedin_client_id,
                "client_secret": settings.linkedin_client_secret,
            },
        )
    body = resp.json() if resp.content else {}
    if resp.status_code != 200 or "access_token" not in body:
        raise LinkedInAPIError(
            body.get("error_description") or body.get("error") or "LinkedIn token request failed",
            resp.status_code if resp.status_code != 200 else 401,
            body.get("error", 0),
        )
    return body


async def exchange_code(code: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or settings.linkedin_redirect_uri,
        }
    )


async def refresh_access_token(session: Session) -> str:
    """Refresh the stored LinkedIn token and persist the new one."""
    token = token_store.get_token(session, token_store.LINKEDIN)
    if not token or not token.refresh_token:
        raise LinkedInAPIError("No LinkedIn refresh token stored", 401)
    body = await _token_request(
        {"grant_type": "refresh_token", "refresh_token": token.refresh_token}
    )
    token_store.update_token_after_refresh(
        session,
        token_store.LINKEDIN,
        body["access_token"],
        body.get("expires_in"),
        refresh_token=body.get("refresh_token"),
        refresh_expires_in=body.get("refresh_token_expires_in"),
    )
    return body["access_token"]


async def resolve_access_token(session: Session) -> str:
    validity = token_store.is_token_valid(session)
    if validity == TokenValidity.VALID:
        return token_store.get_token(session, token_store.LINKEDIN).access_token
    if validity == TokenValidity.NEEDS_REFRESH:
        logger.info("🔄 LinkedIn access token near expiry, refreshing")
        return await refresh_access_token(session)
    if validity == TokenValidity.EXPIRED:
        raise LinkedInAPIError("LinkedIn token expired. Reconnect via /auth/linkedin.", 401)
    raise LinkedInAPIError("LinkedIn not connected. Authorize via /auth/linkedin.", 401)


# ── Client ──


class LinkedInClient(AsyncAPIClient):
    """Async HTTP client for the LinkedIn Marketing API."""

    error_cls = LinkedInAPIError
    service = "LinkedIn"

    def __init__(self, access_token: str, session: Optional[Session] = None):
        super().__init__()
        self.access_token = access_token
        self.session = session

    @classmethod
    async def from_store(cls, session: Session) -> "LinkedInClient":
        return cls(await resolve_access_token(session), session)

    def _error_details(self, body: Dict[str, Any], fallback: str) -> tuple:
        return body.get("message", fallback), body.get("serviceErrorCode", body.get("status", 0))

    def _headers(self, path: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "X-Restli-Protocol-Version": "2.0.0",
        }
        # Versioned /rest/ endpoints need LinkedIn-Version; /v2/ ones reject it
        if path.startswith("/rest/"):
            headers["LinkedIn-Version"] = settings.linkedin_api_version
        return headers

    async def _get(self, path: str) -> Dict[str, Any]:
        result = await self._request(
            "GET", f"{LINKEDIN_API_BASE}{path}", headers=self._headers(path)
        )
        if self.session is not None:
            token_store.mark_token_verified(self.session, token_store.LINKEDIN)
        return result

    async def get_user_info(self) -> Dict[str, Any]:
        data = await self._get("/v2/userinfo")
        return {
            "id": data.get("sub", ""),
            "name": data.get("name", ""),
            "email": data.get("email"),
            "picture": data.get("picture"),
        }

    async def get_ad_accounts(self) -> List[Dict[str, Any]]:
        data = await self._get("/v2/adAccountsV2?q=search&count=100")
        return [
            {
                "urn": f"urn:li:sponsoredAccount:{a.get('id')}",
                "id": str(a.get("id")),
                "name": str(a.get("name") or "Unnamed Account"),
                "status": str(a.get("status") or "UNKNOWN"),
                "type": str(a.get("type") or "UNKNOWN"),
                "currency": a.get("currency"),
            }
            for a in data.get("elements", [])
        ]

    async def list_lead_forms(
        self, owner_urn: str, count: int = 50, start: int = 0
    ) -> Dict[str, Any]:
        data = await self._get(
            f"/rest/leadForms?q=owner&owner={owner_param(owner_urn)}&count={count}&start={start}"
        )
        forms = [
            {
                "id": str(f.get("id", "")),
                "urn": f.get("leadGenFormUrn") or f"urn:li:leadGenForm:{f.get('id')}",
                "name": str(f.get("name") or "Unnamed Form"),
                "status": str(f.get("status") or "UNKNOWN"),
                "created_at": _iso_from_millis(f.get("createdAt")),
            }
            for f in data.get("elements", [])
        ]
        paging = data.get("paging", {})
        return {
            "forms": forms,
            "paging": {
                "start": paging.get("start", start),
                "count": paging.get("count", count),
                "total": paging.get("total"),
            },
        }

    async def get_lead_responses(
        self,
        owner_urn: str,
        lead_type: str = "SPONSORED",
        form_urn: Optional[str] = None,
        count: int = 100,
        start: int = 0,
        test_leads_only: bool = False,
    ) -> Dict[str, Any]:
        if lead_type not in LEAD_TYPES:
            raise ValueError(f"Invalid lead type: {lead_type}. Must be one of {', '.join(LEAD_TYPES)}")
        path = (
            f"/rest/leadFormResponses?q=owner&owner={owner_param(owner_urn)}"
            f"&leadType=(leadType:{lead_type})"
            f"&limitedToTestLeads={'true' if test_leads_only else 'false'}"
            f"&count={count}&start={start}"
        )
        if form_urn:
            path += f"&versionedLeadGenFormUrn={quote(form_urn, safe='')}"
        data = await self._get(path)

        leads = []
        for lead in data.get("elements", []):
            raw_answers = (lead.get("formResponse") or {}).get("answers") or lead.get("answers") or []
            leads.append(
                {
                    "id": str(lead.get("id") or lead.get("leadId") or ""),
                    "form_id": str(lead.get("leadGenFormId") or lead.get("versionedLeadGenFormUrn") or ""),
                    "submitted_at": _iso_from_millis(lead.get("submittedAt")),
                    "answers": [
                        {
                            "question_id": str(a.get("questionId") or a.get("fieldId") or ""),
                            "answer": extract_answer(a),
                        }
                        for a in raw_answers
                    ],
                }
            )
        paging = data.get("paging", {})
        return {
            "leads": leads,
            "paging": {
                "start": paging.get("start", start),
                "count": paging.get("count", count),
                "total": paging.get("total"),
            },
        }


def extract_answer(answer: Dict[str, Any]) -> Optional[str]:
    """Flatten LinkedIn's answerDetails variants into a single string."""
    details = answer.get("answerDetails") or {}
    if "textQuestionAnswer" in details:
        return details["textQuestionAnswer"].get("answer")
    if "singleSelectQuestionAnswer" in details:
        return details["singleSelectQuestionAnswer"].get("answer")
    if "multiSelectQuestionAnswer" in details:
        return ", ".join(details["multiSelectQuestionAnswer"].get("answers", []))
    return str(answer["answer"]) if answer.get("answer") is not None else None
