"""KWPilot: Google Ads API Client.

Handles OAuth token refresh, per-call pacing, GAQL search paging, and the
Keyword Planner generateKeywordIdeas endpoint over REST.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlencode

import httpx
from sqlmodel import Session

from kwpilot.config import settings
from kwpilot.connectors.http_client import AsyncAPIClient, UpstreamAPIError
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import Competition, KeywordIdea
from kwpilot.store import token_store

logger = get_logger("google_ads.client")

GOOGLE_ADS_BASE = f"https://googleads.googleapis.com/{settings.google_ads_api_version}"
TOKEN_URL = "https://oauth2.googleapis.com/token"
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
OAUTH_SCOPES = ["https://www.googleapis.com/auth/adwords"]

RATE_LIMIT_DELAY = 1.1  # seconds between calls
ENGLISH = "languageConstants/1000"
IDEAS_PAGE_SIZE = 1000
ACCOUNT_KEYWORDS_PAGE_SIZE = 10000
ACCOUNT_KEYWORDS_MAX_PAGES = 5

ALL_ACCOUNTS = "all-accounts"

# Sub-accounts under the manager (MCC) account
GOOGLE_ADS_ACCOUNTS = [
    {"id": ALL_ACCOUNTS, "name": "All Accounts", "customer_id": "ALL", "currency": "INR"},
    {"id": "flexi", "name": "Flexi", "customer_id": "3515012934", "currency": "INR"},
    {"id": "bouquet-inr", "name": "Bouquet INR", "customer_id": "6153038296", "currency": "INR"},
    {"id": "bouquet-inr-2", "name": "Bouquet INR - 2", "customer_id": "6601080005", "currency": "INR"},
]

GEO_TARGETS = {
    "india": "2356",
    "usa": "2840",
    "uk": "2826",
    "global": "2840",
    "uae": "2784",
    "singapore": "2702",
    "australia": "2036",
    "canada": "2124",
    "germany": "2276",
    "malaysia": "2458",
    "saudi": "2682",
}

_last_call_at = 0.0
_pace_lock = asyncio.Lock()


class GoogleAdsAPIError(UpstreamAPIError):
    """Raised when the Google Ads API (or its OAuth endpoint) returns an error."""


# ── Account helpers ──


def clean_customer_id(customer_id: str) -> str:
    return str(customer_id).replace("-", "").strip()


def get_real_account_ids() -> List[str]:
    return [a["customer_id"] for a in GOOGLE_ADS_ACCOUNTS if a["customer_id"] != "ALL"]


def resolve_account_ids(account_id: str) -> List[str]:
    """Expand an account id/alias into concrete customer ids."""
    if not account_id or account_id in (ALL_ACCOUNTS, "ALL"):
        return get_real_account_ids()
    for account in GOOGLE_ADS_ACCOUNTS:
        if account["id"] == account_id:
            return [account["customer_id"]]
    return [clean_customer_id(account_id)]


def get_account_name(customer_id: str) -> str:
    cid = clean_customer_id(customer_id)
    for account in GOOGLE_ADS_ACCOUNTS:
        if account["customer_id"] == cid:
            return account["name"]
    return f"Account {cid}"


def geo_target_constant(geo_target: str) -> str:
    geo_id = GEO_TARGETS.get((geo_target or "").lower(), GEO_TARGETS["india"])
    return f"geoTargetConstants/{geo_id}"


# ── OAuth ──


def build_authorization_url(state: str, redirect_uri: Optional[str] = None) -> str:
    params = {
        "client_id": settings.google_ads_client_id,
        "redirect_uri": redirect_uri or settings.google_ads_redirect_uri,
        "response_type": "code",
        "scope": " ".join(OAUTH_SCOPES),
        "access_type": "offline",  # required for a refresh token
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
    """Trade an authorization code for access + refresh tokens."""
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            resp = await client.post(
                TOKEN_URL,
                data={
                    "client_id": settings.google_ads_client_id,
                    "client_secret": settings.google_ads_client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": redirect_uri or settings.google_ads_redirect_uri,
                },
            )
    except httpx.RequestError as e:
        raise GoogleAdsAPIError(f"Connection failed during code exchange: {e}", 0, "NETWORK") from e
    body = resp.json() if resp.content else {}
    if resp.status_code != 200:
        raise GoogleAdsAPIError(
            body.get("error_description") or body.get("error") or "Token exchange failed",
            resp.status_code,
            body.get("error", 0),
        )
    return body


# ── Client ──


class GoogleAdsClient(AsyncAPIClient):
    """Async REST client for the Google Ads API."""

    error_cls = GoogleAdsAPIError
    service = "Google Ads"

    def __init__(self, session: Optional[Session] = None, access_token: Optional[str] = None):
        super().__init__()
        self.session = session
        self._access_token = access_token
        self.login_customer_id = clean_customer_id(settings.google_ads_login_customer_id)

    async def _pace(self) -> None:
        """Space calls RATE_LIMIT_DELAY apart across every client in the process."""
        global _last_call_at
        async with _pace_lock:
            elapsed = time.monotonic() - _last_call_at
            if elapsed < RATE_LIMIT_DELAY:
                await asyncio.sleep(RATE_LIMIT_DELAY - elapsed)
            _last_call_at = time.monotonic()

    def _error_details(self, body: Dict[str, Any], fallback: str) -> tuple:
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message", fallback)
            details = error.get("details") or []
            for detail in details:
                for err in detail.get("errors", []) if isinstance(detail, dict) else []:
                    code = err.get("errorCode") or {}
                    if code:
                        return message, next(iter(code.values()))
            return message, error.get("status", 0)
        return super()._error_details(body, fallback)

    # ── Auth ──

    async def get_access_token(self) -> str:
        """In-memory token → stored token → refresh via OAuth."""
        if self._access_token:
            return self._access_token

        if self.session is not None:
            cached = token_store.get_cached_access_token(self.session)
            if cached:
                self._access_token = cached
                return cached
            try:
                refresh_token = token_store.get_refresh_token(self.session)
            except LookupError as e:
                raise GoogleAdsAPIError(str(e), 401, "NO_REFRESH_TOKEN") from e
        else:
            refresh_token = settings.google_ads_refresh_token
            if not refresh_token:
                raise GoogleAdsAPIError("No Google Ads refresh token configured", 401, "NO_REFRESH_TOKEN")

        client = await self._get_client()
        try:
            resp = await client.post(
                TOKEN_URL,
                data={
                    "client_id": settings.google_ads_client_id,
                    "client_secret": settings.google_ads_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.RequestError as e:
            logger.error(f"❌ Google Ads token refresh unreachable: {e}")
            raise GoogleAdsAPIError(f"Connection failed during token refresh: {e}", 0, "NETWORK") from e
        body = resp.json() if resp.content else {}
        if resp.status_code != 200 or "access_token" not in body:
            logger.error(f"❌ Google Ads token refresh failed: {body}")
            raise GoogleAdsAPIError(
                body.get("error_description") or "Failed to get access token",
                401,
                body.get("error", "TOKEN_REFRESH_FAILED"),
            )

        self._access_token = body["access_token"]
        if self.session is not None:
            token_store.update_access_token(
                self.session,
                token_store.GOOGLE_ADS,
                self._access_token,
                int(body.get("expires_in", 3600)),
            )
        logger.info(f"🔑 Refreshed Google Ads access token (expires in {body.get('expires_in')}s)")
        return self._access_token

    async def _headers(self) -> Dict[str, str]:
        token = await self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "developer-token": settings.google_ads_developer_token,
            "Content-Type": "application/json",
        }
        if self.login_customer_id:
            headers["login-customer-id"] = self.login_customer_id
        return headers

    async def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        await self._pace()
        result = await self._request("POST", url, json=body, headers=await self._headers())
        if self.session is not None:
            token_store.mark_token_verified(self.session, token_store.GOOGLE_ADS)
        return result

    # ── GAQL Search ──

    async def search(
        self, customer_id: str, query: str, max_pages: int = 10
    ) -> List[Dict[str, Any]]:
        """Run a GAQL query, following nextPageToken up to max_pages."""
        url = f"{GOOGLE_ADS_BASE}/customers/{clean_customer_id(customer_id)}/googleAds:search"
        rows: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        for _ in range(max_pages):
            body: Dict[str, Any] = {"query": query}
            if page_token:
                body["pageToken"] = page_token
            result = await self._post(url, body)
            rows.extend(result.get("results", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break
        return rows

    # ── Keyword Planner ──

    async def _ideas_request(
        self, customer_id: str, seed_field: str, seed_value: Dict[str, Any], geo_target: str
    ) -> List[KeywordIdea]:
        url = f"{GOOGLE_ADS_BASE}/customers/{clean_customer_id(customer_id)}:generateKeywordIdeas"
        body = {
            "geoTargetConstants": [geo_target_constant(geo_target)],
            "language": ENGLISH,
            "keywordPlanNetwork": "GOOGLE_SEARCH",
            "includeAdultKeywords": False,
            "pageSize": IDEAS_PAGE_SIZE,
            "historicalMetricsOptions": {"includeAverageCpc": True},
            seed_field: seed_value,
        }
        result = await self._post(url, body)
        return [idea for idea in map(parse_keyword_idea, result.get("results", [])) if idea]

    async def generate_keyword_ideas(
        self,
        customer_id: str,
        seeds: Optional[List[str]] = None,
        url: Optional[str] = None,
        geo_target: str = "india",
    ) -> List[KeywordIdea]:
        """Keyword ideas for seeds and/or a URL, unioned case-insensitively.

        The API accepts one seed type per call, so seeds and URL are separate
        requests. Zero-volume ideas are dropped.
        """
        if not seeds and not url:
            raise ValueError("Either seed keywords or a page URL is required")

        results: List[KeywordIdea] = []
        if seeds:
            results.extend(
                await self._ideas_request(customer_id, "keywordSeed", {"keywords": seeds}, geo_target)
            )
        if url:
            results.extend(
                await self._ideas_request(customer_id, "urlSeed", {"url": url}, geo_target)
            )

        seen: Set[str] = set()
        ideas: List[KeywordIdea] = []
        for idea in results:
            key = idea.keyword.lower()
            if key in seen or idea.avg_monthly_searches <= 0:
                continue
            seen.add(key)
            ideas.append(idea)
        logger.info(f"✅ Google Ads returned {len(ideas)} keyword ideas for {customer_id}")
        return ideas

    async def get_account_keywords(self, customer_id: str) -> Set[str]:
        """Lowercased live, positive keyword texts in an account."""
        query = f"""
            SELECT
              ad_group_criterion.keyword.text,
              ad_group_criterion.keyword.match_type
            FROM ad_group_criterion
            WHERE ad_group_criterion.type = 'KEYWORD'
              AND ad_group_criterion.status != 'REMOVED'
              AND ad_group_criterion.negative = FALSE
            ORDER BY ad_group_criterion.keyword.text
            LIMIT {ACCOUNT_KEYWORDS_PAGE_SIZE}
        """
        rows = await self.search(customer_id, query, max_pages=ACCOUNT_KEYWORDS_MAX_PAGES)
        keywords = {
            text.lower()
            for text in (
                r.get("adGroupCriterion", {}).get("keyword", {}).get("text") for r in rows
            )
            if text
        }
        logger.info(f"📋 Account {customer_id} has {len(keywords)} keywords")
        return keywords

    async def list_accessible_customers(self) -> List[str]:
        await self._pace()
        result = await self._request(
            "GET", f"{GOOGLE_ADS_BASE}/customers:listAccessibleCustomers", headers=await self._headers()
        )
        return [name.split("/")[-1] for name in result.get("resourceNames", [])]


def parse_keyword_idea(result: Dict[str, Any]) -> Optional[KeywordIdea]:
    text = result.get("text")
    if not text:
        return None
    metrics = result.get("keywordIdeaMetrics") or {}
    competition = str(metrics.get("competition") or "")
    low = metrics.get("lowTopOfPageBidMicros")
    high = metrics.get("highTopOfPageBidMicros")
    return KeywordIdea(
        keyword=text,
        avg_monthly_searches=int(metrics.get("avgMonthlySearches") or 0),
        competition=(
            Competition(competition)
            if competition in ("LOW", "MEDIUM", "HIGH")
            else Competition.UNSPECIFIED
        ),
        competition_index=int(metrics.get("competitionIndex") or 0),
        low_top_of_page_bid_micros=int(low) if low else None,
        high_top_of_page_bid_micros=int(high) if high else None,
    )
