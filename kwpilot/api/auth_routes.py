"""KWPilot: OAuth Routes for Google Ads and LinkedIn.

Each flow sets a random `state` in an httponly cookie before redirecting to
the provider, and the callback rejects any state that does not match it.
"""

import re
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from kwpilot.api.errors import to_http_exception
from kwpilot.config import settings
from kwpilot.connectors.google_ads import client as google_ads
from kwpilot.connectors.linkedin import client as linkedin
from kwpilot.core.logging import get_logger
from kwpilot.database import get_session
from kwpilot.store import token_store

logger = get_logger("api.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])

GOOGLE_STATE_COOKIE = "gads_oauth_state"
LINKEDIN_STATE_COOKIE = "linkedin_oauth_state"
STATE_MAX_AGE = 600  # seconds


def _redirect_with_state(url_builder, cookie_name: str) -> RedirectResponse:
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(url_builder(state), status_code=307)
    response.set_cookie(
        cookie_name, state, max_age=STATE_MAX_AGE, httponly=True, samesite="lax"
    )
    return response


def _verify_state(request: Request, cookie_name: str, state: Optional[str]) -> None:
    expected = request.cookies.get(cookie_name)
    if not state or not expected or not secrets.compare_digest(state, expected):
        logger.warning(f"⚠️ OAuth state mismatch on {cookie_name}")
        raise HTTPException(status_code=400, detail="Invalid OAuth state")


def _split_scopes(scope: str) -> list:
    return [s for s in re.split(r"[,\s]+", scope or "") if s]


# ── Google Ads ──


@router.get("/google-ads")
async def google_ads_login():
    """Redirect to Google's consent screen (offline access for a refresh token)."""
    if not settings.google_ads_configured:
        raise HTTPException(status_code=503, detail="Google Ads API is not configured")
    return _redirect_with_state(google_ads.build_authorization_url, GOOGLE_STATE_COOKIE)


@router.get("/google-ads/callback")
async def google_ads_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    session: Session = Depends(get_session),
):
    if error:
        raise HTTPException(status_code=400, detail=f"Google authorization failed: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    _verify_state(request, GOOGLE_STATE_COOKIE, state)

    try:
        body = await google_ads.exchange_code(code)
    except google_ads.GoogleAdsAPIError as e:
        raise to_http_exception(e, "Google Ads token exchange")

    outcome = token_store.save_token(
        session,
        token_store.GOOGLE_ADS,
        body["access_token"],
        refresh_token=body.get("refresh_token"),
        expires_in=body.get("expires_in"),
        scopes=_split_scopes(body.get("scope", "")),
    )
    logger.info(f"✅ Google Ads connected ({outcome})")
    response = RedirectResponse("/auth/google-ads/status", status_code=303)
    response.delete_cookie(GOOGLE_STATE_COOKIE)
    return response


@router.get("/google-ads/status")
async def google_ads_status(session: Session = Depends(get_session)):
    return {
        "status": "success",
        "configured": settings.google_ads_configured,
        **token_store.get_token_status(session),
    }


@router.delete("/google-ads")
async def google_ads_disconnect(session: Session = Depends(get_session)):
    deleted = token_store.clear_tokens(session, token_store.GOOGLE_ADS)
    return {"status": "success", "deleted": deleted}


# ── LinkedIn ──


@router.get("/linkedin")
async def linkedin_login():
    if not settings.linkedin_configured:
        raise HTTPException(status_code=503, detail="LinkedIn API is not configured")
    return _redirect_with_state(linkedin.build_authorization_url, LINKEDIN_STATE_COOKIE)


@router.get("/linkedin/callback")
async def linkedin_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    session: Session = Depends(get_session),
):
    if error:
        raise HTTPException(
            status_code=400, detail=f"LinkedIn authorization failed: {error_description or error}"
        )
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    _verify_state(request, LINKEDIN_STATE_COOKIE, state)

    client = None
    try:
        body = await linkedin.exchange_code(code)
        client = linkedin.LinkedInClient(body["access_token"])
        user = await client.get_user_info()
    except linkedin.LinkedInAPIError as e:
        raise to_http_exception(e, "LinkedIn token exchange")
    finally:
        if client:
            await client.close()

    token_store.save_token(
        session,
        token_store.LINKEDIN,
        body["access_token"],
        refresh_token=body.get("refresh_token"),
        expires_in=body.get("expires_in"),
        refresh_expires_in=body.get("refresh_token_expires_in"),
        scopes=_split_scopes(body.get("scope", "")),
        user_id=user["id"],
        user_name=user["name"],
        user_email=user["email"],
    )
    logger.info(f"✅ LinkedIn connected as {user['name']}")
    response = RedirectResponse("/auth/linkedin/status", status_code=303)
    response.delete_cookie(LINKEDIN_STATE_COOKIE)
    return response


@router.get("/linkedin/status")
async def linkedin_status(session: Session = Depends(get_session)):
    return {
        "status": "success",
        "configured": settings.linkedin_configured,
        **token_store.get_linkedin_status(session),
    }


@router.delete("/linkedin")
async def linkedin_disconnect(session: Session = Depends(get_session)):
    deleted = token_store.clear_tokens(session, token_store.LINKEDIN)
    return {"status": "success", "deleted": deleted}
