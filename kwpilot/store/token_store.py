"""KWPilot: OAuth Token Store.

Runtime tokens for Google Ads and LinkedIn. Google Ads can fall back to a
refresh token from the environment; LinkedIn tokens only come from the
OAuth callback.
"""

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from sqlmodel import Session, select

from kwpilot.config import settings
from kwpilot.core.clock import utcnow
from kwpilot.core.logging import get_logger
from kwpilot.models.token_models import OAuthToken

logger = get_logger("store.tokens")

GOOGLE_ADS = "google_ads"
LINKEDIN = "linkedin"

EXPIRY_BUFFER = timedelta(minutes=5)
LINKEDIN_DEFAULT_EXPIRES_IN = 5184000  # 60 days


class TokenValidity(str, Enum):
    NO_TOKEN = "no_token"
    NEEDS_REFRESH = "needs_refresh"
    EXPIRED = "expired"
    VALID = "valid"


def _expiry(seconds: Optional[int]) -> Optional[datetime]:
    if seconds is None:
        return None
    return utcnow() + timedelta(seconds=int(seconds))


def get_token(
    session: Session, provider: str, token_id: str = "primary"
) -> Optional[OAuthToken]:
    return session.exec(
        select(OAuthToken).where(
            OAuthToken.provider == provider, OAuthToken.token_id == token_id
        )
    ).first()


def save_token(
    session: Session,
    provider: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_in: Optional[int] = None,
    refresh_expires_in: Optional[int] = None,
    scopes: Optional[List[str]] = None,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None,
    user_email: Optional[str] = None,
    token_id: str = "primary",
) -> str:
    """Upsert a token. Returns 'created' or 'updated'."""
    if provider == LINKEDIN and expires_in is None:
        expires_in = LINKEDIN_DEFAULT_EXPIRES_IN

    existing = get_token(session, provider, token_id)
    now = utcnow()
    if existing:
        existing.access_token = access_token
        # Google only returns a refresh token on first consent
        if refresh_token:
            existing.refresh_token = refresh_token
        existing.access_token_expires_at = _expiry(expires_in)
        if refresh_expires_in is not None:
            existing.refresh_token_expires_at = _expiry(refresh_expires_in)
        if scopes is not None:
            existing.scopes_json = json.dumps(scopes)
        existing.user_id = user_id or existing.user_id
        existing.user_name = user_name or existing.user_name
        existing.user_email = user_email or existing.user_email
        existing.updated_at = now
        session.add(existing)
        session.commit()
        logger.info(f"🔑 Updated {provider} token ({token_id})")
        return "updated"

    session.add(
        OAuthToken(
            provider=provider,
            token_id=token_id,
            access_token=access_token,
            refresh_token=refresh_token,
            access_token_expires_at=_expiry(expires_in),
            refresh_token_expires_at=_expiry(refresh_expires_in),
            scopes_json=json.dumps(scopes or []),
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            created_at=now,
            updated_at=now,
        )
    )
    session.commit()
    logger.info(f"🔑 Stored new {provider} token ({token_id})")
    return "created"


def update_access_token(
    session: Session,
    provider: str,
    access_token: str,
    expires_in: int,
    token_id: str = "primary",
) -> None:
    """Store a freshly minted access token, creating the row if needed."""
    existing = get_token(session, provider, token_id)
    if existing is None:
        save_token(session, provider, access_token, expires_in=expires_in, token_id=token_id)
        return
    existing.access_token = access_token
    existing.access_token_expires_at = _expiry(expires_in)
    existing.updated_at = utcnow()
    session.add(existing)
    session.commit()


def update_token_after_refresh(
    session: Session,
    provider: str,
    access_token: str,
    expires_in: Optional[int],
    refresh_token: Optional[str] = None,
    refresh_expires_in: Optional[int] = None,
    token_id: str = "primary",
) -> None:
    existing = get_token(session, provider, token_id)
    if existing is None:
        raise LookupError(f"No {provider} token to refresh")
    existing.access_token = access_token
    existing.access_token_expires_at = _expiry(expires_in)
    if refresh_token:
        existing.refresh_token = refresh_token
    if refresh_expires_in is not None:
        existing.refresh_token_expires_at = _expiry(refresh_expires_in)
    existing.updated_at = utcnow()
    session.add(existing)
    session.commit()
    logger.info(f"🔄 Refreshed {provider} access token")


def mark_token_verified(session: Session, provider: str, token_id: str = "primary") -> None:
    existing = get_token(session, provider, token_id)
    if existing:
        existing.last_verified_at = utcnow()
        session.add(existing)
        session.commit()


def delete_token(session: Session, provider: str, token_id: str = "primary") -> bool:
    existing = get_token(session, provider, token_id)
    if not existing:
        return False
    session.delete(existing)
    session.commit()
    logger.info(f"🗑️ Deleted {provider} token ({token_id})")
    return True


def clear_tokens(session: Session, provider: str) -> int:
    rows = session.exec(select(OAuthToken).where(OAuthToken.provider == provider)).all()
    for row in rows:
        session.delete(row)
    session.commit()
    return len(rows)


# ── Google Ads ──


def get_refresh_token(session: Session) -> str:
    """Runtime refresh token first, then GOOGLE_ADS_REFRESH_TOKEN."""
    token = get_token(session, GOOGLE_ADS)
    if token and token.refresh_token:
        return token.refresh_token
    if settings.google_ads_refresh_token:
        return settings.google_ads_refresh_token
    raise LookupError(
        "No Google Ads refresh token. Connect via /auth/google-ads or set GOOGLE_ADS_REFRESH_TOKEN."
    )


def get_cached_access_token(session: Session) -> Optional[str]:
    """Stored access token, if it is good for at least five more minutes."""
    token = get_token(session, GOOGLE_ADS)
    if not token or not token.access_token or not token.access_token_expires_at:
        return None
    if token.access_token_expires_at > utcnow() + EXPIRY_BUFFER:
        return token.access_token
    return None


def get_token_status(session: Session) -> dict:
    token = get_token(session, GOOGLE_ADS)
    if token and token.refresh_token:
        source = "runtime"
    elif settings.google_ads_refresh_token:
        source = "env"
    else:
        source = "none"
    return {
        "has_token": source != "none",
        "source": source,
        "access_token_expires_at": (
            token.access_token_expires_at.isoformat()
            if token and token.access_token_expires_at
            else None
        ),
        "last_verified_at": (
            token.last_verified_at.isoformat()
            if token and token.last_verified_at
            else None
        ),
        "user_email": token.user_email if token else None,
    }


# ── LinkedIn ──


def is_token_valid(session: Session, token_id: str = "primary") -> TokenValidity:
    token = get_token(session, LINKEDIN, token_id)
    if not token or not token.access_token:
        return TokenValidity.NO_TOKEN

    now = utcnow()
    access_ok = (
        token.access_token_expires_at is None
        or token.access_token_expires_at > now + EXPIRY_BUFFER
    )
    if access_ok:
        return TokenValidity.VALID

    can_refresh = bool(token.refresh_token) and (
        token.refresh_token_expires_at is None
        or token.refresh_token_expires_at > now + EXPIRY_BUFFER
    )
    if can_refresh:
        return TokenValidity.NEEDS_REFRESH
    return TokenValidity.EXPIRED


def get_linkedin_status(session: Session) -> dict:
    token = get_token(session, LINKEDIN)
    validity = is_token_valid(session)
    return {
        "connected": validity in (TokenValidity.VALID, TokenValidity.NEEDS_REFRESH),
        "validity": validity.value,
        "user_name": token.user_name if token else None,
        "user_email": token.user_email if token else None,
        "scopes": json.loads(token.scopes_json) if token else [],
        "expires_at": (
            token.access_token_expires_at.isoformat()
            if token and token.access_token_expires_at
            else None
        ),
    }
