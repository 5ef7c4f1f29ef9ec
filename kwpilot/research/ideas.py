"""KWPilot: Keyword Idea Fetch with Caching.

Looks up the keyword cache (combined → seeds+url union → seeds), fetches only
what is missing from Google Ads, and falls back to Keywords Everywhere in
auto mode. Fresh results are marked "in account" and cached under every
applicable key.
"""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlmodel import Session

from kwpilot.config import settings
from kwpilot.connectors.google_ads.client import (
    ALL_ACCOUNTS,
    GoogleAdsAPIError,
    GoogleAdsClient,
    get_account_name,
    resolve_account_ids,
)
from kwpilot.connectors.keywords_everywhere.client import (
    KeywordsEverywhereClient,
    KeywordsEverywhereError,
)
from kwpilot.core.errors import (
    QUOTA_RETRY_AFTER,
    ApiErrorType,
    KeywordSourceError,
    SourceError,
    classify_error,
)
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import KeywordIdea
from kwpilot.store import cache_store, knowledge_base, queue_store, token_store

logger = get_logger("research.ideas")

GOOGLE_ADS = "google_ads"
KEYWORDS_EVERYWHERE = "keywords_everywhere"
SOURCES = ("auto", "google", KEYWORDS_EVERYWHERE)
QUEUE_REQUEST_TYPE = "fetch_ideas"
QUOTA_MINUTES = 5


class IdeasRequest(BaseModel):
    seed_keywords: List[str]
    page_url: Optional[str] = None
    course_name: Optional[str] = None
    geo_target: str = "india"
    source: str = "auto"
    skip_cache: bool = False
    account_id: str = ALL_ACCOUNTS


class IdeasResult(BaseModel):
    keywords: List[KeywordIdea] = Field(default_factory=list)
    source: str
    from_cache: bool = False
    cache_key: Optional[str] = None
    cache_type: Optional[str] = None
    fallback_used: bool = False
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    account_name: Optional[str] = None

    @property
    def total_count(self) -> int:
        return len(self.keywords)


# ── Cache keys ──


def normalize_source(source: str) -> str:
    return GOOGLE_ADS if source in ("auto", "google") else source


def hash_for_cache(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())[:50]


def build_cache_keys(request: IdeasRequest) -> Dict[str, Optional[str]]:
    src = normalize_source(request.source)
    geo = request.geo_target
    seeds = sorted(s.strip().lower() for s in request.seed_keywords if s.strip())
    seeds_hash = hash_for_cache(",".join(seeds))
    url_hash = hash_for_cache(request.page_url or "")
    course_hash = hash_for_cache(request.course_name or "")
    return {
        "combined": f"combined_{seeds_hash}_{url_hash}_{geo}_{src}",
        "seeds": f"seeds_{seeds_hash}_{geo}_{src}" if seeds_hash else None,
        "url": f"url_{url_hash}_{geo}_{src}" if url_hash else None,
        "course": f"course_{course_hash}_{geo}_{src}" if course_hash else None,
    }


def union_keywords(*groups: List[KeywordIdea]) -> List[KeywordIdea]:
    seen = set()
    merged = []
    for group in groups:
        for idea in group:
            key = idea.keyword.strip().lower()
            if key not in seen:
                seen.add(key)
                merged.append(idea)
    return merged


def _load(session: Session, key: Optional[str]) -> Optional[List[KeywordIdea]]:
    if not key:
        return None
    entry = cache_store.get_cached_keywords(session, key)
    if entry is None or not entry.keywords_count:
        return None
    return [KeywordIdea(**k) for k in cache_store.cached_keyword_list(entry)]


def _save(
    session: Session,
    key: Optional[str],
    ideas: List[KeywordIdea],
    request: IdeasRequest,
    source: str,
) -> None:
    if not key or not ideas:
        return
    cache_store.set_cached_keywords(
        session,
        key,
        [i.model_dump(mode="json") for i in ideas],
        source=source,
        geo_target=request.geo_target,
        course_name=request.course_name or "",
        course_url=request.page_url or "",
        seeds=request.seed_keywords,
    )


# ── In-account marking ──


async def mark_in_account(
    session: Session,
    ideas: List[KeywordIdea],
    account_id: str,
    client: Optional[GoogleAdsClient] = None,
) -> int:
    """Flag ideas that already exist as keywords in the selected accounts.

    The imported knowledge base is preferred; without it, the per-account
    keyword cache is used (and filled from GAQL when a client is given).
    """
    customer_ids = resolve_account_ids(account_id)
    found: Dict[str, List[str]] = {}

    if knowledge_base.get_knowledge_base_counts(session)["keywords"] > 0:
        found = knowledge_base.find_keywords_in_accounts(
            session, [i.keyword for i in ideas], customer_ids
        )
    else:
        for cid in customer_ids:
            keywords = cache_store.get_account_keywords(session, cid)
            if keywords is None and client is not None:
                try:
                    keywords = sorted(await client.get_account_keywords(cid))
                    cache_store.set_account_keywords(session, cid, keywords)
                except GoogleAdsAPIError as e:
                    logger.warning(f"Could not load account keywords for {cid}: {e}")
                    continue
            name = get_account_name(cid)
            for kw in keywords or []:
                found.setdefault(kw, []).append(name)

    marked = 0
    for idea in ideas:
        names = found.get(idea.keyword.strip().lower())
        if names:
            idea.in_account = True
            idea.in_account_names = names
            marked += 1
    logger.info(f"🏷️ {marked}/{len(ideas)} keywords already in account")
    return marked


# ── Sources ──


def google_ads_available(session: Session) -> bool:
    return settings.google_ads_configured and token_store.get_token_status(session)["has_token"]


async def _fetch_google(
    session: Session,
    request: IdeasRequest,
    keys: Dict[str, Optional[str]],
    cached_seeds: Optional[List[KeywordIdea]],
    cached_url: Optional[List[KeywordIdea]],
    client: Optional[GoogleAdsClient],
) -> List[KeywordIdea]:
    if not google_ads_available(session):
        raise GoogleAdsAPIError("Google Ads API credentials not configured", 503, "NOT_CONFIGURED")

    owned = client is None
    client = client or GoogleAdsClient(session)
    customer_id = resolve_account_ids(request.account_id)[0]

    try:
        by_seeds = cached_seeds
        if by_seeds is None:
            by_seeds = await client.generate_keyword_ideas(
                customer_id, seeds=request.seed_keywords, geo_target=request.geo_target
            )
            await mark_in_account(session, by_seeds, request.account_id, client)
            _save(session, keys["seeds"], by_seeds, request, GOOGLE_ADS)
        else:
            logger.info(f"💾 Reusing {len(by_seeds)} cached seed ideas")

        by_url: List[KeywordIdea] = []
        if request.page_url:
            if cached_url is not None:
                by_url = cached_url
                logger.info(f"💾 Reusing {len(by_url)} cached URL ideas")
            else:
                by_url = await client.generate_keyword_ideas(
                    customer_id, url=request.page_url, geo_target=request.geo_target
                )
                await mark_in_account(session, by_url, request.account_id, client)
                _save(session, keys["url"], by_url, request, GOOGLE_ADS)
    finally:
        if owned:
            await client.close()

    return union_keywords(by_seeds, by_url)


async def _fetch_keywords_everywhere(
    session: Session, request: IdeasRequest, client: Optional[KeywordsEverywhereClient]
) -> List[KeywordIdea]:
    owned = client is None
    client = client or KeywordsEverywhereClient()
    try:
        ideas = await client.get_related_keywords(request.seed_keywords, request.geo_target, session)
    finally:
        if owned:
            await client.close()
    await mark_in_account(session, ideas, request.account_id)
    return ideas


def _quota_key(request: IdeasRequest) -> str:
    return f"google_ads:{resolve_account_ids(request.account_id)[0]}"


# ── Entry point ──


async def fetch_keyword_ideas(
    session: Session,
    request: IdeasRequest,
    google_client: Optional[GoogleAdsClient] = None,
    ke_client: Optional[KeywordsEverywhereClient] = None,
    enqueue_on_failure: bool = True,
) -> IdeasResult:
    seeds = [s.strip() for s in request.seed_keywords if s and s.strip()]
    if not seeds:
        raise ValueError("Missing required field: seed_keywords")
    if request.source not in SOURCES:
        raise ValueError(f"Invalid source: {request.source}. Must be one of {', '.join(SOURCES)}")
    request = request.model_copy(update={"seed_keywords": seeds})

    keys = build_cache_keys(request)
    account_name = (
        "All Accounts"
        if request.account_id == ALL_ACCOUNTS
        else get_account_name(resolve_account_ids(request.account_id)[0])
    )

    def from_cache(ideas: List[KeywordIdea], key: str, cache_type: str) -> IdeasResult:
        logger.info(f"💾 Cache hit ({cache_type}): {len(ideas)} keywords")
        return IdeasResult(
            keywords=ideas,
            source="cache",
            from_cache=True,
            cache_key=key,
            cache_type=cache_type,
            account_name=account_name,
        )

    # ── Cache lookup ──
    cached_seeds: Optional[List[KeywordIdea]] = None
    cached_url: Optional[List[KeywordIdea]] = None
    if not request.skip_cache:
        combined = _load(session, keys["combined"])
        if combined:
            return from_cache(combined, keys["combined"], "combined")

        cached_seeds = _load(session, keys["seeds"])
        cached_url = _load(session, keys["url"])
        if cached_seeds and cached_url:
            union = union_keywords(cached_seeds, cached_url)
            _save(session, keys["combined"], union, request, normalize_source(request.source))
            return from_cache(union, keys["combined"], "reconstructed")
        if cached_seeds and not request.page_url:
            return from_cache(cached_seeds, keys["seeds"], "seeds")

    def save_combined(ideas: List[KeywordIdea], source: str) -> None:
        _save(session, keys["combined"], ideas, request, source)
        _save(session, keys["course"], ideas, request, source)

    # ── Keywords Everywhere only ──
    if request.source == KEYWORDS_EVERYWHERE:
        try:
            ideas = await _fetch_keywords_everywhere(session, request, ke_client)
        except (KeywordsEverywhereError, ValueError) as e:
            raise _give_up(session, request, classify_error(e, KEYWORDS_EVERYWHERE), enqueue_on_failure) from e
        save_combined(ideas, KEYWORDS_EVERYWHERE)
        return IdeasResult(
            keywords=ideas, source=KEYWORDS_EVERYWHERE, cache_key=keys["combined"], account_name=account_name
        )

    # ── Google Ads first ──
    quota_key = _quota_key(request)
    if cache_store.is_quota_exhausted(session, quota_key):
        google_error = SourceError(
            ApiErrorType.QUOTA_EXHAUSTED,
            "Google Ads quota exhausted; waiting for cooldown",
            True,
            QUOTA_RETRY_AFTER,
            429,
            GOOGLE_ADS,
        )
        logger.info(f"⏭️ {quota_key} is cooling down, skipping Google Ads")
    else:
        try:
            ideas = await _fetch_google(session, request, keys, cached_seeds, cached_url, google_client)
            save_combined(ideas, GOOGLE_ADS)
            return IdeasResult(
                keywords=ideas, source=GOOGLE_ADS, cache_key=keys["combined"], account_name=account_name
            )
        except (GoogleAdsAPIError, ValueError) as e:
            google_error = classify_error(e, GOOGLE_ADS)
            logger.warning(f"Google Ads fetch failed ({google_error.type.value}): {e}")
            if google_error.type == ApiErrorType.QUOTA_EXHAUSTED:
                cache_store.mark_quota_exhausted(session, quota_key, QUOTA_MINUTES, str(e)[:200])

    if request.source == "google" or google_error.type == ApiErrorType.AUTH:
        raise _give_up(session, request, google_error, enqueue_on_failure)

    # ── Fallback ──
    logger.info(f"🔁 Falling back to Keywords Everywhere ({google_error.type.value})")
    try:
        ideas = await _fetch_keywords_everywhere(session, request, ke_client)
    except (KeywordsEverywhereError, ValueError) as e:
        ke_error = classify_error(e, KEYWORDS_EVERYWHERE)
        combined_error = SourceError(
            google_error.type,
            f"Google Ads: {google_error.message}. Keywords Everywhere: {ke_error.message}",
            google_error.is_retryable or ke_error.is_retryable,
            google_error.retry_after_seconds,
            google_error.status_code,
            "none",
        )
        raise _give_up(session, request, combined_error, enqueue_on_failure) from e

    save_combined(ideas, KEYWORDS_EVERYWHERE)
    return IdeasResult(
        keywords=ideas,
        source=KEYWORDS_EVERYWHERE,
        cache_key=keys["combined"],
        fallback_used=True,
        error_type=google_error.type.value,
        error_message=google_error.message,
        account_name=account_name,
    )


def _give_up(
    session: Session, request: IdeasRequest, error: SourceError, enqueue: bool
) -> KeywordSourceError:
    """Build the terminal error, parking retryable requests on the queue."""
    queue_id = None
    if enqueue and error.is_retryable:
        item = queue_store.enqueue(session, QUEUE_REQUEST_TYPE, request.model_dump(mode="json"))
        queue_id = item.id
    logger.error(f"❌ Keyword fetch failed ({error.type.value}): {error.message}")
    return KeywordSourceError(error, queue_id)


async def process_queued_fetch(session: Session) -> Optional[Tuple[int, str]]:
    """Run the next due fetch_ideas item. Returns (item id, final status) or None."""
    item = queue_store.process_next(session, QUEUE_REQUEST_TYPE)
    if item is None:
        return None
    request = IdeasRequest.model_validate_json(item.payload_json)
    try:
        result = await fetch_keyword_ideas(session, request, enqueue_on_failure=False)
    except (KeywordSourceError, ValueError) as e:
        failed = queue_store.fail(session, item.id, str(e))
        return item.id, failed.status
    queue_store.complete(
        session,
        item.id,
        {"total_count": result.total_count, "source": result.source, "cache_key": result.cache_key},
    )
    return item.id, "completed"
