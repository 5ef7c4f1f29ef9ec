"""KWPilot: Keywords Everywhere API Client.

Read-only volume lookups (1 credit per keyword). Seeds are expanded into
modifier variations, volumes are fetched in batches of 100, and results are
cached per keyword so repeat research only pays for new phrases.
"""

from typing import Any, Dict, List, Optional

from sqlmodel import Session

from kwpilot.config import settings
from kwpilot.connectors.http_client import AsyncAPIClient, UpstreamAPIError
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import Competition, KeywordIdea
from kwpilot.store import cache_store

logger = get_logger("keywords_everywhere.client")

KE_BASE = "https://api.keywordseverywhere.com/v1"
BATCH_SIZE = 100
VARIATION_SEED_LIMIT = 5
SOURCE = "keywords_everywhere"

COUNTRY_CODES = {
    "india": "in",
    "usa": "us",
    "uk": "uk",
    "uae": "ae",
    "singapore": "sg",
    "australia": "au",
    "canada": "ca",
    "germany": "de",
    "malaysia": "my",
    "saudi": "sa",
    "global": "us",
}

PREFIXES = ["best", "top", "learn", "free", "online", "professional", "advanced", "beginner"]
SUFFIXES = [
    "training", "certification", "course", "courses", "tutorial", "tutorials",
    "exam", "test", "classes", "bootcamp", "program", "programmes",
    "cost", "price", "fees", "duration", "syllabus", "curriculum",
    "jobs", "salary", "career", "opportunities", "requirements",
    "online", "offline", "classroom", "virtual", "live",
    "for beginners", "for professionals", "for developers",
    "certification cost", "exam preparation", "study guide", "practice test",
    "interview questions", "learning path", "roadmap",
]
EXTRAS = [
    "{seed} certification training",
    "{seed} course online",
    "{seed} training near me",
    "how to learn {seed}",
    "what is {seed}",
    "{seed} vs",
    "{seed} certification exam",
]


class KeywordsEverywhereError(UpstreamAPIError):
    """Raised when the Keywords Everywhere API returns an error."""


def country_code(geo_target: str) -> str:
    return COUNTRY_CODES.get((geo_target or "").lower(), "in")


def currency_for(country: str) -> str:
    return "INR" if country == "in" else "USD"


def competition_label(value: float) -> Competition:
    if value > 0.66:
        return Competition.HIGH
    if value > 0.33:
        return Competition.MEDIUM
    return Competition.LOW


def to_keyword_idea(raw: Dict[str, Any]) -> KeywordIdea:
    competition = float(raw.get("competition") or 0)
    cpc = float((raw.get("cpc") or {}).get("value") or 0)
    return KeywordIdea(
        keyword=raw.get("keyword", ""),
        avg_monthly_searches=int(raw.get("vol") or 0),
        competition=competition_label(competition),
        competition_index=round(competition * 100),
        low_top_of_page_bid_micros=round(cpc * 0.7 * 1_000_000),
        high_top_of_page_bid_micros=round(cpc * 1.3 * 1_000_000),
    )


def generate_keyword_variations(seeds: List[str]) -> List[str]:
    """Seed phrases plus prefix/suffix/question variations, lowercased and deduped."""
    variations: List[str] = []
    for seed in seeds[:VARIATION_SEED_LIMIT]:
        seed = seed.strip()
        if not seed:
            continue
        variations.append(seed)
        variations.extend(f"{prefix} {seed}" for prefix in PREFIXES)
        variations.extend(f"{seed} {suffix}" for suffix in SUFFIXES)
        variations.extend(extra.format(seed=seed) for extra in EXTRAS)

    seen = set()
    unique = []
    for kw in variations:
        key = kw.lower().strip()
        if key not in seen:
            seen.add(key)
            unique.append(key)
    return unique


class KeywordsEverywhereClient(AsyncAPIClient):
    """Async client for the Keywords Everywhere REST API."""

    error_cls = KeywordsEverywhereError
    service = "Keywords Everywhere"

    def __init__(self, api_key: Optional[str] = None):
        super().__init__()
        self.api_key = api_key or settings.keywords_everywhere_api_key

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise KeywordsEverywhereError("Keywords Everywhere API key not configured", 503)
        return {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}

    async def get_keyword_data(self, keywords: List[str], country: str = "in") -> List[KeywordIdea]:
        """Volume, CPC and competition for each keyword, 100 per request."""
        headers = self._headers()
        if not keywords:
            return []

        results: List[KeywordIdea] = []
        total_batches = (len(keywords) + BATCH_SIZE - 1) // BATCH_SIZE
        for i in range(0, len(keywords), BATCH_SIZE):
            batch = keywords[i : i + BATCH_SIZE]
            form = [
                ("country", country),
                ("currency", currency_for(country)),
                ("dataSource", "gkp"),
                *[("kw[]", kw) for kw in batch],
            ]
            data = await self._request(
                "POST", f"{KE_BASE}/get_keyword_data", data=form, headers=headers
            )
            rows = data.get("data", [])
            results.extend(to_keyword_idea(row) for row in rows)
            logger.info(
                f"🔎 KE batch {i // BATCH_SIZE + 1}/{total_batches}: {len(rows)} rows, "
                f"{data.get('credits', '?')} credits left"
            )
        return results

    async def get_credits(self) -> int:
        data = await self._request("GET", f"{KE_BASE}/account/credits", headers=self._headers())
        credits = data.get("credits", 0)
        if isinstance(credits, list):
            credits = credits[0] if credits else 0
        return int(credits)

    async def get_related_keywords(
        self, seeds: List[str], geo_target: str = "india", session: Optional[Session] = None
    ) -> List[KeywordIdea]:
        """Top keyword ideas by volume for the seed variations.

        With a session, cached volumes are reused and only missing keywords
        are requested (and then cached).
        """
        country = country_code(geo_target)
        variations = generate_keyword_variations(seeds)
        logger.info(f"🧩 Generated {len(variations)} variations from {min(len(seeds), VARIATION_SEED_LIMIT)} seeds")

        ideas: List[KeywordIdea] = []
        to_fetch = variations
        if session is not None:
            cached, to_fetch = cache_store.get_keyword_volumes(session, variations, country, SOURCE)
            ideas.extend(KeywordIdea(**cache_store.volume_to_idea(row)) for row in cached.values())
            logger.info(f"💾 {len(cached)} volumes cached, fetching {len(to_fetch)}")

        if to_fetch:
            fetched = await self.get_keyword_data(to_fetch, country)
            if session is not None and fetched:
                cache_store.save_keyword_volumes(
                    session, [f.model_dump(mode="json") for f in fetched], country, SOURCE
                )
            ideas.extend(fetched)

        seen = set()
        unique = []
        for idea in ideas:
            key = idea.keyword.lower()
            if key not in seen and idea.avg_monthly_searches > 0:
                seen.add(key)
                unique.append(idea)
        unique.sort(key=lambda k: k.avg_monthly_searches, reverse=True)
        return unique[: settings.max_keyword_ideas]
