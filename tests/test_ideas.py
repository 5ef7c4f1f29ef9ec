"""Tests for keyword idea fetching, caching and source fallback."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from helpers import make_idea
from kwpilot.config import settings
from kwpilot.connectors.google_ads.client import GoogleAdsAPIError, GoogleAdsClient
from kwpilot.connectors.keywords_everywhere.client import KeywordsEverywhereError
from kwpilot.core.errors import ApiErrorType, KeywordSourceError
from kwpilot.models.queue_models import QueueStatus
from kwpilot.research import ideas
from kwpilot.research.ideas import (
    IdeasRequest,
    IdeasResult,
    build_cache_keys,
    fetch_keyword_ideas,
    hash_for_cache,
    mark_in_account,
    process_queued_fetch,
    union_keywords,
)
from kwpilot.store import cache_store, knowledge_base, queue_store


def _google(seed_ideas=("aws course", "aws training"), url_ideas=("aws certification",), error=None):
    client = MagicMock()

    async def _generate(customer_id, seeds=None, url=None, geo_target="india"):
        if error is not None:
            raise error
        return [make_idea(k) for k in (url_ideas if url else seed_ideas)]

    client.generate_keyword_ideas = AsyncMock(side_effect=_generate)
    client.get_account_keywords = AsyncMock(return_value={"aws training"})
    return client


def _ke(keywords=("aws exam",), error=None):
    client = MagicMock()
    if error is not None:
        client.get_related_keywords = AsyncMock(side_effect=error)
    else:
        client.get_related_keywords = AsyncMock(side_effect=lambda *a, **k: [make_idea(w) for w in keywords])
    return client


@pytest.fixture()
def google_ready(monkeypatch):
    monkeypatch.setattr(ideas, "google_ads_available", lambda session: True)


@pytest.fixture()
def google_missing(monkeypatch):
    monkeypatch.setattr(ideas, "google_ads_available", lambda session: False)


class TestCacheKeys:
    def test_seed_order_and_case_do_not_matter(self):
        a = build_cache_keys(IdeasRequest(seed_keywords=["AWS Course", "gcp"]))
        b = build_cache_keys(IdeasRequest(seed_keywords=["gcp", "aws course"]))
        assert a == b

    def test_auto_and_google_share_keys(self):
        auto = build_cache_keys(IdeasRequest(seed_keywords=["x"], source="auto"))
        google = build_cache_keys(IdeasRequest(seed_keywords=["x"], source="google"))
        ke = build_cache_keys(IdeasRequest(seed_keywords=["x"], source="keywords_everywhere"))
        assert auto == google
        assert auto["combined"] != ke["combined"]

    def test_optional_keys(self):
        keys = build_cache_keys(IdeasRequest(seed_keywords=["x"]))
        assert keys["url"] is None and keys["course"] is None
        assert keys["combined"] == "combined_x__india_google_ads"

    def test_hash(self):
        assert hash_for_cache("https://Example.com/AZ-104") == "httpsexamplecomaz104"
        assert len(hash_for_cache("a" * 80)) == 50

    def test_union_keeps_first(self):
        merged = union_keywords([make_idea("A", 1)], [make_idea("a", 2), make_idea("b")])
        assert [(k.keyword, k.avg_monthly_searches) for k in merged] == [("A", 1), ("b", 1000)]


class TestFetchGoogle:
    async def test_fresh_fetch_then_combined_cache_hit(self, session, google_ready):
        client = _google()
        request = IdeasRequest(seed_keywords=["aws"], page_url="https://example.com/aws")
        result = await fetch_keyword_ideas(session, request, google_client=client)

        assert result.source == "google_ads"
        assert [k.keyword for k in result.keywords] == ["aws course", "aws training", "aws certification"]
        assert [k.keyword for k in result.keywords if k.in_account] == ["aws training"]
        assert client.generate_keyword_ideas.await_count == 2

        again = await fetch_keyword_ideas(session, request, google_client=client)
        assert again.from_cache and again.cache_type == "combined"
        assert again.total_count == 3
        assert client.generate_keyword_ideas.await_count == 2

    async def test_seed_and_url_caches_reconstruct_combined(self, session, google_ready):
        request = IdeasRequest(seed_keywords=["aws"], page_url="https://example.com/aws")
        await fetch_keyword_ideas(session, request, google_client=_google())
        keys = build_cache_keys(request)
        cache_store.set_cached_keywords(session, keys["combined"], [], "google_ads", "india", ttl_hours=0)

        result = await fetch_keyword_ideas(session, request, google_client=_google())
        assert result.cache_type == "reconstructed"
        assert result.total_count == 3

    async def test_skip_cache_refetches(self, session, google_ready):
        client = _google()
        request = IdeasRequest(seed_keywords=["aws"])
        await fetch_keyword_ideas(session, request, google_client=client)
        await fetch_keyword_ideas(session, request.model_copy(update={"skip_cache": True}), google_client=client)
        assert client.generate_keyword_ideas.await_count == 2

    async def test_auth_error_never_falls_back(self, session, google_ready):
        ke = _ke()
        client = _google(error=GoogleAdsAPIError("invalid_grant", 401))
        with pytest.raises(KeywordSourceError) as exc:
            await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]), google_client=client, ke_client=ke)
        assert exc.value.error.type == ApiErrorType.AUTH
        assert exc.value.queue_id is None
        ke.get_related_keywords.assert_not_called()

    async def test_quota_on_google_only_marks_cooldown_and_queues(self, session, google_ready):
        client = _google(error=GoogleAdsAPIError("Resource has been exhausted", 429, "RESOURCE_EXHAUSTED"))
        request = IdeasRequest(seed_keywords=["aws"], source="google")
        with pytest.raises(KeywordSourceError) as exc:
            await fetch_keyword_ideas(session, request, google_client=client)
        assert exc.value.error.type == ApiErrorType.QUOTA_EXHAUSTED
        assert exc.value.error.http_status == 429
        assert exc.value.queue_id is not None
        assert cache_store.is_quota_exhausted(session, "google_ads:3515012934")

        # While cooling down, auto mode goes straight to the fallback
        result = await fetch_keyword_ideas(
            session, IdeasRequest(seed_keywords=["aws"]), google_client=client, ke_client=_ke()
        )
        assert result.fallback_used
        assert result.error_type == "QUOTA_EXHAUSTED"
        assert client.generate_keyword_ideas.await_count == 1


class TestFallback:
    async def test_unconfigured_google_falls_back(self, session, google_missing):
        result = await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]), ke_client=_ke())
        assert result.source == "keywords_everywhere"
        assert result.fallback_used
        assert [k.keyword for k in result.keywords] == ["aws exam"]

    async def test_both_sources_fail(self, session, google_ready):
        client = _google(error=GoogleAdsAPIError("Internal error", 500))
        ke = _ke(error=KeywordsEverywhereError("Insufficient credits", 402))
        with pytest.raises(KeywordSourceError) as exc:
            await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]), google_client=client, ke_client=ke)
        error = exc.value.error
        assert error.source == "none"
        assert "Google Ads: Internal error" in error.message
        assert "Keywords Everywhere: Insufficient credits" in error.message
        assert error.is_retryable
        assert exc.value.queue_id is not None

    async def test_unreachable_token_endpoint_falls_back(self, session, google_ready, no_sleep, monkeypatch):
        monkeypatch.setattr(settings, "google_ads_refresh_token", "rt")

        def offline(request):
            raise httpx.ConnectError("network down", request=request)

        client = GoogleAdsClient(session)
        client._client = httpx.AsyncClient(transport=httpx.MockTransport(offline))
        result = await fetch_keyword_ideas(
            session, IdeasRequest(seed_keywords=["aws"]), google_client=client, ke_client=_ke()
        )
        assert result.fallback_used
        assert result.source == "keywords_everywhere"
        assert result.error_type == "NETWORK"

    async def test_keywords_everywhere_only(self, session):
        result = await fetch_keyword_ideas(
            session, IdeasRequest(seed_keywords=["aws"], source="keywords_everywhere"), ke_client=_ke()
        )
        assert result.source == "keywords_everywhere"
        assert not result.fallback_used


class TestClientLifecycle:
    async def test_created_google_client_is_closed(self, session, google_ready, monkeypatch):
        client = _google()
        client.close = AsyncMock()
        monkeypatch.setattr(ideas, "GoogleAdsClient", lambda session: client)
        await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]))
        client.close.assert_awaited_once()

    async def test_created_clients_closed_on_failure(self, session, google_ready, monkeypatch):
        google = _google(error=GoogleAdsAPIError("Internal error", 500))
        google.close = AsyncMock()
        ke = _ke(error=KeywordsEverywhereError("Insufficient credits", 402))
        ke.close = AsyncMock()
        monkeypatch.setattr(ideas, "GoogleAdsClient", lambda session: google)
        monkeypatch.setattr(ideas, "KeywordsEverywhereClient", lambda: ke)
        with pytest.raises(KeywordSourceError):
            await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]))
        google.close.assert_awaited_once()
        ke.close.assert_awaited_once()

    async def test_caller_client_left_open(self, session, google_ready):
        client = _google()
        client.close = AsyncMock()
        await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["aws"]), google_client=client)
        client.close.assert_not_called()


class TestValidation:
    async def test_blank_seeds(self, session):
        with pytest.raises(ValueError, match="seed_keywords"):
            await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=[" ", ""]))

    async def test_unknown_source(self, session):
        with pytest.raises(ValueError, match="Invalid source"):
            await fetch_keyword_ideas(session, IdeasRequest(seed_keywords=["x"], source="bing"))


class TestMarkInAccount:
    async def test_knowledge_base_preferred(self, session):
        account, _ = knowledge_base.upsert_account(session, "3515012934", "Flexi")
        campaign, _ = knowledge_base.upsert_campaign(session, account.id, "C")
        ad_group, _ = knowledge_base.upsert_ad_group(session, campaign.id, "G")
        knowledge_base.upsert_keyword(session, ad_group.id, "AWS Course", "PHRASE")
        session.commit()

        client = _google()
        batch = [make_idea("aws course"), make_idea("gcp course")]
        assert await mark_in_account(session, batch, "flexi", client) == 1
        assert batch[0].in_account_names == ["Flexi"]
        client.get_account_keywords.assert_not_called()

    async def test_account_cache_filled_from_client(self, session):
        client = _google()
        batch = [make_idea("aws training")]
        await mark_in_account(session, batch, "flexi", client)
        assert batch[0].in_account_names == ["Flexi"]
        assert cache_store.get_account_keywords(session, "3515012934") == ["aws training"]


class TestProcessQueuedFetch:
    async def test_empty_queue(self, session):
        assert await process_queued_fetch(session) is None

    async def test_success_completes_item(self, session):
        item = queue_store.enqueue(session, "fetch_ideas", IdeasRequest(seed_keywords=["aws"]).model_dump(mode="json"))
        result = IdeasResult(keywords=[make_idea("aws")], source="google_ads", cache_key="k")
        with patch("kwpilot.research.ideas.fetch_keyword_ideas", AsyncMock(return_value=result)) as fetch:
            assert await process_queued_fetch(session) == (item.id, "completed")
        assert fetch.call_args.kwargs["enqueue_on_failure"] is False

    async def test_failure_reschedules(self, session):
        item = queue_store.enqueue(session, "fetch_ideas", IdeasRequest(seed_keywords=["aws"]).model_dump(mode="json"))
        with patch("kwpilot.research.ideas.fetch_keyword_ideas", AsyncMock(side_effect=ValueError("bad"))):
            assert await process_queued_fetch(session) == (item.id, QueueStatus.PENDING.value)
