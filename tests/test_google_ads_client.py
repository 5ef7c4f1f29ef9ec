"""Tests for the Google Ads client's OAuth calls and request pacing."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest

from kwpilot.config import settings
from kwpilot.connectors.google_ads import client as google_ads
from kwpilot.connectors.google_ads.client import GoogleAdsAPIError, GoogleAdsClient
from kwpilot.core.errors import ApiErrorType, classify_error


def _offline(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network down", request=request)


def offline_client(session=None) -> GoogleAdsClient:
    client = GoogleAdsClient(session)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(_offline))
    return client


class TestTokenRefresh:
    async def test_network_failure_is_wrapped(self, session, monkeypatch):
        monkeypatch.setattr(settings, "google_ads_refresh_token", "rt")
        client = offline_client(session)
        with pytest.raises(GoogleAdsAPIError, match="Connection failed during token refresh") as exc:
            await client.get_access_token()
        assert classify_error(exc.value, "google_ads").type == ApiErrorType.NETWORK

    async def test_refreshed_token_is_stored(self, session, monkeypatch):
        monkeypatch.setattr(settings, "google_ads_refresh_token", "rt")
        client = GoogleAdsClient(session)
        client._client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"access_token": "at", "expires_in": 3600})
            )
        )
        assert await client.get_access_token() == "at"
        assert await GoogleAdsClient(session).get_access_token() == "at"


class TestExchangeCode:
    async def test_network_failure_is_wrapped(self, monkeypatch):
        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(_offline), **kwargs),
        )
        with pytest.raises(GoogleAdsAPIError, match="Connection failed during code exchange") as exc:
            await google_ads.exchange_code("code")
        assert classify_error(exc.value).is_retryable


class TestPacing:
    async def test_concurrent_calls_are_spaced(self, monkeypatch):
        real_sleep = asyncio.sleep
        clock = [100.0]
        waits = []
        finished = []

        async def fake_sleep(delay):
            waits.append(delay)
            wake_at = clock[0] + delay
            await real_sleep(0)
            clock[0] = max(clock[0], wake_at)

        monkeypatch.setattr(google_ads, "time", SimpleNamespace(monotonic=lambda: clock[0]))
        monkeypatch.setattr(google_ads, "asyncio", SimpleNamespace(sleep=fake_sleep))
        monkeypatch.setattr(google_ads, "_last_call_at", 0.0)
        monkeypatch.setattr(google_ads, "_pace_lock", asyncio.Lock())

        async def call():
            await GoogleAdsClient()._pace()
            finished.append(clock[0])

        await asyncio.gather(call(), call(), call())

        assert waits == pytest.approx([google_ads.RATE_LIMIT_DELAY] * 2)
        gaps = [b - a for a, b in zip(finished, finished[1:])]
        assert all(gap >= google_ads.RATE_LIMIT_DELAY - 1e-9 for gap in gaps)
