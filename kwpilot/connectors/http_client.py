"""KWPilot: Shared Async HTTP Client.

Retry, backoff and error wrapping for every outbound REST integration.
"""

import asyncio
from typing import Any, Dict, Optional, Type

import httpx

from kwpilot.core.logging import get_logger

logger = get_logger("connectors.http")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


class UpstreamAPIError(Exception):
    """Raised when a third-party API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: Any = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class AsyncAPIClient:
    """Base for the REST connectors: lazy httpx client plus the retry loop."""

    error_cls: Type[UpstreamAPIError] = UpstreamAPIError
    service = "api"
    timeout = 30.0

    def __init__(self):
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _error_details(self, body: Dict[str, Any], fallback: str) -> tuple:
        """(message, error_code) from an error body. Override per API."""
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message", fallback), error.get("status") or error.get("code", 0)
        if isinstance(error, str):
            return body.get("error_description") or error, error
        return body.get("message", fallback), body.get("code", 0)

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
        headers: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.request(
                    method, url, params=params, json=json, data=data, headers=headers
                )

                # Rate limited
                if resp.status_code == 429 and attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"{self.service} rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                if not resp.content:
                    return {}
                return resp.json()

            except httpx.HTTPStatusError as e:
                body = _json_body(e.response)
                error_msg, error_code = self._error_details(body, str(e))
                if not body and e.response.text:
                    error_msg = e.response.text[:500]

                if attempt < MAX_RETRIES and e.response.status_code >= 500:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"{self.service} server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                raise self.error_cls(error_msg, e.response.status_code, error_code) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"{self.service} request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise self.error_cls(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e

        raise self.error_cls("Max retries exhausted")
