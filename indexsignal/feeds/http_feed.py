"""Async HTTP candle feed.

Fetches ``GET {base_url}/candles?index=<KEY>&interval=<N>`` and parses the
JSON body with :func:`parse_candles`.  Transient failures are retried with
exponential backoff; a 404 or an empty body means "no data".
"""

import asyncio
import logging
from typing import Optional

import httpx

from indexsignal.feeds.base import FeedError, parse_candles
from indexsignal.strategy.models import CandleSeries

logger = logging.getLogger("indexsignal.feeds")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


class HttpCandleFeed:
    """Candle feed backed by a JSON HTTP endpoint.

    Args:
        base_url: Feed root, e.g. ``"https://feed.example.com/api"``.
        token: Optional bearer token.
        timeout: Per-request timeout in seconds.
        retry_base_delay: First backoff delay; doubles on each retry.
        transport: Optional ``httpx`` transport (tests pass a ``MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        retry_base_delay: float = _RETRY_BASE_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_base_delay = retry_base_delay
        self._transport = transport
        self._headers = {"Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _get_with_retry(self, url: str, params: dict) -> httpx.Response:
        """GET with exponential-backoff retry on 429/502/503/504 and transport errors.

        Other 4xx/5xx responses are returned to the caller untouched.
        Raises ``FeedError`` once retries are exhausted.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            delay = self._retry_base_delay * (2 ** attempt)
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    resp = await client.get(
                        url,
                        params=params,
                        headers=self._headers,
                        timeout=self._timeout,
                    )
            except httpx.TransportError as exc:
                logger.warning(
                    "Feed GET %s transport error (%s) — retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)
                continue

            if resp.status_code in _RETRYABLE_STATUS_CODES:
                logger.warning(
                    "Feed GET %s returned %d — retry %d/%d in %.1fs",
                    url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = httpx.HTTPStatusError(
                    f"Server error '{resp.status_code}'",
                    request=resp.request,
                    response=resp,
                )
                await asyncio.sleep(delay)
                continue

            return resp

        raise FeedError(f"Candle fetch failed after {_MAX_RETRIES} attempts: {last_exc}")

    # ── Candle data ──────────────────────────────────────────────────────

    async def fetch_candles(
        self, index_key: str, interval: str
    ) -> Optional[CandleSeries]:
        """Fetch candles for *index_key* at *interval* minutes, oldest-first."""
        url = f"{self._base_url}/candles"
        resp = await self._get_with_retry(
            url, params={"index": index_key, "interval": interval}
        )

        if resp.status_code == 404:
            logger.info("No candles for %s@%s (404)", index_key, interval)
            return None
        if resp.status_code >= 400:
            raise FeedError(
                f"Candle fetch for {index_key}@{interval} failed with HTTP {resp.status_code}"
            )
        if not resp.content.strip():
            return None

        try:
            payload = resp.json()
            return parse_candles(payload, index_key=index_key, interval=interval)
        except (ValueError, KeyError, TypeError) as exc:
            raise FeedError(f"Malformed candle payload for {index_key}@{interval}: {exc}") from exc
