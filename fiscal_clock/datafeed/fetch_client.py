"""
Async HTTP client for the Treasury and World Bank APIs.

Handles:
1. Short time-based response cache keyed by endpoint + canonical params
2. Per-attempt timeout
3. Retry with exponential backoff, cache-busting nonce on every retry
4. Process-wide "degraded" flag when an endpoint exhausts its retries

Notes:
- Uses orjson for JSON parsing
- All I/O is non-blocking (pure asyncio + aiohttp)
- Concurrent fetches of the same cache key share one request
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, NamedTuple
from urllib.parse import urlencode

import aiohttp
import orjson

from ..config import Settings
from ..errors import ApiError, NetworkError
from .endpoints import EndpointRegistry

logger = logging.getLogger(__name__)

NONCE_PARAM = "_"

Params = Mapping[str, Any]


class CacheEntry(NamedTuple):
    body: Any
    stored_at: float  # Clock reading when stored


class ResponseCache:
    """
    Time-based cache of parsed response bodies.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use;
    every operation is synchronous so there is no interleaving within a call.
    """

    __slots__ = ('timeout', '_clock', '_entries')

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout = timeout
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(endpoint_key: str, params: Params | None) -> str:
        """Canonical key: endpoint plus params sorted by name."""
        if not params:
            return endpoint_key
        items = sorted((str(k), str(v)) for k, v in params.items())
        return f"{endpoint_key}?{urlencode(items)}"

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.timeout:
            del self._entries[key]
            return None
        return entry

    def put(self, key: str, body: Any) -> None:
        self._entries[key] = CacheEntry(body, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FetchClient:
    """
    Cached, retrying JSON fetcher.

    Usage:
        async with FetchClient(EndpointRegistry()) as client:
            body = await client.fetch("debt", {"page[size]": 2})
    """

    def __init__(
        self,
        endpoints: EndpointRegistry,
        *,
        cache_timeout: float = 120.0,
        timeout: float = 10.0,
        retries: int = 2,
        backoff_initial: float = 0.25,
        backoff_max: float = 4.0,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.endpoints = endpoints
        self.timeout = timeout
        self.retries = retries
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

        self.cache = ResponseCache(cache_timeout, clock)

        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._degraded = False

        # Counters for the status bar
        self.request_count: int = 0
        self.cache_hits: int = 0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> FetchClient:
        return cls(
            EndpointRegistry.from_settings(settings),
            cache_timeout=settings.cache_timeout,
            timeout=settings.request_timeout,
            retries=settings.retries,
            backoff_initial=settings.backoff_initial,
            backoff_max=settings.backoff_max,
            **kwargs,
        )

    @property
    def degraded(self) -> bool:
        """True after a fetch exhausted its retries, until the next success."""
        return self._degraded

    def clear_degraded(self) -> None:
        self._degraded = False

    def clear_cache(self) -> None:
        self.cache.clear()

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry `retry_number` (1-based): doubling, capped."""
        return min(self.backoff_initial * (2 ** (retry_number - 1)), self.backoff_max)

    async def fetch(self, endpoint_key: str, params: Params | None = None) -> Any:
        """
        Fetch a parsed JSON body, honouring the cache.

        Raises NetworkError or ApiError once retries are exhausted.
        """
        params = dict(params or {})
        cache_key = ResponseCache.make_key(endpoint_key, params)

        cached = self.cache.get(cache_key)
        if cached is not None:
            self.cache_hits += 1
            return cached.body

        pending = self._in_flight.get(cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_and_store(cache_key, endpoint_key, params))
            self._in_flight[cache_key] = pending
            pending.add_done_callback(lambda fut, key=cache_key: self._forget(key, fut))

        # Shield so one cancelled waiter does not abort the shared request
        return await asyncio.shield(pending)

    def _forget(self, cache_key: str, fut: asyncio.Future[Any]) -> None:
        if self._in_flight.get(cache_key) is fut:
            del self._in_flight[cache_key]

    async def _fetch_and_store(self, cache_key: str, endpoint_key: str, params: dict[str, Any]) -> Any:
        url = self.endpoints.url_for(endpoint_key)
        body = await self._fetch_with_retry(url, params)
        self.cache.put(cache_key, body)
        self._degraded = False
        return body

    async def _fetch_with_retry(self, url: str, params: dict[str, Any]) -> Any:
        attempts = self.retries + 1
        last_error: NetworkError | ApiError = NetworkError(f"No attempt made: {url}")

        for attempt in range(attempts):
            request_params = dict(params)
            if attempt > 0:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Fetch failed (%s), retry %d/%d in %.2fs: %s",
                    last_error, attempt, self.retries, delay, url,
                )
                await self._sleep(delay)
                # Bypass intermediate caches (proxy, CDN) on retries
                request_params[NONCE_PARAM] = str(time.time_ns())
            try:
                return await self._request(url, request_params)
            except (NetworkError, ApiError) as exc:
                last_error = exc

        self._degraded = True
        logger.error("Fetch gave up after %d attempts: %s (%s)", attempts, url, last_error)
        raise last_error

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json", "Cache-Control": "no-cache"},
            )
            self._owns_session = True
        return self._session

    async def _request(self, url: str, params: dict[str, Any]) -> Any:
        """Single attempt. Maps transport problems to NetworkError."""
        session = await self._get_session()
        self.request_count += 1
        query = {k: str(v) for k, v in params.items()}
        try:
            return await asyncio.wait_for(self._get_json(session, url, query), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise NetworkError(f"Timed out after {self.timeout:.1f}s: {url}") from None
        except aiohttp.ClientError as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}") from exc

    async def _get_json(self, session: aiohttp.ClientSession, url: str, query: dict[str, str]) -> Any:
        async with session.get(url, params=query) as resp:
            raw = await resp.read()
            if not 200 <= resp.status < 300:
                raise ApiError(f"HTTP {resp.status}: {resp.reason}", status=resp.status)
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise ApiError(f"Malformed JSON from {url}: {exc}") from exc

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> FetchClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
