# tests/test_fetch_client.py
"""Tests for FetchClient caching, retry/backoff and error mapping."""

import asyncio

import aiohttp
import pytest

from conftest import FakeClock, FakeResponse, FakeSession, RecordingSleep, json_response
from fiscal_clock.datafeed.endpoints import EndpointRegistry
from fiscal_clock.datafeed.fetch_client import NONCE_PARAM, FetchClient, ResponseCache
from fiscal_clock.errors import ApiError, NetworkError

BODY = {"data": [{"record_date": "2025-09-24", "tot_pub_debt_out_amt": "1"}]}


def make_client(session: FakeSession, clock: FakeClock, sleep: RecordingSleep, **kwargs) -> FetchClient:
    options = dict(cache_timeout=120.0, timeout=1.0, retries=2, backoff_initial=0.25, backoff_max=4.0)
    options.update(kwargs)
    return FetchClient(
        EndpointRegistry(fiscal_base="https://fiscal.test", world_bank_base="https://wb.test"),
        session=session,
        clock=clock,
        sleep=sleep,
        **options,
    )


class TestResponseCache:
    def test_key_is_order_independent(self) -> None:
        assert ResponseCache.make_key("debt", {"b": 1, "a": 2}) == ResponseCache.make_key("debt", {"a": 2, "b": 1})

    def test_key_without_params_is_endpoint(self) -> None:
        assert ResponseCache.make_key("debt", None) == "debt"

    def test_expired_entries_are_evicted_on_read(self, clock: FakeClock) -> None:
        cache = ResponseCache(10.0, clock)
        cache.put("k", 1)
        clock.advance(11.0)

        assert cache.get("k") is None
        assert len(cache) == 0


class TestCaching:
    async def test_identical_fetch_within_window_uses_cache(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(json_response(BODY))
        client = make_client(session, clock, sleep)

        first = await client.fetch("debt", {"page[size]": 2, "format": "json"})
        clock.advance(60.0)
        second = await client.fetch("debt", {"format": "json", "page[size]": 2})

        assert first == second == BODY
        assert len(session.calls) == 1
        assert client.cache_hits == 1

    async def test_fetch_after_window_goes_to_network_once(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(json_response(BODY))
        client = make_client(session, clock, sleep)

        await client.fetch("debt", {"page[size]": 2})
        clock.advance(121.0)
        await client.fetch("debt", {"page[size]": 2})
        await client.fetch("debt", {"page[size]": 2})

        assert len(session.calls) == 2

    async def test_different_params_are_different_entries(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(json_response(BODY))
        client = make_client(session, clock, sleep)

        await client.fetch("debt", {"page[size]": 2})
        await client.fetch("debt", {"page[size]": 3})

        assert len(session.calls) == 2

    async def test_clear_cache_forces_network(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(json_response(BODY))
        client = make_client(session, clock, sleep)

        await client.fetch("debt")
        client.clear_cache()
        await client.fetch("debt")

        assert len(session.calls) == 2

    async def test_concurrent_fetches_share_one_request(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(body=b'{"data": []}', delay=0.01))
        client = make_client(session, clock, sleep)

        results = await asyncio.gather(client.fetch("mts", {"a": 1}), client.fetch("mts", {"a": 1}))

        assert results[0] == results[1] == {"data": []}
        assert len(session.calls) == 1


class TestRetry:
    async def test_retries_two_means_three_attempts(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(aiohttp.ClientConnectionError("refused"))
        client = make_client(session, clock, sleep)

        with pytest.raises(NetworkError):
            await client.fetch("debt")

        assert len(session.calls) == 3
        assert client.request_count == 3
        assert sleep.delays == [0.25, 0.5]

    async def test_backoff_is_capped(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(aiohttp.ClientConnectionError("refused"))
        client = make_client(session, clock, sleep, retries=5, backoff_initial=1.0, backoff_max=4.0)

        with pytest.raises(NetworkError):
            await client.fetch("debt")

        assert sleep.delays == [1.0, 2.0, 4.0, 4.0, 4.0]
        assert all(a <= b for a, b in zip(sleep.delays, sleep.delays[1:]))

    async def test_retries_carry_cache_busting_nonce(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(status=503), json_response(BODY))
        client = make_client(session, clock, sleep)

        body = await client.fetch("debt", {"format": "json"})

        assert body == BODY
        first_params, retry_params = session.calls[0][1], session.calls[1][1]
        assert NONCE_PARAM not in first_params
        assert NONCE_PARAM in retry_params
        assert retry_params["format"] == "json"

    async def test_non_2xx_is_api_error_with_status(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(status=404))
        client = make_client(session, clock, sleep, retries=0)

        with pytest.raises(ApiError) as excinfo:
            await client.fetch("debt")

        assert excinfo.value.status == 404

    async def test_malformed_json_is_api_error(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(body=b"<html>oops</html>"))
        client = make_client(session, clock, sleep, retries=0)

        with pytest.raises(ApiError):
            await client.fetch("debt")

    async def test_timeout_is_network_error(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(body=b"{}", delay=0.5))
        client = make_client(session, clock, sleep, retries=0, timeout=0.01)

        with pytest.raises(NetworkError):
            await client.fetch("debt")

    async def test_failures_are_not_cached(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(status=500), json_response(BODY))
        client = make_client(session, clock, sleep, retries=0)

        with pytest.raises(ApiError):
            await client.fetch("debt")
        assert await client.fetch("debt") == BODY


class TestDegradedFlag:
    async def test_set_after_exhausted_retries_and_cleared_by_success(
        self, clock: FakeClock, sleep: RecordingSleep,
    ) -> None:
        session = FakeSession(FakeResponse(status=500), json_response(BODY))
        client = make_client(session, clock, sleep, retries=0)

        with pytest.raises(ApiError):
            await client.fetch("debt")
        assert client.degraded

        await client.fetch("debt")
        assert not client.degraded

    async def test_clear_degraded(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(FakeResponse(status=500))
        client = make_client(session, clock, sleep, retries=0)

        with pytest.raises(ApiError):
            await client.fetch("debt")
        client.clear_degraded()

        assert not client.degraded


class TestRouting:
    async def test_treasury_goes_through_proxy_when_configured(
        self, clock: FakeClock, sleep: RecordingSleep,
    ) -> None:
        session = FakeSession(json_response(BODY))
        client = FetchClient(
            EndpointRegistry(proxy_base="http://localhost:8000/"),
            session=session, clock=clock, sleep=sleep,
        )

        await client.fetch("mts")
        await client.fetch("worldbank:SP.POP.TOTL")

        assert session.calls[0][0] == "http://localhost:8000/api/mts"
        assert session.calls[1][0].endswith("/indicator/SP.POP.TOTL")

    async def test_injected_session_is_not_closed(self, clock: FakeClock, sleep: RecordingSleep) -> None:
        session = FakeSession(json_response(BODY))
        async with make_client(session, clock, sleep) as client:
            await client.fetch("debt")

        assert not session.closed
