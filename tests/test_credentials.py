"""Tests for the shared backend credential and its singleflight refresh."""
from __future__ import annotations

import asyncio
import time

import pytest

from tts_proxy.core.errors import CredentialError
from tts_proxy.tts.credentials import (
    CredentialCache,
    decode_jwt_payload,
    get_credential_cache,
    reset_credential_cache,
)


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestJwt:
    def test_decode_payload(self, token_factory):
        assert decode_jwt_payload(token_factory(1234))["exp"] == 1234


class TestCredentialFetch:
    """A single refresh against the token endpoint."""

    def test_fetches_region_and_token(self, backend):
        cache = CredentialCache(transport=backend.transport())
        credential = asyncio.run(cache.get())

        assert credential.region == "eastasia"
        assert credential.token.count(".") == 2
        assert backend.token_calls == 1

        request = backend.requests[0]
        assert request.method == "POST"
        assert request.headers["X-MT-Signature"].startswith("MSTranslatorAndroidApp::")
        assert request.headers["User-Agent"] == "okhttp/4.5.0"
        assert "X-ClientTraceId" in request.headers

    def test_valid_credential_is_reused(self, backend):
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            first = await cache.get()
            second = await cache.get()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is second
        assert backend.token_calls == 1

    def test_malformed_response(self):
        import httpx

        def handler(request):
            return httpx.Response(200, json={"r": "eastasia", "t": "not-a-jwt"})

        cache = CredentialCache(transport=httpx.MockTransport(handler))
        with pytest.raises(CredentialError):
            asyncio.run(cache.get())
        assert cache.current is None

    def test_transport_error(self):
        import httpx

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        cache = CredentialCache(transport=httpx.MockTransport(handler))
        with pytest.raises(CredentialError) as exc_info:
            asyncio.run(cache.get())
        assert exc_info.value.code == "credential_error"


class TestExpirySkew:
    """Validity is ``now < expires_at - skew``."""

    def test_refresh_inside_skew_window(self, backend):
        clock = FakeClock(1000.0)
        backend.token_exp = 2000.0
        cache = CredentialCache(refresh_skew_s=300, transport=backend.transport(), clock=clock)

        async def scenario():
            await cache.get()
            clock.now = 1699.0
            await cache.get()
            calls_before_window = backend.token_calls
            clock.now = 1700.0
            await cache.get()
            return calls_before_window

        calls_before_window = asyncio.run(scenario())
        assert calls_before_window == 1
        assert backend.token_calls == 2
        assert cache.refresh_count == 2


class TestSingleflight:
    """Concurrent callers share one refresh."""

    def test_concurrent_gets_share_one_request(self, backend):
        backend.token_delay = 0.05
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            return await asyncio.gather(*(cache.get() for _ in range(20)))

        results = asyncio.run(scenario())
        assert backend.token_calls == 1
        assert cache.refresh_count == 1
        assert all(r is results[0] for r in results)
        assert cache.refreshing is False

    def test_failure_shared_by_all_waiters(self, backend):
        backend.token_delay = 0.02
        backend.token_status = 503
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            return await asyncio.gather(*(cache.get() for _ in range(5)), return_exceptions=True)

        results = asyncio.run(scenario())
        assert backend.token_calls == 1
        assert all(isinstance(r, CredentialError) for r in results)
        assert cache.current is None
        assert cache.refreshing is False

    def test_next_call_after_failure_retries(self, backend):
        backend.token_status = 500
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            with pytest.raises(CredentialError):
                await cache.get()
            backend.token_status = 200
            return await cache.get()

        credential = asyncio.run(scenario())
        assert credential.region == "eastasia"
        assert backend.token_calls == 2

    def test_cancelled_waiter_does_not_cancel_refresh(self, backend):
        backend.token_delay = 0.05
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            impatient = asyncio.ensure_future(cache.get())
            patient = asyncio.ensure_future(cache.get())
            await asyncio.sleep(0.01)
            impatient.cancel()
            return await patient

        credential = asyncio.run(scenario())
        assert credential.region == "eastasia"
        assert backend.token_calls == 1


class TestInvalidate:
    def test_invalidate_forces_refresh(self, backend):
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            await cache.get()
            cache.invalidate()
            assert cache.current is None
            await cache.get()

        asyncio.run(scenario())
        assert backend.token_calls == 2

    def test_invalidate_during_refresh_starts_new_one(self, backend):
        backend.token_delay = 0.05
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            first = asyncio.ensure_future(cache.get())
            await asyncio.sleep(0.01)
            cache.invalidate()
            second = asyncio.ensure_future(cache.get())
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        assert backend.token_calls == 2
        assert cache.refresh_count == 2
        assert first.region == second.region == "eastasia"

    def test_refresh_landing_after_invalidate_is_installed(self, backend):
        backend.token_delay = 0.05
        cache = CredentialCache(transport=backend.transport())

        async def scenario():
            pending = asyncio.ensure_future(cache.get())
            await asyncio.sleep(0.01)
            cache.invalidate()
            assert cache.current is None
            return await pending

        landed = asyncio.run(scenario())
        assert cache.current is landed
        assert backend.token_calls == 1

    def test_stale_failed_refresh_keeps_newer_credential(self, token_factory):
        import httpx

        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                await asyncio.sleep(0.05)
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"r": "eastasia", "t": token_factory(time.time() + 600)})

        cache = CredentialCache(transport=httpx.MockTransport(handler))

        async def scenario():
            stale = asyncio.ensure_future(cache.get())
            await asyncio.sleep(0.01)
            cache.invalidate()
            fresh = await cache.get()
            with pytest.raises(CredentialError):
                await stale
            return fresh

        fresh = asyncio.run(scenario())
        assert cache.current is fresh
        assert len(calls) == 2


class TestProcessCache:
    def test_singleton(self):
        assert get_credential_cache() is get_credential_cache()

    def test_reset(self):
        first = get_credential_cache()
        reset_credential_cache()
        assert get_credential_cache() is not first
