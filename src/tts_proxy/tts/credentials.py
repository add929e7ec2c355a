"""
Shared Backend Credential.

Every synthesis call needs the region and bearer token issued by the
Translator endpoint. Tokens live for a few minutes, so the process keeps one
credential and refreshes it when it gets close to expiry.

Refresh Rules:
    1. A credential is valid while ``now < expires_at - refresh_skew``
       (skew defaults to 300 s). Valid reads do no I/O.
    2. When it is not valid, the first caller starts a refresh task and every
       concurrent caller awaits that same task (singleflight). At most one
       refresh is in flight per cache.
    3. A failed refresh leaves the cache empty and every waiter of that
       attempt gets the same CredentialError. Nothing retries; the next
       get() after the failure starts a fresh attempt.

Locking:
    The credential and the in-flight task handle are guarded by one
    threading.Lock. It is only held for the check-and-set, never across an
    await, so it is safe from any event loop.

invalidate():
    Resets the cache and forgets the in-flight handle without cancelling the
    task. When that task lands its credential is still installed, so a
    caller may see a credential fetched before it invalidated. This is
    accepted behavior.

Usage:
    cache = get_credential_cache()
    credential = await cache.get()
    url = f"https://{credential.region}.tts.speech.microsoft.com/cognitiveservices/v1"
"""
from __future__ import annotations

import asyncio
import base64
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx

from tts_proxy.core.config import BackendConfig, Defaults
from tts_proxy.core.errors import CredentialError
from tts_proxy.core.logging import debug, fail, get_logger, info
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.signing import new_nonce, sign
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.credentials")

# Identity the token endpoint expects from the Android client.
_CLIENT_HEADERS = {
    "Accept-Language": "zh-Hans",
    "X-ClientVersion": "4.0.530a 5fe1dc6c",
    "X-UserId": "0f04d16a175c411e",
    "X-HomeGeographicRegion": "zh-Hans-CN",
    "Content-Type": "application/json; charset=utf-8",
    "Accept-Encoding": "gzip",
}


@dataclass(frozen=True)
class Credential:
    """
    Attributes:
        endpoint: Raw record from the token endpoint (``r`` region, ``t`` token, ...).
        token: Bearer token for the synthesis endpoint.
        expires_at: Token expiry, epoch seconds (JWT ``exp``).
    """
    endpoint: Dict[str, Any] = field(repr=False)
    token: str = field(repr=False)
    expires_at: float

    @property
    def region(self) -> str:
        return str(self.endpoint.get("r", ""))


def decode_jwt_payload(token: str) -> Dict[str, Any]:
    """Decode the (unverified) payload segment of a JWT."""
    segment = token.split(".")[1]
    segment += "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))


class CredentialCache:
    """
    Holds the process credential and refreshes it with singleflight semantics.

    Args:
        endpoint_url: Token issuance URL.
        timeout_s: Timeout for the issuance call.
        refresh_skew_s: Refresh this many seconds before expiry.
        user_agent: User-Agent sent to the endpoint.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
        clock: Returns epoch seconds; injectable for tests.
    """

    def __init__(
        self,
        endpoint_url: str = Defaults.BACKEND_ENDPOINT_URL,
        timeout_s: float = Defaults.BACKEND_TIMEOUT_S,
        refresh_skew_s: float = Defaults.BACKEND_REFRESH_SKEW_S,
        user_agent: str = Defaults.BACKEND_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.endpoint_url = endpoint_url
        self.timeout_s = timeout_s
        self.refresh_skew_s = refresh_skew_s
        self.user_agent = user_agent
        self._transport = transport
        self._clock = clock

        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._refresh: Optional[asyncio.Task] = None
        self._refresh_count = 0

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CredentialCache":
        return cls(
            endpoint_url=config.endpoint_url,
            timeout_s=config.timeout_s,
            refresh_skew_s=config.refresh_skew_s,
            user_agent=config.user_agent,
            transport=transport,
        )

    @property
    def refresh_count(self) -> int:
        """Number of refresh attempts started."""
        with self._lock:
            return self._refresh_count

    @property
    def current(self) -> Optional[Credential]:
        """Installed credential, valid or not, without refreshing."""
        with self._lock:
            return self._credential

    @property
    def refreshing(self) -> bool:
        with self._lock:
            return self._refresh is not None

    def _is_valid(self, credential: Optional[Credential]) -> bool:
        if credential is None:
            return False
        return self._clock() < credential.expires_at - self.refresh_skew_s

    async def get(self) -> Credential:
        """
        Return a valid credential, refreshing it if needed.

        Raises:
            CredentialError: If the refresh this call joined failed.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            credential = self._credential
            if self._is_valid(credential):
                return credential

            pending = self._refresh
            if pending is None or pending.get_loop() is not loop:
                pending = loop.create_task(self._run_refresh())
                self._refresh = pending
                self._refresh_count += 1

        # Shielded: a cancelled waiter must not cancel the shared refresh.
        return await asyncio.shield(pending)

    def invalidate(self) -> None:
        """Drop the credential and forget any in-flight refresh."""
        with self._lock:
            self._credential = None
            self._refresh = None
        debug(_LOG, "credential_invalidated")

    async def _run_refresh(self) -> Credential:
        task = asyncio.current_task()
        try:
            with timeit("credential_refresh") as t:
                credential = await self._fetch()
        except CredentialError as e:
            with self._lock:
                # An orphaned refresh must not clear what a newer one installed.
                if self._refresh is task:
                    self._credential = None
            metrics.record_credential_refresh("failure")
            fail(_LOG, "credential_refresh_failed", error=e.message)
            raise
        finally:
            with self._lock:
                if self._refresh is task:
                    self._refresh = None

        with self._lock:
            self._credential = credential
        metrics.record_credential_refresh("success")
        info(
            _LOG,
            "credential_refreshed",
            region=credential.region,
            expires_in=round(credential.expires_at - self._clock()),
            seconds=round(t.elapsed, 3),
        )
        return credential

    async def _fetch(self) -> Credential:
        headers = dict(_CLIENT_HEADERS)
        headers["X-ClientTraceId"] = new_nonce()
        headers["X-MT-Signature"] = sign(self.endpoint_url)
        headers["User-Agent"] = self.user_agent

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(self.endpoint_url, headers=headers, content=b"")
        except httpx.TimeoutException as e:
            raise CredentialError(f"Token endpoint timed out after {self.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise CredentialError(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 400:
            raise CredentialError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}",
                details={"status": response.status_code},
            )

        try:
            record = response.json()
            token = str(record["t"])
            expires_at = float(decode_jwt_payload(token)["exp"])
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CredentialError(f"Malformed token response: {e}") from e

        return Credential(endpoint=record, token=token, expires_at=expires_at)


# =============================================================================
# Process-wide Instance
# =============================================================================

_cache: Optional[CredentialCache] = None
_cache_lock = threading.Lock()


def get_credential_cache(config: Optional[BackendConfig] = None) -> CredentialCache:
    """
    Get or create the process credential cache.

    ``config`` only matters on the first call.
    """
    global _cache
    if _cache is None:
        with _cache_lock:
            if _cache is None:
                _cache = CredentialCache.from_config(config or BackendConfig())
                info(_LOG, "credential_cache_init", skew_s=_cache.refresh_skew_s)
    return _cache


def reset_credential_cache() -> None:
    """Forget the process cache (for testing)."""
    global _cache
    with _cache_lock:
        _cache = None
