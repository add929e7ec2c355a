"""
Single-unit synthesis against the Microsoft speech endpoint.

    credential = await cache.get()
    POST https://{credential.region}.tts.speech.microsoft.com/cognitiveservices/v1
        Authorization: <token>
        Content-Type: application/ssml+xml
        X-Microsoft-OutputFormat: audio-24khz-48kbitrate-mono-mp3
        <speak ...> SSML body </speak>

A non-2xx answer raises SynthesisError with the backend status and message,
a timeout raises BackendTimeoutError. There are no retries: one failed unit
fails the whole request.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import httpx

from tts_proxy.core.config import BackendConfig, Defaults
from tts_proxy.core.errors import BackendTimeoutError, SynthesisError
from tts_proxy.core.logging import debug, get_logger
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.credentials import CredentialCache
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.client")

SYNTHESIS_URL = "https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"

_BREAK_TAG_RE = re.compile(
    r"""<break\s+time="[^"]*"\s*/?>|<break\s*/?>|<break\s+time='[^']*'\s*/?>""",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class VoiceParams:
    """
    Voice parameters in backend form.

    ``rate`` and ``pitch`` are signed whole-percent strings ("0", "-50", "20").
    """
    voice: str
    rate: str = "0"
    pitch: str = "0"
    style: str = Defaults.DEFAULT_STYLE
    output_format: str = Defaults.BACKEND_OUTPUT_FORMAT


def _escape_xml(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def escape_ssml_text(text: str) -> str:
    """XML-escape ``& < >`` while keeping ``<break .../>`` tags intact."""
    out = []
    pos = 0
    for match in _BREAK_TAG_RE.finditer(text):
        out.append(_escape_xml(text[pos:match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(_escape_xml(text[pos:]))
    return "".join(out)


def _escape_attr(value: str) -> str:
    return _escape_xml(value).replace('"', "&quot;")


def build_ssml(text: str, params: VoiceParams) -> str:
    """Wrap one unit of text in the SSML document the endpoint expects."""
    return (
        '<speak xmlns="http://www.w3.org/2001/10/synthesis" '
        'xmlns:mstts="http://www.w3.org/2001/mstts" version="1.0" xml:lang="en-US">'
        f'<voice name="{_escape_attr(params.voice)}">'
        f'<mstts:express-as style="{_escape_attr(params.style)}">'
        f'<prosody rate="{_escape_attr(params.rate)}%" pitch="{_escape_attr(params.pitch)}%">'
        f"{escape_ssml_text(text)}"
        "</prosody></mstts:express-as></voice></speak>"
    )


class SynthesisClient:
    """
    Turns one text unit into audio bytes.

    Args:
        credentials: Shared credential cache.
        timeout_s: Per-call timeout.
        user_agent: User-Agent sent to the backend.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        credentials: CredentialCache,
        timeout_s: float = Defaults.BACKEND_TIMEOUT_S,
        user_agent: str = Defaults.BACKEND_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        credentials: CredentialCache,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SynthesisClient":
        return cls(
            credentials=credentials,
            timeout_s=config.timeout_s,
            user_agent=config.user_agent,
            transport=transport,
        )

    async def synthesize(self, text: str, params: VoiceParams) -> bytes:
        """
        Raises:
            CredentialError: No credential could be obtained.
            SynthesisError: Backend rejected the request or was unreachable.
            BackendTimeoutError: The call exceeded ``timeout_s``.
        """
        credential = await self.credentials.get()
        url = SYNTHESIS_URL.format(region=credential.region)
        ssml = build_ssml(text, params)
        headers = {
            "Authorization": credential.token,
            "Content-Type": "application/ssml+xml",
            "User-Agent": self.user_agent,
            "X-Microsoft-OutputFormat": params.output_format,
        }
        debug(_LOG, "synthesis_request", region=credential.region, voice=params.voice, ssml=ssml)

        with timeit("unit") as t:
            try:
                async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                    response = await client.post(url, headers=headers, content=ssml.encode("utf-8"))
            except httpx.TimeoutException as e:
                raise BackendTimeoutError(
                    f"Speech backend timed out after {self.timeout_s}s",
                    details={"chars": len(text)},
                ) from e
            except httpx.HTTPError as e:
                raise SynthesisError(f"Speech backend unreachable: {e}") from e

        if response.status_code >= 400:
            raise SynthesisError(
                f"Speech backend error {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )

        metrics.record_unit(t.elapsed)
        return response.content
