"""
Request signing for the Translator token endpoint.

The endpoint only issues speech tokens to requests carrying an
``X-MT-Signature`` header built the way the Translator Android app does it:

    message   = lower("MSTranslatorAndroidApp" + urlencode(url without scheme)
                      + RFC 1123 date + nonce)
    signature = base64(HMAC-SHA256(app_key, message))
    header    = "MSTranslatorAndroidApp::<signature>::<date>::<nonce>"
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from email.utils import formatdate
from typing import Optional
from urllib.parse import quote

APP_ID = "MSTranslatorAndroidApp"

_APP_KEY = base64.b64decode(
    "oik6PdDdMnOXemTbwvMn9de/h9lFnfBaCWbGMMZqqoSaQaqUOqjVGm5NqsmjcBI1x+sS9ugjB55HEJWRiFXYFw=="
)

# Characters encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def new_nonce() -> str:
    """Random 32-char hex id, used for signature nonces and client trace ids."""
    return uuid.uuid4().hex


def http_date(timestamp: Optional[float] = None) -> str:
    """RFC 1123 date in GMT, e.g. ``Fri, 16 Oct 2026 12:00:00 GMT``."""
    return formatdate(timestamp if timestamp is not None else time.time(), usegmt=True)


def sign(url: str, timestamp: Optional[float] = None, nonce: Optional[str] = None) -> str:
    """
    Build the ``X-MT-Signature`` value for ``url``.

    Args:
        url: Absolute URL being requested.
        timestamp: Epoch seconds for the date part (now when omitted).
        nonce: Nonce for the signature (random when omitted).
    """
    without_scheme = url.split("://", 1)[1] if "://" in url else url
    encoded_url = quote(without_scheme, safe=_URI_COMPONENT_SAFE)
    date = http_date(timestamp)
    nonce = nonce or new_nonce()

    message = f"{APP_ID}{encoded_url}{date}{nonce}".lower()
    digest = hmac.new(_APP_KEY, message.encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("ascii")

    return f"{APP_ID}::{signature}::{date}::{nonce}"
