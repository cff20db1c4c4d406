"""Request authentication for DNS provider sessions.

Each scheme is a requests AuthBase, so a provider sets it once on its
session and every outgoing request is signed the same way.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from requests.auth import AuthBase
from requests.models import PreparedRequest


def percent_encode(value: str) -> str:
    """RFC 3986 encoding as required by Alibaba Cloud (only A-Za-z0-9-_.~ kept)."""
    return quote(str(value), safe="")


def canonicalize(params: Dict[str, str]) -> str:
    return "&".join(
        f"{percent_encode(k)}={percent_encode(v)}" for k, v in sorted(params.items())
    )


def sign_rpc_params(
    params: Dict[str, str],
    access_key_id: str,
    access_key_secret: str,
    *,
    method: str = "GET",
    timestamp: Optional[str] = None,
    nonce: Optional[str] = None,
) -> Dict[str, str]:
    """Return a copy of params carrying an Alibaba Cloud RPC v1 signature."""
    signed = {k: v for k, v in params.items() if k != "Signature"}
    signed.update(
        {
            "AccessKeyId": access_key_id,
            "Format": "JSON",
            "SignatureMethod": "HMAC-SHA1",
            "SignatureNonce": nonce or uuid.uuid4().hex,
            "SignatureVersion": "1.0",
            "Timestamp": timestamp or time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
    )
    string_to_sign = f"{method.upper()}&{percent_encode('/')}&{percent_encode(canonicalize(signed))}"
    digest = hmac.new(
        f"{access_key_secret}&".encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    signed["Signature"] = base64.b64encode(digest).decode("ascii")
    return signed


class AliyunRpcAuth(AuthBase):
    """Signs the query string of every request with an access key pair."""

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        *,
        clock: Optional[Callable[[], str]] = None,
        nonce_factory: Optional[Callable[[], str]] = None,
    ):
        self.access_key_id = access_key_id
        self.access_key_secret = access_key_secret
        self._clock = clock
        self._nonce_factory = nonce_factory

    def __call__(self, r: PreparedRequest) -> PreparedRequest:
        parts = urlsplit(r.url)
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        signed = sign_rpc_params(
            params,
            self.access_key_id,
            self.access_key_secret,
            method=r.method or "GET",
            timestamp=self._clock() if self._clock else None,
            nonce=self._nonce_factory() if self._nonce_factory else None,
        )
        query = "&".join(f"{percent_encode(k)}={percent_encode(v)}" for k, v in signed.items())
        r.url = urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
        return r


class BearerTokenAuth(AuthBase):
    """Adds an 'Authorization: Bearer <token>' header."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, r: PreparedRequest) -> PreparedRequest:
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r
