from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from app.core.config import settings
from app.core.errors import Unauthenticated


def hash_password(password: str, salt: bytes) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 120_000)
    return digest.hex()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload: bytes, secret: str) -> str:
    return _b64encode(hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest())


def issue_token(
    uid: str,
    *,
    secret: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    secret = secret or settings.auth_secret
    ttl = settings.auth_token_ttl_seconds if ttl_seconds is None else ttl_seconds
    issued = time.time() if now is None else now
    payload = json.dumps(
        {"uid": uid, "exp": int(issued + ttl)}, separators=(",", ":")
    ).encode("utf-8")
    return f"{_b64encode(payload)}.{_sign(payload, secret)}"


def decode_token(token: str, *, secret: Optional[str] = None, now: Optional[float] = None) -> str:
    """Return the uid carried by ``token`` or raise ``Unauthenticated``."""
    if not token:
        raise Unauthenticated("Missing authentication token")
    secret = secret or settings.auth_secret
    try:
        encoded_payload, signature = token.split(".", 1)
        payload = _b64decode(encoded_payload)
    except ValueError as exc:
        raise Unauthenticated("Malformed authentication token") from exc
    expected = _sign(payload, secret).encode("ascii")
    if not hmac.compare_digest(signature.encode("utf-8"), expected):
        raise Unauthenticated("Invalid authentication token")
    try:
        claims = json.loads(payload)
    except ValueError as exc:
        raise Unauthenticated("Malformed authentication token") from exc
    uid = claims.get("uid")
    expires_at = claims.get("exp")
    if not uid or not isinstance(expires_at, int):
        raise Unauthenticated("Malformed authentication token")
    current = time.time() if now is None else now
    if expires_at <= current:
        raise Unauthenticated("Authentication token expired")
    return uid
