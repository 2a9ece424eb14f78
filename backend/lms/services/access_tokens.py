"""Short-lived capability tokens for lecture recording streams.

Wire format: ``base64url(JSON) + "." + base64url(HMAC_SHA256(secret, base64url(JSON)))``
with unpadded base64url. The JSON object has exactly the keys
``sub``, ``key``, ``courseId`` and ``exp`` (unix seconds).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass

from ..config import settings

GUEST_SUBJECT = "guest"


class AccessTokenError(Exception):
    """Raised when an access token is malformed, forged or expired."""


class StreamingNotConfigured(Exception):
    """Raised when no signing secret is configured."""


@dataclass(frozen=True, slots=True)
class AccessTokenPayload:
    subject: str
    key: str
    course_id: str
    expires_at: int

    @property
    def is_guest(self) -> bool:
        return self.subject == GUEST_SUBJECT

    def to_json(self) -> bytes:
        document = {
            "sub": self.subject,
            "key": self.key,
            "courseId": self.course_id,
            "exp": self.expires_at,
        }
        return json.dumps(document, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "AccessTokenPayload":
        try:
            document = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise AccessTokenError("Malformed access token") from exc
        if not isinstance(document, dict):
            raise AccessTokenError("Malformed access token")
        subject = document.get("sub")
        key = document.get("key")
        course_id = document.get("courseId")
        exp = document.get("exp")
        if not all(isinstance(value, str) and value for value in (subject, key, course_id)):
            raise AccessTokenError("Malformed access token")
        if isinstance(exp, bool) or not isinstance(exp, int):
            raise AccessTokenError("Malformed access token")
        return cls(subject=subject, key=key, course_id=course_id, expires_at=exp)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(value + padding)
    except (binascii.Error, ValueError) as exc:
        raise AccessTokenError("Malformed access token") from exc


def _signing_secret(secret: str | None) -> bytes:
    resolved = secret if secret is not None else settings.lecture_stream_secret
    if not resolved:
        raise StreamingNotConfigured("Streaming not configured")
    return resolved.encode("utf-8")


def _mac(secret: bytes, encoded_payload: str) -> str:
    digest = hmac.new(secret, encoded_payload.encode("utf-8"), hashlib.sha256).digest()
    return _b64encode(digest)


def is_signing_enabled() -> bool:
    return bool(settings.lecture_stream_secret)


def looks_like_access_token(value: str | None) -> bool:
    """Access tokens have two segments; Supabase session JWTs have three."""

    return bool(value) and value.count(".") == 1


def build_payload(
    subject: str,
    key: str,
    course_id: str,
    *,
    ttl_seconds: int | None = None,
    now: int | None = None,
) -> AccessTokenPayload:
    issued_at = int(time.time()) if now is None else now
    ttl = settings.lecture_stream_token_ttl_seconds if ttl_seconds is None else ttl_seconds
    return AccessTokenPayload(
        subject=str(subject),
        key=key,
        course_id=str(course_id),
        expires_at=issued_at + int(ttl),
    )


def sign_token(payload: AccessTokenPayload, *, secret: str | None = None) -> str:
    key = _signing_secret(secret)
    encoded = _b64encode(payload.to_json())
    return f"{encoded}.{_mac(key, encoded)}"


def verify_token(
    token: str, *, secret: str | None = None, now: int | None = None
) -> AccessTokenPayload:
    key = _signing_secret(secret)
    if not looks_like_access_token(token):
        raise AccessTokenError("Malformed access token")
    encoded, signature = token.split(".", 1)
    expected = _mac(key, encoded)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise AccessTokenError("Invalid access token signature")

    payload = AccessTokenPayload.from_json(_b64decode(encoded))
    current = int(time.time()) if now is None else now
    if payload.expires_at <= current:
        raise AccessTokenError("Access token expired")
    return payload


__all__ = [
    "AccessTokenError",
    "AccessTokenPayload",
    "GUEST_SUBJECT",
    "StreamingNotConfigured",
    "build_payload",
    "is_signing_enabled",
    "looks_like_access_token",
    "sign_token",
    "verify_token",
]
