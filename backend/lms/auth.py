from __future__ import annotations

import logging
import time
from typing import Annotated, Any

import httpx
from fastapi import Depends, Request
from jose import JWTError, jwk, jwt

from .config import settings
from .errors import Unauthorized
from .logging_context import set_user_context
from .repositories import users as users_repo
from .roles import parse_role

logger = logging.getLogger(__name__)

_JWKS_CACHE_SECONDS = 300
_jwks_cache: dict[str, Any] = {
    "url": None,
    "expires_at": 0.0,
    "keys": {},
}


class SessionTokenError(Exception):
    """Raised when a bearer session token cannot be verified."""


def _supabase_jwks_url() -> str | None:
    if settings.supabase_jwks_url:
        return str(settings.supabase_jwks_url)
    if settings.supabase_url is None:
        return None
    base = settings.supabase_url.unicode_string().rstrip("/")
    return f"{base}/auth/v1/.well-known/jwks.json"


def _supabase_jwt_issuer() -> str | None:
    if settings.supabase_jwt_issuer:
        return settings.supabase_jwt_issuer
    if settings.supabase_url is None:
        return None
    base = settings.supabase_url.unicode_string().rstrip("/")
    return f"{base}/auth/v1"


async def _signing_keys(url: str, *, force_refresh: bool = False) -> dict[str, dict[str, Any]]:
    now = time.monotonic()
    if (
        not force_refresh
        and _jwks_cache["url"] == url
        and now < _jwks_cache["expires_at"]
    ):
        return _jwks_cache["keys"]

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(url)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise SessionTokenError(f"Failed to fetch JWKS: {exc}") from exc
    if not isinstance(data, dict) or "keys" not in data:
        raise SessionTokenError("JWKS response missing keys")

    keys = {
        entry["kid"]: entry
        for entry in data.get("keys", [])
        if isinstance(entry, dict) and entry.get("kid")
    }
    _jwks_cache.update(url=url, keys=keys, expires_at=now + _JWKS_CACHE_SECONDS)
    return keys


async def decode_session_token(token: str) -> dict[str, Any]:
    """Verify a Supabase access token and return its claims.

    Projects on the legacy shared secret sign with HS256; projects on asymmetric
    keys publish them through JWKS.
    """

    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise SessionTokenError("Invalid token header") from exc

    alg = header.get("alg")
    options = {"verify_aud": False}
    issuer = _supabase_jwt_issuer()

    if alg == "HS256":
        if not settings.supabase_jwt_secret:
            raise SessionTokenError("HS256 session tokens are not accepted")
        try:
            return jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                issuer=issuer,
                options=options,
            )
        except JWTError as exc:
            raise SessionTokenError("JWT verification failed") from exc

    if alg not in ("RS256", "ES256"):
        raise SessionTokenError(f"Unsupported JWT alg: {alg}")
    kid = header.get("kid")
    if not kid:
        raise SessionTokenError("JWT header missing kid")
    jwks_url = _supabase_jwks_url()
    if not jwks_url:
        raise SessionTokenError("Supabase JWKS URL is not configured")

    keys = await _signing_keys(jwks_url)
    key_data = keys.get(kid)
    if not key_data:
        keys = await _signing_keys(jwks_url, force_refresh=True)
        key_data = keys.get(kid)
    if not key_data:
        raise SessionTokenError("JWT kid not found in JWKS")

    try:
        return jwt.decode(
            token,
            jwk.construct(key_data, alg),
            algorithms=[alg],
            issuer=issuer,
            options=options,
        )
    except JWTError as exc:
        raise SessionTokenError("JWT verification failed") from exc


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


async def resolve_session(token: str) -> dict[str, Any] | None:
    """Map a session token to the stored user, or None when it does not resolve.

    The role always comes from app.users; token claims are never trusted for it.
    """

    try:
        claims = await decode_session_token(token)
    except SessionTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        return None

    user_id = claims.get("sub")
    if not user_id:
        return None
    return await load_user(str(user_id))


async def load_user(user_id: str) -> dict[str, Any] | None:
    row = await users_repo.get_user(user_id)
    if not row:
        return None
    user = dict(row)
    user["id"] = str(user["id"])
    user["role"] = parse_role(user.get("role"))
    set_user_context(user["id"])
    return user


async def get_current_user(request: Request) -> dict[str, Any]:
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise Unauthorized("Unauthorized - Missing or invalid authorization header")
    user = await resolve_session(token)
    if user is None:
        raise Unauthorized("Unauthorized - Invalid token")
    return user


async def get_optional_user(request: Request) -> dict[str, Any] | None:
    """Return None for anonymous callers.

    A caller that sends an Authorization header is never downgraded to anonymous:
    an unresolvable credential is a 401.
    """

    if request.headers.get("authorization") is None:
        return None
    return await get_current_user(request)


CurrentUser = Annotated[dict, Depends(get_current_user)]
OptionalCurrentUser = Annotated[dict | None, Depends(get_optional_user)]
