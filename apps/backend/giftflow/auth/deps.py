"""
Bearer-token authentication against Supabase-issued JWTs.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Dict

import jwt
from fastapi import Depends, Request

from giftflow.services.errors import AuthenticationError

logger = logging.getLogger(__name__)


def _normalise_https_url(value: str | None) -> str:
    """
    Ensure the provided URL is absolute and uses https://.
    Supabase dashboard values occasionally omit the scheme.
    """
    if not value:
        return ""
    cleaned = value.strip()
    if not cleaned:
        return ""
    if cleaned.startswith(("http://", "https://")):
        return cleaned
    if cleaned.startswith("//"):
        cleaned = cleaned[2:]
    return f"https://{cleaned.lstrip('/')}"


def _compute_jwks_url() -> str:
    """
    Resolve the Supabase JWKS URL from environment.
    Priority:
      1) SUPABASE_JWKS_URL (explicit)
      2) SUPABASE_URL + '/auth/v1/.well-known/jwks.json'
    """
    jwks_url = _normalise_https_url(os.getenv("SUPABASE_JWKS_URL"))
    if jwks_url:
        return jwks_url
    base_url = _normalise_https_url(os.getenv("SUPABASE_URL"))
    if base_url:
        return base_url.rstrip("/") + "/auth/v1/.well-known/jwks.json"
    raise RuntimeError("SUPABASE_JWKS_URL not configured (and SUPABASE_URL missing)")


@lru_cache(maxsize=1)
def get_jwks_client() -> jwt.PyJWKClient:
    return jwt.PyJWKClient(_compute_jwks_url(), cache_keys=True)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a Supabase JWT."""
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=[signing_key.algorithm],
            audience=None,
            options={"verify_aud": False},
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc
    except RuntimeError as exc:
        logger.error("Authentication not configured: %s", exc)
        raise AuthenticationError("Authentication not configured") from exc


def user_id_from_token(token: str | None) -> str:
    if not token:
        raise AuthenticationError("Missing bearer token")
    sub = decode_token(token).get("sub")
    if not sub:
        raise AuthenticationError("Token missing subject")
    return str(sub)


def get_current_user(request: Request) -> Dict[str, Any]:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        raise AuthenticationError("Missing bearer token")
    claims = decode_token(auth_header.split(" ", 1)[1].strip())
    request.state.token_claims = claims
    return claims


def require_user_id(claims: Dict[str, Any] = Depends(get_current_user)) -> str:
    sub = claims.get("sub")
    if not sub:
        raise AuthenticationError("Token missing subject")
    return str(sub)
