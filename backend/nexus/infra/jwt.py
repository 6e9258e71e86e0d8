"""HS256 access tokens tied to a redis-backed session."""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from nexus.settings import Settings

ALGORITHM = "HS256"
# Claims every access token must carry besides the registered ones.
SESSION_CLAIMS = ("sub", "sid")


def encode_access(settings: Settings, claims: Dict[str, Any]) -> str:
    issued_at = int(time.time())
    body: Dict[str, Any] = dict(claims)
    body.update(
        iss=settings.jwt_issuer,
        aud=settings.jwt_audience,
        iat=issued_at,
        exp=issued_at + settings.access_ttl_minutes * 60,
    )
    return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def decode_access(settings: Settings, token: str) -> Dict[str, Any]:
    """Return the verified claims; raises ``jwt.InvalidTokenError`` otherwise."""
    claims = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options={"require": ["exp", "iat", "iss", "aud", *SESSION_CLAIMS]},
    )
    missing = [name for name in SESSION_CLAIMS if not claims.get(name)]
    if missing:
        raise InvalidTokenError(f"missing_claim:{missing[0]}")
    return claims
