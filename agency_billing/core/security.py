"""
Bearer token handling for the billing API.

Tokens are HS256 JWTs whose "sub" claim is the caller's user id. The hosted
auth provider issues them in production; create_access_token mints
compatible ones for scripts and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from agency_billing.config import settings


def _audience_options() -> dict[str, Any]:
    return {"verify_aud": settings.JWT_AUDIENCE is not None}


def create_access_token(
    subject: str | uuid.UUID,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """Sign a token for `subject`, valid for ACCESS_TOKEN_EXPIRE_MINUTES unless overridden."""
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    claims: dict[str, Any] = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": uuid.uuid4().hex,
        "type": "access",
    }
    if settings.JWT_AUDIENCE is not None:
        claims["aud"] = settings.JWT_AUDIENCE
    claims.update(additional_claims or {})

    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """Claims of a correctly signed, unexpired token; None for anything else."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=_audience_options(),
        )
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[uuid.UUID]:
    """
    Resolve a bearer token to the user id it was issued for.

    Provider tokens carry no "type" claim and are treated as access tokens.
    Any other type (e.g. "refresh") or a subject that is not a UUID yields None.
    """
    claims = decode_token(token)
    if not claims or claims.get("type", "access") != "access":
        return None

    try:
        return uuid.UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        return None
