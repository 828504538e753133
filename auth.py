"""Bearer tokens for the API: signed JWTs whose subject is the user id."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

ALGORITHM = "HS256"


class AuthError(Exception):
    """Missing, malformed, expired or forged token."""


def create_token(user_id: str, secret: str, expires_days: int = 30, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": issued, "exp": issued + timedelta(days=expires_days)}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(token: str | None, secret: str) -> str:
    """Return the user id in token. Raises AuthError if it cannot be trusted."""
    if not token:
        raise AuthError("Not authorized, no token")
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Not authorized, token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Not authorized, token failed") from e
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Not authorized, token failed")
    return str(user_id)


def bearer_token(authorization: str | None) -> str | None:
    """Token from an 'Authorization: Bearer <token>' header value."""
    value = (authorization or "").strip()
    if not value.lower().startswith("bearer "):
        return None
    return value.split(" ", 1)[1].strip() or None
