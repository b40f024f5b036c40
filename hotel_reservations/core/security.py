from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt

from hotel_reservations.core.config import get_settings


def create_access_token(user_id: str, *, role: str = "", expires_minutes: int | None = None) -> str:
    """Issue a bearer token for a user.

    Login itself is handled elsewhere; this is what that flow (and the tests) call
    once the user is authenticated. The role claim is informational only,
    permissions are always resolved from the stored user.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = expires_minutes if expires_minutes is not None else settings.access_token_exp_minutes

    payload: Dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    if role:
        payload["role"] = role

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
