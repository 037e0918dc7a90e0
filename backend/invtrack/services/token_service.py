# Overview: Signed bearer tokens (JWT) for API authentication.

"""
Tokens are HS256 JWTs signed with JWT_SECRET_KEY.

Claims: sub (user id), username, role, iat, exp. Validity defaults to 24
hours (JWT_EXPIRES_HOURS). The server re-checks the account on every
request, so the role claim is informational only.
"""
from __future__ import annotations

from datetime import timedelta, timezone

from flask import current_app
from jose import JWTError, jwt

from ..time_utils import utcnow


def issue_token(user, *, expires_delta: timedelta | None = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(hours=int(current_app.config.get("JWT_EXPIRES_HOURS", 24)))
    now = utcnow().replace(tzinfo=timezone.utc)
    payload = {
        "sub": user.id,
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def verify_token(token: str) -> dict | None:
    """Return decoded claims, or None when the token is malformed, tampered or expired."""
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except JWTError:
        return None
