import secrets
from datetime import datetime, timedelta, timezone

import jwt

from sessionhub.core import config
from sessionhub.core.exceptions import InvalidTokenError, OAuthError

OAUTH_STATE_PURPOSE = "oauth_state"


def _encode(payload: dict, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def _decode(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])


def create_access_token(identity_id: int, expires_minutes: int | None = None) -> str:
    if expires_minutes is None:
        expires_minutes = config.JWT_EXPIRES_MINUTES
    return _encode({"sub": str(identity_id)}, expires_minutes)


def verify_access_token(token: str) -> int:
    """Return the identity id carried by a bearer token.

    Bad signatures, malformed payloads and expired tokens all raise the
    same ``InvalidTokenError``.
    """
    try:
        payload = _decode(token)
    except jwt.PyJWTError as exc:
        raise InvalidTokenError() from exc

    if payload.get("purpose"):
        raise InvalidTokenError()
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError() from exc


def create_state_token() -> str:
    return _encode(
        {"purpose": OAUTH_STATE_PURPOSE, "nonce": secrets.token_urlsafe(16)},
        config.OAUTH_STATE_EXPIRES_MINUTES,
    )


def verify_state_token(state: str | None) -> None:
    if not state:
        raise OAuthError("Missing OAuth state")
    try:
        payload = _decode(state)
    except jwt.PyJWTError as exc:
        raise OAuthError("Invalid OAuth state") from exc
    if payload.get("purpose") != OAUTH_STATE_PURPOSE:
        raise OAuthError("Invalid OAuth state")
