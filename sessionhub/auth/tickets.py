"""Single-use tickets for password reset and email verification.

Only the SHA-256 digest of a ticket is stored; the raw value goes out by
email and is hashed again when it comes back in a request path.
"""

import hashlib
import secrets
from datetime import timedelta

from sessionhub.core import config
from sessionhub.models.user import User, utcnow


def hash_ticket(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _new_ticket(expires_minutes: int):
    raw_token = secrets.token_hex(32)
    return raw_token, hash_ticket(raw_token), utcnow() + timedelta(minutes=expires_minutes)


def issue_password_reset(user: User) -> str:
    raw_token, digest, expires = _new_ticket(config.PASSWORD_RESET_EXPIRES_MINUTES)
    user.password_reset_token = digest
    user.password_reset_expires = expires
    return raw_token


def issue_email_verification(user: User) -> str:
    raw_token, digest, expires = _new_ticket(config.EMAIL_VERIFICATION_EXPIRES_MINUTES)
    user.email_verification_token = digest
    user.email_verification_expires = expires
    return raw_token


def clear_password_reset(user: User) -> None:
    user.password_reset_token = None
    user.password_reset_expires = None


def clear_email_verification(user: User) -> None:
    user.email_verification_token = None
    user.email_verification_expires = None
