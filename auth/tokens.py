"""
auth/tokens.py -- Password hashing, bearer token generation and token state.

Security design decisions:
  Tokens: opaque random strings, not JWTs. secrets.token_urlsafe(64) gives
       512 bits of entropy. All session state lives in the access_tokens table,
       so a token can be revoked instantly and audited afterwards -- something
       a self-contained signed token cannot offer.

  Passwords: bcrypt, used directly (no passlib wrapper). The work factor comes
       from Settings.bcrypt_rounds. The dummy hash enables timing equalization
       in the login flow so response time does not reveal whether a username
       exists [C1].

  Token state: token_state() is the single definition of "valid". Its check
       order is policy, not an accident: expiry is reported before revocation,
       manual revocation before automatic revocation.

Layer rule: no imports from api/, db/, or services/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import AccessToken

logger = logging.getLogger("portal.auth")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes (newer releases refuse longer
    input). services/accounts.py rejects longer passwords before hashing.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed digest, or a password over 72 bytes. Either way no match.
        return False


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return hash_password("portal_timing_dummy", rounds=rounds)


def equalize_timing(plain: str) -> None:
    """Spend one bcrypt verification on a throwaway hash [C1].

    Called on the unknown-username path of login so it costs the same as a
    wrong-password check against a real hash. The dummy hash is built with the
    current work factor and cached, so only the very first call pays for
    generating it.
    """
    verify_password(plain, _dummy_hash(get_settings().bcrypt_rounds))


# ---------------------------------------------------------------------------
# Token generation
# ---------------------------------------------------------------------------


def generate_access_token() -> str:
    """Return a new bearer token: 64 random bytes, base64url, no padding."""
    return secrets.token_urlsafe(64)


def generate_token_alias() -> str:
    """Return a short display handle for a token (not a secret)."""
    return secrets.token_hex(8)


# ---------------------------------------------------------------------------
# Token state machine
# ---------------------------------------------------------------------------


class TokenState(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MANUALLY_REVOKED = "manually_revoked"
    AUTOMATICALLY_REVOKED = "automatically_revoked"
    VALID = "valid"


def token_state(token: AccessToken | None, now: datetime) -> TokenState:
    """Classify a token. First match wins:

    1. NOT_FOUND              -- no such row
    2. EXPIRED                -- now >= expiration_timestamp
    3. MANUALLY_REVOKED       -- manually_revoked_timestamp set
    4. AUTOMATICALLY_REVOKED  -- automatically_revoked_timestamp set
    5. VALID
    """
    if token is None:
        return TokenState.NOT_FOUND
    if now >= token.expiration_timestamp:
        return TokenState.EXPIRED
    if token.manually_revoked_timestamp is not None:
        return TokenState.MANUALLY_REVOKED
    if token.automatically_revoked_timestamp is not None:
        return TokenState.AUTOMATICALLY_REVOKED
    return TokenState.VALID


def is_token_valid(token: AccessToken | None, now: datetime) -> bool:
    return token_state(token, now) is TokenState.VALID


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int) -> None:
    """Write the bearer token as an httpOnly cookie scoped to the whole site.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS unless SECURE_COOKIES=false (local dev).
    max_age: matches the token expiry so both expire together.
    """
    settings = get_settings()
    response.set_cookie(
        settings.cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=expire_seconds,
        path="/",
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(get_settings().cookie_name, path="/")
