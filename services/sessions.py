"""
services/sessions.py -- Self-service session and account settings.

Everything here acts on the token owner only: user ids are never taken from
the caller, they are always CURRENT_USER resolved by the gateway. Tokens are
listed by alias; the secret value of a token other than the caller's own is
never returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auth.models import AccessToken, User
from auth.permissions import is_known_permission
from core.config import get_settings
from db.errors import ErrorKind, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries import access_tokens as token_queries
from db.queries import permissions as permission_queries
from db.queries import users as user_queries

logger = logging.getLogger("portal.services.sessions")


@dataclass(frozen=True)
class TokenSummary:
    alias: str
    creation_timestamp: datetime
    expiration_timestamp: datetime
    last_use_timestamp: datetime
    is_current: bool = False

    @classmethod
    def of(cls, token: AccessToken, current_alias: str | None = None) -> TokenSummary:
        return cls(
            alias=token.alias,
            creation_timestamp=token.creation_timestamp,
            expiration_timestamp=token.expiration_timestamp,
            last_use_timestamp=token.last_use_timestamp,
            is_current=token.alias == current_alias,
        )


@dataclass(frozen=True)
class Profile:
    id: str
    username: str
    email: str
    creation_timestamp: datetime
    last_login_timestamp: datetime | None
    default_token_expiry_seconds: int
    max_tokens_at_a_time: int | None

    @classmethod
    def of(cls, user: User) -> Profile:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            creation_timestamp=user.creation_timestamp,
            last_login_timestamp=user.last_login_timestamp,
            default_token_expiry_seconds=user.default_token_expiry_seconds,
            max_tokens_at_a_time=user.max_tokens_at_a_time,
        )


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def get_access_token(gateway: Gateway, token: str | None) -> QueryResult[TokenSummary]:
    """Describe the caller's own token."""
    found = gateway.execute_authenticated(token, token_queries.get_access_token, token)
    if not found.success:
        return QueryResult.fail(found.error)
    return QueryResult.ok(TokenSummary.of(found.result, found.result.alias))


def get_user_access_tokens(gateway: Gateway, token: str | None) -> QueryResult[list[TokenSummary]]:
    verified = gateway.verify_access_token(token)
    if not verified.success:
        return QueryResult.fail(verified.error)
    current_alias = verified.result.alias
    listed = gateway.execute_authenticated(
        token, token_queries.get_valid_user_access_tokens, CURRENT_USER, gateway.now()
    )
    if not listed.success:
        return QueryResult.fail(listed.error)
    return QueryResult.ok([TokenSummary.of(t, current_alias) for t in listed.result])


def revoke_token(gateway: Gateway, token: str | None, target_token: str) -> QueryResult[None]:
    """Manually revoke one of the caller's tokens by its secret value."""
    result = gateway.execute_authenticated(
        token, token_queries.revoke_access_token_manually, target_token, CURRENT_USER, gateway.now()
    )
    if result.success:
        logger.info("Access token revoked by its owner")
    return result


def revoke_token_by_alias(gateway: Gateway, token: str | None, alias: str) -> QueryResult[None]:
    result = gateway.execute_authenticated(
        token, token_queries.revoke_access_token_by_alias_manually, alias, CURRENT_USER, gateway.now()
    )
    if result.success:
        logger.info("Access token %s revoked by its owner", alias)
    return result


def revoke_self(gateway: Gateway, token: str | None) -> QueryResult[None]:
    """Log out: manually revoke the token making the call."""
    return revoke_token(gateway, token, token)


def enforce_token_limit(gateway: Gateway, token: str | None) -> QueryResult[list[str]]:
    """Automatically revoke the caller's oldest tokens above their cap. Returns aliases."""
    result = gateway.execute_authenticated(token, token_queries.enforce_token_limit, CURRENT_USER, gateway.now())
    if result.success and result.result:
        logger.info("Token limit enforced: %d token(s) revoked", len(result.result))
    return result


# ---------------------------------------------------------------------------
# Profile and settings
# ---------------------------------------------------------------------------


def get_profile(gateway: Gateway, token: str | None) -> QueryResult[Profile]:
    found = gateway.execute_authenticated(token, user_queries.get_user, CURRENT_USER)
    if not found.success:
        return QueryResult.fail(found.error)
    if found.result is None:
        return QueryResult.failure(ErrorKind.NOT_FOUND, "User not found.")
    return QueryResult.ok(Profile.of(found.result))


def get_my_permissions(gateway: Gateway, token: str | None) -> QueryResult[list[str]]:
    """Names the caller holds, restricted to the catalog."""
    found = gateway.execute_authenticated(token, permission_queries.get_user_permissions, CURRENT_USER)
    if not found.success:
        return QueryResult.fail(found.error)
    return QueryResult.ok([name for name in found.result if is_known_permission(name)])


def change_default_token_expiry(gateway: Gateway, token: str | None, seconds: int) -> QueryResult[None]:
    """Affects tokens issued from now on; existing tokens keep their expiry."""
    limit = get_settings().max_token_expiry_seconds
    if not 0 < seconds <= limit:
        return QueryResult.failure(
            ErrorKind.INVALID_ARGUMENT,
            f"Default token expiry must be between 1 and {limit} seconds.",
        )
    return gateway.execute_authenticated(token, user_queries.update_default_token_expiry, CURRENT_USER, seconds)


def change_max_tokens_at_a_time(gateway: Gateway, token: str | None, max_tokens: int | None) -> QueryResult[None]:
    """Set or clear the cap. Does not revoke anything; see enforce_token_limit."""
    limit = get_settings().max_tokens_at_a_time_limit
    if max_tokens is not None and not 1 <= max_tokens <= limit:
        return QueryResult.failure(
            ErrorKind.INVALID_ARGUMENT,
            f"Max tokens at a time must be empty or between 1 and {limit}.",
        )
    return gateway.execute_authenticated(token, user_queries.update_max_tokens_at_a_time, CURRENT_USER, max_tokens)
