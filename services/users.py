"""
services/users.py -- User administration.

Permissions (each also requires use_app_admin):
  list_users / get_user_detail     app_admin:search_users
  grant_permission / revoke_...    app_admin:manage_users:manage_permissions
  revoke_user_token                app_admin:manage_users:manage_access_tokens
  delete_user                      app_admin:manage_users:delete_users

Security:
  [M4] An administrator can neither change their own permissions nor delete
       their own account; both are refused before any write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auth.models import User
from auth.permissions import Permission, is_known_permission
from db.errors import ErrorKind, QueryError, QueryResult
from db.gateway import Gateway
from db.queries import access_tokens as token_queries
from db.queries import permissions as permission_queries
from db.queries import users as user_queries
from services.guards import require_admin
from services.sessions import TokenSummary

logger = logging.getLogger("portal.services.users")

_ALREADY_GRANTED = QueryError(
    ErrorKind.INVALID_ARGUMENT, "permission_already_granted", "The user already has this permission."
)


@dataclass(frozen=True)
class UserSummary:
    id: str
    username: str
    email: str
    creation_timestamp: datetime
    last_login_timestamp: datetime | None
    deletion_timestamp: datetime | None

    @classmethod
    def of(cls, user: User) -> UserSummary:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            creation_timestamp=user.creation_timestamp,
            last_login_timestamp=user.last_login_timestamp,
            deletion_timestamp=user.deletion_timestamp,
        )


@dataclass(frozen=True)
class UserDetail:
    user: UserSummary
    permissions: list[str]
    tokens: list[TokenSummary]


def list_users(gateway: Gateway, token: str | None, include_deleted: bool = False) -> QueryResult[list[UserSummary]]:
    allowed = require_admin(gateway, token, Permission.App_Admin_SearchUsers)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    found = gateway.execute_authenticated(token, user_queries.list_users, include_deleted)
    if not found.success:
        return QueryResult.fail(found.error)
    return QueryResult.ok([UserSummary.of(u) for u in found.result])


def get_user_detail(gateway: Gateway, token: str | None, user_id: str) -> QueryResult[UserDetail]:
    allowed = require_admin(gateway, token, Permission.App_Admin_SearchUsers)
    if not allowed.success:
        return QueryResult.fail(allowed.error)

    found = gateway.execute_authenticated(token, user_queries.get_user, user_id)
    if not found.success:
        return QueryResult.fail(found.error)
    if found.result is None:
        return QueryResult.failure(ErrorKind.NOT_FOUND, "User not found.")

    permissions = gateway.execute_authenticated(token, permission_queries.get_user_permissions, user_id)
    if not permissions.success:
        return QueryResult.fail(permissions.error)
    tokens = gateway.execute_authenticated(token, token_queries.get_valid_user_access_tokens, user_id, gateway.now())
    if not tokens.success:
        return QueryResult.fail(tokens.error)

    return QueryResult.ok(
        UserDetail(
            user=UserSummary.of(found.result),
            permissions=[name for name in permissions.result if is_known_permission(name)],
            tokens=[TokenSummary.of(t) for t in tokens.result],
        )
    )


def _check_grant_target(caller_id: str, user_id: str, permission_name: str) -> QueryResult[None] | None:
    if caller_id == user_id:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "You cannot change your own permissions.")
    if not is_known_permission(permission_name):
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Unknown permission.")
    return None


def grant_permission(gateway: Gateway, token: str | None, user_id: str, permission_name: str) -> QueryResult[None]:
    allowed = require_admin(gateway, token, Permission.App_Admin_ManageUsers_ManagePermissions)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    refused = _check_grant_target(allowed.result, user_id, permission_name)
    if refused is not None:
        return refused

    result = gateway.execute_authenticated(
        token,
        permission_queries.grant_permission,
        user_id,
        permission_name,
        mapped_errors={"unique_violation": _ALREADY_GRANTED},
    )
    if result.success:
        logger.warning("User %s granted %s to user %s", allowed.result, permission_name, user_id)
    return result


def revoke_permission(gateway: Gateway, token: str | None, user_id: str, permission_name: str) -> QueryResult[None]:
    allowed = require_admin(gateway, token, Permission.App_Admin_ManageUsers_ManagePermissions)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    refused = _check_grant_target(allowed.result, user_id, permission_name)
    if refused is not None:
        return refused

    result = gateway.execute_authenticated(token, permission_queries.revoke_permission, user_id, permission_name)
    if result.success:
        logger.warning("User %s revoked %s from user %s", allowed.result, permission_name, user_id)
    return result


def revoke_user_token(gateway: Gateway, token: str | None, user_id: str, alias: str) -> QueryResult[None]:
    allowed = require_admin(gateway, token, Permission.App_Admin_ManageUsers_ManageAccessTokens)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    result = gateway.execute_authenticated(
        token, token_queries.revoke_access_token_by_alias_manually, alias, user_id, gateway.now()
    )
    if result.success:
        logger.info("User %s revoked token %s of user %s", allowed.result, alias, user_id)
    return result


def delete_user(gateway: Gateway, token: str | None, user_id: str) -> QueryResult[int]:
    """Soft-delete a user. Returns the number of tokens revoked with it."""
    allowed = require_admin(gateway, token, Permission.App_Admin_ManageUsers_DeleteUsers)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    if allowed.result == user_id:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "You cannot delete your own account.")  # [M4]

    result = gateway.execute_authenticated(token, user_queries.soft_delete_user, user_id, gateway.now())
    if result.success:
        logger.warning("User %s deleted user %s (%d token(s) revoked)", allowed.result, user_id, result.result)
    return result
