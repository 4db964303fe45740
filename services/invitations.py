"""
services/invitations.py -- Issuing and managing account creation codes.

Administrator operations require use_app_admin AND
app_admin:manage_account_creation_codes. The code value is returned only from
issue_account_creation_code (the issuer has to pass it on); listings return it
too because the same administrators may need to resend it, but it is never
logged.

issue_bootstrap_code() is the first-run path: no token, allowed only while the
store holds zero users and zero codes (checked inside the inserting
transaction, see db/tokenless.py). The root code grants every catalog
permission. There is no implicit superuser.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from auth.invitations import generate_account_creation_code
from auth.models import AccountCreationCode
from auth.permissions import Permission, is_known_permission
from core.config import get_settings
from db import tokenless
from db.errors import ErrorKind, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries import account_creation_codes as code_queries
from db.queries import users as user_queries
from services.guards import require_admin
from services.notifications import notify

logger = logging.getLogger("portal.services.invitations")

_MANAGE = Permission.App_Admin_ManageAccountCreationCodes

_CODE_COLLISION = {"unique_violation": "Could not generate a unique account creation code. Please try again."}


def _invalid(message: str) -> QueryResult:
    return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, message)


def _check_default_expiry(seconds: int) -> QueryResult | None:
    limit = get_settings().max_token_expiry_seconds
    if not 0 < seconds <= limit:
        return _invalid(f"Default token expiry must be between 1 and {limit} seconds.")
    return None


def _check_permission_names(names: list[str]) -> QueryResult | None:
    unknown = [name for name in names if not is_known_permission(name)]
    if unknown:
        return _invalid(f"Unknown permission(s): {', '.join(sorted(unknown))}.")
    return None


# ---------------------------------------------------------------------------
# Administrator operations
# ---------------------------------------------------------------------------


def list_account_creation_codes(
    gateway: Gateway, token: str | None, include_invalid: bool = False
) -> QueryResult[list[AccountCreationCode]]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    return gateway.execute_authenticated(
        token, code_queries.list_account_creation_codes, gateway.now(), include_invalid
    )


def issue_account_creation_code(
    gateway: Gateway,
    token: str | None,
    email: str,
    title: str,
    permission_names: list[str],
    expiration: datetime,
    account_default_token_expiry_seconds: int | None = None,
    notify_creator_on_use: bool = False,
) -> QueryResult[AccountCreationCode]:
    settings = get_settings()
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)

    now = gateway.now()
    if account_default_token_expiry_seconds is None:
        account_default_token_expiry_seconds = settings.account_default_token_expiry_seconds
    if len(title) >= settings.account_creation_code_max_title_length:
        return _invalid(f"Title must be shorter than {settings.account_creation_code_max_title_length} characters.")
    if not email or "@" not in email:
        return _invalid("A valid email address is required.")
    if not now < expiration <= now + timedelta(seconds=settings.account_creation_code_max_lifetime_seconds):
        return _invalid("Expiration must be in the future and at most one year away.")
    refused = _check_default_expiry(account_default_token_expiry_seconds) or _check_permission_names(permission_names)
    if refused is not None:
        return refused

    bound = gateway.execute_authenticated(token, code_queries.redeemable_code_exists_for_email, email, now)
    if not bound.success:
        return QueryResult.fail(bound.error)
    if bound.result:
        return QueryResult.failure(
            ErrorKind.INVITATION_CONFLICT, "A valid account creation code already exists for this email."
        )
    taken = gateway.execute_authenticated(token, user_queries.active_user_exists_with_email, email)
    if not taken.success:
        return QueryResult.fail(taken.error)
    if taken.result:
        return QueryResult.failure(ErrorKind.INVITATION_CONFLICT, "An account with this email already exists.")

    draft = AccountCreationCode(
        id=str(uuid.uuid4()),
        code=generate_account_creation_code(settings.account_creation_code_length),
        title=title,
        email=email,
        creation_timestamp=now,
        creator_type="user",
        account_default_token_expiry_seconds=account_default_token_expiry_seconds,
        expiration_timestamp=expiration,
        permission_names=list(dict.fromkeys(permission_names)),
        notify_creator_on_use=notify_creator_on_use,
    )
    issued = gateway.execute_authenticated(
        token, code_queries.insert_account_creation_code, CURRENT_USER, draft, mapped_errors=_CODE_COLLISION
    )
    if not issued.success:
        return issued
    logger.info("User %s issued account creation code %s", allowed.result, issued.result.id)
    notify("invitation_issued", issued.result)
    return issued


def revoke_account_creation_code(gateway: Gateway, token: str | None, code_id: str) -> QueryResult[None]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    result = gateway.execute_authenticated(
        token, code_queries.revoke_account_creation_code, code_id, CURRENT_USER, gateway.now()
    )
    if result.success:
        logger.info("User %s revoked account creation code %s", allowed.result, code_id)
    return result


def add_permission_to_code(
    gateway: Gateway, token: str | None, code_id: str, permission_name: str
) -> QueryResult[list[str]]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    refused = _check_permission_names([permission_name])
    if refused is not None:
        return refused
    return gateway.execute_authenticated(
        token, code_queries.add_permission_to_code, code_id, permission_name, gateway.now()
    )


def remove_permission_from_code(
    gateway: Gateway, token: str | None, code_id: str, permission_name: str
) -> QueryResult[list[str]]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    return gateway.execute_authenticated(
        token, code_queries.remove_permission_from_code, code_id, permission_name, gateway.now()
    )


def update_code_default_token_expiry(
    gateway: Gateway, token: str | None, code_id: str, seconds: int
) -> QueryResult[None]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    refused = _check_default_expiry(seconds)
    if refused is not None:
        return refused
    return gateway.execute_authenticated(
        token, code_queries.update_code_default_token_expiry, code_id, seconds, gateway.now()
    )


def update_code_notify_creator(gateway: Gateway, token: str | None, code_id: str, notify_creator: bool) -> QueryResult[None]:
    allowed = require_admin(gateway, token, _MANAGE)
    if not allowed.success:
        return QueryResult.fail(allowed.error)
    return gateway.execute_authenticated(
        token,
        code_queries.update_code_notify_creator,
        code_id,
        notify_creator,
        gateway.now(),
        mapped_errors={"check_violation": "Only codes issued by a user can notify their creator."},
    )


# ---------------------------------------------------------------------------
# First run
# ---------------------------------------------------------------------------


def issue_bootstrap_code(gateway: Gateway, email: str) -> QueryResult[AccountCreationCode]:
    """Issue the system code for the first account. Empty store only."""
    settings = get_settings()
    if not email or "@" not in email:
        return _invalid("A valid email address is required.")
    now = gateway.now()
    issued = gateway.execute_unauthenticated(
        tokenless.issue_system_account_creation_code,
        generate_account_creation_code(settings.account_creation_code_length),
        email,
        [p.value for p in Permission],
        settings.bootstrap_token_expiry_seconds,
        now,
        now + timedelta(minutes=settings.bootstrap_code_expiry_minutes),
    )
    if issued.success:
        logger.warning("System account creation code %s issued for %s", issued.result.id, email)
    return issued
