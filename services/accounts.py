"""
services/accounts.py -- Account creation by redeeming an account creation code.

Order of operations (each step is its own gateway call):
  1. input validation                      -> INVALID_ARGUMENT
  2. check code + email                    -> INVITATION_INVALID (collapsed)
  3. check username/email availability     -> INVITATION_CONFLICT, or
                                              INVITATION_INVALID if the code
                                              was redeemed in the meantime
  4. hash the password                     (CPU only, nothing mutated yet)
  5. consume the code                      -> INVITATION_INVALID on a lost race
  6. create user + grant permissions       -> account_creation_incomplete
  7. notify the issuer if asked to

Step 5 is the commit point. From there on the code stays used even if step 6
fails: re-opening a credential after a partial failure is worse than asking
an administrator to finish the account by hand. Step 6 failures are logged at
ERROR with the code id and the intended user id for exactly that purpose.
"""

from __future__ import annotations

import logging
import uuid

from auth.tokens import hash_password
from core.config import get_settings
from db import tokenless
from db.errors import ErrorKind, QueryResult
from db.gateway import Gateway
from services.notifications import notify

logger = logging.getLogger("portal.services.accounts")

MSG_ACCOUNT_INCOMPLETE = (
    "The account creation code was consumed but the account could not be created. Contact an administrator."
)


def _validate_input(username: str, password: str, email: str) -> str | None:
    settings = get_settings()
    if not username or not username.strip():
        return "Username is required."
    if username != username.strip():
        return "Username cannot start or end with whitespace."
    if not email or "@" not in email:
        return "A valid email address is required."
    if len(password) < settings.min_password_length:
        return f"Password must be at least {settings.min_password_length} characters long."
    if len(password.encode("utf-8")) > 72:
        return "Password must be at most 72 bytes long."
    return None


def validate_account_creation_code(gateway: Gateway, code: str) -> QueryResult[None]:
    """Pre-check a code without an email and without mutating anything."""
    if not code:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Account creation code is required.")
    checked = gateway.execute_unauthenticated(tokenless.check_account_creation_code, code, gateway.now())
    if not checked.success:
        return QueryResult.fail(checked.error)
    return QueryResult.ok()


def create_account(gateway: Gateway, username: str, password: str, email: str, code: str) -> QueryResult[str]:
    """Create an account from a code. Returns the new user id."""
    problem = _validate_input(username, password, email)
    if problem is not None:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, problem)

    checked = gateway.execute_unauthenticated(tokenless.check_account_creation_code, code, gateway.now(), email)
    if not checked.success:
        return QueryResult.fail(checked.error)

    available = gateway.execute_unauthenticated(tokenless.check_identity_available, username, email)
    if not available.success:
        # A concurrent redemption of the same code may have created the
        # conflicting account. The code is what the caller lost on.
        rechecked = gateway.execute_unauthenticated(
            tokenless.check_account_creation_code, code, gateway.now(), email
        )
        if not rechecked.success:
            return QueryResult.fail(rechecked.error)
        return QueryResult.fail(available.error)

    hashed = hash_password(password)
    user_id = str(uuid.uuid4())

    consumed = gateway.execute_unauthenticated(
        tokenless.consume_account_creation_code, code, email, user_id, gateway.now()
    )
    if not consumed.success:
        return QueryResult.fail(consumed.error)
    invitation = consumed.result

    created = gateway.execute_unauthenticated(
        tokenless.create_invited_user,
        user_id,
        username,
        email,
        hashed,
        invitation.account_default_token_expiry_seconds,
        invitation.permission_names,
        gateway.now(),
    )
    if not created.success:
        logger.error(
            "Account creation incomplete: code %s consumed for user %s but creation failed (%s)",
            invitation.id,
            user_id,
            created.error.code,
        )
        return QueryResult.failure(ErrorKind.STORAGE_FAILURE, MSG_ACCOUNT_INCOMPLETE, code="account_creation_incomplete")

    logger.info("Account %s created from code %s", user_id, invitation.id)
    if invitation.notify_creator_on_use:
        notify("account_created", invitation, username)
    return QueryResult.ok(user_id)
