"""
services/login.py -- Password login.

Security:
  [C1] Timing equalization. An unknown username spends one bcrypt
       verification on a dummy hash (auth.tokens.equalize_timing) so it costs
       the same as a wrong password. Both paths return the identical
       INVALID_CREDENTIAL error; neither logs the attempted username at a
       level above DEBUG.

Flow:
  1. tokenless get_user_by_username (non-deleted users only)
  2. bcrypt verify (or equalize_timing)
  3. tokenless issue_access_token -- locks the user row, evicts over-cap
     tokens, inserts the new token, all in one transaction
  4. authenticated touch_last_login with the new token
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auth.tokens import equalize_timing, verify_password
from db import tokenless
from db.errors import MSG_INVALID_CREDENTIAL, ErrorKind, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries.users import touch_last_login

logger = logging.getLogger("portal.services.login")


@dataclass(frozen=True)
class LoginResult:
    token: str
    alias: str
    expiration_timestamp: datetime
    expires_in: int
    message: str = "Logged in."


def _invalid_credentials() -> QueryResult[LoginResult]:
    return QueryResult.failure(ErrorKind.INVALID_CREDENTIAL, MSG_INVALID_CREDENTIAL)


def login(gateway: Gateway, username: str, password: str) -> QueryResult[LoginResult]:
    found = gateway.execute_unauthenticated(tokenless.get_user_by_username, username)
    if not found.success:
        return QueryResult.fail(found.error)

    user = found.result
    if user is None:
        equalize_timing(password)  # [C1]
        logger.debug("Login failed: unknown username")
        return _invalid_credentials()
    if not verify_password(password, user.hashed_password):
        logger.debug("Login failed: wrong password for user %s", user.id)
        return _invalid_credentials()

    now = gateway.now()
    issued = gateway.execute_unauthenticated(tokenless.issue_access_token, user.id, now)
    if not issued.success:
        return QueryResult.fail(issued.error)
    token = issued.result

    touched = gateway.execute_authenticated(token.token, touch_last_login, CURRENT_USER, now)
    if not touched.success:
        return QueryResult.fail(touched.error)

    logger.info("User %s logged in (token %s)", user.id, token.alias)
    return QueryResult.ok(
        LoginResult(
            token=token.token,
            alias=token.alias,
            expiration_timestamp=token.expiration_timestamp,
            expires_in=int((token.expiration_timestamp - now).total_seconds()),
        )
    )
