"""
db/tokenless.py -- The pre-authentication allow-list.

Gateway.execute_unauthenticated() dispatches ONLY @tokenless_query functions
defined in this module. Adding a function here is a security decision: it
becomes reachable by anyone who can reach the login or sign-up endpoints.

What is here and why:
  get_user_by_username             -- login lookup
  issue_access_token               -- login mint (+ eviction, one transaction)
  check_account_creation_code      -- sign-up pre-check
  check_identity_available         -- sign-up conflict check
  consume_account_creation_code    -- the single-use gate
  create_invited_user              -- user + grants after a consumed code
  issue_system_account_creation_code -- first-run bootstrap, empty store only

Race notes:
  issue_access_token locks the user row before counting tokens, so two logins
  by the same user near the cap cannot both see a stale count. On SQLite the
  BEGIN IMMEDIATE emitted by db/engine.py gives the same guarantee.

  consume_account_creation_code is one UPDATE with every redeemability
  precondition in its WHERE clause. Whichever redemption commits first wins;
  the loser sees zero affected rows and re-reads the row for the reason.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, func, insert, or_, select, text, update

from auth.invitations import InvitationState, invitation_state
from auth.models import AccessToken, AccountCreationCode, User
from auth.tokens import generate_access_token, generate_token_alias
from db.errors import InvitationConflict, InvitationReason, InvitationRejected, NotFound, PermissionDenied
from db.queries import access_tokens as token_queries
from db.queries import permissions as permission_queries
from db.schema import (
    access_tokens,
    account_creation_codes,
    iso,
    row_to_account_creation_code,
    row_to_user,
    users,
)
from db.scope import tokenless_query

# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@tokenless_query
def get_user_by_username(scope, conn, username: str) -> User | None:
    row = conn.execute(
        select(users).where(and_(users.c.username == username, users.c.deletion_timestamp.is_(None)))
    ).first()
    return row_to_user(row) if row else None


@tokenless_query
def issue_access_token(scope, conn, user_id: str, now: datetime) -> AccessToken:
    """Evict over-cap tokens and mint a new one in a single transaction."""
    row = conn.execute(
        select(users).where(and_(users.c.id == user_id, users.c.deletion_timestamp.is_(None))).with_for_update()
    ).first()
    if row is None:
        raise NotFound("User not found.")
    user = row_to_user(row)

    token_queries.evict_excess_tokens(scope, conn, user.id, user.max_tokens_at_a_time, now, reserve_slot=True)

    token = AccessToken(
        token=generate_access_token(),
        alias=generate_token_alias(),
        user_id=user.id,
        creation_timestamp=now,
        expiration_timestamp=now + timedelta(seconds=user.default_token_expiry_seconds),
        last_use_timestamp=now,
    )
    conn.execute(
        insert(access_tokens).values(
            token=token.token,
            alias=token.alias,
            user_id=token.user_id,
            creation_timestamp=iso(token.creation_timestamp),
            expiration_timestamp=iso(token.expiration_timestamp),
            last_use_timestamp=iso(token.last_use_timestamp),
        )
    )
    return token


# ---------------------------------------------------------------------------
# Account creation
# ---------------------------------------------------------------------------


_STATE_REASONS: dict[InvitationState, InvitationReason] = {
    InvitationState.REVOKED: InvitationReason.REVOKED,
    InvitationState.REDEEMED: InvitationReason.USED,
    InvitationState.EXPIRED: InvitationReason.EXPIRED,
}


def _rejection_reason(code: AccountCreationCode | None, email: str | None, now: datetime) -> InvitationReason | None:
    """Validation order: exists, not revoked, not used, not expired, email matches."""
    if code is None:
        return InvitationReason.NOT_FOUND
    state = invitation_state(code, now)
    if state is not InvitationState.ISSUED:
        return _STATE_REASONS[state]
    if email is not None and code.email != email:
        return InvitationReason.EMAIL_MISMATCH
    return None


def _find_code(conn, code_value: str) -> AccountCreationCode | None:
    row = conn.execute(select(account_creation_codes).where(account_creation_codes.c.code == code_value)).first()
    return row_to_account_creation_code(row) if row else None


@tokenless_query
def check_account_creation_code(scope, conn, code_value: str, now: datetime, email: str | None = None) -> AccountCreationCode:
    code = _find_code(conn, code_value)
    reason = _rejection_reason(code, email, now)
    if reason is not None:
        raise InvitationRejected(reason)
    return code


@tokenless_query
def check_identity_available(scope, conn, username: str, email: str) -> None:
    rows = conn.execute(
        select(users.c.username, users.c.email).where(
            and_(
                users.c.deletion_timestamp.is_(None),
                or_(users.c.username == username, users.c.email == email),
            )
        )
    ).fetchall()
    if any(row.username == username for row in rows):
        raise InvitationConflict("This username is already taken.")
    if rows:
        raise InvitationConflict("An account with this email already exists.")


@tokenless_query
def consume_account_creation_code(
    scope, conn, code_value: str, email: str, new_user_id: str, now: datetime
) -> AccountCreationCode:
    result = conn.execute(
        update(account_creation_codes)
        .where(
            and_(
                account_creation_codes.c.code == code_value,
                account_creation_codes.c.email == email,
                account_creation_codes.c.used_timestamp.is_(None),
                account_creation_codes.c.revoked_timestamp.is_(None),
                account_creation_codes.c.expiration_timestamp > iso(now),
            )
        )
        .values(used_timestamp=iso(now), used_on_user_id=new_user_id)
    )
    code = _find_code(conn, code_value)
    if result.rowcount == 0:
        raise InvitationRejected(_rejection_reason(code, email, now) or InvitationReason.USED)
    return code


@tokenless_query
def create_invited_user(
    scope,
    conn,
    user_id: str,
    username: str,
    email: str,
    hashed_password: str,
    default_token_expiry_seconds: int,
    permission_names: list[str],
    now: datetime,
) -> User:
    user = User(
        id=user_id,
        username=username,
        email=email,
        hashed_password=hashed_password,
        creation_timestamp=now,
        default_token_expiry_seconds=default_token_expiry_seconds,
    )
    conn.execute(
        insert(users).values(
            id=user.id,
            username=user.username,
            email=user.email,
            hashed_password=user.hashed_password,
            creation_timestamp=iso(user.creation_timestamp),
            default_token_expiry_seconds=user.default_token_expiry_seconds,
        )
    )
    permission_queries.insert_permission_grants(scope, conn, user.id, permission_names)
    return user


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


@tokenless_query
def issue_system_account_creation_code(
    scope,
    conn,
    code_value: str,
    email: str,
    permission_names: list[str],
    default_token_expiry_seconds: int,
    now: datetime,
    expiration: datetime,
) -> AccountCreationCode:
    """Issue the first-run code. Only allowed while the store is empty."""
    if conn.dialect.name == "postgresql":
        conn.execute(text("LOCK TABLE users, account_creation_codes IN SHARE ROW EXCLUSIVE MODE"))
    user_count = conn.execute(select(func.count()).select_from(users)).scalar_one()
    code_count = conn.execute(select(func.count()).select_from(account_creation_codes)).scalar_one()
    if user_count or code_count:
        raise PermissionDenied("A system account creation code can only be issued to an empty store.")

    code = AccountCreationCode(
        id=str(uuid.uuid4()),
        code=code_value,
        title="Root account",
        email=email,
        creation_timestamp=now,
        creator_type="system",
        account_default_token_expiry_seconds=default_token_expiry_seconds,
        expiration_timestamp=expiration,
        permission_names=list(permission_names),
    )
    conn.execute(
        insert(account_creation_codes).values(
            id=code.id,
            code=code.code,
            title=code.title,
            email=code.email,
            creation_timestamp=iso(code.creation_timestamp),
            creator_type=code.creator_type,
            account_default_token_expiry_seconds=code.account_default_token_expiry_seconds,
            permission_names=code.permission_names,
            expiration_timestamp=iso(code.expiration_timestamp),
            notify_creator_on_use=False,
        )
    )
    return code
