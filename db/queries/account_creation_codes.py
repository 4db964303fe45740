"""
db/queries/account_creation_codes.py -- Admin-side account creation code queries.

Redemption (check + consume) is pre-authentication and lives in
db/tokenless.py. Everything here runs for an authenticated administrator;
the permission check happens in services/ before dispatch.

Edits (permissions, default expiry, notify flag) only apply to codes that
are still redeemable. The WHERE clause restates that, so an edit racing a
redemption or a revocation loses cleanly with NotFound.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, insert, select, update

from auth.models import AccountCreationCode
from db.errors import InvalidArgument, NotFound
from db.schema import account_creation_codes, iso, row_to_account_creation_code
from db.scope import authenticated_query

_NOT_REDEEMABLE = "Account creation code not found or no longer valid."


def _redeemable(now: datetime):
    return and_(
        account_creation_codes.c.used_timestamp.is_(None),
        account_creation_codes.c.revoked_timestamp.is_(None),
        account_creation_codes.c.expiration_timestamp > iso(now),
    )


@authenticated_query
def list_account_creation_codes(scope, conn, now: datetime, include_invalid: bool = False) -> list[AccountCreationCode]:
    stmt = select(account_creation_codes).order_by(account_creation_codes.c.creation_timestamp.desc())
    if not include_invalid:
        stmt = stmt.where(_redeemable(now))
    return [row_to_account_creation_code(row) for row in conn.execute(stmt).fetchall()]


@authenticated_query
def redeemable_code_exists_for_email(scope, conn, email: str, now: datetime) -> bool:
    row = conn.execute(
        select(account_creation_codes.c.id).where(and_(account_creation_codes.c.email == email, _redeemable(now)))
    ).first()
    return row is not None


@authenticated_query
def insert_account_creation_code(scope, conn, creator_user_id: str, code: AccountCreationCode) -> AccountCreationCode:
    """Persist a user-issued code. The creator always comes from the verified token."""
    code.creator_type = "user"
    code.creator_user_id = creator_user_id
    conn.execute(
        insert(account_creation_codes).values(
            id=code.id,
            code=code.code,
            title=code.title,
            email=code.email,
            creation_timestamp=iso(code.creation_timestamp),
            creator_type=code.creator_type,
            creator_user_id=code.creator_user_id,
            account_default_token_expiry_seconds=code.account_default_token_expiry_seconds,
            permission_names=list(code.permission_names),
            expiration_timestamp=iso(code.expiration_timestamp),
            notify_creator_on_use=code.notify_creator_on_use,
        )
    )
    return code


@authenticated_query
def revoke_account_creation_code(scope, conn, code_id: str, revoker_user_id: str, now: datetime) -> None:
    result = conn.execute(
        update(account_creation_codes)
        .where(and_(account_creation_codes.c.id == code_id, _redeemable(now)))
        .values(revoked_timestamp=iso(now), revoker_user_id=revoker_user_id)
    )
    if result.rowcount == 0:
        raise NotFound(_NOT_REDEEMABLE)


def _lock_redeemable(conn, code_id: str, now: datetime) -> AccountCreationCode:
    row = conn.execute(
        select(account_creation_codes)
        .where(and_(account_creation_codes.c.id == code_id, _redeemable(now)))
        .with_for_update()
    ).first()
    if row is None:
        raise NotFound(_NOT_REDEEMABLE)
    return row_to_account_creation_code(row)


def _store_permissions(conn, code_id: str, permission_names: list[str], now: datetime) -> None:
    result = conn.execute(
        update(account_creation_codes)
        .where(and_(account_creation_codes.c.id == code_id, _redeemable(now)))
        .values(permission_names=permission_names)
    )
    if result.rowcount == 0:
        raise NotFound(_NOT_REDEEMABLE)


@authenticated_query
def add_permission_to_code(scope, conn, code_id: str, permission_name: str, now: datetime) -> list[str]:
    code = _lock_redeemable(conn, code_id, now)
    if permission_name in code.permission_names:
        raise InvalidArgument("The code already grants this permission.")
    names = [*code.permission_names, permission_name]
    _store_permissions(conn, code_id, names, now)
    return names


@authenticated_query
def remove_permission_from_code(scope, conn, code_id: str, permission_name: str, now: datetime) -> list[str]:
    code = _lock_redeemable(conn, code_id, now)
    if permission_name not in code.permission_names:
        raise InvalidArgument("The code does not grant this permission.")
    names = [name for name in code.permission_names if name != permission_name]
    _store_permissions(conn, code_id, names, now)
    return names


@authenticated_query
def update_code_default_token_expiry(scope, conn, code_id: str, seconds: int, now: datetime) -> None:
    result = conn.execute(
        update(account_creation_codes)
        .where(and_(account_creation_codes.c.id == code_id, _redeemable(now)))
        .values(account_default_token_expiry_seconds=seconds)
    )
    if result.rowcount == 0:
        raise NotFound(_NOT_REDEEMABLE)


@authenticated_query
def update_code_notify_creator(scope, conn, code_id: str, notify: bool, now: datetime) -> None:
    """A system-issued code cannot notify anyone; the CHECK constraint rejects it."""
    result = conn.execute(
        update(account_creation_codes)
        .where(and_(account_creation_codes.c.id == code_id, _redeemable(now)))
        .values(notify_creator_on_use=notify)
    )
    if result.rowcount == 0:
        raise NotFound(_NOT_REDEEMABLE)
