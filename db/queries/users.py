"""
db/queries/users.py -- User reads and account settings writes.

Users are never hard-deleted. soft_delete_user() stamps deletion_timestamp and
automatically revokes every still-valid token in the same transaction, so a
deleted account cannot keep acting through an existing session.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, select, update

from auth.models import User
from db.errors import NotFound
from db.schema import access_tokens, iso, row_to_user, users
from db.scope import authenticated_query


def require_active_user(conn, user_id: str) -> User:
    """Return the non-deleted user or raise NotFound. Not a query by itself."""
    row = conn.execute(
        select(users).where(and_(users.c.id == user_id, users.c.deletion_timestamp.is_(None)))
    ).first()
    if row is None:
        raise NotFound("User not found.")
    return row_to_user(row)


@authenticated_query
def get_user(scope, conn, user_id: str) -> User | None:
    row = conn.execute(select(users).where(users.c.id == user_id)).first()
    return row_to_user(row) if row else None


@authenticated_query
def list_users(scope, conn, include_deleted: bool = False) -> list[User]:
    stmt = select(users).order_by(users.c.creation_timestamp, users.c.username)
    if not include_deleted:
        stmt = stmt.where(users.c.deletion_timestamp.is_(None))
    return [row_to_user(row) for row in conn.execute(stmt).fetchall()]


@authenticated_query
def active_user_exists_with_email(scope, conn, email: str) -> bool:
    row = conn.execute(
        select(users.c.id).where(and_(users.c.email == email, users.c.deletion_timestamp.is_(None)))
    ).first()
    return row is not None


@authenticated_query
def update_default_token_expiry(scope, conn, user_id: str, seconds: int) -> None:
    result = conn.execute(
        update(users)
        .where(and_(users.c.id == user_id, users.c.deletion_timestamp.is_(None)))
        .values(default_token_expiry_seconds=seconds)
    )
    if result.rowcount == 0:
        raise NotFound("User not found.")


@authenticated_query
def update_max_tokens_at_a_time(scope, conn, user_id: str, max_tokens: int | None) -> None:
    result = conn.execute(
        update(users)
        .where(and_(users.c.id == user_id, users.c.deletion_timestamp.is_(None)))
        .values(max_tokens_at_a_time=max_tokens)
    )
    if result.rowcount == 0:
        raise NotFound("User not found.")


@authenticated_query
def touch_last_login(scope, conn, user_id: str, now: datetime) -> None:
    conn.execute(update(users).where(users.c.id == user_id).values(last_login_timestamp=iso(now)))


@authenticated_query
def soft_delete_user(scope, conn, user_id: str, now: datetime) -> int:
    """Mark the user deleted and revoke their valid tokens. Returns tokens revoked."""
    stamp = iso(now)
    result = conn.execute(
        update(users)
        .where(and_(users.c.id == user_id, users.c.deletion_timestamp.is_(None)))
        .values(deletion_timestamp=stamp)
    )
    if result.rowcount == 0:
        raise NotFound("User not found.")
    revoked = conn.execute(
        update(access_tokens)
        .where(
            and_(
                access_tokens.c.user_id == user_id,
                access_tokens.c.expiration_timestamp > stamp,
                access_tokens.c.manually_revoked_timestamp.is_(None),
                access_tokens.c.automatically_revoked_timestamp.is_(None),
            )
        )
        .values(automatically_revoked_timestamp=stamp)
    )
    return revoked.rowcount
