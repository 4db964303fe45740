"""
db/queries/access_tokens.py -- Token reads, revocation and eviction.

Every revocation is a single UPDATE whose WHERE clause restates the validity
preconditions (not expired, neither revocation timestamp set). The affected
row count then tells us whether we won: two concurrent revocations of the same
token cannot both stamp it.

Manual revocation is idempotent from the caller's point of view: revoking a
token that is already revoked or expired succeeds without touching the row.
Automatic revocation (eviction) is not: losing the race there means the
token policy could not be enforced, which is TokenRevocationFailed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, select, update

from auth.models import AccessToken
from auth.tokens import is_token_valid
from db.errors import NotFound, TokenRevocationFailed
from db.schema import access_tokens, iso, row_to_access_token, users
from db.scope import authenticated_query, shared_query


def _still_valid(now: datetime):
    return and_(
        access_tokens.c.expiration_timestamp > iso(now),
        access_tokens.c.manually_revoked_timestamp.is_(None),
        access_tokens.c.automatically_revoked_timestamp.is_(None),
    )


def _tokens_for_user(conn, user_id: str) -> list[AccessToken]:
    rows = conn.execute(
        select(access_tokens)
        .where(access_tokens.c.user_id == user_id)
        .order_by(access_tokens.c.creation_timestamp, access_tokens.c.alias)
    ).fetchall()
    return [row_to_access_token(row) for row in rows]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@authenticated_query
def get_access_token(scope, conn, token: str) -> AccessToken | None:
    row = conn.execute(select(access_tokens).where(access_tokens.c.token == token)).first()
    return row_to_access_token(row) if row else None


@shared_query
def get_valid_user_access_tokens(scope, conn, user_id: str, now: datetime) -> list[AccessToken]:
    """Valid tokens for a user, oldest first."""
    return [t for t in _tokens_for_user(conn, user_id) if is_token_valid(t, now)]


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------


def _revoke_manually(conn, criteria, now: datetime) -> None:
    result = conn.execute(
        update(access_tokens)
        .where(and_(criteria, _still_valid(now)))
        .values(manually_revoked_timestamp=iso(now))
    )
    if result.rowcount:
        return
    # Nothing stamped: either it never existed (for this owner) or it is
    # already dead. Only the former is an error.
    if conn.execute(select(access_tokens.c.token).where(criteria)).first() is None:
        raise NotFound("Access token not found.")


@authenticated_query
def revoke_access_token_manually(scope, conn, token: str, owner_user_id: str, now: datetime) -> None:
    _revoke_manually(
        conn,
        and_(access_tokens.c.token == token, access_tokens.c.user_id == owner_user_id),
        now,
    )


@authenticated_query
def revoke_access_token_by_alias_manually(scope, conn, alias: str, owner_user_id: str, now: datetime) -> None:
    _revoke_manually(
        conn,
        and_(access_tokens.c.alias == alias, access_tokens.c.user_id == owner_user_id),
        now,
    )


@shared_query
def revoke_access_token_automatically(scope, conn, token: str, now: datetime) -> None:
    result = conn.execute(
        update(access_tokens)
        .where(and_(access_tokens.c.token == token, _still_valid(now)))
        .values(automatically_revoked_timestamp=iso(now))
    )
    if result.rowcount == 0:
        raise TokenRevocationFailed()


@shared_query
def evict_excess_tokens(
    scope,
    conn,
    user_id: str,
    max_tokens: int | None,
    now: datetime,
    reserve_slot: bool = False,
) -> list[str]:
    """Automatically revoke the oldest valid tokens above the user's cap.

    reserve_slot=True leaves room for one more token (login is about to mint
    it), so at most max_tokens - 1 survive. Returns the aliases revoked.
    """
    if max_tokens is None:
        return []
    keep = max_tokens - 1 if reserve_slot else max_tokens
    valid = get_valid_user_access_tokens(scope, conn, user_id, now)
    excess = len(valid) - max(keep, 0)
    revoked: list[str] = []
    for token in valid[: max(excess, 0)]:
        revoke_access_token_automatically(scope, conn, token.token, now)
        revoked.append(token.alias)
    return revoked


@authenticated_query
def enforce_token_limit(scope, conn, user_id: str, now: datetime) -> list[str]:
    """Apply the user's current cap right now, without reserving a slot."""
    row = conn.execute(select(users.c.max_tokens_at_a_time).where(users.c.id == user_id).with_for_update()).first()
    if row is None:
        raise NotFound("User not found.")
    return evict_excess_tokens(scope, conn, user_id, row.max_tokens_at_a_time, now)
