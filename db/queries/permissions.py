"""
db/queries/permissions.py -- Permission grant reads and writes.

Exact-name matching only. No prefix logic anywhere: holding
"app_admin:manage_users" says nothing about "app_admin".
"""

from __future__ import annotations

from sqlalchemy import and_, delete, insert, select

from db.errors import NotFound
from db.queries.users import require_active_user
from db.schema import user_permissions
from db.scope import authenticated_query, shared_query


@authenticated_query
def has_permission(scope, conn, user_id: str, permission_name: str) -> bool:
    row = conn.execute(
        select(user_permissions.c.user_id).where(
            and_(
                user_permissions.c.user_id == user_id,
                user_permissions.c.permission_name == permission_name,
            )
        )
    ).first()
    return row is not None


@authenticated_query
def get_user_permissions(scope, conn, user_id: str) -> list[str]:
    rows = conn.execute(
        select(user_permissions.c.permission_name)
        .where(user_permissions.c.user_id == user_id)
        .order_by(user_permissions.c.permission_name)
    ).fetchall()
    return [row.permission_name for row in rows]


@authenticated_query
def grant_permission(scope, conn, user_id: str, permission_name: str) -> None:
    """Grant one permission. A duplicate grant surfaces as unique_violation."""
    require_active_user(conn, user_id)
    conn.execute(insert(user_permissions).values(user_id=user_id, permission_name=permission_name))


@authenticated_query
def revoke_permission(scope, conn, user_id: str, permission_name: str) -> None:
    result = conn.execute(
        delete(user_permissions).where(
            and_(
                user_permissions.c.user_id == user_id,
                user_permissions.c.permission_name == permission_name,
            )
        )
    )
    if result.rowcount == 0:
        raise NotFound("The user does not have this permission.")


@shared_query
def insert_permission_grants(scope, conn, user_id: str, permission_names: list[str]) -> None:
    """Grant several permissions in the caller's transaction. Duplicates collapse."""
    unique_names = list(dict.fromkeys(permission_names))
    if unique_names:
        conn.execute(
            insert(user_permissions),
            [{"user_id": user_id, "permission_name": name} for name in unique_names],
        )


@authenticated_query
def first_missing_permission(scope, conn, user_id: str, permission_names: list[str]) -> str | None:
    """Return the first name, in the given order, the user does not hold."""
    held = {
        row.permission_name
        for row in conn.execute(
            select(user_permissions.c.permission_name).where(
                and_(
                    user_permissions.c.user_id == user_id,
                    user_permissions.c.permission_name.in_(permission_names),
                )
            )
        )
    }
    return next((name for name in permission_names if name not in held), None)
