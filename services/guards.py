"""
services/guards.py -- Permission gates shared by the admin services.

Every admin operation needs use_app_admin AND one specific app_admin:* name.
Names are checked exactly; holding one admin sub-permission grants nothing
else.
"""

from __future__ import annotations

from auth.permissions import Permission
from db.errors import QueryResult
from db.gateway import Gateway


def require_admin(gateway: Gateway, token: str | None, permission: Permission) -> QueryResult[str]:
    """Check use_app_admin + permission. On success the result is the caller's user id."""
    return gateway.authorize(token, Permission.UseApp_Admin, permission)
