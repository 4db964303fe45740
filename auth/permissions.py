"""
auth/permissions.py -- Static permission catalog.

Permissions are flat, exact-match names. Colon-delimited names group related
sub-capabilities by convention only: "app_admin:manage_users:delete_users" does
NOT imply "app_admin:manage_users", and neither implies "app_admin". Callers
ask yes/no questions through the gateway (check_for_permission /
check_for_permissions); nothing branches on permission lists directly.

is_privileged is informational metadata for the admin UI (it decides how loudly
a grant is warned about). It has no enforcement effect.

Layer rule: no imports from api/, db/, or services/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Permission(str, Enum):
    UseApp = "use_app"
    UseApp_Admin = "use_app_admin"
    UseApp_Gym = "use_app_gym"
    UseApp_BookKeeping = "use_app_book_keeping"
    UseApp_Expenses = "use_app_expenses"
    UseApp_TimeManagement = "use_app_time_management"

    App_Admin_ManageAccountCreationCodes = "app_admin:manage_account_creation_codes"
    App_Admin_SearchUsers = "app_admin:search_users"

    App_Admin_ManageUsers_DeleteUsers = "app_admin:manage_users:delete_users"
    App_Admin_ManageUsers_ManagePermissions = "app_admin:manage_users:manage_permissions"
    App_Admin_ManageUsers_ManageAccessTokens = "app_admin:manage_users:manage_access_tokens"


@dataclass(frozen=True)
class PermissionInfo:
    description: str
    is_privileged: bool = False


PERMISSION_DATA: dict[Permission, PermissionInfo] = {
    Permission.UseApp: PermissionInfo("Allows signing in to the portal home."),
    Permission.UseApp_Admin: PermissionInfo(
        "Allows usage of the admin app where the user can utilize the rest of their admin permissions. "
        "By itself it only grants access to an empty page."
    ),
    Permission.UseApp_Gym: PermissionInfo("Allows usage of the gym app."),
    Permission.UseApp_BookKeeping: PermissionInfo("Allows usage of the book keeping app."),
    Permission.UseApp_Expenses: PermissionInfo("Allows usage of the expenses app."),
    Permission.UseApp_TimeManagement: PermissionInfo("Allows usage of the time management app."),
    Permission.App_Admin_ManageAccountCreationCodes: PermissionInfo(
        "Allows viewing, issuing and managing account creation codes.",
        is_privileged=True,
    ),
    Permission.App_Admin_SearchUsers: PermissionInfo(
        "Allows searching users and reading their data (basic user data, token aliases, permissions)."
    ),
    Permission.App_Admin_ManageUsers_DeleteUsers: PermissionInfo(
        "Allows deleting user accounts.",
        is_privileged=True,
    ),
    Permission.App_Admin_ManageUsers_ManagePermissions: PermissionInfo(
        "MOST DANGEROUS: Allows granting and revoking any permission to other users.",
        is_privileged=True,
    ),
    Permission.App_Admin_ManageUsers_ManageAccessTokens: PermissionInfo(
        "Allows revoking other users' access tokens.",
        is_privileged=True,
    ),
}


def as_permission(value: str) -> Permission | None:
    """Return the catalog entry for a stored name, or None if it is unknown.

    Unknown names can exist in the store (a permission removed from the catalog
    after it was granted). They are still matched exactly by permission checks
    but are hidden from listings.
    """
    try:
        return Permission(value)
    except ValueError:
        return None


def is_known_permission(value: str) -> bool:
    return as_permission(value) is not None


def describe(name: str) -> PermissionInfo | None:
    permission = as_permission(name)
    return PERMISSION_DATA[permission] if permission is not None else None
