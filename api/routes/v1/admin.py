"""
api/routes/v1/admin.py -- User and account creation code administration.

Routes (all require use_app_admin plus the permission listed):
  GET    /api/v1/admin/users                                   search_users
  GET    /api/v1/admin/users/{user_id}                         search_users
  POST   /api/v1/admin/users/{user_id}/permissions             manage_users:manage_permissions
  DELETE /api/v1/admin/users/{user_id}/permissions/{name}      manage_users:manage_permissions
  DELETE /api/v1/admin/users/{user_id}/tokens/{alias}          manage_users:manage_access_tokens
  DELETE /api/v1/admin/users/{user_id}                         manage_users:delete_users

  GET    /api/v1/admin/account-creation-codes                  manage_account_creation_codes
  POST   /api/v1/admin/account-creation-codes                  manage_account_creation_codes
  DELETE /api/v1/admin/account-creation-codes/{id}             (revokes, never deletes)
  POST   /api/v1/admin/account-creation-codes/{id}/permissions
  DELETE /api/v1/admin/account-creation-codes/{id}/permissions/{name}
  PATCH  /api/v1/admin/account-creation-codes/{id}/default-token-expiry
  PATCH  /api/v1/admin/account-creation-codes/{id}/notify

Permission checks live in services/, not in these handlers.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import timedelta

from fastapi import APIRouter, Depends

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import (
    AccountCreationCodeCreate,
    AccountCreationCodeResponse,
    CodeNotifyUpdate,
    CodePermissionsResponse,
    DefaultTokenExpiryUpdate,
    MessageResponse,
    PermissionGrantRequest,
    UserDetailResponse,
    UserSummaryResponse,
)
from db.gateway import Gateway
from services import invitations as invitation_service
from services import users as user_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=list[UserSummaryResponse])
def list_users(
    include_deleted: bool = False,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[UserSummaryResponse]:
    users = unwrap(user_service.list_users(gateway, token, include_deleted))
    return [UserSummaryResponse(**asdict(u)) for u in users]


@router.get("/admin/users/{user_id}", response_model=UserDetailResponse)
def get_user(
    user_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> UserDetailResponse:
    return UserDetailResponse(**asdict(unwrap(user_service.get_user_detail(gateway, token, user_id))))


@router.post("/admin/users/{user_id}/permissions", response_model=MessageResponse, status_code=201)
def grant_permission(
    user_id: str,
    body: PermissionGrantRequest,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(user_service.grant_permission(gateway, token, user_id, body.permission))
    return MessageResponse(message="Permission granted.")


@router.delete("/admin/users/{user_id}/permissions/{permission_name}", response_model=MessageResponse)
def revoke_permission(
    user_id: str,
    permission_name: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(user_service.revoke_permission(gateway, token, user_id, permission_name))
    return MessageResponse(message="Permission revoked.")


@router.delete("/admin/users/{user_id}/tokens/{alias}", response_model=MessageResponse)
def revoke_user_token(
    user_id: str,
    alias: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(user_service.revoke_user_token(gateway, token, user_id, alias))
    return MessageResponse(message="Access token revoked.")


@router.delete("/admin/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    revoked = unwrap(user_service.delete_user(gateway, token, user_id))
    return MessageResponse(message=f"User deleted. {revoked} access token(s) revoked.")


# ---------------------------------------------------------------------------
# Account creation codes
# ---------------------------------------------------------------------------


@router.get("/admin/account-creation-codes", response_model=list[AccountCreationCodeResponse])
def list_codes(
    include_invalid: bool = False,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[AccountCreationCodeResponse]:
    codes = unwrap(invitation_service.list_account_creation_codes(gateway, token, include_invalid))
    return [AccountCreationCodeResponse(**asdict(c)) for c in codes]


@router.post("/admin/account-creation-codes", response_model=AccountCreationCodeResponse, status_code=201)
def issue_code(
    body: AccountCreationCodeCreate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> AccountCreationCodeResponse:
    code = unwrap(
        invitation_service.issue_account_creation_code(
            gateway,
            token,
            email=body.email,
            title=body.title,
            permission_names=body.permission_names,
            expiration=gateway.now() + timedelta(seconds=body.expires_in_seconds),
            account_default_token_expiry_seconds=body.account_default_token_expiry_seconds,
            notify_creator_on_use=body.notify_creator_on_use,
        )
    )
    return AccountCreationCodeResponse(**asdict(code))


@router.delete("/admin/account-creation-codes/{code_id}", response_model=MessageResponse)
def revoke_code(
    code_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(invitation_service.revoke_account_creation_code(gateway, token, code_id))
    return MessageResponse(message="Account creation code revoked.")


@router.post("/admin/account-creation-codes/{code_id}/permissions", response_model=CodePermissionsResponse)
def add_code_permission(
    code_id: str,
    body: PermissionGrantRequest,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> CodePermissionsResponse:
    names = unwrap(invitation_service.add_permission_to_code(gateway, token, code_id, body.permission))
    return CodePermissionsResponse(permission_names=names)


@router.delete(
    "/admin/account-creation-codes/{code_id}/permissions/{permission_name}",
    response_model=CodePermissionsResponse,
)
def remove_code_permission(
    code_id: str,
    permission_name: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> CodePermissionsResponse:
    names = unwrap(invitation_service.remove_permission_from_code(gateway, token, code_id, permission_name))
    return CodePermissionsResponse(permission_names=names)


@router.patch("/admin/account-creation-codes/{code_id}/default-token-expiry", response_model=MessageResponse)
def update_code_expiry(
    code_id: str,
    body: DefaultTokenExpiryUpdate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(
        invitation_service.update_code_default_token_expiry(gateway, token, code_id, body.default_token_expiry_seconds)
    )
    return MessageResponse(message="Default token expiry updated.")


@router.patch("/admin/account-creation-codes/{code_id}/notify", response_model=MessageResponse)
def update_code_notify(
    code_id: str,
    body: CodeNotifyUpdate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(invitation_service.update_code_notify_creator(gateway, token, code_id, body.notify_creator_on_use))
    return MessageResponse(message="Notification setting updated.")
