"""
api/routes/v1/permissions.py -- Permission catalog and yes/no checks.

Routes:
  GET /api/v1/permissions                 -- the static catalog (requires auth)
  GET /api/v1/permissions/check?name=...  -- does the caller hold this name?
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import PermissionCheckResponse, PermissionInfoResponse
from auth.permissions import PERMISSION_DATA
from db.errors import ErrorKind
from db.gateway import Gateway

router = APIRouter()


@router.get("/permissions", response_model=list[PermissionInfoResponse])
def list_permissions(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[PermissionInfoResponse]:
    unwrap(gateway.verify_access_token(token))
    return [
        PermissionInfoResponse(name=permission.value, description=info.description, is_privileged=info.is_privileged)
        for permission, info in PERMISSION_DATA.items()
    ]


@router.get("/permissions/check", response_model=PermissionCheckResponse)
def check_permission(
    name: str = Query(min_length=1, max_length=100),
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> PermissionCheckResponse:
    """Answer 200 with granted true/false; an invalid token is still a 401."""
    result = gateway.check_for_permission(token, name)
    if not result.success and result.error.kind is ErrorKind.PERMISSION_DENIED:
        return PermissionCheckResponse(permission=name, granted=False)
    unwrap(result)
    return PermissionCheckResponse(permission=name, granted=True)
