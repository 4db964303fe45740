"""
api/routes/v1/sessions.py -- The caller's own access tokens and account settings.

Routes:
  GET    /api/v1/sessions/current           -- the calling token (by alias)
  GET    /api/v1/sessions                   -- all valid tokens of the caller
  POST   /api/v1/sessions/revoke            -- revoke one of the caller's tokens by value
  DELETE /api/v1/sessions/{alias}           -- revoke one of the caller's tokens by alias
  POST   /api/v1/sessions/enforce-limit     -- apply max_tokens_at_a_time now

  GET    /api/v1/me                         -- profile
  GET    /api/v1/me/permissions             -- permissions held (catalog names only)
  PATCH  /api/v1/me/default-token-expiry    -- expiry for future tokens
  PATCH  /api/v1/me/max-tokens              -- concurrency cap (null clears it)

All routes require a valid token and act on its owner only; there is no user
id anywhere in these paths.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import (
    DefaultTokenExpiryUpdate,
    MaxTokensUpdate,
    MessageResponse,
    ProfileResponse,
    RevokedTokensResponse,
    RevokeTokenRequest,
    TokenResponse,
)
from db.gateway import Gateway
from services import sessions as session_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@router.get("/sessions/current", response_model=TokenResponse)
def current_session(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> TokenResponse:
    return TokenResponse(**asdict(unwrap(session_service.get_access_token(gateway, token))))


@router.get("/sessions", response_model=list[TokenResponse])
def list_sessions(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[TokenResponse]:
    summaries = unwrap(session_service.get_user_access_tokens(gateway, token))
    return [TokenResponse(**asdict(s)) for s in summaries]


@router.post("/sessions/revoke", response_model=MessageResponse)
def revoke_session(
    body: RevokeTokenRequest,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(session_service.revoke_token(gateway, token, body.token))
    return MessageResponse(message="Access token revoked.")


@router.post("/sessions/enforce-limit", response_model=RevokedTokensResponse)
def enforce_limit(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> RevokedTokensResponse:
    return RevokedTokensResponse(revoked_aliases=unwrap(session_service.enforce_token_limit(gateway, token)))


@router.delete("/sessions/{alias}", response_model=MessageResponse)
def revoke_session_by_alias(
    alias: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(session_service.revoke_token_by_alias(gateway, token, alias))
    return MessageResponse(message="Access token revoked.")


# ---------------------------------------------------------------------------
# Profile and settings
# ---------------------------------------------------------------------------


@router.get("/me", response_model=ProfileResponse)
def me(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ProfileResponse:
    return ProfileResponse(**asdict(unwrap(session_service.get_profile(gateway, token))))


@router.get("/me/permissions", response_model=list[str])
def my_permissions(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[str]:
    return unwrap(session_service.get_my_permissions(gateway, token))


@router.patch("/me/default-token-expiry", response_model=MessageResponse)
def change_default_token_expiry(
    body: DefaultTokenExpiryUpdate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(session_service.change_default_token_expiry(gateway, token, body.default_token_expiry_seconds))
    return MessageResponse(message="Default token expiry updated.")


@router.patch("/me/max-tokens", response_model=MessageResponse)
def change_max_tokens(
    body: MaxTokensUpdate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(session_service.change_max_tokens_at_a_time(gateway, token, body.max_tokens_at_a_time))
    return MessageResponse(message="Max tokens at a time updated.")
