"""
api/routes/v1/auth.py -- Login and logout.

Routes:
  POST /api/v1/auth/login    -- password login; sets the access_token cookie
  POST /api/v1/auth/logout   -- manually revokes the calling token; clears cookie

Security:
  [H2] POST /login is rate-limited per IP (Settings.login_rate_limit).
  [C1] services.login.login() provides timing equalization -- use it, never
       inline the user lookup + bcrypt check here.
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_access_token, get_gateway, unwrap
from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, LoginResponse, MessageResponse
from auth.tokens import clear_auth_cookie, set_auth_cookie
from db.gateway import Gateway
from services import login as login_service
from services import sessions as session_service

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  requires a valid token (it revokes that token)
router = APIRouter()


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest, gateway: Gateway = Depends(get_gateway)) -> JSONResponse:
    """Authenticate with username and password; set the token cookie.

    Unknown username and wrong password produce the same 401 body.
    """
    result = login_service.login(gateway, body.username, body.password)
    logged_in = unwrap(result, headers={"Cache-Control": "no-store"})  # [M5]

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=logged_in.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            alias=logged_in.alias,
            expires_in=logged_in.expires_in,
            expiration_timestamp=logged_in.expiration_timestamp,
            message=logged_in.message,
        ).model_dump(mode="json"),
    )
    set_auth_cookie(resp, logged_in.token, logged_in.expires_in)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> JSONResponse:
    """Revoke the calling token and clear the cookie."""
    unwrap(session_service.revoke_self(gateway, token))
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp
