"""
api/routes/v1/accounts.py -- Sign-up with an account creation code.

Routes:
  POST /api/v1/accounts                 -- create an account (redeems the code)
  POST /api/v1/accounts/validate-code   -- pre-check a code, mutates nothing

Both are public and share the login rate limit: they accept guesses at a
secret value.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_gateway, unwrap
from api.limiter import limiter, login_rate_limit
from api.models import CreateAccountRequest, CreateAccountResponse, MessageResponse, ValidateCodeRequest
from db.gateway import Gateway
from services import accounts as account_service

router = APIRouter()


@limiter.limit(login_rate_limit)
@router.post("/accounts", response_model=CreateAccountResponse, status_code=201)
def create_account(
    request: Request,
    body: CreateAccountRequest,
    gateway: Gateway = Depends(get_gateway),
) -> CreateAccountResponse:
    user_id = unwrap(account_service.create_account(gateway, body.username, body.password, body.email, body.code))
    return CreateAccountResponse(user_id=user_id)


@limiter.limit(login_rate_limit)
@router.post("/accounts/validate-code", response_model=MessageResponse)
def validate_code(
    request: Request,
    body: ValidateCodeRequest,
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(account_service.validate_account_creation_code(gateway, body.code))
    return MessageResponse(message="Account creation code is valid.")
