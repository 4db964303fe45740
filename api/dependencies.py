"""
api/dependencies.py -- FastAPI Depends() helpers and QueryResult translation.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token>       -- API clients, or any explicit override
  2. access_token cookie                 -- set by POST /auth/login

Neither helper verifies anything: the token is handed to the gateway as-is and
verification happens there, once per gateway call. A missing token is passed
as None and the gateway answers INVALID_TOKEN without touching the store.

unwrap() is the single place a failed QueryResult becomes an HTTP error. The
message is already safe for end users (db/errors.py collapses it).
"""

from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException, Request

from api.models import ErrorDetail
from core.config import get_settings
from db.errors import ErrorKind, QueryResult
from db.gateway import Gateway

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIAL: 401,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.INVITATION_INVALID: 400,
    ErrorKind.INVITATION_CONFLICT: 409,
    ErrorKind.STORAGE_FAILURE: 500,
    ErrorKind.INVALID_ARGUMENT: 422,
    ErrorKind.NOT_FOUND: 404,
}


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def get_access_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header or the cookie, if any."""
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        token = request.cookies.get(get_settings().cookie_name)
    return token or None


def unwrap(result: QueryResult[T], headers: dict[str, str] | None = None) -> T:
    """Return the result value or raise the HTTPException for its error."""
    if result.success:
        return result.result
    error = result.error
    headers = dict(headers or {})
    if error.kind is ErrorKind.INVALID_TOKEN:
        headers["WWW-Authenticate"] = "Bearer"
    raise HTTPException(
        status_code=STATUS_BY_KIND.get(error.kind, 500),
        detail=ErrorDetail(code=error.code, message=error.message).model_dump(exclude_none=True),
        headers=headers,
    )
