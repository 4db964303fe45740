"""
db/errors.py -- Query result envelope and the error taxonomy.

Everything the gateway returns is a QueryResult. A failed result carries a
QueryError(kind, code, message), which is the ONLY form an error takes once it
leaves db/. Messages are safe to show to an end user.

Precise reasons travel inside db/ on internal exceptions:

  TokenRejected(TokenState)              -- token verification failed
  InvitationRejected(InvitationReason)   -- code check/consume failed
  QueryFailure(kind, code, message)      -- an expected, already-public failure

map_failure() is the single place those are turned into a QueryError. It logs
the precise reason and returns the collapsed public message, so "expired" vs
"revoked" or "used" vs "wrong email" never reaches the caller [M5].

Storage errors are mapped through an allow-list keyed by portable names
(unique_violation, foreign_key_violation, ...). PostgreSQL SQLSTATE codes and
SQLite extended error names are normalized to those names first. Anything not
on the list becomes STORAGE_FAILURE / internal_error with the traceback logged.

Layer rule: no imports from api/ or services/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Mapping, TypeVar, Union

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.tokens import TokenState
from db.scope import ScopeViolation

logger = logging.getLogger("portal.gateway")

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_TOKEN = "invalid_token"
    PERMISSION_DENIED = "permission_denied"
    INVITATION_INVALID = "invitation_invalid"
    INVITATION_CONFLICT = "invitation_conflict"
    STORAGE_FAILURE = "storage_failure"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class QueryError:
    kind: ErrorKind
    code: str
    message: str


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    success: bool
    result: T | None = None
    error: QueryError | None = None

    @classmethod
    def ok(cls, result: T | None = None) -> QueryResult[T]:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: QueryError) -> QueryResult[T]:
        return cls(success=False, error=error)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, code: str | None = None) -> QueryResult[T]:
        return cls(success=False, error=QueryError(kind, code or kind.value, message))


# ---------------------------------------------------------------------------
# Public messages
# ---------------------------------------------------------------------------

MSG_INVALID_CREDENTIAL = "Invalid login credentials."
MSG_INVALID_TOKEN = "Invalid access token. Please log in again."
MSG_PERMISSION_DENIED = "No permission."
MSG_INVITATION_INVALID = "Invalid account creation code."
MSG_INTERNAL = "An internal error occurred. Please try again later."
MSG_BUSY = "The service is busy. Please try again."

_TOKEN_STATE_MESSAGES: dict[TokenState, str] = {
    TokenState.NOT_FOUND: "Access token not found. Please log in again.",
    TokenState.EXPIRED: "Access token has expired. Please log in again.",
    TokenState.MANUALLY_REVOKED: "Access token has been revoked. Please log in again.",
    TokenState.AUTOMATICALLY_REVOKED: "Access token has been automatically revoked. Please log in again.",
}


def invalid_token_error(state: TokenState = TokenState.NOT_FOUND, expose_state: bool = False) -> QueryError:
    message = _TOKEN_STATE_MESSAGES.get(state, MSG_INVALID_TOKEN) if expose_state else MSG_INVALID_TOKEN
    return QueryError(ErrorKind.INVALID_TOKEN, ErrorKind.INVALID_TOKEN.value, message)


# ---------------------------------------------------------------------------
# Internal exceptions
# ---------------------------------------------------------------------------


class InvitationReason(str, Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    USED = "used"
    EXPIRED = "expired"
    EMAIL_MISMATCH = "email_mismatch"


class TokenRejected(Exception):
    def __init__(self, state: TokenState) -> None:
        super().__init__(state.value)
        self.state = state


class InvitationRejected(Exception):
    def __init__(self, reason: InvitationReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


class QueryFailure(Exception):
    """An expected failure whose message is already safe to show."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE
    code: str = "storage_failure"
    message: str = MSG_INTERNAL

    def __init__(self, message: str | None = None, kind: ErrorKind | None = None, code: str | None = None) -> None:
        if message is not None:
            self.message = message
        if kind is not None:
            self.kind = kind
        if code is not None:
            self.code = code
        elif kind is not None:
            self.code = kind.value
        super().__init__(self.message)

    def to_error(self) -> QueryError:
        return QueryError(self.kind, self.code, self.message)


class NotFound(QueryFailure):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"


class InvalidArgument(QueryFailure):
    kind = ErrorKind.INVALID_ARGUMENT
    code = "invalid_argument"


class PermissionDenied(QueryFailure):
    kind = ErrorKind.PERMISSION_DENIED
    code = "permission_denied"
    message = MSG_PERMISSION_DENIED


class InvitationConflict(QueryFailure):
    kind = ErrorKind.INVITATION_CONFLICT
    code = "invitation_conflict"


class TokenRevocationFailed(QueryFailure):
    kind = ErrorKind.STORAGE_FAILURE
    code = "token_revocation_failed"
    message = "Could not revoke access token."


# ---------------------------------------------------------------------------
# Storage error allow-list
# ---------------------------------------------------------------------------

# DBAPI-specific code -> portable name.
_STORAGE_CODE_NAMES: dict[str, str] = {
    # PostgreSQL SQLSTATE
    "23505": "unique_violation",
    "23503": "foreign_key_violation",
    "23514": "check_violation",
    "23502": "not_null_violation",
    "40001": "database_busy",
    "40P01": "database_busy",
    "55P03": "database_busy",
    # SQLite extended result names (Python 3.11+)
    "SQLITE_CONSTRAINT_UNIQUE": "unique_violation",
    "SQLITE_CONSTRAINT_PRIMARYKEY": "unique_violation",
    "SQLITE_CONSTRAINT_FOREIGNKEY": "foreign_key_violation",
    "SQLITE_CONSTRAINT_CHECK": "check_violation",
    "SQLITE_CONSTRAINT_NOTNULL": "not_null_violation",
    "SQLITE_BUSY": "database_busy",
    "SQLITE_LOCKED": "database_busy",
}

DEFAULT_MAPPED_ERRORS: dict[str, str] = {
    "unique_violation": "This record already exists.",
    "foreign_key_violation": "A referenced record does not exist.",
    "check_violation": "The request violates a data constraint.",
    "database_busy": MSG_BUSY,
}

MappedErrors = Mapping[str, Union[str, QueryError]]


def storage_error_name(exc: DBAPIError) -> str | None:
    """Return the portable name for a DBAPI error, or None if it is unknown."""
    orig = getattr(exc, "orig", None)
    for attr in ("pgcode", "sqlstate", "sqlite_errorname"):
        raw = getattr(orig, attr, None)
        if raw:
            return _STORAGE_CODE_NAMES.get(str(raw))
    return None


def _storage_error(exc: DBAPIError, mapped_errors: MappedErrors | None, query_name: str) -> QueryError:
    name = storage_error_name(exc)
    mapped: str | QueryError | None = None
    if name is not None:
        if mapped_errors and name in mapped_errors:
            mapped = mapped_errors[name]
        else:
            mapped = DEFAULT_MAPPED_ERRORS.get(name)
    if mapped is None:
        logger.exception("Unmapped storage error in %s", query_name)
        return QueryError(ErrorKind.STORAGE_FAILURE, "internal_error", MSG_INTERNAL)
    logger.warning("Storage error in %s mapped as %s", query_name, name)
    if isinstance(mapped, QueryError):
        return mapped
    return QueryError(ErrorKind.STORAGE_FAILURE, name, mapped)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def map_failure(
    exc: Exception,
    query_name: str,
    mapped_errors: MappedErrors | None = None,
    expose_token_state: bool = False,
) -> QueryError:
    """Translate an exception raised inside a gateway call into a QueryError.

    Must be called from inside an except block: unmapped errors are logged
    with logger.exception so the traceback is kept.
    """
    if isinstance(exc, ScopeViolation):
        raise exc
    if isinstance(exc, TokenRejected):
        logger.info("Token rejected for %s: %s", query_name, exc.state.value)
        return invalid_token_error(exc.state, expose_token_state)
    if isinstance(exc, InvitationRejected):
        logger.info("Account creation code rejected in %s: %s", query_name, exc.reason.value)
        return QueryError(ErrorKind.INVITATION_INVALID, ErrorKind.INVITATION_INVALID.value, MSG_INVITATION_INVALID)
    if isinstance(exc, QueryFailure):
        logger.info("%s failed: %s (%s)", query_name, exc.code, exc.kind.value)
        return exc.to_error()
    if isinstance(exc, PoolTimeoutError):
        logger.warning("Connection pool exhausted during %s", query_name)
        return QueryError(ErrorKind.STORAGE_FAILURE, "database_busy", MSG_BUSY)
    if isinstance(exc, DBAPIError):
        return _storage_error(exc, mapped_errors, query_name)
    logger.exception("Unexpected error in %s", query_name)
    return QueryError(ErrorKind.STORAGE_FAILURE, "internal_error", MSG_INTERNAL)
