"""
db/gateway.py -- The query gateway: the single choke point for data access.

Pattern: Gateway + capability token. Query functions require a scope object
as their first argument (db/scope.py). The two genuine scopes are minted here
at import time and never leave this module, so the only way to run a query is:

  Gateway.execute_authenticated(token, fn, *args)
      1. falsy token -> INVALID_TOKEN, no store round-trip
      2. txn 1: look the token up, classify it (auth.tokens.token_state),
         stamp last_use_timestamp. Zero affected rows fails closed.
         Committed before the query runs, so bookkeeping survives a
         failing query.
      3. replace every CURRENT_USER argument with the verified owner id
      4. txn 2: required_permissions (if any), then
         fn(AUTHENTICATED_SCOPE, conn, *args)
      5. any failure -> QueryError via db.errors.map_failure

  Gateway.execute_unauthenticated(fn, *args)
      Only @tokenless_query functions defined in db/tokenless.py.

  Gateway.authorize(token, *names)
      One verification and one permission query; returns the owner id.

Nothing but ScopeViolation (a programming error) escapes as an exception.

Security notes:
  [C1] The secret token value is never logged. Log lines reference the
       query name and, once verified, the token alias.
  [M5] Precise rejection reasons are logged, never returned (db/errors.py).

Layer rule: no imports from api/ or services/.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, TypeVar

from sqlalchemy import and_, select, update
from sqlalchemy.engine import Engine

from auth.models import AccessToken
from auth.tokens import TokenState, token_state
from core.config import Settings, get_settings
from db.errors import (
    MSG_PERMISSION_DENIED,
    ErrorKind,
    MappedErrors,
    PermissionDenied,
    QueryResult,
    TokenRejected,
    invalid_token_error,
    map_failure,
)
from db.queries.permissions import first_missing_permission, has_permission
from db.schema import access_tokens, iso, row_to_access_token, utcnow
from db.scope import AuthenticatedScope, ScopeViolation, TokenlessScope, mint, query_scopes

logger = logging.getLogger("portal.gateway")

T = TypeVar("T")

TOKENLESS_MODULE = "db.tokenless"

_AUTHENTICATED_SCOPE = mint(AuthenticatedScope)
_TOKENLESS_SCOPE = mint(TokenlessScope)


class _CurrentUser:
    """Placeholder for 'the user who owns the verifying token'."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CURRENT_USER"


CURRENT_USER = _CurrentUser()


def _query_name(fn: Callable) -> str:
    return f"{fn.__module__}.{getattr(fn, '__qualname__', repr(fn))}"


def _require_scope(fn: Callable, kind: type) -> None:
    if kind not in query_scopes(fn):
        raise ScopeViolation(f"{_query_name(fn)} is not dispatchable as {kind.__name__}")
    if kind is TokenlessScope and fn.__module__ != TOKENLESS_MODULE:
        raise ScopeViolation(f"{_query_name(fn)} is not on the tokenless allow-list")


def _contains_current_user(args: tuple, kwargs: dict) -> bool:
    return any(a is CURRENT_USER for a in args) or any(v is CURRENT_USER for v in kwargs.values())


def _permission_values(permission_names: Iterable[str]) -> list[str]:
    return [getattr(name, "value", name) for name in permission_names]


def _requiring(query_fn: Callable, owner_id: str, required: list[str], name: str) -> Callable:
    """Wrap query_fn so the permission check shares its transaction."""

    def run(scope, conn, *args, **kwargs):
        missing = first_missing_permission(scope, conn, owner_id, required)
        if missing is not None:
            logger.info("Permission denied for %s: %s", name, missing)
            raise PermissionDenied()
        return query_fn(scope, conn, *args, **kwargs)

    return run


class Gateway:
    """Dispatches query functions against one engine.

    Usage:
        gateway = Gateway(build_engine())
        result = gateway.execute_authenticated(token, get_user, CURRENT_USER)
        if result.success:
            user = result.result

    clock is injectable so tests can move time; every "now" a service passes
    to a query should come from gateway.now().
    """

    def __init__(
        self,
        engine: Engine,
        clock: Callable[[], datetime] = utcnow,
        settings: Settings | None = None,
    ) -> None:
        self.engine = engine
        self._clock = clock
        self._settings = settings or get_settings()

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    def _authenticate(self, conn, token: str, now: datetime) -> AccessToken:
        row = conn.execute(select(access_tokens).where(access_tokens.c.token == token)).first()
        record = row_to_access_token(row) if row else None
        state = token_state(record, now)
        if state is not TokenState.VALID:
            raise TokenRejected(state)
        touched = conn.execute(
            update(access_tokens)
            .where(and_(access_tokens.c.token == token, access_tokens.c.user_id == record.user_id))
            .values(last_use_timestamp=iso(now))
        )
        if touched.rowcount == 0:
            logger.warning("Token %s could not be attributed to its owner", record.alias)
            raise TokenRejected(TokenState.NOT_FOUND)
        record.last_use_timestamp = now
        return record

    def verify_access_token(self, token: str | None) -> QueryResult[AccessToken]:
        """Verify a token and record its use. Returns the token record."""
        if not token:
            return QueryResult.fail(invalid_token_error())
        try:
            with self.engine.begin() as conn:
                record = self._authenticate(conn, token, self.now())
        except Exception as exc:
            return QueryResult.fail(
                map_failure(exc, "verify_access_token", expose_token_state=self._settings.expose_token_state_messages)
            )
        return QueryResult.ok(record)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute_authenticated(
        self,
        token: str | None,
        query_fn: Callable[..., T],
        *args,
        mapped_errors: MappedErrors | None = None,
        required_permissions: Iterable[str] = (),
        **kwargs,
    ) -> QueryResult[T]:
        """Verify the token, then run query_fn.

        required_permissions are checked against the token owner inside the
        query's own transaction, before query_fn runs. A missing one fails the
        call with PERMISSION_DENIED.
        """
        _require_scope(query_fn, AuthenticatedScope)
        name = _query_name(query_fn)
        if not token:
            logger.info("Rejected %s: no access token", name)
            return QueryResult.fail(invalid_token_error())

        verified = self.verify_access_token(token)
        if not verified.success:
            return QueryResult.fail(verified.error)
        owner_id = verified.result.user_id

        args = tuple(owner_id if a is CURRENT_USER else a for a in args)
        kwargs = {k: owner_id if v is CURRENT_USER else v for k, v in kwargs.items()}
        required = _permission_values(required_permissions)
        if required:
            query_fn = _requiring(query_fn, owner_id, required, name)
        return self._run(_AUTHENTICATED_SCOPE, name, query_fn, args, kwargs, mapped_errors)

    def execute_unauthenticated(
        self,
        query_fn: Callable[..., T],
        *args,
        mapped_errors: MappedErrors | None = None,
        **kwargs,
    ) -> QueryResult[T]:
        _require_scope(query_fn, TokenlessScope)
        if _contains_current_user(args, kwargs):
            raise ScopeViolation("CURRENT_USER can only be resolved by execute_authenticated")
        return self._run(_TOKENLESS_SCOPE, _query_name(query_fn), query_fn, args, kwargs, mapped_errors)

    def _run(self, scope, name: str, query_fn, args: tuple, kwargs: dict, mapped_errors) -> QueryResult:
        try:
            with self.engine.begin() as conn:
                value = query_fn(scope, conn, *args, **kwargs)
        except ScopeViolation:
            raise
        except Exception as exc:
            return QueryResult.fail(
                map_failure(exc, name, mapped_errors, expose_token_state=self._settings.expose_token_state_messages)
            )
        return QueryResult.ok(value)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def check_for_permission(self, token: str | None, permission_name: str) -> QueryResult[None]:
        """Succeed iff the token is valid and its owner holds exactly this name."""
        name = getattr(permission_name, "value", permission_name)
        held = self.execute_authenticated(token, has_permission, CURRENT_USER, name)
        if not held.success:
            return QueryResult.fail(held.error)
        if not held.result:
            logger.info("Permission denied: %s", name)
            return QueryResult.failure(ErrorKind.PERMISSION_DENIED, MSG_PERMISSION_DENIED)
        return QueryResult.ok()

    def check_for_permissions(self, token: str | None, *permission_names: str) -> QueryResult[None]:
        """Logical AND over check_for_permission; stops at the first failure."""
        if not permission_names:
            verified = self.verify_access_token(token)
            return QueryResult.ok() if verified.success else QueryResult.fail(verified.error)
        for permission_name in permission_names:
            result = self.check_for_permission(token, permission_name)
            if not result.success:
                return result
        return QueryResult.ok()

    def authorize(self, token: str | None, *permission_names: str) -> QueryResult[str]:
        """Verify the token once and require every name. The result is the owner's user id.

        Same answer as check_for_permissions, but one verification and one
        permission query however many names are asked for.
        """
        verified = self.verify_access_token(token)
        if not verified.success:
            return QueryResult.fail(verified.error)
        owner_id = verified.result.user_id
        names = _permission_values(permission_names)
        if names:
            missing = self._run(
                _AUTHENTICATED_SCOPE,
                _query_name(first_missing_permission),
                first_missing_permission,
                (owner_id, names),
                {},
                None,
            )
            if not missing.success:
                return QueryResult.fail(missing.error)
            if missing.result is not None:
                logger.info("Permission denied: %s", missing.result)
                return QueryResult.failure(ErrorKind.PERMISSION_DENIED, MSG_PERMISSION_DENIED)
        return QueryResult.ok(owner_id)

    def dispose(self) -> None:
        self.engine.dispose()
