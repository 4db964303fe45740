"""
db/scope.py -- Capability markers for query functions.

Every query function takes a scope as its first argument. A scope is proof
that the call came through db.gateway.Gateway:

  AuthenticatedScope  -- the caller's bearer token was verified for this call
  TokenlessScope      -- the function is on the pre-authentication allow-list

Python has no private constructors, so the proof is enforced at runtime:

  - QueryScope() and its subclasses refuse direct construction.
  - mint() creates exactly one instance per scope kind and refuses a second
    mint. db/gateway.py mints both kinds at import and never hands them out.
  - The query decorators check identity against the minted instance on every
    call, so a forged object (object.__new__, copy, pickle) is rejected too.

A violation raises ScopeViolation. It is a programming error and is never
mapped into a QueryResult.

Layer rule: no imports from api/ or services/.
"""

from __future__ import annotations

import functools
from typing import Callable, TypeVar

F = TypeVar("F", bound=Callable)


class ScopeViolation(TypeError):
    """A query function was reached without a genuine capability marker."""


class QueryScope:
    __slots__ = ()

    def __new__(cls, *args, **kwargs):
        raise TypeError(f"{cls.__name__} cannot be constructed directly")

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__:
            raise TypeError("QueryScope kinds are closed; subclassing is not allowed")

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        raise TypeError("query scopes cannot be pickled")

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class AuthenticatedScope(QueryScope):
    __slots__ = ()


class TokenlessScope(QueryScope):
    __slots__ = ()


_minted: dict[type, QueryScope] = {}


def mint(kind: type[QueryScope]) -> QueryScope:
    """Create the single instance of a scope kind. A second call fails."""
    if kind not in (AuthenticatedScope, TokenlessScope):
        raise TypeError(f"unknown scope kind: {kind!r}")
    if kind in _minted:
        raise RuntimeError(f"{kind.__name__} has already been minted")
    scope = object.__new__(kind)
    _minted[kind] = scope
    return scope


def is_genuine(scope: object) -> bool:
    return _minted.get(type(scope)) is scope


# ---------------------------------------------------------------------------
# Query decorators
# ---------------------------------------------------------------------------


def _query(*kinds: type[QueryScope]) -> Callable[[F], F]:
    def decorate(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(scope, *args, **kwargs):
            if not isinstance(scope, kinds) or not is_genuine(scope):
                raise ScopeViolation(f"{fn.__qualname__} must be dispatched through the query gateway")
            return fn(scope, *args, **kwargs)

        wrapper.__query_scopes__ = kinds
        return wrapper  # type: ignore[return-value]

    return decorate


authenticated_query = _query(AuthenticatedScope)
tokenless_query = _query(TokenlessScope)

# Helpers needed on both sides of authentication (e.g. token eviction runs at
# login and from the "enforce my limit" action). Still not dispatchable by the
# gateway on the tokenless side unless they live in db/tokenless.py.
shared_query = _query(AuthenticatedScope, TokenlessScope)


def query_scopes(fn) -> tuple[type[QueryScope], ...]:
    return getattr(fn, "__query_scopes__", ())
