"""
tests/test_scope.py -- The capability marker cannot be forged or bypassed.

Covers:
  - scopes cannot be constructed, subclassed, copied into a new identity or re-minted
  - query functions refuse to run without the gateway's minted scope
  - the gateway refuses to dispatch a function under the wrong scope
  - the tokenless path only dispatches functions from the allow-list module
"""

from __future__ import annotations

import copy
import pickle

import pytest

from db import tokenless
from db.gateway import CURRENT_USER
from db.queries import access_tokens as token_queries
from db.queries import users as user_queries
from db.scope import (
    AuthenticatedScope,
    QueryScope,
    ScopeViolation,
    TokenlessScope,
    authenticated_query,
    is_genuine,
    mint,
    tokenless_query,
)


class TestMarker:
    def test_scopes_cannot_be_constructed(self) -> None:
        for kind in (QueryScope, AuthenticatedScope, TokenlessScope):
            with pytest.raises(TypeError):
                kind()

    def test_scopes_cannot_be_subclassed_elsewhere(self) -> None:
        with pytest.raises(TypeError):

            class Forged(AuthenticatedScope):
                pass

    def test_second_mint_is_refused(self) -> None:
        # db.gateway (imported above) has already minted both kinds.
        with pytest.raises(RuntimeError):
            mint(AuthenticatedScope)
        with pytest.raises(RuntimeError):
            mint(TokenlessScope)

    def test_object_new_forgery_is_not_genuine(self) -> None:
        forged = object.__new__(AuthenticatedScope)
        assert not is_genuine(forged)
        with pytest.raises(ScopeViolation):
            user_queries.get_user(forged, None, "someone")

    def test_copy_keeps_identity_and_pickle_is_refused(self) -> None:
        forged = object.__new__(TokenlessScope)
        assert copy.copy(forged) is forged
        with pytest.raises(TypeError):
            pickle.dumps(forged)


class TestDirectCalls:
    def test_authenticated_query_rejects_missing_scope(self) -> None:
        with pytest.raises(ScopeViolation):
            user_queries.get_user(None, None, "someone")

    def test_tokenless_query_rejects_missing_scope(self) -> None:
        with pytest.raises(ScopeViolation):
            tokenless.get_user_by_username("not a scope", None, "someone")

    def test_scope_violation_is_a_type_error(self) -> None:
        assert issubclass(ScopeViolation, TypeError)


class TestGatewayDispatch:
    def test_tokenless_function_cannot_run_authenticated(self, gateway) -> None:
        with pytest.raises(ScopeViolation):
            gateway.execute_authenticated("whatever", tokenless.get_user_by_username, "x")

    def test_authenticated_function_cannot_run_tokenless(self, gateway) -> None:
        with pytest.raises(ScopeViolation):
            gateway.execute_unauthenticated(user_queries.get_user, "x")

    def test_shared_helper_is_not_on_the_tokenless_allow_list(self, gateway) -> None:
        with pytest.raises(ScopeViolation):
            gateway.execute_unauthenticated(token_queries.evict_excess_tokens, "u", 1, gateway.now())

    def test_undecorated_function_is_refused(self, gateway) -> None:
        def rogue(scope, conn):
            return "ran"

        with pytest.raises(ScopeViolation):
            gateway.execute_unauthenticated(rogue)
        with pytest.raises(ScopeViolation):
            gateway.execute_authenticated("whatever", rogue)

    def test_tokenless_query_defined_outside_allow_list_is_refused(self, gateway) -> None:
        @tokenless_query
        def sneaky(scope, conn):
            return "ran"

        with pytest.raises(ScopeViolation):
            gateway.execute_unauthenticated(sneaky)

    def test_current_user_needs_authentication(self, gateway) -> None:
        with pytest.raises(ScopeViolation):
            gateway.execute_unauthenticated(tokenless.get_user_by_username, CURRENT_USER)

    def test_locally_declared_authenticated_query_runs(self, gateway, make_user, login_as) -> None:
        """Any module may declare an authenticated query; it still needs a token."""

        @authenticated_query
        def whoami(scope, conn, user_id):
            return user_id

        user_id = make_user("scoped")
        token = login_as("scoped")
        result = gateway.execute_authenticated(token, whoami, CURRENT_USER)
        assert result.success
        assert result.result == user_id
