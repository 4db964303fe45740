"""
tests/test_errors.py -- map_failure() and the storage error allow-list.

DBAPI errors are faked: a plain exception carrying the driver attribute the
real driver would set (psycopg2 pgcode, psycopg sqlstate, sqlite3
sqlite_errorname), wrapped the way SQLAlchemy wraps it.
"""

from __future__ import annotations

import logging

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.tokens import TokenState
from db.errors import (
    MSG_INTERNAL,
    MSG_INVALID_TOKEN,
    MSG_INVITATION_INVALID,
    ErrorKind,
    InvitationReason,
    InvitationRejected,
    NotFound,
    QueryError,
    QueryResult,
    TokenRejected,
    map_failure,
    storage_error_name,
)
from db.scope import ScopeViolation


class _DriverError(Exception):
    def __init__(self, **attrs) -> None:
        super().__init__("driver error")
        for name, value in attrs.items():
            setattr(self, name, value)


def _wrapped(cls=IntegrityError, **attrs):
    return cls("INSERT ...", {}, _DriverError(**attrs))


class TestStorageNames:
    @pytest.mark.parametrize(
        "attrs,expected",
        [
            ({"pgcode": "23505"}, "unique_violation"),
            ({"sqlstate": "23503"}, "foreign_key_violation"),
            ({"sqlite_errorname": "SQLITE_CONSTRAINT_CHECK"}, "check_violation"),
            ({"sqlite_errorname": "SQLITE_BUSY"}, "database_busy"),
            ({"pgcode": "99999"}, None),
            ({}, None),
        ],
    )
    def test_normalization(self, attrs, expected) -> None:
        assert storage_error_name(_wrapped(**attrs)) == expected


class TestMapFailure:
    def test_default_mapping(self) -> None:
        error = map_failure(_wrapped(pgcode="23505"), "q")
        assert error == QueryError(ErrorKind.STORAGE_FAILURE, "unique_violation", "This record already exists.")

    def test_caller_message_overrides_default(self) -> None:
        error = map_failure(_wrapped(pgcode="23505"), "q", {"unique_violation": "Name taken."})
        assert error.message == "Name taken."
        assert error.code == "unique_violation"

    def test_caller_can_supply_a_full_error(self) -> None:
        custom = QueryError(ErrorKind.INVALID_ARGUMENT, "dupe", "Duplicate.")
        assert map_failure(_wrapped(pgcode="23505"), "q", {"unique_violation": custom}) is custom

    def test_unmapped_storage_error_is_internal_and_logged(self, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="portal.gateway"):
            try:
                raise _wrapped(OperationalError, pgcode="XX000")
            except OperationalError as exc:
                error = map_failure(exc, "q")
        assert error == QueryError(ErrorKind.STORAGE_FAILURE, "internal_error", MSG_INTERNAL)
        assert "Unmapped storage error in q" in caplog.text

    def test_unexpected_exception_never_leaks_its_message(self) -> None:
        error = map_failure(RuntimeError("password=hunter2"), "q")
        assert error.message == MSG_INTERNAL
        assert "hunter2" not in error.message

    def test_pool_timeout_is_busy(self) -> None:
        assert map_failure(PoolTimeoutError("pool"), "q").code == "database_busy"

    def test_token_states_collapse(self) -> None:
        errors = {map_failure(TokenRejected(state), "q") for state in TokenState if state is not TokenState.VALID}
        assert errors == {QueryError(ErrorKind.INVALID_TOKEN, "invalid_token", MSG_INVALID_TOKEN)}

    def test_token_states_exposed_on_request(self) -> None:
        messages = {
            map_failure(TokenRejected(state), "q", expose_token_state=True).message
            for state in TokenState
            if state is not TokenState.VALID
        }
        assert len(messages) == 4

    def test_invitation_reasons_collapse(self) -> None:
        errors = {map_failure(InvitationRejected(reason), "q") for reason in InvitationReason}
        assert errors == {QueryError(ErrorKind.INVITATION_INVALID, "invitation_invalid", MSG_INVITATION_INVALID)}

    def test_query_failure_passes_through(self) -> None:
        assert map_failure(NotFound("Gone."), "q") == QueryError(ErrorKind.NOT_FOUND, "not_found", "Gone.")

    def test_scope_violation_is_reraised(self) -> None:
        with pytest.raises(ScopeViolation):
            map_failure(ScopeViolation("nope"), "q")


class TestQueryResult:
    def test_constructors(self) -> None:
        assert QueryResult.ok(5) == QueryResult(success=True, result=5)
        failed = QueryResult.failure(ErrorKind.NOT_FOUND, "Missing.")
        assert not failed.success
        assert failed.error.code == "not_found"
        assert QueryResult.failure(ErrorKind.STORAGE_FAILURE, "x", code="custom").error.code == "custom"
