"""
services/time_management.py -- The time management app.

An activity is something the owner plans a share of the day for; a session
is a stretch of time actually spent on it. All operations require
use_app_time_management and act on the token owner only.

Sessions are listed per UTC day, today by default.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone

from apps.models import Activity, ActivitySession
from auth.permissions import Permission
from db.errors import ErrorKind, QueryError, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries import time_management as tm_queries

_REQUIRED = (Permission.UseApp_TimeManagement,)

MAX_NAME_LENGTH = 100

# Two starts racing past the running-session check meet the partial unique index.
_ALREADY_RUNNING = QueryError(
    ErrorKind.INVALID_ARGUMENT, ErrorKind.INVALID_ARGUMENT.value, "This activity already has a running session."
)


def get_activities(gateway: Gateway, token: str | None) -> QueryResult[list[Activity]]:
    return gateway.execute_authenticated(
        token, tm_queries.get_activities, CURRENT_USER, required_permissions=_REQUIRED
    )


def add_activity(gateway: Gateway, token: str | None, name: str, percentage: int) -> QueryResult[Activity]:
    name = name.strip()
    if not name or len(name) > MAX_NAME_LENGTH:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, f"Name must be 1 to {MAX_NAME_LENGTH} characters.")
    if not 0 <= percentage <= tm_queries.MAX_TOTAL_PERCENTAGE:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Percentage must be between 0 and 100.")
    draft = Activity(id=str(uuid.uuid4()), user_id="", name=name, percentage=percentage)
    return gateway.execute_authenticated(
        token, tm_queries.add_activity, CURRENT_USER, draft, required_permissions=_REQUIRED
    )


def get_activity_sessions(
    gateway: Gateway, token: str | None, day: date | None = None
) -> QueryResult[list[ActivitySession]]:
    """Sessions that started on the given UTC day (today if omitted)."""
    day = day or gateway.now().astimezone(timezone.utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return gateway.execute_authenticated(
        token,
        tm_queries.get_activity_sessions,
        CURRENT_USER,
        start,
        start + timedelta(days=1),
        required_permissions=_REQUIRED,
    )


def start_activity(gateway: Gateway, token: str | None, activity_id: str) -> QueryResult[ActivitySession]:
    draft = ActivitySession(
        id=str(uuid.uuid4()),
        user_id="",
        activity_id=activity_id,
        start_timestamp=gateway.now(),
    )
    return gateway.execute_authenticated(
        token,
        tm_queries.start_activity_session,
        CURRENT_USER,
        draft,
        mapped_errors={"unique_violation": _ALREADY_RUNNING},
        required_permissions=_REQUIRED,
    )


def stop_activity(gateway: Gateway, token: str | None, session_id: str) -> QueryResult[ActivitySession]:
    return gateway.execute_authenticated(
        token, tm_queries.stop_activity_session, CURRENT_USER, session_id, gateway.now(), required_permissions=_REQUIRED
    )
