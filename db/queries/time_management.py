"""
db/queries/time_management.py -- Activities and activity sessions, scoped to one owner.

Invariants kept here, inside the writing transaction:
  - the planned percentages of one owner's activities sum to at most 100
  - an activity has at most one running session (also a partial unique index)
  - a session can only be started on an activity of the same owner

The percentage total is read and written under the owner's row lock
(SELECT ... FOR UPDATE on users; BEGIN IMMEDIATE on SQLite), so two
concurrent additions cannot both squeeze under the cap.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, func, insert, select, update

from apps.models import Activity, ActivitySession
from db.errors import InvalidArgument, NotFound
from db.schema import (
    iso,
    row_to_activity,
    row_to_activity_session,
    time_management_activities,
    time_management_activity_sessions,
    users,
)
from db.scope import authenticated_query

activities = time_management_activities
sessions = time_management_activity_sessions

MAX_TOTAL_PERCENTAGE = 100


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


@authenticated_query
def get_activities(scope, conn, user_id: str) -> list[Activity]:
    rows = conn.execute(
        select(activities).where(activities.c.user_id == user_id).order_by(activities.c.name, activities.c.id)
    ).fetchall()
    return [row_to_activity(row) for row in rows]


@authenticated_query
def add_activity(scope, conn, user_id: str, activity: Activity) -> Activity:
    conn.execute(select(users.c.id).where(users.c.id == user_id).with_for_update()).first()
    planned = conn.execute(
        select(func.coalesce(func.sum(activities.c.percentage), 0)).where(activities.c.user_id == user_id)
    ).scalar_one()
    if planned + activity.percentage > MAX_TOTAL_PERCENTAGE:
        raise InvalidArgument(
            f"Planned percentages cannot exceed {MAX_TOTAL_PERCENTAGE}; {MAX_TOTAL_PERCENTAGE - planned} left."
        )
    activity.user_id = user_id
    conn.execute(
        insert(activities).values(
            id=activity.id,
            user_id=user_id,
            name=activity.name,
            percentage=activity.percentage,
        )
    )
    return activity


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@authenticated_query
def get_activity_sessions(
    scope, conn, user_id: str, start: datetime | None = None, end: datetime | None = None
) -> list[ActivitySession]:
    """The owner's sessions that started in [start, end), oldest first."""
    stmt = select(sessions).where(sessions.c.user_id == user_id)
    if start is not None:
        stmt = stmt.where(sessions.c.start_timestamp >= iso(start))
    if end is not None:
        stmt = stmt.where(sessions.c.start_timestamp < iso(end))
    rows = conn.execute(stmt.order_by(sessions.c.start_timestamp)).fetchall()
    return [row_to_activity_session(row) for row in rows]


@authenticated_query
def start_activity_session(scope, conn, user_id: str, session: ActivitySession) -> ActivitySession:
    owned = conn.execute(
        select(activities.c.id).where(and_(activities.c.id == session.activity_id, activities.c.user_id == user_id))
    ).first()
    if owned is None:
        raise NotFound("Activity not found.")
    running = conn.execute(
        select(sessions.c.id).where(
            and_(sessions.c.activity_id == session.activity_id, sessions.c.end_timestamp.is_(None))
        )
    ).first()
    if running is not None:
        raise InvalidArgument("This activity already has a running session.")
    session.user_id = user_id
    conn.execute(
        insert(sessions).values(
            id=session.id,
            user_id=user_id,
            activity_id=session.activity_id,
            start_timestamp=iso(session.start_timestamp),
            end_timestamp=None,
        )
    )
    return session


@authenticated_query
def stop_activity_session(scope, conn, user_id: str, session_id: str, now: datetime) -> ActivitySession:
    result = conn.execute(
        update(sessions)
        .where(
            and_(
                sessions.c.id == session_id,
                sessions.c.user_id == user_id,
                sessions.c.end_timestamp.is_(None),
            )
        )
        .values(end_timestamp=iso(now))
    )
    if result.rowcount == 0:
        raise NotFound("No running session with this id.")
    row = conn.execute(select(sessions).where(sessions.c.id == session_id)).first()
    return row_to_activity_session(row)
