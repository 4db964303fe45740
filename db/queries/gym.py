"""
db/queries/gym.py -- Gym weight reads and writes, scoped to one owner.

user_id is always the verified token owner (CURRENT_USER in services/) and is
part of every WHERE clause, so a weight id belonging to someone else behaves
exactly like an id that does not exist.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, insert, select, update

from apps.models import GymWeight
from db.errors import NotFound
from db.schema import gym_weights, iso, row_to_gym_weight
from db.scope import authenticated_query


@authenticated_query
def get_gym_weights(scope, conn, user_id: str) -> list[GymWeight]:
    """The owner's weights, oldest measurement first."""
    rows = conn.execute(
        select(gym_weights)
        .where(and_(gym_weights.c.user_id == user_id, gym_weights.c.deletion_timestamp.is_(None)))
        .order_by(gym_weights.c.timestamp, gym_weights.c.creation_timestamp)
    ).fetchall()
    return [row_to_gym_weight(row) for row in rows]


@authenticated_query
def add_gym_weight(scope, conn, user_id: str, weight: GymWeight) -> GymWeight:
    weight.user_id = user_id
    conn.execute(
        insert(gym_weights).values(
            id=weight.id,
            user_id=user_id,
            amount=weight.amount,
            timestamp=iso(weight.timestamp),
            creation_timestamp=iso(weight.creation_timestamp),
        )
    )
    return weight


@authenticated_query
def delete_gym_weight(scope, conn, user_id: str, weight_id: str, now: datetime) -> None:
    result = conn.execute(
        update(gym_weights)
        .where(
            and_(
                gym_weights.c.id == weight_id,
                gym_weights.c.user_id == user_id,
                gym_weights.c.deletion_timestamp.is_(None),
            )
        )
        .values(deletion_timestamp=iso(now))
    )
    if result.rowcount == 0:
        raise NotFound("Weight not found.")
