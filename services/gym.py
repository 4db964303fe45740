"""
services/gym.py -- The gym app: body-weight tracking.

Every operation requires use_app_gym and acts on the token owner only.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from apps.models import GymWeight
from auth.permissions import Permission
from db.errors import ErrorKind, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries import gym as gym_queries

logger = logging.getLogger("portal.services.gym")

_REQUIRED = (Permission.UseApp_Gym,)

MAX_WEIGHT_KG = 1000


def get_gym_weights(gateway: Gateway, token: str | None) -> QueryResult[list[GymWeight]]:
    return gateway.execute_authenticated(
        token, gym_queries.get_gym_weights, CURRENT_USER, required_permissions=_REQUIRED
    )


def add_gym_weight(gateway: Gateway, token: str | None, amount: float, timestamp: datetime) -> QueryResult[GymWeight]:
    if not 0 < amount <= MAX_WEIGHT_KG:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, f"Weight must be between 0 and {MAX_WEIGHT_KG} kg.")
    if timestamp.tzinfo is None:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Timestamp must include a timezone.")
    draft = GymWeight(
        id=str(uuid.uuid4()),
        user_id="",
        amount=amount,
        timestamp=timestamp,
        creation_timestamp=gateway.now(),
    )
    return gateway.execute_authenticated(
        token, gym_queries.add_gym_weight, CURRENT_USER, draft, required_permissions=_REQUIRED
    )


def delete_gym_weight(gateway: Gateway, token: str | None, weight_id: str) -> QueryResult[None]:
    deleted = gateway.execute_authenticated(
        token, gym_queries.delete_gym_weight, CURRENT_USER, weight_id, gateway.now(), required_permissions=_REQUIRED
    )
    if deleted.success:
        logger.info("Gym weight %s deleted", weight_id)
    return deleted
