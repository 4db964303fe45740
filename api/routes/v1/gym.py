"""
api/routes/v1/gym.py -- The gym app.

Routes (all require use_app_gym):
  GET    /api/v1/gym/weights               -- the caller's weights, oldest first
  POST   /api/v1/gym/weights               -- record a weight
  DELETE /api/v1/gym/weights/{weight_id}   -- remove one of the caller's weights
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import GymWeightCreate, GymWeightResponse, MessageResponse
from db.gateway import Gateway
from services import gym as gym_service

router = APIRouter()


@router.get("/gym/weights", response_model=list[GymWeightResponse])
def list_weights(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[GymWeightResponse]:
    return [GymWeightResponse(**asdict(w)) for w in unwrap(gym_service.get_gym_weights(gateway, token))]


@router.post("/gym/weights", response_model=GymWeightResponse, status_code=201)
def add_weight(
    body: GymWeightCreate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> GymWeightResponse:
    weight = unwrap(gym_service.add_gym_weight(gateway, token, body.amount, body.timestamp))
    return GymWeightResponse(**asdict(weight))


@router.delete("/gym/weights/{weight_id}", response_model=MessageResponse)
def delete_weight(
    weight_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(gym_service.delete_gym_weight(gateway, token, weight_id))
    return MessageResponse(message="Weight deleted.")
