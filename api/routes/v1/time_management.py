"""
api/routes/v1/time_management.py -- The time management app.

Routes (all require use_app_time_management):
  GET    /api/v1/time-management/activities
  POST   /api/v1/time-management/activities
  POST   /api/v1/time-management/activities/{activity_id}/start   -- open a session
  GET    /api/v1/time-management/sessions                         -- ?day=YYYY-MM-DD (UTC, default today)
  POST   /api/v1/time-management/sessions/{session_id}/stop
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import ActivityCreate, ActivityResponse, ActivitySessionResponse
from db.gateway import Gateway
from services import time_management as tm_service

router = APIRouter()


@router.get("/time-management/activities", response_model=list[ActivityResponse])
def list_activities(
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[ActivityResponse]:
    return [ActivityResponse(**asdict(a)) for a in unwrap(tm_service.get_activities(gateway, token))]


@router.post("/time-management/activities", response_model=ActivityResponse, status_code=201)
def add_activity(
    body: ActivityCreate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ActivityResponse:
    return ActivityResponse(**asdict(unwrap(tm_service.add_activity(gateway, token, body.name, body.percentage))))


@router.post(
    "/time-management/activities/{activity_id}/start", response_model=ActivitySessionResponse, status_code=201
)
def start_activity(
    activity_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ActivitySessionResponse:
    return ActivitySessionResponse(**asdict(unwrap(tm_service.start_activity(gateway, token, activity_id))))


@router.get("/time-management/sessions", response_model=list[ActivitySessionResponse])
def list_sessions(
    day: Optional[date] = None,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[ActivitySessionResponse]:
    found = unwrap(tm_service.get_activity_sessions(gateway, token, day))
    return [ActivitySessionResponse(**asdict(s)) for s in found]


@router.post("/time-management/sessions/{session_id}/stop", response_model=ActivitySessionResponse)
def stop_activity(
    session_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ActivitySessionResponse:
    return ActivitySessionResponse(**asdict(unwrap(tm_service.stop_activity(gateway, token, session_id))))
