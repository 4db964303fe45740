"""
API request and response models for the portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and the
view dataclasses in services/, which own the internal representation. Route
handlers map between the two.

Token secrets appear in exactly one response model (LoginResponse). Every
other token-shaped response identifies tokens by alias.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    # Not stripped: whitespace is part of a password.
    password: str = Field(min_length=1, max_length=256)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        return value.strip()


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    alias: str
    expires_in: int
    expiration_timestamp: datetime
    message: str


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class CreateAccountRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=256)
    email: str = Field(min_length=3, max_length=320)
    code: str = Field(min_length=1, max_length=64)


class CreateAccountResponse(BaseModel):
    user_id: str
    message: str = "Account created. You can now log in."


class ValidateCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Sessions and self-service
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    alias: str
    creation_timestamp: datetime
    expiration_timestamp: datetime
    last_use_timestamp: datetime
    is_current: bool = False


class RevokeTokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class RevokedTokensResponse(BaseModel):
    revoked_aliases: list[str]


class ProfileResponse(BaseModel):
    id: str
    username: str
    email: str
    creation_timestamp: datetime
    last_login_timestamp: Optional[datetime] = None
    default_token_expiry_seconds: int
    max_tokens_at_a_time: Optional[int] = None


class DefaultTokenExpiryUpdate(BaseModel):
    default_token_expiry_seconds: int


class MaxTokensUpdate(BaseModel):
    max_tokens_at_a_time: Optional[int] = None


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionInfoResponse(BaseModel):
    name: str
    description: str
    is_privileged: bool


class PermissionCheckResponse(BaseModel):
    permission: str
    granted: bool


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class UserSummaryResponse(BaseModel):
    id: str
    username: str
    email: str
    creation_timestamp: datetime
    last_login_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None


class UserDetailResponse(BaseModel):
    user: UserSummaryResponse
    permissions: list[str]
    tokens: list[TokenResponse]


class PermissionGrantRequest(BaseModel):
    permission: str = Field(min_length=1, max_length=100)


class AccountCreationCodeResponse(BaseModel):
    id: str
    code: str
    title: str
    email: str
    creation_timestamp: datetime
    creator_type: str
    creator_user_id: Optional[str] = None
    account_default_token_expiry_seconds: int
    permission_names: list[str]
    expiration_timestamp: datetime
    revoked_timestamp: Optional[datetime] = None
    revoker_user_id: Optional[str] = None
    used_timestamp: Optional[datetime] = None
    used_on_user_id: Optional[str] = None
    notify_creator_on_use: bool = False


class AccountCreationCodeCreate(BaseModel):
    """Request body for POST /api/v1/admin/account-creation-codes.

    expires_in_seconds is relative to the server clock so clients do not need
    to agree with it. Range and permission checks happen in services/.
    """

    email: str = Field(min_length=3, max_length=320)
    title: str = Field(default="", max_length=100)
    permission_names: list[str] = Field(default_factory=list)
    expires_in_seconds: int = Field(gt=0)
    account_default_token_expiry_seconds: Optional[int] = None
    notify_creator_on_use: bool = False


class CodePermissionsResponse(BaseModel):
    permission_names: list[str]


class CodeNotifyUpdate(BaseModel):
    notify_creator_on_use: bool


# ---------------------------------------------------------------------------
# Apps
# ---------------------------------------------------------------------------


class GymWeightCreate(BaseModel):
    amount: float = Field(description="Body weight in kilograms.")
    timestamp: datetime


class GymWeightResponse(BaseModel):
    id: str
    amount: float
    timestamp: datetime


class ExpenseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    amount: float
    timestamp: datetime
    description: str = Field(default="", max_length=2000)
    category: str = Field(default="", max_length=100)
    payment_method: str = Field(default="", max_length=100)
    subscription_id: Optional[str] = Field(default=None, max_length=36)
    reimbursement_expected_amount: float = 0.0
    reimbursement_notes: str = Field(default="", max_length=2000)
    reimbursement_income_ids: list[str] = Field(default_factory=list)


class ExpenseUpdate(BaseModel):
    """PATCH body: only the fields present are changed."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[float] = None
    timestamp: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    category: Optional[str] = Field(default=None, max_length=100)
    payment_method: Optional[str] = Field(default=None, max_length=100)
    subscription_id: Optional[str] = Field(default=None, max_length=36)
    reimbursement_expected_amount: Optional[float] = None
    reimbursement_notes: Optional[str] = Field(default=None, max_length=2000)
    reimbursement_income_ids: Optional[list[str]] = None


class ExpenseResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    amount: float
    payment_method: str
    subscription_id: Optional[str] = None
    reimbursement_expected_amount: float
    reimbursement_notes: str
    reimbursement_income_ids: list[str]
    timestamp: datetime
    creation_timestamp: datetime
    last_edited_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None


class ActivityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    percentage: int


class ActivityResponse(BaseModel):
    id: str
    name: str
    percentage: int


class ActivitySessionResponse(BaseModel):
    id: str
    activity_id: str
    start_timestamp: datetime
    end_timestamp: Optional[datetime] = None
