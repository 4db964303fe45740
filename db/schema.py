"""
db/schema.py -- SQLAlchemy Core schema and row mappers for the identity store.

Pattern: Table metadata + Data Mapper. Query modules build statements against
these Table objects and convert rows with the row_to_* mappers; nothing outside
db/ touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Storage conventions:
  Timestamps are ISO 8601 strings in UTC with fixed microsecond precision
  (iso() below). The fixed format keeps lexicographic order identical to
  chronological order, so "expiration_timestamp > :now" comparisons are
  correct in SQL on both SQLite and PostgreSQL.

  Usernames and emails are unique only among non-deleted users. Partial unique
  indexes (WHERE deletion_timestamp IS NULL) enforce that at the DB level on
  both dialects.

  account_creation_codes.used_on_user_id has no foreign key: the code is
  consumed (and the future user id recorded) BEFORE the user row exists.

  App tables (gym_weights, expenses, time_management_*) carry a user_id on
  every row, including activity sessions, so an ownership check never needs
  a join.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    text,
)

from apps.models import Activity, ActivitySession, Expense, GymWeight
from auth.models import AccessToken, AccountCreationCode, User

metadata = MetaData()

_ACTIVE_ONLY = text("deletion_timestamp IS NULL")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False),
    Column("email", String(320), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("creation_timestamp", String(32), nullable=False),
    Column("last_login_timestamp", String(32)),
    Column("default_token_expiry_seconds", Integer, nullable=False),
    Column("max_tokens_at_a_time", Integer),
    Column("deletion_timestamp", String(32)),
    Index("uq_users_active_username", "username", unique=True, sqlite_where=_ACTIVE_ONLY, postgresql_where=_ACTIVE_ONLY),
    Index("uq_users_active_email", "email", unique=True, sqlite_where=_ACTIVE_ONLY, postgresql_where=_ACTIVE_ONLY),
)

user_permissions = Table(
    "user_permissions",
    metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_name", String(100), primary_key=True),
)

access_tokens = Table(
    "access_tokens",
    metadata,
    Column("token", String(128), primary_key=True),
    Column("alias", String(32), nullable=False, unique=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column("creation_timestamp", String(32), nullable=False),
    Column("expiration_timestamp", String(32), nullable=False),
    Column("last_use_timestamp", String(32), nullable=False),
    Column("manually_revoked_timestamp", String(32)),
    Column("automatically_revoked_timestamp", String(32)),
)

account_creation_codes = Table(
    "account_creation_codes",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("code", String(64), nullable=False, unique=True),
    Column("title", String(100), nullable=False, server_default=""),
    Column("email", String(320), nullable=False),
    Column("creation_timestamp", String(32), nullable=False),
    Column("creator_type", String(10), nullable=False),
    Column("creator_user_id", String(36), ForeignKey("users.id")),
    Column("account_default_token_expiry_seconds", Integer, nullable=False),
    Column("permission_names", JSON, nullable=False),
    Column("expiration_timestamp", String(32), nullable=False),
    Column("revoked_timestamp", String(32)),
    Column("revoker_user_id", String(36), ForeignKey("users.id")),
    Column("used_timestamp", String(32)),
    Column("used_on_user_id", String(36)),
    Column("notify_creator_on_use", Boolean, nullable=False, server_default="0"),
    CheckConstraint(
        "(creator_type = 'user' AND creator_user_id IS NOT NULL) "
        "OR (creator_type = 'system' AND creator_user_id IS NULL)",
        name="ck_codes_creator_consistency",
    ),
    CheckConstraint(
        "notify_creator_on_use = false OR creator_type = 'user'",
        name="ck_codes_notify_only_user_issued",
    ),
)


# ---------------------------------------------------------------------------
# App tables
# ---------------------------------------------------------------------------

gym_weights = Table(
    "gym_weights",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column("amount", Float, nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("creation_timestamp", String(32), nullable=False),
    Column("deletion_timestamp", String(32)),
    CheckConstraint("amount > 0", name="ck_gym_weights_positive"),
)

expenses = Table(
    "expenses",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column("title", String(100), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("category", String(100), nullable=False, server_default=""),
    Column("amount", Float, nullable=False),
    Column("payment_method", String(100), nullable=False, server_default=""),
    Column("subscription_id", String(36)),
    Column("reimbursement_expected_amount", Float, nullable=False, server_default="0"),
    Column("reimbursement_notes", Text, nullable=False, server_default=""),
    Column("reimbursement_income_ids", JSON, nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("creation_timestamp", String(32), nullable=False),
    Column("last_edited_timestamp", String(32)),
    Column("deletion_timestamp", String(32)),
    CheckConstraint("amount > 0", name="ck_expenses_positive"),
)

time_management_activities = Table(
    "time_management_activities",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("percentage", Integer, nullable=False),
    CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_activities_percentage"),
)

time_management_activity_sessions = Table(
    "time_management_activity_sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column(
        "activity_id",
        String(36),
        ForeignKey("time_management_activities.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("start_timestamp", String(32), nullable=False),
    Column("end_timestamp", String(32)),
    # At most one running session per activity.
    Index(
        "uq_sessions_one_running",
        "activity_id",
        unique=True,
        sqlite_where=text("end_timestamp IS NULL"),
        postgresql_where=text("end_timestamp IS NULL"),
    ),
)


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value: datetime) -> str:
    """Serialize an aware datetime for storage (UTC, microsecond precision)."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Rows written by hand (or by an older script) may lack an offset.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        creation_timestamp=parse(row.creation_timestamp),
        last_login_timestamp=parse(row.last_login_timestamp),
        default_token_expiry_seconds=row.default_token_expiry_seconds,
        max_tokens_at_a_time=row.max_tokens_at_a_time,
        deletion_timestamp=parse(row.deletion_timestamp),
    )


def row_to_access_token(row) -> AccessToken:
    return AccessToken(
        token=row.token,
        alias=row.alias,
        user_id=row.user_id,
        creation_timestamp=parse(row.creation_timestamp),
        expiration_timestamp=parse(row.expiration_timestamp),
        last_use_timestamp=parse(row.last_use_timestamp),
        manually_revoked_timestamp=parse(row.manually_revoked_timestamp),
        automatically_revoked_timestamp=parse(row.automatically_revoked_timestamp),
    )


def row_to_account_creation_code(row) -> AccountCreationCode:
    return AccountCreationCode(
        id=row.id,
        code=row.code,
        title=row.title,
        email=row.email,
        creation_timestamp=parse(row.creation_timestamp),
        creator_type=row.creator_type,
        creator_user_id=row.creator_user_id,
        account_default_token_expiry_seconds=row.account_default_token_expiry_seconds,
        permission_names=list(row.permission_names or []),
        expiration_timestamp=parse(row.expiration_timestamp),
        revoked_timestamp=parse(row.revoked_timestamp),
        revoker_user_id=row.revoker_user_id,
        used_timestamp=parse(row.used_timestamp),
        used_on_user_id=row.used_on_user_id,
        notify_creator_on_use=bool(row.notify_creator_on_use),
    )


def row_to_gym_weight(row) -> GymWeight:
    return GymWeight(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        timestamp=parse(row.timestamp),
        creation_timestamp=parse(row.creation_timestamp),
        deletion_timestamp=parse(row.deletion_timestamp),
    )


def row_to_expense(row) -> Expense:
    return Expense(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        category=row.category,
        amount=row.amount,
        payment_method=row.payment_method,
        subscription_id=row.subscription_id,
        reimbursement_expected_amount=row.reimbursement_expected_amount,
        reimbursement_notes=row.reimbursement_notes,
        reimbursement_income_ids=list(row.reimbursement_income_ids or []),
        timestamp=parse(row.timestamp),
        creation_timestamp=parse(row.creation_timestamp),
        last_edited_timestamp=parse(row.last_edited_timestamp),
        deletion_timestamp=parse(row.deletion_timestamp),
    )


def row_to_activity(row) -> Activity:
    return Activity(id=row.id, user_id=row.user_id, name=row.name, percentage=row.percentage)


def row_to_activity_session(row) -> ActivitySession:
    return ActivitySession(
        id=row.id,
        user_id=row.user_id,
        activity_id=row.activity_id,
        start_timestamp=parse(row.start_timestamp),
        end_timestamp=parse(row.end_timestamp),
    )
