"""
auth/models.py -- Domain dataclasses for identity and credential entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; db/ queries map rows into them and services/ do the work.

All timestamps are timezone-aware UTC datetimes. The store keeps them as ISO
8601 strings; the row mappers in db/ convert in both directions.

Layer rule: no imports from api/, db/, or services/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An identity in the portal.

    Users are created exclusively by redeeming an account creation code and are
    never hard-deleted: deletion_timestamp marks a soft-deleted account, which
    frees its username and email for reuse (uniqueness is enforced only among
    non-deleted users).

    max_tokens_at_a_time is None when the user has no concurrency cap.
    """

    id: str
    username: str
    email: str
    hashed_password: str
    creation_timestamp: datetime
    default_token_expiry_seconds: int
    last_login_timestamp: datetime | None = None
    max_tokens_at_a_time: int | None = None
    deletion_timestamp: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deletion_timestamp is not None


@dataclass
class PermissionGrant:
    """One (user, permission) row. Grants carry no metadata of their own."""

    user_id: str
    permission_name: str


@dataclass
class AccessToken:
    """A bearer credential issued at login.

    Security design:
    - token is the secret itself (512 bits from secrets.token_urlsafe(64)) and
      the primary key. It is only ever returned to the client that logged in.
    - alias is a short random handle used to list and revoke tokens in the UI
      without exposing the secret.
    - Rows are never deleted. The two revocation timestamps form the audit
      trail: manual means the user (or an admin) acted, automatic means the
      account's token policy evicted it.
    """

    token: str
    alias: str
    user_id: str
    creation_timestamp: datetime
    expiration_timestamp: datetime
    last_use_timestamp: datetime
    manually_revoked_timestamp: datetime | None = None
    automatically_revoked_timestamp: datetime | None = None


@dataclass
class AccountCreationCode:
    """A single-use, email-bound invitation that creates exactly one account.

    creator_type is "system" for the first-run bootstrap code and "user" for
    codes issued by an administrator; creator_user_id is set iff creator_type
    is "user" (CHECK constraint in db/schema.py).

    permission_names is ordered: it is the exact list granted on redemption.
    """

    id: str
    code: str
    title: str
    email: str
    creation_timestamp: datetime
    creator_type: str  # "user" or "system"
    account_default_token_expiry_seconds: int
    expiration_timestamp: datetime
    permission_names: list[str] = field(default_factory=list)
    creator_user_id: str | None = None
    revoked_timestamp: datetime | None = None
    revoker_user_id: str | None = None
    used_timestamp: datetime | None = None
    used_on_user_id: str | None = None
    notify_creator_on_use: bool = False

    @property
    def issued_by_system(self) -> bool:
        return self.creator_type == "system"
