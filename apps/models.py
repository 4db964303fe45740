"""
apps/models.py -- Domain dataclasses for the per-user apps.

Pure data containers. Validation of user input lives in services/, SQL in
db/queries/. Timestamps are timezone-aware UTC datetimes, stored as ISO 8601
strings like every other table.

Deletion is soft everywhere: deletion_timestamp marks a removed record, which
listings then skip.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class GymWeight:
    """One body-weight measurement, in kilograms."""

    id: str
    user_id: str
    amount: float
    timestamp: datetime
    creation_timestamp: datetime
    deletion_timestamp: datetime | None = None


@dataclass
class Expense:
    """A single expense in the book keeping app.

    reimbursement_expected_amount is what the owner expects to get back
    (0 when nothing is expected). reimbursement_income_ids links the incomes
    that paid it back; they are opaque ids owned by the client.

    subscription_id groups recurring expenses. It is free-form for now.
    """

    id: str
    user_id: str
    title: str
    amount: float
    timestamp: datetime
    creation_timestamp: datetime
    description: str = ""
    category: str = ""
    payment_method: str = ""
    subscription_id: str | None = None
    reimbursement_expected_amount: float = 0.0
    reimbursement_notes: str = ""
    reimbursement_income_ids: list[str] = field(default_factory=list)
    last_edited_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


@dataclass
class Activity:
    """A time management activity and the share of the day planned for it.

    percentage is a whole number 0-100. The planned shares of one user's
    activities never add up to more than 100.
    """

    id: str
    user_id: str
    name: str
    percentage: int


@dataclass
class ActivitySession:
    """A stretch of time spent on an activity. end_timestamp is None while it runs."""

    id: str
    user_id: str
    activity_id: str
    start_timestamp: datetime
    end_timestamp: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.end_timestamp is None
