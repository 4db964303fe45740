"""
db/queries/expenses.py -- Expense reads and writes, scoped to one owner.

Deleted expenses stay in the table (deletion_timestamp). Listings skip them
unless asked; edits and deletes never touch them.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, insert, select, update

from apps.models import Expense
from db.errors import NotFound
from db.schema import expenses, iso, row_to_expense
from db.scope import authenticated_query

_NOT_FOUND = "Expense not found."

# Fields an owner may change after creation.
EDITABLE_FIELDS = (
    "title",
    "description",
    "category",
    "amount",
    "payment_method",
    "subscription_id",
    "reimbursement_expected_amount",
    "reimbursement_notes",
    "reimbursement_income_ids",
    "timestamp",
)


def _owned_live(user_id: str, expense_id: str):
    return and_(
        expenses.c.id == expense_id,
        expenses.c.user_id == user_id,
        expenses.c.deletion_timestamp.is_(None),
    )


@authenticated_query
def get_expenses(scope, conn, user_id: str, include_deleted: bool = False) -> list[Expense]:
    """The owner's expenses ordered by timestamp."""
    stmt = select(expenses).where(expenses.c.user_id == user_id).order_by(expenses.c.timestamp)
    if not include_deleted:
        stmt = stmt.where(expenses.c.deletion_timestamp.is_(None))
    return [row_to_expense(row) for row in conn.execute(stmt).fetchall()]


@authenticated_query
def add_expense(scope, conn, user_id: str, expense: Expense) -> Expense:
    expense.user_id = user_id
    conn.execute(
        insert(expenses).values(
            id=expense.id,
            user_id=user_id,
            title=expense.title,
            description=expense.description,
            category=expense.category,
            amount=expense.amount,
            payment_method=expense.payment_method,
            subscription_id=expense.subscription_id,
            reimbursement_expected_amount=expense.reimbursement_expected_amount,
            reimbursement_notes=expense.reimbursement_notes,
            reimbursement_income_ids=list(expense.reimbursement_income_ids),
            timestamp=iso(expense.timestamp),
            creation_timestamp=iso(expense.creation_timestamp),
        )
    )
    return expense


@authenticated_query
def update_expense(scope, conn, user_id: str, expense_id: str, changes: dict, now: datetime) -> Expense:
    """Apply changes (a subset of EDITABLE_FIELDS) and return the updated expense."""
    values = {name: value for name, value in changes.items() if name in EDITABLE_FIELDS}
    if "timestamp" in values:
        values["timestamp"] = iso(values["timestamp"])
    values["last_edited_timestamp"] = iso(now)
    result = conn.execute(update(expenses).where(_owned_live(user_id, expense_id)).values(**values))
    if result.rowcount == 0:
        raise NotFound(_NOT_FOUND)
    row = conn.execute(select(expenses).where(expenses.c.id == expense_id)).first()
    return row_to_expense(row)


@authenticated_query
def delete_expense(scope, conn, user_id: str, expense_id: str, now: datetime) -> None:
    result = conn.execute(update(expenses).where(_owned_live(user_id, expense_id)).values(deletion_timestamp=iso(now)))
    if result.rowcount == 0:
        raise NotFound(_NOT_FOUND)
