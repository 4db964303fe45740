"""
services/expenses.py -- Expenses in the book keeping app.

Expenses live inside the book keeping app, so every operation requires
use_app_book_keeping AND use_app_expenses. Like the admin pair, holding one of
them grants nothing on its own.

Input rules (INVALID_ARGUMENT otherwise):
  - title is 1-100 characters after stripping
  - amount > 0
  - 0 <= reimbursement_expected_amount <= amount
  - timestamp is timezone-aware
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from apps.models import Expense
from auth.permissions import Permission
from db.errors import ErrorKind, QueryResult
from db.gateway import CURRENT_USER, Gateway
from db.queries import expenses as expense_queries

logger = logging.getLogger("portal.services.expenses")

_REQUIRED = (Permission.UseApp_BookKeeping, Permission.UseApp_Expenses)

MAX_TITLE_LENGTH = 100


def _check(
    title: str, amount: float, reimbursement_expected_amount: float, timestamp: datetime
) -> QueryResult | None:
    if not title or len(title) > MAX_TITLE_LENGTH:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, f"Title must be 1 to {MAX_TITLE_LENGTH} characters.")
    if amount <= 0:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Amount must be positive.")
    if not 0 <= reimbursement_expected_amount <= amount:
        return QueryResult.failure(
            ErrorKind.INVALID_ARGUMENT, "Expected reimbursement must be between 0 and the amount."
        )
    if timestamp.tzinfo is None:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, "Timestamp must include a timezone.")
    return None


def get_expenses(gateway: Gateway, token: str | None, include_deleted: bool = False) -> QueryResult[list[Expense]]:
    return gateway.execute_authenticated(
        token, expense_queries.get_expenses, CURRENT_USER, include_deleted, required_permissions=_REQUIRED
    )


def add_expense(
    gateway: Gateway,
    token: str | None,
    title: str,
    amount: float,
    timestamp: datetime,
    description: str = "",
    category: str = "",
    payment_method: str = "",
    subscription_id: str | None = None,
    reimbursement_expected_amount: float = 0.0,
    reimbursement_notes: str = "",
    reimbursement_income_ids: list[str] | None = None,
) -> QueryResult[Expense]:
    title = title.strip()
    refused = _check(title, amount, reimbursement_expected_amount, timestamp)
    if refused is not None:
        return refused
    draft = Expense(
        id=str(uuid.uuid4()),
        user_id="",
        title=title,
        amount=amount,
        timestamp=timestamp,
        creation_timestamp=gateway.now(),
        description=description,
        category=category.strip(),
        payment_method=payment_method,
        subscription_id=subscription_id,
        reimbursement_expected_amount=reimbursement_expected_amount,
        reimbursement_notes=reimbursement_notes,
        reimbursement_income_ids=list(reimbursement_income_ids or []),
    )
    return gateway.execute_authenticated(
        token, expense_queries.add_expense, CURRENT_USER, draft, required_permissions=_REQUIRED
    )


def update_expense(gateway: Gateway, token: str | None, expense_id: str, **changes) -> QueryResult[Expense]:
    """Change some fields of an expense.

    The merged result is validated with the same rules as add_expense, so
    reading the current expense comes first.
    """
    unknown = set(changes) - set(expense_queries.EDITABLE_FIELDS)
    if unknown:
        return QueryResult.failure(ErrorKind.INVALID_ARGUMENT, f"Cannot edit: {', '.join(sorted(unknown))}.")
    if "title" in changes:
        changes["title"] = changes["title"].strip()

    current = gateway.execute_authenticated(
        token, expense_queries.get_expenses, CURRENT_USER, required_permissions=_REQUIRED
    )
    if not current.success:
        return QueryResult.fail(current.error)
    existing = next((e for e in current.result if e.id == expense_id), None)
    if existing is None:
        return QueryResult.failure(ErrorKind.NOT_FOUND, "Expense not found.")
    refused = _check(
        changes.get("title", existing.title),
        changes.get("amount", existing.amount),
        changes.get("reimbursement_expected_amount", existing.reimbursement_expected_amount),
        changes.get("timestamp", existing.timestamp),
    )
    if refused is not None:
        return refused

    return gateway.execute_authenticated(
        token,
        expense_queries.update_expense,
        CURRENT_USER,
        expense_id,
        changes,
        gateway.now(),
        required_permissions=_REQUIRED,
    )


def delete_expense(gateway: Gateway, token: str | None, expense_id: str) -> QueryResult[None]:
    deleted = gateway.execute_authenticated(
        token, expense_queries.delete_expense, CURRENT_USER, expense_id, gateway.now(), required_permissions=_REQUIRED
    )
    if deleted.success:
        logger.info("Expense %s deleted", expense_id)
    return deleted
