"""
api/routes/v1/expenses.py -- Expenses in the book keeping app.

Routes (all require use_app_book_keeping and use_app_expenses):
  GET    /api/v1/expenses                  -- ?include_deleted=true to see removed ones
  POST   /api/v1/expenses
  PATCH  /api/v1/expenses/{expense_id}     -- only the fields sent are changed
  DELETE /api/v1/expenses/{expense_id}     -- soft delete
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from api.dependencies import get_access_token, get_gateway, unwrap
from api.models import ExpenseCreate, ExpenseResponse, ExpenseUpdate, MessageResponse
from db.gateway import Gateway
from services import expenses as expense_service

router = APIRouter()


@router.get("/expenses", response_model=list[ExpenseResponse])
def list_expenses(
    include_deleted: bool = False,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> list[ExpenseResponse]:
    found = unwrap(expense_service.get_expenses(gateway, token, include_deleted))
    return [ExpenseResponse(**asdict(e)) for e in found]


@router.post("/expenses", response_model=ExpenseResponse, status_code=201)
def add_expense(
    body: ExpenseCreate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ExpenseResponse:
    expense = unwrap(expense_service.add_expense(gateway, token, **body.model_dump()))
    return ExpenseResponse(**asdict(expense))


@router.patch("/expenses/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> ExpenseResponse:
    # subscription_id is the only field that may be cleared with null.
    changes = {
        name: value
        for name, value in body.model_dump(exclude_unset=True).items()
        if value is not None or name == "subscription_id"
    }
    expense = unwrap(expense_service.update_expense(gateway, token, expense_id, **changes))
    return ExpenseResponse(**asdict(expense))


@router.delete("/expenses/{expense_id}", response_model=MessageResponse)
def delete_expense(
    expense_id: str,
    token: str | None = Depends(get_access_token),
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    unwrap(expense_service.delete_expense(gateway, token, expense_id))
    return MessageResponse(message="Expense deleted.")
