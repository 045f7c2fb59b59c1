from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from app.ledger.schemas.common import id_or_none, money


class ExpenseCreateRequest(BaseModel):
    session_id: str
    shift_id: str | None = None
    amount: Decimal
    category: Literal["SUPPLIES", "UTILITIES", "MAINTENANCE", "TRANSPORT", "PAYROLL", "TAXES", "OTHER"]
    method: Literal["CASH", "CARD", "TRANSFER", "WALLET"] = "CASH"
    description: str
    beneficiary: str | None = None
    invoice_number: str | None = None
    receipt_reference: str | None = None


class ExpenseResponse(BaseModel):
    id: str
    session_id: str
    shift_id: str | None
    amount: Decimal
    category: str
    method: str
    description: str
    beneficiary: str | None
    invoice_number: str | None
    receipt_reference: str | None
    requested_by: str
    authorized_by: str | None
    created_at: datetime


class ExpenseListResponse(BaseModel):
    rows: list[ExpenseResponse]
    total: int


class ExpenseCategoryTotalsResponse(BaseModel):
    session_id: str
    totals: dict[str, Decimal]


def expense_response(expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=str(expense.id),
        session_id=str(expense.session_id),
        shift_id=id_or_none(expense.shift_id),
        amount=money(expense.amount),
        category=expense.category.value,
        method=expense.method.value,
        description=expense.description,
        beneficiary=expense.beneficiary,
        invoice_number=expense.invoice_number,
        receipt_reference=expense.receipt_reference,
        requested_by=str(expense.requested_by),
        authorized_by=id_or_none(expense.authorized_by),
        created_at=expense.created_at,
    )
