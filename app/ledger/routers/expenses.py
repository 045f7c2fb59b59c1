from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import get_current_actor, get_optional_authorizer, require_actor_capability
from app.ledger.core.enums import ExpenseCategory
from app.ledger.db.session import get_db
from app.ledger.schemas.expenses import (
    ExpenseCreateRequest,
    ExpenseListResponse,
    ExpenseResponse,
    expense_response,
)
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.expenses import ExpenseService
from app.ledger.services.idempotency import begin_idempotent_request, finish_idempotent_request


router = APIRouter()


@router.post("/ledger/expenses", response_model=ExpenseResponse, status_code=201)
def create_expense(
    request: Request,
    payload: ExpenseCreateRequest,
    actor=Depends(get_current_actor),
    authorizer=Depends(get_optional_authorizer),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    expense = ExpenseService(db).create(
        payload.session_id,
        payload.shift_id,
        payload.amount,
        payload.category,
        payload.description,
        actor,
        method=payload.method,
        authorizer=authorizer,
        beneficiary=payload.beneficiary,
        invoice_number=payload.invoice_number,
        receipt_reference=payload.receipt_reference,
        trace_id=getattr(request.state, "trace_id", None),
    )
    response = expense_response(expense)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action="expense.create",
        entity_type="expense",
        entity_id=expense.id,
        session_id=expense.session_id,
        after={
            "amount": expense.amount,
            "category": expense.category.value,
            "method": expense.method.value,
        },
        metadata={"authorized_by": response.authorized_by, "invoice_number": expense.invoice_number},
    )
    return response


@router.get("/ledger/expenses", response_model=ExpenseListResponse)
def list_expenses(
    session_id: UUID | None = None,
    category: ExpenseCategory | None = None,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    rows = ExpenseService(db).search(session_id=session_id, category=category)
    return ExpenseListResponse(rows=[expense_response(row) for row in rows], total=len(rows))


@router.get("/ledger/expenses/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return expense_response(ExpenseService(db).get(expense_id))
