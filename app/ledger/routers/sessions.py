from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import get_current_actor, require_actor_capability
from app.ledger.core.enums import SessionStatus
from app.ledger.db.session import get_db
from app.ledger.schemas.audit import LedgerAuditReportResponse
from app.ledger.schemas.expenses import ExpenseCategoryTotalsResponse
from app.ledger.schemas.movements import MovementListResponse, movement_list_response
from app.ledger.schemas.reconciliations import ReconciliationResponse, reconciliation_response
from app.ledger.schemas.sessions import (
    CashSessionCloseRequest,
    CashSessionCloseResponse,
    CashSessionCurrentResponse,
    CashSessionListResponse,
    CashSessionOpenRequest,
    CashSessionResponse,
    CashSessionSummaryResponse,
    CashStatusResponse,
    ChangeCheckRequest,
    ChangeCheckResponse,
    cash_status_response,
    change_check_response,
    session_close_response,
    session_response,
    session_summary_response,
)
from app.ledger.schemas.shifts import ShiftListResponse, StartingCashResponse, shift_response
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.expenses import ExpenseService
from app.ledger.services.idempotency import begin_idempotent_request, finish_idempotent_request
from app.ledger.services.ledger_state import load_session
from app.ledger.services.movements import MovementRecorder
from app.ledger.services.reconciliation import ReconciliationEngine
from app.ledger.services.sessions import SessionManager
from app.ledger.services.shifts import ShiftManager
from app.ops.ledger_checks import build_audit_report


router = APIRouter()


@router.post("/ledger/sessions", response_model=CashSessionResponse, status_code=201)
def open_session(
    request: Request,
    payload: CashSessionOpenRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    session = SessionManager(db).open(payload.register_id, actor, payload.initial_float, payload.notes)
    response = session_response(session)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action="cash_session.open",
        entity_type="cash_session",
        entity_id=session.id,
        session_id=session.id,
        after={"status": session.status.value, "initial_float": session.initial_float},
        metadata={"register_id": payload.register_id},
    )
    return response


@router.get("/ledger/sessions", response_model=CashSessionListResponse)
def list_sessions(
    status: SessionStatus | None = None,
    register_id: str | None = None,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    rows = SessionManager(db).search(status=status, register_id=register_id)
    return CashSessionListResponse(rows=[session_response(row) for row in rows], total=len(rows))


@router.get("/ledger/sessions/current", response_model=CashSessionCurrentResponse)
def get_current_session(actor=Depends(get_current_actor), db=Depends(get_db)):
    session = SessionManager(db).active_session_for(actor.actor_id)
    return CashSessionCurrentResponse(session=session_response(session) if session else None)


@router.get("/ledger/sessions/{session_id}", response_model=CashSessionResponse)
def get_session(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return session_response(SessionManager(db).get(session_id))


@router.get("/ledger/sessions/{session_id}/summary", response_model=CashSessionSummaryResponse)
def get_session_summary(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return session_summary_response(SessionManager(db).summary(session_id))


@router.get("/ledger/sessions/{session_id}/cash-status", response_model=CashStatusResponse)
def get_cash_status(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return cash_status_response(SessionManager(db).cash_status(session_id))


@router.post("/ledger/sessions/{session_id}/change-check", response_model=ChangeCheckResponse)
def check_change(
    session_id: UUID,
    payload: ChangeCheckRequest,
    _actor=Depends(require_actor_capability(Capability.OPERATE_TILL)),
    db=Depends(get_db),
):
    return change_check_response(SessionManager(db).validate_change(session_id, payload.sale_total, payload.amount_paid))


@router.post("/ledger/sessions/{session_id}/close", response_model=CashSessionCloseResponse)
def close_session(
    request: Request,
    session_id: UUID,
    payload: CashSessionCloseRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    before = load_session(db, session_id)
    before_state = {"status": before.status.value, "expected_cash": before.expected_cash}
    breakdown = [row.model_dump() for row in payload.breakdown] if payload.breakdown else None
    result = SessionManager(db).close(session_id, actor, payload.counted_cash, breakdown, payload.notes)
    response = session_close_response(result)
    finish_idempotent_request(request, response.model_dump(mode="json"))
    record_ledger_event(
        db,
        request,
        actor,
        action="cash_session.close" if result.closed else "cash_session.close_pending_approval",
        entity_type="cash_session",
        entity_id=session_id,
        session_id=session_id,
        before=before_state,
        after={
            "status": result.session.status.value,
            "counted_cash": result.reconciliation.counted_total,
            "difference": result.reconciliation.difference,
            "reconciliation_status": result.reconciliation.status.value,
        },
        metadata={"reconciliation_id": str(result.reconciliation.id)},
    )
    return response


@router.get("/ledger/sessions/{session_id}/movements", response_model=MovementListResponse)
def list_session_movements(
    session_id: UUID,
    kind: str | None = None,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return movement_list_response(MovementRecorder(db).list_for_session(session_id, kind=kind))


@router.get("/ledger/sessions/{session_id}/shifts", response_model=ShiftListResponse)
def list_session_shifts(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    rows = ShiftManager(db).list_for_session(session_id)
    return ShiftListResponse(rows=[shift_response(row) for row in rows], total=len(rows))


@router.get("/ledger/sessions/{session_id}/starting-cash", response_model=StartingCashResponse)
def preview_starting_cash(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    starting = ShiftManager(db).preview_starting_cash(session_id)
    return StartingCashResponse(
        session_id=str(session_id),
        amount=starting.amount,
        source=starting.source,
        previous_shift_id=str(starting.previous_shift_id) if starting.previous_shift_id else None,
    )


@router.get("/ledger/sessions/{session_id}/reconciliation", response_model=ReconciliationResponse | None)
def get_session_reconciliation(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    reconciliation = ReconciliationEngine(db).get_for_session(session_id)
    return reconciliation_response(reconciliation) if reconciliation else None


@router.get("/ledger/sessions/{session_id}/expenses/by-category", response_model=ExpenseCategoryTotalsResponse)
def get_expense_totals(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return ExpenseCategoryTotalsResponse(
        session_id=str(session_id),
        totals=ExpenseService(db).totals_by_category(session_id),
    )


@router.get("/ledger/sessions/{session_id}/audit", response_model=LedgerAuditReportResponse)
def audit_session(
    session_id: UUID,
    _actor=Depends(require_actor_capability(Capability.AUDIT)),
    db=Depends(get_db),
):
    return build_audit_report(db, load_session(db, session_id))
