from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import get_current_actor, get_optional_authorizer, require_actor_capability
from app.ledger.db.session import get_db
from app.ledger.schemas.shifts import (
    ShiftCloseRequest,
    ShiftCloseResponse,
    ShiftCurrentResponse,
    ShiftResponse,
    ShiftResumeRequest,
    ShiftStartRequest,
    ShiftSummaryResponse,
    ShiftSuspendRequest,
    shift_response,
    shift_summary_response,
)
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.idempotency import begin_idempotent_request, finish_idempotent_request
from app.ledger.services.shifts import ShiftManager


router = APIRouter()


@router.post("/ledger/shifts", response_model=ShiftResponse, status_code=201)
def start_shift(
    request: Request,
    payload: ShiftStartRequest,
    actor=Depends(get_current_actor),
    supervisor=Depends(get_optional_authorizer),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    shift = ShiftManager(db).start(
        payload.session_id,
        actor,
        payload.relief_type,
        supervisor=supervisor,
        cashier_id=payload.cashier_id,
        notes=payload.notes,
    )
    response = shift_response(shift)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action="shift.start",
        entity_type="shift",
        entity_id=shift.id,
        session_id=shift.session_id,
        after={
            "status": shift.status.value,
            "cashier_id": str(shift.cashier_id),
            "starting_cash": shift.starting_cash,
            "relief_type": shift.relief_type.value,
        },
        metadata={"authorized_by": str(shift.authorized_by) if shift.authorized_by else None},
    )
    return response


@router.get("/ledger/shifts/current", response_model=ShiftCurrentResponse)
def get_current_shift(actor=Depends(get_current_actor), db=Depends(get_db)):
    shift = ShiftManager(db).current_for(actor.actor_id)
    return ShiftCurrentResponse(shift=shift_response(shift) if shift else None)


@router.get("/ledger/shifts/{shift_id}", response_model=ShiftResponse)
def get_shift(
    shift_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return shift_response(ShiftManager(db).get(shift_id))


@router.get("/ledger/shifts/{shift_id}/summary", response_model=ShiftSummaryResponse)
def get_shift_summary(
    shift_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return shift_summary_response(ShiftManager(db).summary(shift_id))


@router.post("/ledger/shifts/{shift_id}/suspend", response_model=ShiftResponse)
def suspend_shift(
    request: Request,
    shift_id: UUID,
    payload: ShiftSuspendRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    shift = ShiftManager(db).suspend(shift_id, payload.reason, actor)
    response = shift_response(shift)
    record_ledger_event(
        db,
        request,
        actor,
        action="shift.suspend",
        entity_type="shift",
        entity_id=shift.id,
        session_id=shift.session_id,
        before={"status": "ACTIVE"},
        after={"status": shift.status.value},
        metadata={"reason": shift.suspension_reason},
    )
    return response


@router.post("/ledger/shifts/{shift_id}/resume", response_model=ShiftResponse)
def resume_shift(
    request: Request,
    shift_id: UUID,
    payload: ShiftResumeRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    shift = ShiftManager(db).resume(shift_id, actor, payload.notes)
    response = shift_response(shift)
    record_ledger_event(
        db,
        request,
        actor,
        action="shift.resume",
        entity_type="shift",
        entity_id=shift.id,
        session_id=shift.session_id,
        before={"status": "SUSPENDED"},
        after={"status": shift.status.value},
    )
    return response


@router.post("/ledger/shifts/{shift_id}/close", response_model=ShiftCloseResponse)
def close_shift(
    request: Request,
    shift_id: UUID,
    payload: ShiftCloseRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    result = ShiftManager(db).close(
        shift_id,
        payload.ending_cash,
        actor,
        payload.notes,
        next_cashier_id=payload.next_cashier_id,
    )
    response = ShiftCloseResponse(
        shift=shift_response(result.shift),
        next_shift=shift_response(result.next_shift) if result.next_shift else None,
    )
    finish_idempotent_request(request, response.model_dump(mode="json"))
    record_ledger_event(
        db,
        request,
        actor,
        action="shift.close",
        entity_type="shift",
        entity_id=result.shift.id,
        session_id=result.shift.session_id,
        before={"status": "ACTIVE"},
        after={
            "status": result.shift.status.value,
            "expected_cash": result.shift.expected_cash,
            "ending_cash": result.shift.ending_cash,
            "difference": result.shift.difference,
        },
        metadata={"next_shift_id": str(result.next_shift.id) if result.next_shift else None},
    )
    return response
