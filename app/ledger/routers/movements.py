from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import get_current_actor, get_optional_authorizer, require_actor_capability
from app.ledger.db.session import get_db
from app.ledger.repos.movements import MovementRepository
from app.ledger.schemas.movements import (
    AuthorizationDecisionRequest,
    ManualMovementRequest,
    MovementListResponse,
    MovementOffsetRequest,
    MovementResponse,
    SaleRecordRequest,
    movement_list_response,
    movement_response,
)
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.idempotency import begin_idempotent_request, finish_idempotent_request
from app.ledger.services.movements import MovementRecorder, SalePaymentLine


router = APIRouter()


def _trace_id(request: Request) -> str | None:
    return getattr(request.state, "trace_id", None)


@router.post("/ledger/movements", response_model=MovementResponse, status_code=201)
def record_movement(
    request: Request,
    payload: ManualMovementRequest,
    actor=Depends(get_current_actor),
    authorizer=Depends(get_optional_authorizer),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    movement = MovementRecorder(db).record(
        payload.session_id,
        payload.shift_id,
        payload.kind,
        payload.method,
        payload.amount,
        payload.reason,
        actor,
        authorizer=authorizer,
        trace_id=_trace_id(request),
    )
    response = movement_response(movement)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action=f"movement.{movement.kind.value.lower()}",
        entity_type="movement",
        entity_id=movement.id,
        session_id=movement.session_id,
        after={
            "kind": movement.kind.value,
            "method": movement.method.value,
            "amount": movement.amount,
            "authorization_state": movement.authorization_state.value,
        },
        metadata={"reason": movement.reason},
    )
    return response


@router.post("/ledger/sales", response_model=MovementListResponse, status_code=201)
def record_sale(
    request: Request,
    payload: SaleRecordRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    movements = MovementRecorder(db).record_sale(
        payload.session_id,
        payload.shift_id,
        payload.sale_id,
        [SalePaymentLine(method=line.method, amount=line.amount, reference=line.reference) for line in payload.payments],
        actor,
        expected_total=payload.total,
        trace_id=_trace_id(request),
    )
    response = movement_list_response(movements)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action="movement.sale",
        entity_type="sale",
        entity_id=payload.sale_id,
        session_id=payload.session_id,
        after={"payments": [{"method": row.method, "amount": row.amount} for row in response.rows]},
    )
    return response


@router.get("/ledger/movements/pending", response_model=MovementListResponse)
def list_pending_movements(
    _actor=Depends(require_actor_capability(Capability.AUTHORIZE)),
    db=Depends(get_db),
):
    return movement_list_response(MovementRepository(db).list_pending())


@router.post("/ledger/movements/{movement_id}/authorization", response_model=MovementResponse)
def decide_movement(
    request: Request,
    movement_id: UUID,
    payload: AuthorizationDecisionRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    movement = MovementRecorder(db).authorize(movement_id, actor, payload.decision, payload.notes)
    response = movement_response(movement)
    record_ledger_event(
        db,
        request,
        actor,
        action="movement.authorization",
        entity_type="movement",
        entity_id=movement.id,
        session_id=movement.session_id,
        before={"authorization_state": "PENDING"},
        after={"authorization_state": movement.authorization_state.value},
        metadata={"notes": payload.notes},
    )
    return response


@router.post("/ledger/movements/{movement_id}/offset", response_model=MovementResponse, status_code=201)
def offset_movement(
    request: Request,
    movement_id: UUID,
    payload: MovementOffsetRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    correction = MovementRecorder(db).offset(movement_id, payload.reason, actor, trace_id=_trace_id(request))
    response = movement_response(correction)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    record_ledger_event(
        db,
        request,
        actor,
        action="movement.offset",
        entity_type="movement",
        entity_id=correction.id,
        session_id=correction.session_id,
        after={"kind": correction.kind.value, "amount": correction.amount},
        metadata={"offsets_movement_id": str(movement_id), "reason": payload.reason},
    )
    return response
