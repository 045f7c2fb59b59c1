from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import get_current_actor, require_actor_capability
from app.ledger.core.enums import WithdrawalStatus
from app.ledger.db.session import get_db
from app.ledger.schemas.movements import AuthorizationDecisionRequest
from app.ledger.schemas.withdrawals import (
    WithdrawalCancelRequest,
    WithdrawalCompleteRequest,
    WithdrawalListResponse,
    WithdrawalRequest,
    WithdrawalResponse,
    withdrawal_response,
)
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.idempotency import begin_idempotent_request, finish_idempotent_request
from app.ledger.services.withdrawals import WithdrawalService


router = APIRouter()


def _audit(db, request, actor, action: str, withdrawal, before_status: str | None, **metadata) -> None:
    record_ledger_event(
        db,
        request,
        actor,
        action=action,
        entity_type="withdrawal",
        entity_id=withdrawal.id,
        session_id=withdrawal.session_id,
        before={"status": before_status} if before_status else None,
        after={"status": withdrawal.status.value, "amount": withdrawal.amount},
        metadata=metadata or None,
    )


@router.post("/ledger/withdrawals", response_model=WithdrawalResponse, status_code=201)
def request_withdrawal(
    request: Request,
    payload: WithdrawalRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    replay = begin_idempotent_request(request, db, actor, payload.model_dump(mode="json"))
    if replay:
        return replay
    withdrawal = WithdrawalService(db).request(
        payload.session_id,
        payload.shift_id,
        payload.amount,
        payload.reason,
        actor,
        destination=payload.destination,
        trace_id=getattr(request.state, "trace_id", None),
    )
    response = withdrawal_response(withdrawal)
    finish_idempotent_request(request, response.model_dump(mode="json"), status_code=201)
    _audit(db, request, actor, "withdrawal.request", withdrawal, None, reason=payload.reason)
    return response


@router.get("/ledger/withdrawals", response_model=WithdrawalListResponse)
def list_withdrawals(
    session_id: UUID | None = None,
    status: WithdrawalStatus | None = None,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    rows = WithdrawalService(db).search(session_id=session_id, status=status)
    return WithdrawalListResponse(rows=[withdrawal_response(row) for row in rows], total=len(rows))


@router.get("/ledger/withdrawals/{withdrawal_id}", response_model=WithdrawalResponse)
def get_withdrawal(
    withdrawal_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return withdrawal_response(WithdrawalService(db).get(withdrawal_id))


@router.post("/ledger/withdrawals/{withdrawal_id}/authorization", response_model=WithdrawalResponse)
def decide_withdrawal(
    request: Request,
    withdrawal_id: UUID,
    payload: AuthorizationDecisionRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    withdrawal = WithdrawalService(db).authorize(
        withdrawal_id,
        actor,
        payload.decision,
        payload.notes,
        trace_id=getattr(request.state, "trace_id", None),
    )
    response = withdrawal_response(withdrawal)
    _audit(db, request, actor, "withdrawal.authorization", withdrawal, "PENDING", notes=payload.notes)
    return response


@router.post("/ledger/withdrawals/{withdrawal_id}/complete", response_model=WithdrawalResponse)
def complete_withdrawal(
    request: Request,
    withdrawal_id: UUID,
    payload: WithdrawalCompleteRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    withdrawal = WithdrawalService(db).complete(withdrawal_id, payload.receipt_reference, actor)
    response = withdrawal_response(withdrawal)
    _audit(db, request, actor, "withdrawal.complete", withdrawal, "AUTHORIZED", receipt_reference=payload.receipt_reference)
    return response


@router.post("/ledger/withdrawals/{withdrawal_id}/cancel", response_model=WithdrawalResponse)
def cancel_withdrawal(
    request: Request,
    withdrawal_id: UUID,
    payload: WithdrawalCancelRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    service = WithdrawalService(db)
    before_status = service.get(withdrawal_id).status.value
    withdrawal = service.cancel(
        withdrawal_id,
        actor,
        payload.reason,
        trace_id=getattr(request.state, "trace_id", None),
    )
    response = withdrawal_response(withdrawal)
    _audit(db, request, actor, "withdrawal.cancel", withdrawal, before_status, reason=payload.reason)
    return response
