from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.ledger.schemas.common import id_or_none, money


class WithdrawalRequest(BaseModel):
    session_id: str
    shift_id: str | None = None
    amount: Decimal
    reason: str
    destination: str | None = None


class WithdrawalCompleteRequest(BaseModel):
    receipt_reference: str


class WithdrawalCancelRequest(BaseModel):
    reason: str | None = None


class WithdrawalResponse(BaseModel):
    id: str
    session_id: str
    shift_id: str | None
    amount: Decimal
    reason: str
    destination: str | None
    status: str
    requested_by: str
    authorized_by: str | None
    authorized_at: datetime | None
    decided_at: datetime | None
    decision_notes: str | None
    receipt_reference: str | None
    completed_by: str | None
    completed_at: datetime | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime


class WithdrawalListResponse(BaseModel):
    rows: list[WithdrawalResponse]
    total: int


def withdrawal_response(withdrawal) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=str(withdrawal.id),
        session_id=str(withdrawal.session_id),
        shift_id=id_or_none(withdrawal.shift_id),
        amount=money(withdrawal.amount),
        reason=withdrawal.reason,
        destination=withdrawal.destination,
        status=withdrawal.status.value,
        requested_by=str(withdrawal.requested_by),
        authorized_by=id_or_none(withdrawal.authorized_by),
        authorized_at=withdrawal.authorized_at,
        decided_at=withdrawal.decided_at,
        decision_notes=withdrawal.decision_notes,
        receipt_reference=withdrawal.receipt_reference,
        completed_by=id_or_none(withdrawal.completed_by),
        completed_at=withdrawal.completed_at,
        cancelled_by=id_or_none(withdrawal.cancelled_by),
        cancelled_at=withdrawal.cancelled_at,
        cancellation_reason=withdrawal.cancellation_reason,
        created_at=withdrawal.created_at,
    )
