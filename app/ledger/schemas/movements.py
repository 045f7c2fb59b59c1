from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from app.ledger.schemas.common import id_or_none, money


PaymentMethodValue = Literal["CASH", "CARD", "TRANSFER", "WALLET"]


class ManualMovementRequest(BaseModel):
    session_id: str
    shift_id: str | None = None
    kind: Literal["MANUAL_INCOME", "MANUAL_EXPENSE"]
    method: PaymentMethodValue = "CASH"
    amount: Decimal
    reason: str


class SalePaymentRequest(BaseModel):
    method: PaymentMethodValue
    amount: Decimal
    reference: str | None = None


class SaleRecordRequest(BaseModel):
    session_id: str
    shift_id: str | None = None
    sale_id: str
    total: Decimal | None = None
    payments: list[SalePaymentRequest]


class AuthorizationDecisionRequest(BaseModel):
    decision: Literal["APPROVE", "REJECT"]
    notes: str | None = None


class MovementOffsetRequest(BaseModel):
    reason: str


class MovementResponse(BaseModel):
    id: str
    session_id: str
    shift_id: str | None
    kind: str
    method: str
    amount: Decimal
    reason: str | None
    actor_id: str
    authorization_state: str
    authorized_by: str | None
    authorized_at: datetime | None
    authorization_notes: str | None
    sale_id: str | None
    sale_payment_id: str | None
    withdrawal_id: str | None
    expense_id: str | None
    offsets_movement_id: str | None
    trace_id: str | None
    occurred_at: datetime


class MovementListResponse(BaseModel):
    rows: list[MovementResponse]
    total: int


def movement_response(movement) -> MovementResponse:
    return MovementResponse(
        id=str(movement.id),
        session_id=str(movement.session_id),
        shift_id=id_or_none(movement.shift_id),
        kind=movement.kind.value,
        method=movement.method.value,
        amount=money(movement.amount),
        reason=movement.reason,
        actor_id=str(movement.actor_id),
        authorization_state=movement.authorization_state.value,
        authorized_by=id_or_none(movement.authorized_by),
        authorized_at=movement.authorized_at,
        authorization_notes=movement.authorization_notes,
        sale_id=id_or_none(movement.sale_id),
        sale_payment_id=id_or_none(movement.sale_payment_id),
        withdrawal_id=id_or_none(movement.withdrawal_id),
        expense_id=id_or_none(movement.expense_id),
        offsets_movement_id=id_or_none(movement.offsets_movement_id),
        trace_id=movement.trace_id,
        occurred_at=movement.occurred_at,
    )


def movement_list_response(movements) -> MovementListResponse:
    return MovementListResponse(rows=[movement_response(row) for row in movements], total=len(movements))
