from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.ledger.schemas.common import id_or_none, money


class DenominationCountRequest(BaseModel):
    denomination: Decimal
    count: int


class DenominationCountResponse(BaseModel):
    denomination: Decimal
    count: int
    kind: str
    subtotal: Decimal


class BreakdownTemplateResponse(BaseModel):
    currency: str
    rows: list[DenominationCountResponse]


class ReconciliationApproveRequest(BaseModel):
    notes: str | None = None


class ReconciliationResponse(BaseModel):
    id: str
    session_id: str
    counted_total: Decimal
    expected_total: Decimal
    difference: Decimal
    difference_type: str
    breakdown: list[DenominationCountResponse] | None
    status: str
    performed_by: str
    notes: str | None
    approved_by: str | None
    approval_notes: str | None
    approved_at: datetime | None
    created_at: datetime


class ReconciliationListResponse(BaseModel):
    rows: list[ReconciliationResponse]
    total: int


def reconciliation_response(reconciliation) -> ReconciliationResponse:
    breakdown = None
    if reconciliation.breakdown is not None:
        breakdown = [DenominationCountResponse(**row) for row in reconciliation.breakdown]
    return ReconciliationResponse(
        id=str(reconciliation.id),
        session_id=str(reconciliation.session_id),
        counted_total=money(reconciliation.counted_total),
        expected_total=money(reconciliation.expected_total),
        difference=money(reconciliation.difference),
        difference_type=reconciliation.difference_type.value,
        breakdown=breakdown,
        status=reconciliation.status.value,
        performed_by=str(reconciliation.performed_by),
        notes=reconciliation.notes,
        approved_by=id_or_none(reconciliation.approved_by),
        approval_notes=reconciliation.approval_notes,
        approved_at=reconciliation.approved_at,
        created_at=reconciliation.created_at,
    )
