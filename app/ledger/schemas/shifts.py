from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from app.ledger.schemas.common import LedgerTotalsResponse, id_or_none, money, money_or_none, totals_response


class ShiftStartRequest(BaseModel):
    session_id: str
    relief_type: Literal["NORMAL", "EMERGENCY"] = "NORMAL"
    cashier_id: str | None = None
    notes: str | None = None


class ShiftSuspendRequest(BaseModel):
    reason: str


class ShiftResumeRequest(BaseModel):
    notes: str | None = None


class ShiftCloseRequest(BaseModel):
    ending_cash: Decimal
    notes: str | None = None
    next_cashier_id: str | None = None


class ShiftResponse(BaseModel):
    id: str
    session_id: str
    cashier_id: str
    relief_type: str
    status: str
    starting_cash: Decimal
    previous_shift_id: str | None
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    wallet_sales: Decimal
    total_income: Decimal
    total_manual_egress: Decimal
    total_withdrawals: Decimal
    total_expenses: Decimal
    expected_cash: Decimal | None
    ending_cash: Decimal | None
    difference: Decimal | None
    authorized_by: str | None
    suspended_by: str | None
    suspension_reason: str | None
    closed_by: str | None
    notes: str | None
    closing_notes: str | None
    started_at: datetime
    suspended_at: datetime | None
    ended_at: datetime | None


class ShiftCurrentResponse(BaseModel):
    shift: ShiftResponse | None


class ShiftListResponse(BaseModel):
    rows: list[ShiftResponse]
    total: int


class ShiftCloseResponse(BaseModel):
    shift: ShiftResponse
    next_shift: ShiftResponse | None


class ShiftSummaryResponse(BaseModel):
    shift: ShiftResponse
    totals: LedgerTotalsResponse
    movement_count: int
    duration_minutes: int
    exceeds_max_duration: bool


class StartingCashResponse(BaseModel):
    session_id: str
    amount: Decimal
    source: str
    previous_shift_id: str | None


def shift_response(shift) -> ShiftResponse:
    return ShiftResponse(
        id=str(shift.id),
        session_id=str(shift.session_id),
        cashier_id=str(shift.cashier_id),
        relief_type=shift.relief_type.value,
        status=shift.status.value,
        starting_cash=money(shift.starting_cash),
        previous_shift_id=id_or_none(shift.previous_shift_id),
        cash_sales=money(shift.cash_sales),
        card_sales=money(shift.card_sales),
        transfer_sales=money(shift.transfer_sales),
        wallet_sales=money(shift.wallet_sales),
        total_income=money(shift.total_income),
        total_manual_egress=money(shift.total_manual_egress),
        total_withdrawals=money(shift.total_withdrawals),
        total_expenses=money(shift.total_expenses),
        expected_cash=money_or_none(shift.expected_cash),
        ending_cash=money_or_none(shift.ending_cash),
        difference=money_or_none(shift.difference),
        authorized_by=id_or_none(shift.authorized_by),
        suspended_by=id_or_none(shift.suspended_by),
        suspension_reason=shift.suspension_reason,
        closed_by=id_or_none(shift.closed_by),
        notes=shift.notes,
        closing_notes=shift.closing_notes,
        started_at=shift.started_at,
        suspended_at=shift.suspended_at,
        ended_at=shift.ended_at,
    )


def shift_summary_response(summary) -> ShiftSummaryResponse:
    return ShiftSummaryResponse(
        shift=shift_response(summary.shift),
        totals=totals_response(summary.totals),
        movement_count=summary.movement_count,
        duration_minutes=summary.duration_minutes,
        exceeds_max_duration=summary.exceeds_max_duration,
    )
