from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.ledger.schemas.common import LedgerTotalsResponse, id_or_none, money, money_or_none, totals_response
from app.ledger.schemas.reconciliations import (
    DenominationCountRequest,
    ReconciliationResponse,
    reconciliation_response,
)


class CashSessionOpenRequest(BaseModel):
    register_id: str
    initial_float: Decimal
    notes: str | None = None


class CashSessionCloseRequest(BaseModel):
    counted_cash: Decimal
    breakdown: list[DenominationCountRequest] | None = None
    notes: str | None = None


class CashSessionResponse(BaseModel):
    id: str
    register_id: str
    opened_by: str
    closed_by: str | None
    status: str
    initial_float: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    wallet_sales: Decimal
    total_income: Decimal
    total_manual_egress: Decimal
    total_withdrawals: Decimal
    total_expenses: Decimal
    expected_cash: Decimal
    counted_cash: Decimal | None
    difference: Decimal | None
    balanced: bool
    opening_notes: str | None
    closing_notes: str | None
    opened_at: datetime
    closed_at: datetime | None


class CashSessionCurrentResponse(BaseModel):
    session: CashSessionResponse | None


class CashSessionListResponse(BaseModel):
    rows: list[CashSessionResponse]
    total: int


class CashSessionCloseResponse(BaseModel):
    closed: bool
    session: CashSessionResponse
    reconciliation: ReconciliationResponse


class CashSessionSummaryResponse(BaseModel):
    session: CashSessionResponse
    totals: LedgerTotalsResponse
    expected_cash: Decimal
    movement_count: int
    reconciliation: ReconciliationResponse | None


class CashStatusResponse(BaseModel):
    session_id: str
    available_cash: Decimal
    level: str
    suggest_withdrawal: bool


def session_response(session) -> CashSessionResponse:
    return CashSessionResponse(
        id=str(session.id),
        register_id=str(session.register_id),
        opened_by=str(session.opened_by),
        closed_by=id_or_none(session.closed_by),
        status=session.status.value,
        initial_float=money(session.initial_float),
        cash_sales=money(session.cash_sales),
        card_sales=money(session.card_sales),
        transfer_sales=money(session.transfer_sales),
        wallet_sales=money(session.wallet_sales),
        total_income=money(session.total_income),
        total_manual_egress=money(session.total_manual_egress),
        total_withdrawals=money(session.total_withdrawals),
        total_expenses=money(session.total_expenses),
        expected_cash=money(session.expected_cash),
        counted_cash=money_or_none(session.counted_cash),
        difference=money_or_none(session.difference),
        balanced=bool(session.balanced),
        opening_notes=session.opening_notes,
        closing_notes=session.closing_notes,
        opened_at=session.opened_at,
        closed_at=session.closed_at,
    )


def session_close_response(result) -> CashSessionCloseResponse:
    return CashSessionCloseResponse(
        closed=result.closed,
        session=session_response(result.session),
        reconciliation=reconciliation_response(result.reconciliation),
    )


def session_summary_response(summary) -> CashSessionSummaryResponse:
    return CashSessionSummaryResponse(
        session=session_response(summary.session),
        totals=totals_response(summary.totals),
        expected_cash=summary.expected_cash,
        movement_count=summary.movement_count,
        reconciliation=reconciliation_response(summary.reconciliation) if summary.reconciliation else None,
    )


def cash_status_response(status) -> CashStatusResponse:
    return CashStatusResponse(
        session_id=str(status.session_id),
        available_cash=status.available_cash,
        level=status.level.value,
        suggest_withdrawal=status.suggest_withdrawal,
    )


class ChangeCheckRequest(BaseModel):
    sale_total: Decimal
    amount_paid: Decimal


class ChangeCheckResponse(BaseModel):
    session_id: str
    sale_total: Decimal
    amount_paid: Decimal
    change: Decimal
    available_cash: Decimal
    sufficient: bool
    shortfall: Decimal


def change_check_response(check) -> ChangeCheckResponse:
    return ChangeCheckResponse(
        session_id=str(check.session_id),
        sale_total=check.sale_total,
        amount_paid=check.amount_paid,
        change=check.change,
        available_cash=check.available_cash,
        sufficient=check.sufficient,
        shortfall=check.shortfall,
    )
