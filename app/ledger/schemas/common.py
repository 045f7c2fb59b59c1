from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


def money(value) -> Decimal:
    return Decimal(str(value))


def money_or_none(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def id_or_none(value) -> str | None:
    return str(value) if value is not None else None


class LedgerTotalsResponse(BaseModel):
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    wallet_sales: Decimal
    total_income: Decimal
    total_manual_egress: Decimal
    total_withdrawals: Decimal
    total_expenses: Decimal
    method_balances: dict[str, Decimal]
    counted_movements: int
    pending_movements: int


def totals_response(totals) -> LedgerTotalsResponse:
    return LedgerTotalsResponse(
        **totals.as_dict(),
        counted_movements=totals.counted_movements,
        pending_movements=totals.pending_movements,
    )
