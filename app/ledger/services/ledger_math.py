from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from app.ledger.core.enums import (
    COUNTABLE_AUTHORIZATION_STATES,
    AuthorizationState,
    CashLevel,
    DifferenceType,
    MovementKind,
    PaymentMethod,
)
from app.ledger.core.policy import LedgerPolicy, to_money

ZERO = Decimal("0.00")

SALE_TOTAL_FIELDS = {
    PaymentMethod.CASH: "cash_sales",
    PaymentMethod.CARD: "card_sales",
    PaymentMethod.TRANSFER: "transfer_sales",
    PaymentMethod.WALLET: "wallet_sales",
}

KIND_TOTAL_FIELDS = {
    MovementKind.MANUAL_INCOME: "total_income",
    MovementKind.MANUAL_EXPENSE: "total_manual_egress",
    MovementKind.WITHDRAWAL: "total_withdrawals",
    MovementKind.EXPENSE: "total_expenses",
}


def direction(kind: MovementKind) -> int:
    if kind in (MovementKind.SALE, MovementKind.MANUAL_INCOME):
        return 1
    if kind in (MovementKind.MANUAL_EXPENSE, MovementKind.WITHDRAWAL, MovementKind.EXPENSE):
        return -1
    raise ValueError(f"Unhandled movement kind: {kind!r}")


def opposite_manual_kind(kind: MovementKind) -> MovementKind:
    return MovementKind.MANUAL_INCOME if direction(kind) < 0 else MovementKind.MANUAL_EXPENSE


def counts_toward_totals(movement) -> bool:
    return movement.authorization_state in COUNTABLE_AUTHORIZATION_STATES


@dataclass
class LedgerTotals:
    cash_sales: Decimal = ZERO
    card_sales: Decimal = ZERO
    transfer_sales: Decimal = ZERO
    wallet_sales: Decimal = ZERO
    total_income: Decimal = ZERO
    total_manual_egress: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    total_expenses: Decimal = ZERO
    method_balances: dict[PaymentMethod, Decimal] = field(
        default_factory=lambda: {method: ZERO for method in PaymentMethod}
    )
    counted_movements: int = 0
    pending_movements: int = 0

    def add(self, movement) -> None:
        if movement.authorization_state == AuthorizationState.PENDING:
            self.pending_movements += 1
        if not counts_toward_totals(movement):
            return
        amount = to_money(movement.amount)
        kind = MovementKind(movement.kind)
        method = PaymentMethod(movement.method)
        if kind == MovementKind.SALE:
            name = SALE_TOTAL_FIELDS[method]
        else:
            name = KIND_TOTAL_FIELDS[kind]
        setattr(self, name, getattr(self, name) + amount)
        self.method_balances[method] += direction(kind) * amount
        self.counted_movements += 1

    @property
    def net_cash(self) -> Decimal:
        return self.method_balances[PaymentMethod.CASH]

    def expected_cash(self, opening: Decimal) -> Decimal:
        return to_money(opening) + self.net_cash

    def as_dict(self) -> dict:
        payload = {name: getattr(self, name) for name in (*SALE_TOTAL_FIELDS.values(), *KIND_TOTAL_FIELDS.values())}
        payload["method_balances"] = {method.value: value for method, value in self.method_balances.items()}
        return payload


def summarize(movements: Iterable) -> LedgerTotals:
    totals = LedgerTotals()
    for movement in movements:
        totals.add(movement)
    return totals


def apply_totals(target, totals: LedgerTotals, opening: Decimal) -> None:
    """Write recomputed running totals onto a CashSession or Shift row."""
    for name in (*SALE_TOTAL_FIELDS.values(), *KIND_TOTAL_FIELDS.values()):
        setattr(target, name, getattr(totals, name))
    target.expected_cash = totals.expected_cash(opening)


def classify_difference(difference: Decimal) -> DifferenceType:
    if difference > 0:
        return DifferenceType.OVER
    if difference < 0:
        return DifferenceType.SHORT
    return DifferenceType.EVEN


def classify_cash_level(available: Decimal, policy: LedgerPolicy) -> CashLevel:
    if available < 0:
        return CashLevel.CRITICAL
    if available < policy.low_cash_threshold:
        return CashLevel.LOW
    if available >= policy.high_cash_threshold:
        return CashLevel.HIGH
    return CashLevel.NORMAL
