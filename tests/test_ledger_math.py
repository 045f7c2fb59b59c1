from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.ledger.core.enums import AuthorizationState, CashLevel, DifferenceType, MovementKind, PaymentMethod
from app.ledger.core.policy import LedgerPolicy, to_money
from app.ledger.services.ledger_math import (
    classify_cash_level,
    classify_difference,
    direction,
    opposite_manual_kind,
    summarize,
)
from app.ledger.services.notifications import EVENT_CASH_DRAWER_OPEN, LedgerNotice, LedgerNotifier


def _movement(kind, amount, method=PaymentMethod.CASH, state=AuthorizationState.NONE_REQUIRED):
    return SimpleNamespace(kind=kind, method=method, amount=Decimal(amount), authorization_state=state)


def test_direction_by_kind():
    assert direction(MovementKind.SALE) == 1
    assert direction(MovementKind.MANUAL_INCOME) == 1
    assert direction(MovementKind.MANUAL_EXPENSE) == -1
    assert direction(MovementKind.WITHDRAWAL) == -1
    assert direction(MovementKind.EXPENSE) == -1
    assert opposite_manual_kind(MovementKind.WITHDRAWAL) == MovementKind.MANUAL_INCOME
    assert opposite_manual_kind(MovementKind.SALE) == MovementKind.MANUAL_EXPENSE


def test_summarize_only_counts_settled_movements():
    totals = summarize(
        [
            _movement(MovementKind.SALE, "45000"),
            _movement(MovementKind.SALE, "20000", PaymentMethod.CARD),
            _movement(MovementKind.MANUAL_INCOME, "5000"),
            _movement(MovementKind.WITHDRAWAL, "10000"),
            _movement(MovementKind.EXPENSE, "2500"),
            _movement(MovementKind.MANUAL_EXPENSE, "150000", state=AuthorizationState.PENDING),
            _movement(MovementKind.MANUAL_EXPENSE, "900", state=AuthorizationState.REJECTED),
            _movement(MovementKind.MANUAL_EXPENSE, "1000", state=AuthorizationState.AUTHORIZED),
        ]
    )

    assert totals.cash_sales == Decimal("45000.00")
    assert totals.card_sales == Decimal("20000.00")
    assert totals.total_income == Decimal("5000.00")
    assert totals.total_withdrawals == Decimal("10000.00")
    assert totals.total_expenses == Decimal("2500.00")
    assert totals.total_manual_egress == Decimal("1000.00")
    assert totals.pending_movements == 1
    assert totals.counted_movements == 6
    assert totals.method_balances[PaymentMethod.CARD] == Decimal("20000.00")
    assert totals.expected_cash(Decimal("100000")) == Decimal("136500.00")


def test_summarize_empty_ledger_keeps_opening_float():
    totals = summarize([])
    assert totals.expected_cash(Decimal("1000")) == Decimal("1000.00")
    assert set(totals.as_dict()["method_balances"]) == {method.value for method in PaymentMethod}


@pytest.mark.parametrize(
    ("difference", "expected"),
    [
        (Decimal("0"), DifferenceType.EVEN),
        (Decimal("0.01"), DifferenceType.OVER),
        (Decimal("-15000"), DifferenceType.SHORT),
    ],
)
def test_classify_difference(difference, expected):
    assert classify_difference(difference) == expected


@pytest.mark.parametrize(
    ("available", "expected"),
    [
        ("-1", CashLevel.CRITICAL),
        ("0", CashLevel.LOW),
        ("49999.99", CashLevel.LOW),
        ("50000", CashLevel.NORMAL),
        ("199999.99", CashLevel.NORMAL),
        ("200000", CashLevel.HIGH),
    ],
)
def test_classify_cash_level(available, expected):
    assert classify_cash_level(Decimal(available), LedgerPolicy.from_settings()) == expected


def test_to_money_quantizes():
    assert to_money(None) == Decimal("0.00")
    assert to_money(12.5) == Decimal("12.50")
    assert str(to_money("145000")) == "145000.00"


def test_failing_notification_sink_does_not_stop_others():
    delivered = []

    def broken(notice):
        raise RuntimeError("cash drawer offline")

    notifier = LedgerNotifier(sinks=[broken])
    notifier.subscribe(delivered.append)
    notice = LedgerNotice(event=EVENT_CASH_DRAWER_OPEN, session_id="s-1", entity_type="sale", entity_id="sale-1")

    notifier.publish(notice)

    assert delivered == [notice]
