from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.ledger.core import config

CENT = Decimal("0.01")

# COP bills and coins accepted in a drawer count.
DENOMINATIONS: tuple[Decimal, ...] = tuple(
    Decimal(value)
    for value in ("100000", "50000", "20000", "10000", "5000", "2000", "1000", "500", "200", "100", "50")
)
BILL_FLOOR = Decimal("2000")


@dataclass(frozen=True)
class LedgerPolicy:
    reconciliation_tolerance: Decimal
    withdrawal_threshold: Decimal
    expense_threshold: Decimal
    movement_threshold: Decimal
    approval_notes_min_length: int
    shift_max_hours: int
    low_cash_threshold: Decimal
    high_cash_threshold: Decimal
    audit_cache_tolerance: Decimal
    denominations: tuple[Decimal, ...] = DENOMINATIONS

    @classmethod
    def from_settings(cls, settings=None) -> "LedgerPolicy":
        settings = settings or config.settings
        return cls(
            reconciliation_tolerance=Decimal(settings.RECONCILIATION_TOLERANCE),
            withdrawal_threshold=Decimal(settings.WITHDRAWAL_AUTHORIZATION_THRESHOLD),
            expense_threshold=Decimal(settings.EXPENSE_AUTHORIZATION_THRESHOLD),
            movement_threshold=Decimal(settings.MOVEMENT_AUTHORIZATION_THRESHOLD),
            approval_notes_min_length=settings.APPROVAL_NOTES_MIN_LENGTH,
            shift_max_hours=settings.SHIFT_MAX_HOURS,
            low_cash_threshold=Decimal(settings.LOW_CASH_THRESHOLD),
            high_cash_threshold=Decimal(settings.HIGH_CASH_THRESHOLD),
            audit_cache_tolerance=Decimal(settings.AUDIT_CACHE_TOLERANCE),
        )


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)
