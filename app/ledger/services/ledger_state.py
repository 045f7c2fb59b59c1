"""Shared lookups and guards used inside ledger transactions."""

from __future__ import annotations

import uuid
from decimal import Decimal

from app.ledger.core.capabilities import Capability, has_capability
from app.ledger.core.enums import PaymentMethod, ReconciliationStatus, SessionStatus, ShiftStatus
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.policy import to_money
from app.ledger.db.models import CashSession, Shift
from app.ledger.repos.movements import MovementRepository
from app.ledger.repos.reconciliations import ReconciliationRepository
from app.ledger.repos.sessions import CashSessionRepository
from app.ledger.repos.shifts import ShiftRepository
from app.ledger.services.ledger_math import LedgerTotals, apply_totals, summarize


def load_session(db, session_id, *, for_update: bool = False) -> CashSession:
    session = CashSessionRepository(db).get(parse_id(session_id, "session_id"), for_update=for_update)
    if session is None:
        raise AppError(ErrorCatalog.SESSION_NOT_FOUND, details={"session_id": str(session_id)})
    return session


def load_shift(db, shift_id, *, for_update: bool = False) -> Shift:
    shift = ShiftRepository(db).get(parse_id(shift_id, "shift_id"), for_update=for_update)
    if shift is None:
        raise AppError(ErrorCatalog.SHIFT_NOT_FOUND, details={"shift_id": str(shift_id)})
    return shift


def ensure_session_open(session: CashSession) -> None:
    if session.status != SessionStatus.OPEN:
        raise AppError(
            ErrorCatalog.SESSION_NOT_OPEN,
            details={"session_id": str(session.id), "status": session.status.value},
        )


def ensure_accepts_entries(db, session: CashSession) -> None:
    ensure_session_open(session)
    reconciliation = ReconciliationRepository(db).get_for_session(session.id)
    if reconciliation is not None and reconciliation.status == ReconciliationStatus.PENDING_APPROVAL:
        raise AppError(
            ErrorCatalog.RECONCILIATION_PENDING,
            details={"session_id": str(session.id), "reconciliation_id": str(reconciliation.id)},
        )


def load_active_shift_in_session(db, shift_id, session: CashSession) -> Shift:
    shift = load_shift(db, shift_id, for_update=True)
    if shift.session_id != session.id:
        raise validation_error("shift_id", "shift does not belong to the cash session")
    if shift.status != ShiftStatus.ACTIVE:
        raise AppError(
            ErrorCatalog.NOT_ACTIVE,
            details={"shift_id": str(shift.id), "status": shift.status.value},
        )
    return shift


def is_participant(db, session: CashSession, actor) -> bool:
    if session.opened_by == actor.actor_id:
        return True
    shift = ShiftRepository(db).get_open_for_cashier(actor.actor_id)
    return shift is not None and shift.session_id == session.id


def ensure_not_suspended(db, session: CashSession, actor) -> None:
    """A cashier whose shift in this session is suspended cannot write to it."""
    shift = ShiftRepository(db).get_open_for_cashier(actor.actor_id)
    if shift is not None and shift.session_id == session.id and shift.status == ShiftStatus.SUSPENDED:
        raise AppError(
            ErrorCatalog.NOT_ACTIVE,
            details={"shift_id": str(shift.id), "status": shift.status.value, "actor_id": str(actor.actor_id)},
        )


def require_participant(db, session: CashSession, actor) -> None:
    """Operators act only on the session they opened or hold a shift in."""
    if has_capability(actor, Capability.AUTHORIZE):
        return
    if not has_capability(actor, Capability.OPERATE_TILL):
        raise AppError(ErrorCatalog.FORBIDDEN, details={"capability": Capability.OPERATE_TILL.value})
    if not is_participant(db, session, actor):
        raise AppError(
            ErrorCatalog.NOT_SESSION_PARTICIPANT,
            details={"session_id": str(session.id), "actor_id": str(actor.actor_id)},
        )
    ensure_not_suspended(db, session, actor)


def session_totals(db, session: CashSession) -> LedgerTotals:
    return summarize(MovementRepository(db).list_for_session(session.id))


def shift_totals(db, shift: Shift) -> LedgerTotals:
    return summarize(MovementRepository(db).list_for_shift(shift.id))


def recompute_expected_cash(db, session: CashSession) -> Decimal:
    return session_totals(db, session).expected_cash(session.initial_float)


def refresh_running_totals(db, session: CashSession, *shifts: Shift | None) -> LedgerTotals:
    """Recompute cached totals from the ledger rows written in this transaction."""
    db.flush()
    totals = session_totals(db, session)
    apply_totals(session, totals, session.initial_float)
    for shift in shifts:
        if shift is not None:
            apply_totals(shift, shift_totals(db, shift), shift.starting_cash)
    db.flush()
    return totals


def available_balance(db, session: CashSession, method: PaymentMethod) -> Decimal:
    totals = session_totals(db, session)
    if method == PaymentMethod.CASH:
        return totals.expected_cash(session.initial_float)
    return to_money(totals.method_balances[method])


def ensure_sufficient_balance(db, session: CashSession, method: PaymentMethod, amount: Decimal) -> None:
    available = available_balance(db, session, method)
    if amount > available:
        raise validation_error(
            "amount",
            f"{method.value} balance is not enough",
            ErrorCatalog.INSUFFICIENT_FUNDS,
            available=available,
            requested=amount,
        )


def require_positive_amount(value, field: str = "amount") -> Decimal:
    if value is None:
        raise validation_error(field, f"{field} is required", ErrorCatalog.INVALID_AMOUNT)
    amount = to_money(value)
    if amount <= 0:
        raise validation_error(field, f"{field} must be greater than 0", ErrorCatalog.INVALID_AMOUNT)
    return amount


def require_text(value: str | None, field: str, *, min_length: int = 1) -> str:
    cleaned = (value or "").strip()
    if len(cleaned) < min_length:
        raise validation_error(field, f"{field} must have at least {min_length} characters")
    return cleaned


def parse_id(value, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise validation_error(field, f"{field} is not a valid identifier") from exc
