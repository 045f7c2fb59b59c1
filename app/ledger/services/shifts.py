from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.ledger.core.capabilities import Capability, has_capability, require_capability
from app.ledger.core.enums import ReliefType, ShiftStatus
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.logging import log_json
from app.ledger.core.policy import LedgerPolicy, to_money
from app.ledger.db.models import CashSession, Shift, utcnow
from app.ledger.repos.movements import MovementRepository
from app.ledger.repos.shifts import ShiftRepository
from app.ledger.services.ledger_math import LedgerTotals, apply_totals, summarize
from app.ledger.services.ledger_state import (
    ensure_accepts_entries,
    load_session,
    load_shift,
    parse_id,
    require_text,
    shift_totals,
)
from app.ledger.services.notifications import (
    EVENT_SHIFT_EXCEEDED_DURATION,
    LedgerNotice,
    LedgerNotifier,
    notifier as default_notifier,
)

logger = logging.getLogger("ledger.shifts")

STARTING_CASH_FROM_PREVIOUS_SHIFT = "previous_shift"
STARTING_CASH_FROM_SESSION_FLOAT = "session_float"


@dataclass(frozen=True)
class StartingCash:
    amount: Decimal
    source: str
    previous_shift_id: uuid.UUID | None


@dataclass(frozen=True)
class ShiftCloseResult:
    shift: Shift
    next_shift: Shift | None


@dataclass(frozen=True)
class ShiftSummary:
    shift: Shift
    totals: LedgerTotals
    movement_count: int
    duration_minutes: int
    exceeds_max_duration: bool


def _already_active(cashier_id, shift: Shift | None = None) -> AppError:
    details = {"cashier_id": str(cashier_id)}
    if shift is not None:
        details.update({"shift_id": str(shift.id), "session_id": str(shift.session_id), "status": shift.status.value})
    return AppError(ErrorCatalog.ALREADY_ACTIVE, details=details)


class ShiftManager:
    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier or default_notifier
        self.shifts = ShiftRepository(db)

    def starting_cash_for(self, session: CashSession) -> StartingCash:
        """Carry over the last closed shift of the opening day, else the session float."""
        day_start = datetime.combine(session.opened_at.date(), time.min)
        previous = self.shifts.latest_closed_since(session.id, day_start)
        if previous is not None and previous.ending_cash is not None:
            return StartingCash(to_money(previous.ending_cash), STARTING_CASH_FROM_PREVIOUS_SHIFT, previous.id)
        return StartingCash(to_money(session.initial_float), STARTING_CASH_FROM_SESSION_FLOAT, None)

    def preview_starting_cash(self, session_id) -> StartingCash:
        return self.starting_cash_for(load_session(self.db, session_id))

    def _emergency_authorizer(self, actor, supervisor, cashier_id):
        if supervisor is not None:
            require_capability(supervisor, Capability.SUPERVISE_SHIFTS)
            return supervisor.actor_id
        if has_capability(actor, Capability.SUPERVISE_SHIFTS) and actor.actor_id != cashier_id:
            return actor.actor_id
        raise AppError(
            ErrorCatalog.FORBIDDEN,
            details={"relief_type": ReliefType.EMERGENCY.value, "message": "emergency relief requires a supervisor"},
        )

    def start(
        self,
        session_id,
        actor,
        relief_type=ReliefType.NORMAL,
        *,
        supervisor=None,
        cashier_id=None,
        notes: str | None = None,
    ) -> Shift:
        relief_type = ReliefType(relief_type)
        cashier_id = parse_id(cashier_id, "cashier_id") if cashier_id else actor.actor_id
        if cashier_id != actor.actor_id:
            require_capability(actor, Capability.SUPERVISE_SHIFTS)
        else:
            require_capability(actor, Capability.OPERATE_TILL)
        authorized_by = None
        if relief_type == ReliefType.EMERGENCY:
            authorized_by = self._emergency_authorizer(actor, supervisor, cashier_id)
        try:
            session = load_session(self.db, session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            existing = self.shifts.get_open_for_cashier(cashier_id)
            if existing is not None:
                raise _already_active(cashier_id, existing)
            starting = self.starting_cash_for(session)
            shift = self._insert_shift(
                session,
                cashier_id=cashier_id,
                relief_type=relief_type,
                starting=starting,
                authorized_by=authorized_by,
                notes=notes,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("shift.started", shift)
        return shift

    def _insert_shift(self, session, *, cashier_id, relief_type, starting: StartingCash, authorized_by, notes) -> Shift:
        shift = Shift(
            session_id=session.id,
            cashier_id=cashier_id,
            relief_type=relief_type,
            status=ShiftStatus.ACTIVE,
            starting_cash=starting.amount,
            previous_shift_id=starting.previous_shift_id,
            expected_cash=starting.amount,
            authorized_by=authorized_by,
            notes=notes,
            started_at=utcnow(),
        )
        try:
            return self.shifts.add(shift)
        except IntegrityError as exc:
            # Lost the race against a concurrent start for the same cashier.
            raise _already_active(cashier_id) from exc

    def suspend(self, shift_id, reason: str, supervisor) -> Shift:
        require_capability(supervisor, Capability.SUPERVISE_SHIFTS)
        reason = require_text(reason, "reason", min_length=self.policy.approval_notes_min_length)
        try:
            shift = load_shift(self.db, shift_id, for_update=True)
            if shift.status != ShiftStatus.ACTIVE:
                raise AppError(ErrorCatalog.NOT_ACTIVE, details={"shift_id": str(shift.id), "status": shift.status.value})
            shift.status = ShiftStatus.SUSPENDED
            shift.suspended_by = supervisor.actor_id
            shift.suspension_reason = reason
            shift.suspended_at = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("shift.suspended", shift)
        return shift

    def resume(self, shift_id, actor, notes: str | None = None) -> Shift:
        require_capability(actor, Capability.SUPERVISE_SHIFTS)
        try:
            shift = load_shift(self.db, shift_id, for_update=True)
            if shift.status != ShiftStatus.SUSPENDED:
                raise AppError(
                    ErrorCatalog.NOT_SUSPENDED,
                    details={"shift_id": str(shift.id), "status": shift.status.value},
                )
            shift.status = ShiftStatus.ACTIVE
            if notes:
                shift.notes = notes
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("shift.resumed", shift)
        return shift

    def close(
        self,
        shift_id,
        ending_cash,
        actor,
        notes: str | None = None,
        *,
        next_cashier_id=None,
    ) -> ShiftCloseResult:
        if ending_cash is None:
            raise validation_error("ending_cash", "ending_cash is required", ErrorCatalog.INVALID_AMOUNT)
        ending = to_money(ending_cash)
        if ending < 0:
            raise validation_error("ending_cash", "ending_cash cannot be negative", ErrorCatalog.INVALID_AMOUNT)
        try:
            shift = load_shift(self.db, shift_id, for_update=True)
            if shift.status != ShiftStatus.ACTIVE:
                raise AppError(ErrorCatalog.NOT_ACTIVE, details={"shift_id": str(shift.id), "status": shift.status.value})
            if actor.actor_id != shift.cashier_id:
                require_capability(actor, Capability.CLOSE_ANY_SHIFT)
            session = load_session(self.db, shift.session_id, for_update=True)
            apply_totals(shift, shift_totals(self.db, shift), shift.starting_cash)
            shift.ending_cash = ending
            shift.difference = ending - to_money(shift.expected_cash)
            shift.status = ShiftStatus.CLOSED
            shift.ended_at = utcnow()
            shift.closed_by = actor.actor_id
            shift.closing_notes = notes
            self.db.flush()
            next_shift = None
            if next_cashier_id:
                next_shift = self._hand_over(session, shift, parse_id(next_cashier_id, "next_cashier_id"), actor)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("shift.closed", shift)
        if self._duration_minutes(shift) > self.policy.shift_max_hours * 60:
            self.notifier.publish(
                LedgerNotice(
                    event=EVENT_SHIFT_EXCEEDED_DURATION,
                    session_id=str(shift.session_id),
                    entity_type="shift",
                    entity_id=str(shift.id),
                    payload={"duration_minutes": self._duration_minutes(shift)},
                )
            )
        return ShiftCloseResult(shift=shift, next_shift=next_shift)

    def _hand_over(self, session: CashSession, closed: Shift, next_cashier_id, actor) -> Shift:
        ensure_accepts_entries(self.db, session)
        existing = self.shifts.get_open_for_cashier(next_cashier_id)
        if existing is not None:
            raise _already_active(next_cashier_id, existing)
        starting = StartingCash(to_money(closed.ending_cash), STARTING_CASH_FROM_PREVIOUS_SHIFT, closed.id)
        return self._insert_shift(
            session,
            cashier_id=next_cashier_id,
            relief_type=ReliefType.NORMAL,
            starting=starting,
            authorized_by=actor.actor_id if has_capability(actor, Capability.SUPERVISE_SHIFTS) else None,
            notes=f"relief of shift {closed.id}",
        )

    def get(self, shift_id) -> Shift:
        return load_shift(self.db, shift_id)

    def current_for(self, cashier_id) -> Shift | None:
        return self.shifts.get_open_for_cashier(cashier_id)

    def list_for_session(self, session_id) -> list[Shift]:
        load_session(self.db, session_id)
        return self.shifts.list_for_session(session_id)

    def summary(self, shift_id) -> ShiftSummary:
        shift = load_shift(self.db, shift_id)
        movements = MovementRepository(self.db).list_for_shift(shift.id)
        duration = self._duration_minutes(shift)
        return ShiftSummary(
            shift=shift,
            totals=summarize(movements),
            movement_count=len(movements),
            duration_minutes=duration,
            exceeds_max_duration=duration > self.policy.shift_max_hours * 60,
        )

    @staticmethod
    def _duration_minutes(shift: Shift) -> int:
        end = shift.ended_at or utcnow()
        return max(int((end - shift.started_at).total_seconds() // 60), 0)

    def _log(self, event: str, shift: Shift) -> None:
        log_json(
            logger,
            {
                "event": event,
                "shift_id": str(shift.id),
                "session_id": str(shift.session_id),
                "cashier_id": str(shift.cashier_id),
                "status": shift.status.value,
                "relief_type": shift.relief_type.value,
            },
        )
