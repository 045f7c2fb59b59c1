from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from app.ledger.core.capabilities import Capability, require_capability, require_distinct_authorizer
from app.ledger.core.enums import (
    OPEN_SHIFT_STATUSES,
    AuthorizationDecision,
    AuthorizationState,
    MovementKind,
    PaymentMethod,
    ShiftStatus,
)
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.logging import log_json
from app.ledger.core.metrics import metrics
from app.ledger.core.policy import LedgerPolicy
from app.ledger.db.models import CashSession, Movement, SalePayment, Shift, utcnow
from app.ledger.repos.movements import MovementRepository
from app.ledger.repos.sale_payments import SalePaymentRepository
from app.ledger.repos.shifts import ShiftRepository
from app.ledger.services.ledger_math import counts_toward_totals, direction, opposite_manual_kind
from app.ledger.services.ledger_state import (
    ensure_accepts_entries,
    ensure_sufficient_balance,
    load_active_shift_in_session,
    load_session,
    parse_id,
    refresh_running_totals,
    require_participant,
    require_positive_amount,
    require_text,
)
from app.ledger.services.notifications import (
    EVENT_AUTHORIZATION_PENDING,
    EVENT_CASH_DRAWER_OPEN,
    LedgerNotice,
    LedgerNotifier,
    notifier as default_notifier,
)

logger = logging.getLogger("ledger.movements")

MANUAL_KINDS = frozenset({MovementKind.MANUAL_INCOME, MovementKind.MANUAL_EXPENSE})


@dataclass(frozen=True)
class SalePaymentLine:
    method: PaymentMethod
    amount: Decimal
    reference: str | None = None


class MovementRecorder:
    """Appends entries to the movement ledger.

    Every write recomputes the running totals of the session (and shift) from
    the ledger rows inside the same transaction, with the session row locked.
    """

    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier or default_notifier
        self.movements = MovementRepository(db)

    def append(
        self,
        session: CashSession,
        shift: Shift | None,
        *,
        kind: MovementKind,
        method: PaymentMethod,
        amount: Decimal,
        actor_id,
        reason: str | None = None,
        authorization_state: AuthorizationState = AuthorizationState.NONE_REQUIRED,
        authorized_by=None,
        authorization_notes: str | None = None,
        sale_id=None,
        sale_payment_id=None,
        withdrawal_id=None,
        expense_id=None,
        offsets_movement_id=None,
        trace_id: str | None = None,
    ) -> Movement:
        """Add a movement row to the caller's transaction without committing."""
        now = utcnow()
        movement = Movement(
            session_id=session.id,
            shift_id=shift.id if shift is not None else None,
            kind=kind,
            method=method,
            amount=amount,
            reason=reason,
            actor_id=actor_id,
            authorization_state=authorization_state,
            authorized_by=authorized_by,
            authorized_at=now if authorized_by is not None else None,
            authorization_notes=authorization_notes,
            sale_id=sale_id,
            sale_payment_id=sale_payment_id,
            withdrawal_id=withdrawal_id,
            expense_id=expense_id,
            offsets_movement_id=offsets_movement_id,
            trace_id=trace_id,
            occurred_at=now,
        )
        return self.movements.add(movement)

    def record(
        self,
        session_id,
        shift_id,
        kind,
        method,
        amount,
        reason: str | None,
        actor,
        *,
        authorizer=None,
        trace_id: str | None = None,
    ) -> Movement:
        kind = MovementKind(kind)
        method = PaymentMethod(method)
        if kind not in MANUAL_KINDS:
            raise validation_error(
                "kind",
                f"{kind.value} movements are recorded through their own workflow",
            )
        amount = require_positive_amount(amount)
        reason = require_text(reason, "reason")
        try:
            session = load_session(self.db, session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            require_participant(self.db, session, actor)
            shift = load_active_shift_in_session(self.db, shift_id, session) if shift_id else None
            state, authorized_by = self._authorization_for(kind, amount, actor, authorizer)
            if direction(kind) < 0 and method != PaymentMethod.CASH:
                ensure_sufficient_balance(self.db, session, method, amount)
            movement = self.append(
                session,
                shift,
                kind=kind,
                method=method,
                amount=amount,
                actor_id=actor.actor_id,
                reason=reason,
                authorization_state=state,
                authorized_by=authorized_by,
                trace_id=trace_id,
            )
            refresh_running_totals(self.db, session, shift)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        metrics.increment_movement_recorded(kind.value, method.value)
        self._log("movement.recorded", movement)
        if movement.authorization_state == AuthorizationState.PENDING:
            self.notifier.publish(
                LedgerNotice(
                    event=EVENT_AUTHORIZATION_PENDING,
                    session_id=str(movement.session_id),
                    entity_type="movement",
                    entity_id=str(movement.id),
                    payload={"kind": kind.value, "amount": amount, "requested_by": str(actor.actor_id)},
                )
            )
        return movement

    def _authorization_for(self, kind: MovementKind, amount: Decimal, actor, authorizer):
        if amount < self.policy.movement_threshold:
            return AuthorizationState.NONE_REQUIRED, None
        if authorizer is None:
            return AuthorizationState.PENDING, None
        require_distinct_authorizer(actor.actor_id, authorizer)
        return AuthorizationState.AUTHORIZED, authorizer.actor_id

    def record_sale(
        self,
        session_id,
        shift_id,
        sale_id,
        payments: list[SalePaymentLine],
        actor,
        *,
        expected_total=None,
        trace_id: str | None = None,
    ) -> list[Movement]:
        """Write the payment records of a completed sale and one SALE movement per payment."""
        if not payments:
            raise validation_error("payments", "at least one payment is required")
        sale_id = parse_id(sale_id, "sale_id")
        lines = [
            SalePaymentLine(
                method=PaymentMethod(line.method),
                amount=require_positive_amount(line.amount, "payments.amount"),
                reference=line.reference,
            )
            for line in payments
        ]
        paid = sum((line.amount for line in lines), Decimal("0.00"))
        if expected_total is not None and paid != require_positive_amount(expected_total, "total"):
            raise validation_error("payments", "payments do not add up to the sale total", paid=paid, total=expected_total)
        try:
            session = load_session(self.db, session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            require_participant(self.db, session, actor)
            shift = load_active_shift_in_session(self.db, shift_id, session) if shift_id else None
            payment_repo = SalePaymentRepository(self.db)
            recorded = []
            for line in lines:
                payment = payment_repo.add(
                    SalePayment(
                        sale_id=sale_id,
                        session_id=session.id,
                        method=line.method,
                        amount=line.amount,
                        reference=line.reference,
                    )
                )
                recorded.append(
                    self.append(
                        session,
                        shift,
                        kind=MovementKind.SALE,
                        method=line.method,
                        amount=line.amount,
                        actor_id=actor.actor_id,
                        reason=f"sale {sale_id}",
                        sale_id=sale_id,
                        sale_payment_id=payment.id,
                        trace_id=trace_id,
                    )
                )
            refresh_running_totals(self.db, session, shift)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        for movement in recorded:
            metrics.increment_movement_recorded(MovementKind.SALE.value, movement.method.value)
        cash_total = sum((line.amount for line in lines if line.method == PaymentMethod.CASH), Decimal("0.00"))
        if cash_total > 0:
            self.notifier.publish(
                LedgerNotice(
                    event=EVENT_CASH_DRAWER_OPEN,
                    session_id=str(session_id),
                    entity_type="sale",
                    entity_id=str(sale_id),
                    payload={"cash_amount": cash_total},
                )
            )
        return recorded

    def authorize(self, movement_id, approver, decision, notes: str | None = None) -> Movement:
        decision = AuthorizationDecision(decision)
        try:
            movement = self.movements.get(movement_id, for_update=True)
            if movement is None:
                raise AppError(ErrorCatalog.MOVEMENT_NOT_FOUND, details={"movement_id": str(movement_id)})
            if movement.authorization_state != AuthorizationState.PENDING:
                raise AppError(
                    ErrorCatalog.NOT_PENDING,
                    details={"movement_id": str(movement.id), "state": movement.authorization_state.value},
                )
            require_distinct_authorizer(movement.actor_id, approver)
            session = load_session(self.db, movement.session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            if decision == AuthorizationDecision.APPROVE:
                if direction(movement.kind) < 0 and movement.method != PaymentMethod.CASH:
                    ensure_sufficient_balance(self.db, session, movement.method, movement.amount)
                movement.authorization_state = AuthorizationState.AUTHORIZED
            else:
                movement.authorization_state = AuthorizationState.REJECTED
            movement.authorized_by = approver.actor_id
            movement.authorized_at = utcnow()
            movement.authorization_notes = notes
            refresh_running_totals(self.db, session, self.open_shift(movement.shift_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("movement.authorization_decided", movement)
        return movement

    def offset(self, movement_id, reason: str, actor, *, trace_id: str | None = None) -> Movement:
        """Correct a committed movement by appending its opposite."""
        require_capability(actor, Capability.CORRECT_LEDGER)
        reason = require_text(reason, "reason", min_length=self.policy.approval_notes_min_length)
        try:
            original = self.movements.get(movement_id, for_update=True)
            if original is None:
                raise AppError(ErrorCatalog.MOVEMENT_NOT_FOUND, details={"movement_id": str(movement_id)})
            session = load_session(self.db, original.session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            correction = self.append_offset(session, original, reason=reason, actor=actor, trace_id=trace_id)
            refresh_running_totals(self.db, session, self.open_shift(correction.shift_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        metrics.increment_movement_recorded(correction.kind.value, correction.method.value)
        self._log("movement.offset", correction)
        return correction

    def append_offset(
        self,
        session: CashSession,
        original: Movement,
        *,
        reason: str,
        actor,
        trace_id=None,
        allow_linked: bool = False,
    ) -> Movement:
        """Append the opposite of `original`.

        Movements owned by a withdrawal or an expense are only reversed through
        that workflow, which passes `allow_linked`.
        """
        if not allow_linked and (original.withdrawal_id is not None or original.expense_id is not None):
            raise AppError(
                ErrorCatalog.NOT_OFFSETTABLE,
                details={
                    "movement_id": str(original.id),
                    "reason": "linked to a withdrawal or expense",
                    "withdrawal_id": str(original.withdrawal_id) if original.withdrawal_id else None,
                    "expense_id": str(original.expense_id) if original.expense_id else None,
                },
            )
        if not counts_toward_totals(original) or original.offsets_movement_id is not None:
            raise AppError(
                ErrorCatalog.NOT_OFFSETTABLE,
                details={"movement_id": str(original.id), "state": original.authorization_state.value},
            )
        if self.movements.get_offset_of(original.id) is not None:
            raise AppError(ErrorCatalog.NOT_OFFSETTABLE, details={"movement_id": str(original.id), "reason": "already offset"})
        kind = opposite_manual_kind(original.kind)
        if direction(kind) < 0 and original.method != PaymentMethod.CASH:
            ensure_sufficient_balance(self.db, session, original.method, original.amount)
        return self.append(
            session,
            self.open_shift(original.shift_id, active_only=True),
            kind=kind,
            method=original.method,
            amount=original.amount,
            actor_id=actor.actor_id,
            reason=reason,
            authorization_state=AuthorizationState.AUTHORIZED,
            authorized_by=actor.actor_id,
            offsets_movement_id=original.id,
            trace_id=trace_id,
        )

    def list_for_session(self, session_id, *, kind=None) -> list[Movement]:
        load_session(self.db, session_id)
        return self.movements.list_for_session(session_id, kind=MovementKind(kind) if kind else None)

    def open_shift(self, shift_id, *, active_only: bool = False) -> Shift | None:
        if shift_id is None:
            return None
        shift = ShiftRepository(self.db).get(shift_id, for_update=True)
        if shift is None:
            return None
        if active_only:
            return shift if shift.status == ShiftStatus.ACTIVE else None
        return shift if shift.status in OPEN_SHIFT_STATUSES else None

    def _log(self, event: str, movement: Movement) -> None:
        log_json(
            logger,
            {
                "event": event,
                "movement_id": str(movement.id),
                "session_id": str(movement.session_id),
                "shift_id": str(movement.shift_id) if movement.shift_id else None,
                "kind": movement.kind.value,
                "method": movement.method.value,
                "amount": movement.amount,
                "authorization_state": movement.authorization_state.value,
            },
        )
