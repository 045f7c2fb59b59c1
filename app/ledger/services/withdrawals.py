from __future__ import annotations

import logging

from app.ledger.core.capabilities import Capability, require_capability, require_distinct_authorizer
from app.ledger.core.enums import (
    AuthorizationDecision,
    AuthorizationState,
    MovementKind,
    PaymentMethod,
    ShiftStatus,
    WithdrawalStatus,
)
from app.ledger.core.error_catalog import AppError, ErrorCatalog
from app.ledger.core.logging import log_json
from app.ledger.core.metrics import metrics
from app.ledger.core.policy import LedgerPolicy
from app.ledger.db.models import CashSession, Withdrawal, utcnow
from app.ledger.repos.movements import MovementRepository
from app.ledger.repos.shifts import ShiftRepository
from app.ledger.repos.withdrawals import WithdrawalRepository
from app.ledger.services.ledger_state import (
    ensure_accepts_entries,
    ensure_sufficient_balance,
    load_active_shift_in_session,
    load_session,
    refresh_running_totals,
    require_participant,
    require_positive_amount,
    require_text,
)
from app.ledger.services.movements import MovementRecorder
from app.ledger.services.notifications import (
    EVENT_AUTHORIZATION_PENDING,
    LedgerNotice,
    LedgerNotifier,
    notifier as default_notifier,
)

logger = logging.getLogger("ledger.withdrawals")


class WithdrawalService:
    """Cash withdrawals: request, authorize or reject, complete, cancel.

    Expected cash drops when the withdrawal is authorized, not when the money
    physically leaves the drawer; completion only records the hand-off proof.
    """

    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier or default_notifier
        self.withdrawals = WithdrawalRepository(db)
        self.recorder = MovementRecorder(db, policy=self.policy, notifier=self.notifier)

    def _load(self, withdrawal_id, *, for_update: bool = True) -> Withdrawal:
        withdrawal = self.withdrawals.get(withdrawal_id, for_update=for_update)
        if withdrawal is None:
            raise AppError(ErrorCatalog.WITHDRAWAL_NOT_FOUND, details={"withdrawal_id": str(withdrawal_id)})
        return withdrawal

    def get(self, withdrawal_id) -> Withdrawal:
        return self._load(withdrawal_id, for_update=False)

    def search(self, *, session_id=None, status=None) -> list[Withdrawal]:
        return self.withdrawals.search(session_id=session_id, status=WithdrawalStatus(status) if status else None)

    def request(
        self,
        session_id,
        shift_id,
        amount,
        reason: str,
        requester,
        *,
        destination: str | None = None,
        trace_id: str | None = None,
    ) -> Withdrawal:
        amount = require_positive_amount(amount)
        reason = require_text(reason, "reason")
        try:
            session = load_session(self.db, session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            require_participant(self.db, session, requester)
            shift = load_active_shift_in_session(self.db, shift_id, session) if shift_id else None
            ensure_sufficient_balance(self.db, session, PaymentMethod.CASH, amount)
            needs_authorization = amount >= self.policy.withdrawal_threshold
            now = utcnow()
            withdrawal = self.withdrawals.add(
                Withdrawal(
                    session_id=session.id,
                    shift_id=shift.id if shift is not None else None,
                    amount=amount,
                    reason=reason,
                    destination=destination,
                    status=WithdrawalStatus.PENDING if needs_authorization else WithdrawalStatus.AUTHORIZED,
                    requested_by=requester.actor_id,
                    authorized_at=None if needs_authorization else now,
                    decided_at=None if needs_authorization else now,
                    created_at=now,
                )
            )
            if not needs_authorization:
                self._append_movement(session, withdrawal, requester.actor_id, None, trace_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("withdrawal.requested", withdrawal)
        if withdrawal.status == WithdrawalStatus.PENDING:
            self.notifier.publish(
                LedgerNotice(
                    event=EVENT_AUTHORIZATION_PENDING,
                    session_id=str(withdrawal.session_id),
                    entity_type="withdrawal",
                    entity_id=str(withdrawal.id),
                    payload={"amount": amount, "reason": reason, "requested_by": str(requester.actor_id)},
                )
            )
        return withdrawal

    def _append_movement(self, session: CashSession, withdrawal: Withdrawal, actor_id, authorized_by, trace_id):
        shift = None
        if withdrawal.shift_id is not None:
            candidate = ShiftRepository(self.db).get(withdrawal.shift_id, for_update=True)
            if candidate is not None and candidate.status == ShiftStatus.ACTIVE:
                shift = candidate
        movement = self.recorder.append(
            session,
            shift,
            kind=MovementKind.WITHDRAWAL,
            method=PaymentMethod.CASH,
            amount=withdrawal.amount,
            actor_id=actor_id,
            reason=withdrawal.reason,
            authorization_state=AuthorizationState.AUTHORIZED if authorized_by else AuthorizationState.NONE_REQUIRED,
            authorized_by=authorized_by,
            withdrawal_id=withdrawal.id,
            trace_id=trace_id,
        )
        refresh_running_totals(self.db, session, shift)
        metrics.increment_movement_recorded(MovementKind.WITHDRAWAL.value, PaymentMethod.CASH.value)
        return movement

    def authorize(self, withdrawal_id, approver, decision, notes: str | None = None, *, trace_id=None) -> Withdrawal:
        decision = AuthorizationDecision(decision)
        try:
            withdrawal = self._load(withdrawal_id)
            if withdrawal.status != WithdrawalStatus.PENDING:
                raise AppError(
                    ErrorCatalog.NOT_PENDING,
                    details={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status.value},
                )
            require_distinct_authorizer(withdrawal.requested_by, approver)
            now = utcnow()
            withdrawal.authorized_by = approver.actor_id
            withdrawal.decided_at = now
            withdrawal.decision_notes = notes
            if decision == AuthorizationDecision.APPROVE:
                session = load_session(self.db, withdrawal.session_id, for_update=True)
                ensure_accepts_entries(self.db, session)
                ensure_sufficient_balance(self.db, session, PaymentMethod.CASH, withdrawal.amount)
                withdrawal.status = WithdrawalStatus.AUTHORIZED
                withdrawal.authorized_at = now
                self._append_movement(session, withdrawal, withdrawal.requested_by, approver.actor_id, trace_id)
            else:
                withdrawal.status = WithdrawalStatus.REJECTED
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("withdrawal.decided", withdrawal)
        return withdrawal

    def complete(self, withdrawal_id, receipt_reference: str, actor) -> Withdrawal:
        receipt_reference = require_text(receipt_reference, "receipt_reference")
        try:
            withdrawal = self._load(withdrawal_id)
            if withdrawal.status != WithdrawalStatus.AUTHORIZED:
                raise AppError(
                    ErrorCatalog.NOT_AUTHORIZED,
                    details={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status.value},
                )
            if withdrawal.requested_by != actor.actor_id:
                require_capability(actor, Capability.AUTHORIZE)
            withdrawal.status = WithdrawalStatus.COMPLETED
            withdrawal.receipt_reference = receipt_reference
            withdrawal.completed_by = actor.actor_id
            withdrawal.completed_at = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("withdrawal.completed", withdrawal)
        return withdrawal

    def cancel(self, withdrawal_id, actor, reason: str | None = None, *, trace_id=None) -> Withdrawal:
        """Pending: requester only. Authorized but not completed: elevated actor, offset in the ledger."""
        try:
            withdrawal = self._load(withdrawal_id)
            if withdrawal.status == WithdrawalStatus.PENDING:
                if withdrawal.requested_by != actor.actor_id:
                    raise AppError(
                        ErrorCatalog.FORBIDDEN,
                        details={"withdrawal_id": str(withdrawal.id), "message": "only the requester can cancel"},
                    )
            elif withdrawal.status == WithdrawalStatus.AUTHORIZED:
                require_capability(actor, Capability.CORRECT_LEDGER)
                cleaned = require_text(reason, "reason", min_length=self.policy.approval_notes_min_length)
                session = load_session(self.db, withdrawal.session_id, for_update=True)
                ensure_accepts_entries(self.db, session)
                for movement in MovementRepository(self.db).list_for_withdrawal(withdrawal.id):
                    correction = self.recorder.append_offset(
                        session, movement, reason=cleaned, actor=actor, trace_id=trace_id, allow_linked=True
                    )
                    refresh_running_totals(self.db, session, self.recorder.open_shift(correction.shift_id))
            else:
                raise AppError(
                    ErrorCatalog.NOT_CANCELLABLE,
                    details={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status.value},
                )
            withdrawal.status = WithdrawalStatus.CANCELLED
            withdrawal.cancelled_by = actor.actor_id
            withdrawal.cancelled_at = utcnow()
            withdrawal.cancellation_reason = reason
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("withdrawal.cancelled", withdrawal)
        return withdrawal

    def _log(self, event: str, withdrawal: Withdrawal) -> None:
        log_json(
            logger,
            {
                "event": event,
                "withdrawal_id": str(withdrawal.id),
                "session_id": str(withdrawal.session_id),
                "status": withdrawal.status.value,
                "amount": withdrawal.amount,
            },
        )
