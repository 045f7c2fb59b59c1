from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError

from app.ledger.core.capabilities import Capability, require_capability
from app.ledger.core.enums import OPEN_SHIFT_STATUSES, ReconciliationStatus, SessionStatus
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.logging import log_json
from app.ledger.core.metrics import metrics
from app.ledger.core.policy import BILL_FLOOR, LedgerPolicy, to_money
from app.ledger.db.models import CashSession, Reconciliation, utcnow
from app.ledger.repos.reconciliations import ReconciliationRepository
from app.ledger.repos.shifts import ShiftRepository
from app.ledger.services.ledger_math import classify_difference
from app.ledger.services.ledger_state import (
    ensure_session_open,
    load_session,
    refresh_running_totals,
    require_participant,
)
from app.ledger.services.notifications import (
    EVENT_RECONCILIATION_OUT_OF_TOLERANCE,
    LedgerNotice,
    LedgerNotifier,
    notifier as default_notifier,
)

logger = logging.getLogger("ledger.reconciliation")


@dataclass(frozen=True)
class DenominationCount:
    denomination: Decimal
    count: int

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.denomination * self.count)

    def as_dict(self) -> dict:
        return {
            "denomination": format(self.denomination, "f"),
            "count": self.count,
            "kind": "bill" if self.denomination >= BILL_FLOOR else "coin",
            "subtotal": format(self.subtotal, "f"),
        }


def breakdown_template(policy: LedgerPolicy) -> list[dict]:
    return [DenominationCount(denomination, 0).as_dict() for denomination in policy.denominations]


def parse_breakdown(entries, policy: LedgerPolicy) -> list[DenominationCount]:
    """Normalize a drawer count into catalogued denominations, merging repeats."""
    counts: dict[Decimal, int] = {}
    for index, entry in enumerate(entries):
        if isinstance(entry, DenominationCount):
            raw_denomination, raw_count = entry.denomination, entry.count
        else:
            raw_denomination, raw_count = entry.get("denomination"), entry.get("count")
        field = f"breakdown.{index}"
        try:
            denomination = Decimal(str(raw_denomination))
        except (InvalidOperation, TypeError) as exc:
            raise validation_error(f"{field}.denomination", "denomination is not a number") from exc
        if denomination not in policy.denominations:
            raise validation_error(
                f"{field}.denomination",
                "denomination is not accepted",
                ErrorCatalog.BREAKDOWN_MISMATCH,
                denomination=denomination,
            )
        if isinstance(raw_count, bool) or not isinstance(raw_count, int) or raw_count < 0:
            raise validation_error(f"{field}.count", "count must be a non-negative integer", ErrorCatalog.BREAKDOWN_MISMATCH)
        counts[denomination] = counts.get(denomination, 0) + raw_count
    return [DenominationCount(denomination, counts[denomination]) for denomination in policy.denominations if denomination in counts]


def breakdown_total(counts: list[DenominationCount]) -> Decimal:
    return sum((item.subtotal for item in counts), Decimal("0.00"))


class ReconciliationEngine:
    """End-of-session cash count (arqueo) and its approval."""

    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier or default_notifier
        self.reconciliations = ReconciliationRepository(db)

    def within_tolerance(self, difference: Decimal) -> bool:
        return abs(difference) <= self.policy.reconciliation_tolerance

    def reconcile(
        self,
        session_id,
        counted_cash,
        breakdown,
        performer,
        notes: str | None = None,
        *,
        closing_notes: str | None = None,
    ) -> Reconciliation:
        if counted_cash is None:
            raise validation_error("counted_cash", "counted_cash is required", ErrorCatalog.INVALID_AMOUNT)
        counted = to_money(counted_cash)
        if counted < 0:
            raise validation_error("counted_cash", "counted_cash cannot be negative", ErrorCatalog.INVALID_AMOUNT)
        counts = None
        if breakdown:
            counts = parse_breakdown(breakdown, self.policy)
            total = breakdown_total(counts)
            if total != counted:
                raise validation_error(
                    "breakdown",
                    "breakdown does not add up to counted_cash",
                    ErrorCatalog.BREAKDOWN_MISMATCH,
                    breakdown_total=total,
                    counted_cash=counted,
                )
        try:
            session = load_session(self.db, session_id, for_update=True)
            existing = self.reconciliations.get_for_session(session.id)
            if existing is not None:
                self.db.rollback()
                return self._existing_outcome(existing, counted)
            ensure_session_open(session)
            require_participant(self.db, session, performer)
            open_shifts = ShiftRepository(self.db).list_for_session(session.id, statuses=OPEN_SHIFT_STATUSES)
            if open_shifts:
                raise AppError(
                    ErrorCatalog.SHIFTS_STILL_OPEN,
                    details={"session_id": str(session.id), "shift_ids": [str(shift.id) for shift in open_shifts]},
                )
            totals = refresh_running_totals(self.db, session)
            expected = totals.expected_cash(session.initial_float)
            difference = counted - expected
            within = self.within_tolerance(difference)
            reconciliation = Reconciliation(
                session_id=session.id,
                counted_total=counted,
                expected_total=expected,
                difference=difference,
                difference_type=classify_difference(difference),
                breakdown=[item.as_dict() for item in counts] if counts is not None else None,
                status=ReconciliationStatus.FINALIZED if within else ReconciliationStatus.PENDING_APPROVAL,
                performed_by=performer.actor_id,
                notes=notes,
                created_at=utcnow(),
            )
            session.counted_cash = counted
            session.difference = difference
            if within:
                self._close_session(session, performer.actor_id, balanced=True, notes=closing_notes)
            elif closing_notes:
                session.closing_notes = closing_notes
            try:
                self.reconciliations.add(reconciliation)
            except IntegrityError as exc:
                raise AppError(ErrorCatalog.RECONCILIATION_PENDING, details={"session_id": str(session.id)}) from exc
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        metrics.increment_reconciliation(reconciliation.status.value, reconciliation.difference_type.value)
        self._log("reconciliation.performed", reconciliation)
        if not within:
            self.notifier.publish(
                LedgerNotice(
                    event=EVENT_RECONCILIATION_OUT_OF_TOLERANCE,
                    session_id=str(reconciliation.session_id),
                    entity_type="reconciliation",
                    entity_id=str(reconciliation.id),
                    payload={
                        "expected": expected,
                        "counted": counted,
                        "difference": difference,
                        "tolerance": self.policy.reconciliation_tolerance,
                    },
                )
            )
        return reconciliation

    def _existing_outcome(self, existing: Reconciliation, counted: Decimal) -> Reconciliation:
        if existing.status != ReconciliationStatus.PENDING_APPROVAL:
            raise AppError(
                ErrorCatalog.SESSION_NOT_OPEN,
                details={"session_id": str(existing.session_id), "reconciliation_id": str(existing.id)},
            )
        if to_money(existing.counted_total) != counted:
            raise AppError(
                ErrorCatalog.RECONCILIATION_PENDING,
                details={"session_id": str(existing.session_id), "reconciliation_id": str(existing.id)},
            )
        return existing

    def approve(self, reconciliation_id, approver, notes: str | None) -> Reconciliation:
        require_capability(approver, Capability.APPROVE_RECONCILIATION)
        cleaned = (notes or "").strip()
        if len(cleaned) < self.policy.approval_notes_min_length:
            raise AppError(
                ErrorCatalog.APPROVAL_NOTES_REQUIRED,
                details={"field": "notes", "min_length": self.policy.approval_notes_min_length},
            )
        try:
            reconciliation = self.reconciliations.get(reconciliation_id, for_update=True)
            if reconciliation is None:
                raise AppError(
                    ErrorCatalog.RECONCILIATION_NOT_FOUND,
                    details={"reconciliation_id": str(reconciliation_id)},
                )
            if reconciliation.status != ReconciliationStatus.PENDING_APPROVAL:
                raise AppError(
                    ErrorCatalog.RECONCILIATION_NOT_PENDING,
                    details={"reconciliation_id": str(reconciliation.id), "status": reconciliation.status.value},
                )
            session = load_session(self.db, reconciliation.session_id, for_update=True)
            ensure_session_open(session)
            reconciliation.status = ReconciliationStatus.APPROVED
            reconciliation.approved_by = approver.actor_id
            reconciliation.approval_notes = cleaned
            reconciliation.approved_at = utcnow()
            self._close_session(session, approver.actor_id, balanced=False, notes=session.closing_notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        metrics.increment_reconciliation(reconciliation.status.value, reconciliation.difference_type.value)
        self._log("reconciliation.approved", reconciliation)
        return reconciliation

    def _close_session(self, session: CashSession, actor_id, *, balanced: bool, notes: str | None) -> None:
        session.status = SessionStatus.CLOSED
        session.closed_at = utcnow()
        session.closed_by = actor_id
        session.balanced = balanced
        session.closing_notes = notes

    def get(self, reconciliation_id) -> Reconciliation:
        reconciliation = self.reconciliations.get(reconciliation_id)
        if reconciliation is None:
            raise AppError(ErrorCatalog.RECONCILIATION_NOT_FOUND, details={"reconciliation_id": str(reconciliation_id)})
        return reconciliation

    def get_for_session(self, session_id) -> Reconciliation | None:
        load_session(self.db, session_id)
        return self.reconciliations.get_for_session(session_id)

    def list_pending(self) -> list[Reconciliation]:
        return self.reconciliations.search(status=ReconciliationStatus.PENDING_APPROVAL)

    def _log(self, event: str, reconciliation: Reconciliation) -> None:
        log_json(
            logger,
            {
                "event": event,
                "reconciliation_id": str(reconciliation.id),
                "session_id": str(reconciliation.session_id),
                "status": reconciliation.status.value,
                "expected": reconciliation.expected_total,
                "counted": reconciliation.counted_total,
                "difference": reconciliation.difference,
            },
        )
