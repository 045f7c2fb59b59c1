from __future__ import annotations

import logging
from decimal import Decimal

from app.ledger.core.capabilities import require_distinct_authorizer
from app.ledger.core.enums import AuthorizationState, ExpenseCategory, MovementKind, PaymentMethod
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.logging import log_json
from app.ledger.core.metrics import metrics
from app.ledger.core.policy import LedgerPolicy, to_money
from app.ledger.db.models import Expense, utcnow
from app.ledger.repos.expenses import ExpenseRepository
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
from app.ledger.services.notifications import LedgerNotifier, notifier as default_notifier

logger = logging.getLogger("ledger.expenses")


class ExpenseService:
    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier or default_notifier
        self.expenses = ExpenseRepository(db)
        self.recorder = MovementRecorder(db, policy=self.policy, notifier=self.notifier)

    def create(
        self,
        session_id,
        shift_id,
        amount,
        category,
        description: str,
        requester,
        *,
        method=PaymentMethod.CASH,
        authorizer=None,
        beneficiary: str | None = None,
        invoice_number: str | None = None,
        receipt_reference: str | None = None,
        trace_id: str | None = None,
    ) -> Expense:
        amount = require_positive_amount(amount)
        try:
            category = ExpenseCategory(category)
        except ValueError as exc:
            raise validation_error("category", "unknown expense category") from exc
        method = PaymentMethod(method)
        description = require_text(description, "description")
        if amount >= self.policy.expense_threshold:
            if authorizer is None:
                raise AppError(
                    ErrorCatalog.AUTHORIZATION_REQUIRED,
                    details={
                        "field": "authorizer",
                        "message": "expense requires authorization",
                        "threshold": self.policy.expense_threshold,
                    },
                )
            require_distinct_authorizer(requester.actor_id, authorizer)
        elif authorizer is not None:
            require_distinct_authorizer(requester.actor_id, authorizer)
        try:
            session = load_session(self.db, session_id, for_update=True)
            ensure_accepts_entries(self.db, session)
            require_participant(self.db, session, requester)
            shift = load_active_shift_in_session(self.db, shift_id, session) if shift_id else None
            if method != PaymentMethod.CASH:
                ensure_sufficient_balance(self.db, session, method, amount)
            expense = self.expenses.add(
                Expense(
                    session_id=session.id,
                    shift_id=shift.id if shift is not None else None,
                    amount=amount,
                    category=category,
                    method=method,
                    description=description,
                    beneficiary=beneficiary,
                    invoice_number=invoice_number,
                    receipt_reference=receipt_reference,
                    requested_by=requester.actor_id,
                    authorized_by=authorizer.actor_id if authorizer is not None else None,
                    created_at=utcnow(),
                )
            )
            self.recorder.append(
                session,
                shift,
                kind=MovementKind.EXPENSE,
                method=method,
                amount=amount,
                actor_id=requester.actor_id,
                reason=f"{category.value}: {description}",
                authorization_state=AuthorizationState.AUTHORIZED if authorizer else AuthorizationState.NONE_REQUIRED,
                authorized_by=authorizer.actor_id if authorizer is not None else None,
                expense_id=expense.id,
                trace_id=trace_id,
            )
            refresh_running_totals(self.db, session, shift)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        metrics.increment_movement_recorded(MovementKind.EXPENSE.value, method.value)
        log_json(
            logger,
            {
                "event": "expense.recorded",
                "expense_id": str(expense.id),
                "session_id": str(expense.session_id),
                "category": category.value,
                "method": method.value,
                "amount": amount,
                "authorized_by": str(expense.authorized_by) if expense.authorized_by else None,
            },
        )
        return expense

    def get(self, expense_id) -> Expense:
        expense = self.expenses.get(expense_id)
        if expense is None:
            raise AppError(ErrorCatalog.EXPENSE_NOT_FOUND, details={"expense_id": str(expense_id)})
        return expense

    def search(self, *, session_id=None, category=None) -> list[Expense]:
        return self.expenses.search(session_id=session_id, category=ExpenseCategory(category) if category else None)

    def totals_by_category(self, session_id) -> dict[str, Decimal]:
        session = load_session(self.db, session_id)
        totals: dict[str, Decimal] = {}
        for expense in self.expenses.search(session_id=session.id):
            key = expense.category.value
            totals[key] = totals.get(key, Decimal("0.00")) + to_money(expense.amount)
        return totals
