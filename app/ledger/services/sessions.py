from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.ledger.core.capabilities import Capability, require_capability
from app.ledger.core.enums import CashLevel, SessionStatus
from app.ledger.core.error_catalog import AppError, ErrorCatalog, validation_error
from app.ledger.core.logging import log_json
from app.ledger.core.policy import LedgerPolicy, to_money
from app.ledger.db.models import CashSession, Reconciliation, utcnow
from app.ledger.repos.movements import MovementRepository
from app.ledger.repos.reconciliations import ReconciliationRepository
from app.ledger.repos.sessions import CashSessionRepository
from app.ledger.services.ledger_math import LedgerTotals, classify_cash_level
from app.ledger.services.ledger_state import (
    ensure_session_open,
    load_session,
    parse_id,
    recompute_expected_cash,
    require_positive_amount,
    session_totals,
)
from app.ledger.services.notifications import LedgerNotifier
from app.ledger.services.reconciliation import ReconciliationEngine

logger = logging.getLogger("ledger.sessions")


@dataclass(frozen=True)
class SessionCloseResult:
    session: CashSession
    reconciliation: Reconciliation

    @property
    def closed(self) -> bool:
        return self.session.status == SessionStatus.CLOSED


@dataclass(frozen=True)
class SessionSummary:
    session: CashSession
    totals: LedgerTotals
    expected_cash: Decimal
    movement_count: int
    reconciliation: Reconciliation | None


@dataclass(frozen=True)
class CashStatus:
    session_id: uuid.UUID
    available_cash: Decimal
    level: CashLevel
    suggest_withdrawal: bool


@dataclass(frozen=True)
class ChangeCheck:
    session_id: uuid.UUID
    sale_total: Decimal
    amount_paid: Decimal
    change: Decimal
    available_cash: Decimal
    sufficient: bool

    @property
    def shortfall(self) -> Decimal:
        return max(self.change - self.available_cash, Decimal("0.00"))


class SessionManager:
    def __init__(self, db, *, policy: LedgerPolicy | None = None, notifier: LedgerNotifier | None = None):
        self.db = db
        self.policy = policy or LedgerPolicy.from_settings()
        self.notifier = notifier
        self.sessions = CashSessionRepository(db)

    def open(self, register_id, actor, initial_float, notes: str | None = None) -> CashSession:
        require_capability(actor, Capability.OPERATE_TILL)
        if initial_float is None:
            raise validation_error("initial_float", "initial_float is required", ErrorCatalog.INVALID_AMOUNT)
        opening = to_money(initial_float)
        if opening < 0:
            raise validation_error("initial_float", "initial_float cannot be negative", ErrorCatalog.INVALID_AMOUNT)
        register_id = parse_id(register_id, "register_id")
        try:
            existing = self.sessions.get_open_for_register(register_id)
            if existing is not None:
                raise AppError(
                    ErrorCatalog.SESSION_ALREADY_OPEN,
                    details={"register_id": str(register_id), "session_id": str(existing.id)},
                )
            own = self.sessions.get_open_opened_by(actor.actor_id)
            if own is not None:
                raise AppError(
                    ErrorCatalog.SESSION_ALREADY_OPEN,
                    details={"actor_id": str(actor.actor_id), "session_id": str(own.id)},
                )
            session = CashSession(
                register_id=register_id,
                opened_by=actor.actor_id,
                status=SessionStatus.OPEN,
                initial_float=opening,
                expected_cash=opening,
                opening_notes=notes,
                opened_at=utcnow(),
            )
            try:
                self.sessions.add(session)
            except IntegrityError as exc:
                raise AppError(ErrorCatalog.SESSION_ALREADY_OPEN, details={"register_id": str(register_id)}) from exc
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("session.opened", session)
        return session

    def close(self, session_id, actor, counted_cash, breakdown=None, notes: str | None = None) -> SessionCloseResult:
        session = load_session(self.db, session_id)
        if session.opened_by != actor.actor_id:
            require_capability(actor, Capability.AUTHORIZE)
        engine = ReconciliationEngine(self.db, policy=self.policy, notifier=self.notifier)
        reconciliation = engine.reconcile(session.id, counted_cash, breakdown, actor, closing_notes=notes)
        session = load_session(self.db, session_id)
        self._log("session.closed" if session.status == SessionStatus.CLOSED else "session.close_pending", session)
        return SessionCloseResult(session=session, reconciliation=reconciliation)

    def get(self, session_id) -> CashSession:
        return load_session(self.db, session_id)

    def active_session_for(self, actor_id) -> CashSession | None:
        return self.sessions.get_active_for_actor(actor_id)

    def current_for(self, actor) -> CashSession:
        session = self.active_session_for(actor.actor_id)
        if session is None:
            raise AppError(ErrorCatalog.NO_ACTIVE_SESSION, details={"actor_id": str(actor.actor_id)})
        return session

    def search(self, *, status=None, register_id=None) -> list[CashSession]:
        return self.sessions.search(
            status=SessionStatus(status) if status else None,
            register_id=parse_id(register_id, "register_id") if register_id else None,
        )

    def summary(self, session_id) -> SessionSummary:
        session = load_session(self.db, session_id)
        totals = session_totals(self.db, session)
        return SessionSummary(
            session=session,
            totals=totals,
            expected_cash=totals.expected_cash(session.initial_float),
            movement_count=MovementRepository(self.db).count_for_session(session.id),
            reconciliation=ReconciliationRepository(self.db).get_for_session(session.id),
        )

    def cash_status(self, session_id) -> CashStatus:
        session = load_session(self.db, session_id)
        available = recompute_expected_cash(self.db, session)
        level = classify_cash_level(available, self.policy)
        return CashStatus(
            session_id=session.id,
            available_cash=available,
            level=level,
            suggest_withdrawal=level == CashLevel.HIGH,
        )

    def validate_change(self, session_id, sale_total, amount_paid) -> ChangeCheck:
        """Whether the drawer holds enough cash to hand back change for a cash payment."""
        sale_total = require_positive_amount(sale_total, "sale_total")
        amount_paid = require_positive_amount(amount_paid, "amount_paid")
        if amount_paid < sale_total:
            raise validation_error(
                "amount_paid", "amount_paid cannot be lower than sale_total", sale_total=sale_total, amount_paid=amount_paid
            )
        session = load_session(self.db, session_id)
        ensure_session_open(session)
        available = recompute_expected_cash(self.db, session)
        change = amount_paid - sale_total
        return ChangeCheck(
            session_id=session.id,
            sale_total=sale_total,
            amount_paid=amount_paid,
            change=change,
            available_cash=available,
            sufficient=change <= available,
        )

    def _log(self, event: str, session: CashSession) -> None:
        log_json(
            logger,
            {
                "event": event,
                "session_id": str(session.id),
                "register_id": str(session.register_id),
                "status": session.status.value,
                "expected_cash": session.expected_cash,
                "counted_cash": session.counted_cash,
                "difference": session.difference,
            },
        )
