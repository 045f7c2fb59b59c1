from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from decimal import Decimal

from sqlalchemy import select

from app.ledger.core.enums import MovementKind, SessionStatus, ShiftStatus, WithdrawalStatus
from app.ledger.core.metrics import metrics
from app.ledger.core.policy import LedgerPolicy, to_money
from app.ledger.db.models import CashSession, Expense, Movement, SalePayment, Shift, Withdrawal
from app.ledger.services.ledger_math import KIND_TOTAL_FIELDS, SALE_TOTAL_FIELDS, summarize


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"

RUNNING_TOTAL_FIELDS = (*SALE_TOTAL_FIELDS.values(), *KIND_TOTAL_FIELDS.values())
LINKED_WITHDRAWAL_STATUSES = {WithdrawalStatus.AUTHORIZED, WithdrawalStatus.COMPLETED}


@dataclass(frozen=True)
class LedgerFinding:
    check_id: str
    severity: str
    session_id: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


@dataclass
class _SessionLedger:
    session: CashSession
    movements: list[Movement]
    payments: list[SalePayment]
    withdrawals: list[Withdrawal]
    expenses: list[Expense]
    shifts: list[Shift]


def resolve_sessions(db, selector: str) -> list[str]:
    if selector.lower() == "all":
        return [str(row.id) for row in db.execute(select(CashSession.id).order_by(CashSession.opened_at)).all()]
    if selector.lower() == "open":
        query = select(CashSession.id).where(CashSession.status == SessionStatus.OPEN).order_by(CashSession.opened_at)
        return [str(row.id) for row in db.execute(query).all()]
    return [selector]


def _load(db, session: CashSession) -> _SessionLedger:
    def rows(model, order_by):
        query = select(model).where(model.session_id == session.id).order_by(order_by)
        return list(db.execute(query).scalars().all())

    return _SessionLedger(
        session=session,
        movements=rows(Movement, Movement.occurred_at),
        payments=rows(SalePayment, SalePayment.created_at),
        withdrawals=rows(Withdrawal, Withdrawal.created_at),
        expenses=rows(Expense, Expense.created_at),
        shifts=rows(Shift, Shift.started_at),
    )


def _finding(check_id, severity, ledger: _SessionLedger, message, entity, entity_id, details) -> LedgerFinding:
    return LedgerFinding(
        check_id=check_id,
        severity=severity,
        session_id=str(ledger.session.id),
        message=message,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
    )


def _count(check_id: str, findings: list[LedgerFinding]) -> list[LedgerFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def check_sale_payment_match(ledger: _SessionLedger) -> list[LedgerFinding]:
    payments = {payment.id: payment for payment in ledger.payments}
    linked: Counter = Counter()
    findings = []
    for movement in ledger.movements:
        if movement.kind != MovementKind.SALE:
            continue
        payment = payments.get(movement.sale_payment_id)
        if payment is None:
            findings.append(
                _finding(
                    "sale_payment_match",
                    SEVERITY_CRITICAL,
                    ledger,
                    "SALE movement has no payment record in this session.",
                    "movements",
                    movement.id,
                    {"sale_id": str(movement.sale_id), "sale_payment_id": str(movement.sale_payment_id)},
                )
            )
            continue
        linked[payment.id] += 1
        if payment.method != movement.method or to_money(payment.amount) != to_money(movement.amount):
            findings.append(
                _finding(
                    "sale_payment_match",
                    SEVERITY_CRITICAL,
                    ledger,
                    "SALE movement does not match its payment record.",
                    "movements",
                    movement.id,
                    {
                        "sale_payment_id": str(payment.id),
                        "movement_method": movement.method.value,
                        "payment_method": payment.method.value,
                        "movement_amount": str(to_money(movement.amount)),
                        "payment_amount": str(to_money(payment.amount)),
                    },
                )
            )
    for payment in ledger.payments:
        if linked[payment.id] != 1:
            findings.append(
                _finding(
                    "sale_payment_match",
                    SEVERITY_CRITICAL,
                    ledger,
                    "Payment record must be linked to exactly one SALE movement.",
                    "sale_payments",
                    payment.id,
                    {"sale_id": str(payment.sale_id), "movement_count": linked[payment.id]},
                )
            )
    return _count("sale_payment_match", findings)


def _was_authorized(withdrawal: Withdrawal) -> bool:
    if withdrawal.status in LINKED_WITHDRAWAL_STATUSES:
        return True
    return withdrawal.status == WithdrawalStatus.CANCELLED and withdrawal.authorized_at is not None


def check_withdrawal_movement_link(ledger: _SessionLedger) -> list[LedgerFinding]:
    links: Counter = Counter(
        movement.withdrawal_id
        for movement in ledger.movements
        if movement.kind == MovementKind.WITHDRAWAL and movement.withdrawal_id is not None
    )
    findings = []
    for withdrawal in ledger.withdrawals:
        expected = 1 if _was_authorized(withdrawal) else 0
        if links[withdrawal.id] != expected:
            findings.append(
                _finding(
                    "withdrawal_movement_link",
                    SEVERITY_CRITICAL,
                    ledger,
                    "Withdrawal movement count does not match its status.",
                    "withdrawals",
                    withdrawal.id,
                    {
                        "status": withdrawal.status.value,
                        "expected_movements": expected,
                        "movement_count": links[withdrawal.id],
                    },
                )
            )
    return _count("withdrawal_movement_link", findings)


def check_expense_movement_link(ledger: _SessionLedger) -> list[LedgerFinding]:
    links: Counter = Counter(
        movement.expense_id
        for movement in ledger.movements
        if movement.kind == MovementKind.EXPENSE and movement.expense_id is not None
    )
    findings = []
    for expense in ledger.expenses:
        if links[expense.id] != 1:
            findings.append(
                _finding(
                    "expense_movement_link",
                    SEVERITY_CRITICAL,
                    ledger,
                    "Expense must have exactly one EXPENSE movement.",
                    "expenses",
                    expense.id,
                    {"category": expense.category.value, "movement_count": links[expense.id]},
                )
            )
    return _count("expense_movement_link", findings)


def check_linked_movement_offset(ledger: _SessionLedger) -> list[LedgerFinding]:
    offset_by_original = {m.offsets_movement_id: m for m in ledger.movements if m.offsets_movement_id is not None}
    withdrawals = {withdrawal.id: withdrawal for withdrawal in ledger.withdrawals}
    findings = []
    for movement in ledger.movements:
        offset = offset_by_original.get(movement.id)
        if movement.kind == MovementKind.WITHDRAWAL and movement.withdrawal_id in withdrawals:
            withdrawal = withdrawals[movement.withdrawal_id]
            # only a cancellation may reverse the cash effect of an authorized withdrawal
            cancelled = withdrawal.status == WithdrawalStatus.CANCELLED
            if cancelled == (offset is not None):
                continue
            message = (
                "Cancelled withdrawal still reduces expected cash."
                if cancelled
                else "Withdrawal movement was offset while the withdrawal is still in effect."
            )
            findings.append(
                _finding(
                    "linked_movement_offset",
                    SEVERITY_CRITICAL,
                    ledger,
                    message,
                    "withdrawals",
                    withdrawal.id,
                    {
                        "status": withdrawal.status.value,
                        "movement_id": str(movement.id),
                        "offset_movement_id": str(offset.id) if offset is not None else None,
                    },
                )
            )
        elif movement.kind == MovementKind.EXPENSE and offset is not None:
            findings.append(
                _finding(
                    "linked_movement_offset",
                    SEVERITY_CRITICAL,
                    ledger,
                    "Expense movement was offset; expenses are never reversed.",
                    "expenses",
                    movement.expense_id,
                    {"movement_id": str(movement.id), "offset_movement_id": str(offset.id)},
                )
            )
    return _count("linked_movement_offset", findings)


def check_cross_session_shift_reference(db, ledger: _SessionLedger) -> list[LedgerFinding]:
    own = {shift.id for shift in ledger.shifts}
    foreign_ids = {m.shift_id for m in ledger.movements if m.shift_id is not None and m.shift_id not in own}
    if not foreign_ids:
        return []
    owners = dict(db.execute(select(Shift.id, Shift.session_id).where(Shift.id.in_(foreign_ids))).all())
    findings = []
    for movement in ledger.movements:
        if movement.shift_id in foreign_ids:
            owner = owners.get(movement.shift_id)
            findings.append(
                _finding(
                    "cross_session_shift_reference",
                    SEVERITY_CRITICAL,
                    ledger,
                    "Movement references a shift of another session.",
                    "movements",
                    movement.id,
                    {"shift_id": str(movement.shift_id), "shift_session_id": str(owner) if owner else None},
                )
            )
    return _count("cross_session_shift_reference", findings)


def check_cached_expected_cash(ledger: _SessionLedger, policy: LedgerPolicy) -> list[LedgerFinding]:
    session = ledger.session
    findings = []
    recomputed = summarize(ledger.movements).expected_cash(to_money(session.initial_float))
    cached = to_money(session.expected_cash)
    if abs(recomputed - cached) > policy.audit_cache_tolerance:
        findings.append(
            _finding(
                "cached_expected_cash",
                SEVERITY_CRITICAL,
                ledger,
                "Cached session expected cash differs from the ledger.",
                "cash_sessions",
                session.id,
                {"cached": str(cached), "recomputed": str(recomputed), "difference": str(cached - recomputed)},
            )
        )
    for shift in ledger.shifts:
        # closed shifts keep the snapshot taken at close
        if shift.expected_cash is None or shift.status == ShiftStatus.CLOSED:
            continue
        own = [movement for movement in ledger.movements if movement.shift_id == shift.id]
        shift_expected = summarize(own).expected_cash(to_money(shift.starting_cash))
        if abs(shift_expected - to_money(shift.expected_cash)) > policy.audit_cache_tolerance:
            findings.append(
                _finding(
                    "cached_expected_cash",
                    SEVERITY_WARN,
                    ledger,
                    "Cached shift expected cash differs from the ledger.",
                    "shifts",
                    shift.id,
                    {"cached": str(to_money(shift.expected_cash)), "recomputed": str(shift_expected)},
                )
            )
    return _count("cached_expected_cash", findings)


def check_negative_running_total(ledger: _SessionLedger) -> list[LedgerFinding]:
    session = ledger.session
    findings = []
    negative = {name: str(getattr(session, name)) for name in RUNNING_TOTAL_FIELDS if to_money(getattr(session, name)) < 0}
    if negative:
        findings.append(
            _finding(
                "negative_running_total",
                SEVERITY_CRITICAL,
                ledger,
                "Session running totals must never be negative.",
                "cash_sessions",
                session.id,
                {"fields": negative},
            )
        )
    recomputed = summarize(ledger.movements).expected_cash(to_money(session.initial_float))
    if recomputed < 0:
        findings.append(
            _finding(
                "negative_running_total",
                SEVERITY_WARN,
                ledger,
                "Expected cash in the drawer is negative.",
                "cash_sessions",
                session.id,
                {"expected_cash": str(recomputed)},
            )
        )
    return _count("negative_running_total", findings)


def run_ledger_checks(db, session_id, *, policy: LedgerPolicy | None = None) -> list[LedgerFinding]:
    session = db.get(CashSession, session_id)
    if session is None:
        return []
    ledger = _load(db, session)
    return _run(db, ledger, policy or LedgerPolicy.from_settings())


def _run(db, ledger: _SessionLedger, policy: LedgerPolicy) -> list[LedgerFinding]:
    findings: list[LedgerFinding] = []
    findings.extend(check_sale_payment_match(ledger))
    findings.extend(check_withdrawal_movement_link(ledger))
    findings.extend(check_expense_movement_link(ledger))
    findings.extend(check_linked_movement_offset(ledger))
    findings.extend(check_cross_session_shift_reference(db, ledger))
    findings.extend(check_cached_expected_cash(ledger, policy))
    findings.extend(check_negative_running_total(ledger))
    return findings


def summarize_findings(findings: list[LedgerFinding]) -> dict:
    counts = Counter(f.severity for f in findings)
    return {
        "total": len(findings),
        "critical": counts.get(SEVERITY_CRITICAL, 0),
        "warn": counts.get(SEVERITY_WARN, 0),
    }


def build_audit_report(db, session: CashSession, *, policy: LedgerPolicy | None = None) -> dict:
    """Read-only consistency report for one cash session; nothing is repaired."""
    policy = policy or LedgerPolicy.from_settings()
    ledger = _load(db, session)
    findings = _run(db, ledger, policy)
    recomputed = summarize(ledger.movements).expected_cash(to_money(session.initial_float))
    cached = to_money(session.expected_cash)
    return {
        "session_id": str(session.id),
        "status": session.status.value,
        "consistent": not findings,
        "summary": summarize_findings(findings),
        "findings": [asdict(finding) for finding in findings],
        "expected_cash": {
            "cached": cached,
            "recomputed": recomputed,
            "difference": cached - recomputed,
        },
        "stats": {
            "movements": len(ledger.movements),
            "sale_payments": len(ledger.payments),
            "withdrawals": len(ledger.withdrawals),
            "expenses": len(ledger.expenses),
            "shifts": len(ledger.shifts),
            "sales_total": sum(
                (to_money(m.amount) for m in ledger.movements if m.kind == MovementKind.SALE),
                Decimal("0.00"),
            ),
        },
    }
