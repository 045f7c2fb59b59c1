import uuid
from dataclasses import replace
from decimal import Decimal

from sqlalchemy import select

from app.ledger.core.enums import AuthorizationState, ExpenseCategory, MovementKind, Role, WithdrawalStatus
from app.ledger.core.policy import LedgerPolicy
from app.ledger.core.security import Actor
from app.ledger.db.models import Expense, Movement, Withdrawal
from app.ledger.services.expenses import ExpenseService
from app.ledger.services.movements import MovementRecorder, SalePaymentLine
from app.ledger.services.sessions import SessionManager
from app.ledger.services.shifts import ShiftManager
from app.ledger.services.withdrawals import WithdrawalService
from app.ops.ledger_checks import (
    SEVERITY_CRITICAL,
    SEVERITY_WARN,
    build_audit_report,
    resolve_sessions,
    run_ledger_checks,
    summarize_findings,
)


def _actor(role: Role = Role.CASHIER) -> Actor:
    return Actor(actor_id=uuid.uuid4(), role=role)


def _open(db_session, cashier: Actor, initial_float: str = "100000"):
    return SessionManager(db_session).open(str(uuid.uuid4()), cashier, Decimal(initial_float))


def _check_ids(findings) -> set[str]:
    return {finding.check_id for finding in findings}


def test_consistent_session_has_no_findings(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    recorder = MovementRecorder(db_session)
    recorder.record_sale(
        session.id,
        None,
        uuid.uuid4(),
        [SalePaymentLine(method="CASH", amount=Decimal("45000")), SalePaymentLine(method="CARD", amount=Decimal("5000"))],
        cashier,
    )
    WithdrawalService(db_session).request(session.id, None, Decimal("20000"), "bank deposit", cashier)

    assert run_ledger_checks(db_session, session.id) == []
    report = build_audit_report(db_session, session)
    assert report["consistent"] is True
    assert report["expected_cash"]["recomputed"] == Decimal("125000.00")
    assert report["stats"]["movements"] == 3
    assert report["stats"]["sales_total"] == Decimal("50000.00")


def test_withdrawal_without_movement_is_flagged(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    db_session.add(
        Withdrawal(
            session_id=session.id,
            amount=Decimal("1000"),
            reason="manual insert",
            status=WithdrawalStatus.AUTHORIZED,
            requested_by=cashier.actor_id,
        )
    )
    db_session.commit()

    findings = run_ledger_checks(db_session, session.id)
    assert _check_ids(findings) == {"withdrawal_movement_link"}
    assert findings[0].severity == SEVERITY_CRITICAL
    assert findings[0].details["movement_count"] == 0


def test_expense_without_movement_is_flagged(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    db_session.add(
        Expense(
            session_id=session.id,
            amount=Decimal("1000"),
            category=ExpenseCategory.OTHER,
            description="manual insert",
            requested_by=cashier.actor_id,
        )
    )
    db_session.commit()

    findings = run_ledger_checks(db_session, session.id)
    assert _check_ids(findings) == {"expense_movement_link"}


def test_movement_pointing_to_foreign_shift_is_flagged(db_session):
    cashier = _actor()
    other_cashier = _actor()
    session = _open(db_session, cashier)
    other_session = _open(db_session, other_cashier)
    foreign_shift = ShiftManager(db_session).start(other_session.id, other_cashier)

    movement = MovementRecorder(db_session).record(
        session.id, None, "MANUAL_INCOME", "CASH", Decimal("500"), "change fund", cashier
    )
    movement.shift_id = foreign_shift.id
    db_session.commit()

    findings = run_ledger_checks(db_session, session.id)
    assert _check_ids(findings) == {"cross_session_shift_reference"}
    assert findings[0].details["shift_session_id"] == str(other_session.id)


def test_cached_totals_drift_and_negative_totals(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    session.expected_cash = Decimal("90000")
    session.total_withdrawals = Decimal("-5")
    db_session.commit()

    findings = run_ledger_checks(db_session, session.id)
    by_check = {finding.check_id: finding for finding in findings}
    assert by_check["cached_expected_cash"].severity == SEVERITY_CRITICAL
    assert by_check["cached_expected_cash"].details["difference"] == "-10000.00"
    assert by_check["negative_running_total"].details["fields"] == {"total_withdrawals": "-5.00"}


def test_shift_cache_drift_is_a_warning(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    shift = ShiftManager(db_session).start(session.id, cashier)
    shift.expected_cash = Decimal("1")
    db_session.commit()

    findings = run_ledger_checks(db_session, session.id)
    assert [(f.check_id, f.severity) for f in findings] == [("cached_expected_cash", SEVERITY_WARN)]


def test_cache_tolerance_comes_from_policy(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    session.expected_cash = Decimal("100000.50")
    db_session.commit()

    strict = LedgerPolicy.from_settings()
    loose = replace(strict, audit_cache_tolerance=Decimal("1"))
    assert _check_ids(run_ledger_checks(db_session, session.id, policy=strict)) == {"cached_expected_cash"}
    assert run_ledger_checks(db_session, session.id, policy=loose) == []


def test_resolve_sessions_selectors(db_session):
    first = _open(db_session, _actor())
    second_cashier = _actor()
    second = _open(db_session, second_cashier, "1000")
    SessionManager(db_session).close(second.id, second_cashier, Decimal("1000"))

    assert sorted(resolve_sessions(db_session, "all")) == sorted([str(first.id), str(second.id)])
    assert resolve_sessions(db_session, "open") == [str(first.id)]
    assert resolve_sessions(db_session, str(second.id)) == [str(second.id)]


def test_summarize_findings_counts_by_severity(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    shift = ShiftManager(db_session).start(session.id, cashier)
    shift.expected_cash = Decimal("1")
    session.expected_cash = Decimal("1")
    db_session.commit()

    summary = summarize_findings(run_ledger_checks(db_session, session.id))
    assert summary == {"total": 2, "critical": 1, "warn": 1}
    assert summarize_findings([]) == {"total": 0, "critical": 0, "warn": 0}


def _withdrawal_movement(db_session, session_id):
    return db_session.execute(
        select(Movement).where(Movement.session_id == session_id, Movement.kind == MovementKind.WITHDRAWAL)
    ).scalar_one()


def _append_reversal(db_session, original, actor):
    db_session.add(
        Movement(
            session_id=original.session_id,
            kind=MovementKind.MANUAL_INCOME,
            method=original.method,
            amount=original.amount,
            reason="manual reversal",
            actor_id=actor.actor_id,
            authorization_state=AuthorizationState.AUTHORIZED,
            authorized_by=actor.actor_id,
            offsets_movement_id=original.id,
        )
    )
    db_session.commit()


def test_offset_of_withdrawal_in_effect_is_flagged(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    withdrawal = WithdrawalService(db_session).request(session.id, None, Decimal("30000"), "bank deposit", cashier)
    _append_reversal(db_session, _withdrawal_movement(db_session, session.id), _actor(Role.ADMIN))
    WithdrawalService(db_session).complete(withdrawal.id, "RCPT-1", cashier)

    findings = [f for f in run_ledger_checks(db_session, session.id) if f.check_id == "linked_movement_offset"]
    assert len(findings) == 1
    assert findings[0].severity == SEVERITY_CRITICAL
    assert findings[0].entity_id == str(withdrawal.id)
    assert findings[0].details["status"] == "COMPLETED"


def test_cancelled_withdrawal_without_offset_is_flagged(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    withdrawal = WithdrawalService(db_session).request(session.id, None, Decimal("30000"), "bank deposit", cashier)
    withdrawal.status = WithdrawalStatus.CANCELLED
    db_session.commit()

    findings = [f for f in run_ledger_checks(db_session, session.id) if f.check_id == "linked_movement_offset"]
    assert [f.details["offset_movement_id"] for f in findings] == [None]


def test_cancelled_withdrawal_with_offset_is_consistent(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    withdrawal = WithdrawalService(db_session).request(session.id, None, Decimal("30000"), "bank deposit", cashier)
    WithdrawalService(db_session).cancel(withdrawal.id, _actor(Role.SUPERVISOR), "courier did not arrive")

    assert run_ledger_checks(db_session, session.id) == []


def test_offset_of_expense_is_flagged(db_session):
    cashier = _actor()
    session = _open(db_session, cashier)
    expense = ExpenseService(db_session).create(session.id, None, Decimal("2000"), "SUPPLIES", "paper rolls", cashier)
    movement = db_session.execute(select(Movement).where(Movement.expense_id == expense.id)).scalar_one()
    _append_reversal(db_session, movement, _actor(Role.ADMIN))

    findings = [f for f in run_ledger_checks(db_session, session.id) if f.check_id == "linked_movement_offset"]
    assert [(f.entity, f.entity_id) for f in findings] == [("expenses", str(expense.id))]
