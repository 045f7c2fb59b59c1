import uuid

from sqlalchemy import select

from app.ledger.core.enums import MovementKind, Role
from app.ledger.core.error_catalog import ErrorCatalog
from app.ledger.db.models import Movement, Shift
from app.ledger.repos.sessions import CashSessionRepository
from app.ledger.repos.shifts import ShiftRepository
from tests.ledger_helpers import (
    auth_headers,
    close_session,
    get_session,
    make_actor,
    money,
    open_session,
    record_sale,
    start_shift,
)


def test_cash_sale_then_exact_count_closes_balanced(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="100000")
    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "45000"}])
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("145000")

    response = close_session(client, cashier, session["id"], "145000")
    assert response.status_code == 200
    body = response.json()
    assert body["session"]["status"] == "CLOSED"
    assert money(body["session"]["difference"]) == money("0")
    assert body["reconciliation"]["status"] == "FINALIZED"


def test_short_count_requires_supervisor_approval_with_notes(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="100000")
    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "45000"}])

    response = close_session(client, cashier, session["id"], "130000")
    assert response.status_code == 200
    reconciliation = response.json()["reconciliation"]
    assert reconciliation["status"] == "PENDING_APPROVAL"
    assert reconciliation["difference_type"] == "SHORT"
    assert money(reconciliation["difference"]) == money("-15000")
    assert get_session(client, cashier, session["id"])["status"] == "OPEN"

    short_notes = client.post(
        f"/ledger/reconciliations/{reconciliation['id']}/approve",
        headers=auth_headers(supervisor),
        json={"notes": "ok"},
    )
    assert short_notes.status_code == 403
    assert short_notes.json()["code"] == ErrorCatalog.APPROVAL_NOTES_REQUIRED.code

    approved = client.post(
        f"/ledger/reconciliations/{reconciliation['id']}/approve",
        headers=auth_headers(supervisor),
        json={"notes": "recount confirmed the shortage"},
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert get_session(client, cashier, session["id"])["status"] == "CLOSED"


def test_withdrawal_cannot_complete_before_authorization(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="250000")

    requested = client.post(
        "/ledger/withdrawals",
        headers=auth_headers(cashier),
        json={"session_id": session["id"], "amount": "200000", "reason": "bank deposit"},
    )
    assert requested.status_code == 201
    withdrawal = requested.json()
    assert withdrawal["status"] == "PENDING"

    early = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/complete",
        headers=auth_headers(cashier),
        json={"receipt_reference": "DEP-42"},
    )
    assert early.status_code == 409
    assert early.json()["code"] == ErrorCatalog.NOT_AUTHORIZED.code

    client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/authorization",
        headers=auth_headers(supervisor),
        json={"decision": "APPROVE"},
    )
    completed = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/complete",
        headers=auth_headers(cashier),
        json={"receipt_reference": "DEP-42"},
    )
    assert completed.status_code == 200
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("50000")


def test_concurrent_shift_start_loses_on_unique_index(client, db_session, monkeypatch):
    cashier = make_actor()
    session = open_session(client, cashier)
    start_shift(client, cashier, session["id"])

    # Simulate a second start that passed the read check before the first one committed.
    monkeypatch.setattr(ShiftRepository, "get_open_for_cashier", lambda self, cashier_id: None)

    response = client.post("/ledger/shifts", headers=auth_headers(cashier), json={"session_id": session["id"]})
    assert response.status_code == 409
    assert response.json()["code"] == ErrorCatalog.ALREADY_ACTIVE.code

    shifts = db_session.execute(select(Shift).where(Shift.cashier_id == cashier.actor_id)).scalars().all()
    assert len(shifts) == 1


def test_concurrent_session_open_loses_on_unique_index(client, monkeypatch):
    register_id = str(uuid.uuid4())
    open_session(client, make_actor(), register_id=register_id)

    monkeypatch.setattr(CashSessionRepository, "get_open_for_register", lambda self, register_id: None)

    response = client.post(
        "/ledger/sessions",
        headers=auth_headers(make_actor()),
        json={"register_id": register_id, "initial_float": "1000"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == ErrorCatalog.SESSION_ALREADY_OPEN.code


def test_large_expense_without_authorizer_changes_nothing(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="1000000")

    response = client.post(
        "/ledger/expenses",
        headers=auth_headers(cashier),
        json={
            "session_id": session["id"],
            "amount": "600000",
            "category": "MAINTENANCE",
            "description": "air conditioning repair",
        },
    )
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.AUTHORIZATION_REQUIRED.code
    assert response.json()["details"]["field"] == "authorizer"

    body = get_session(client, cashier, session["id"])
    assert money(body["expected_cash"]) == money("1000000")
    assert money(body["total_expenses"]) == money("0")
    listed = client.get("/ledger/expenses", params={"session_id": session["id"]}, headers=auth_headers(cashier))
    assert listed.json()["total"] == 0


def test_auditor_flags_sale_movement_that_differs_from_payment(client, db_session):
    cashier = make_actor()
    auditor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="100000")
    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "45000"}])

    clean = client.get(f"/ledger/sessions/{session['id']}/audit", headers=auth_headers(auditor))
    assert clean.status_code == 200
    assert clean.json()["consistent"] is True

    movement = db_session.execute(
        select(Movement).where(Movement.session_id == uuid.UUID(session["id"]), Movement.kind == MovementKind.SALE)
    ).scalar_one()
    movement.amount = money("40000")
    db_session.commit()

    response = client.get(f"/ledger/sessions/{session['id']}/audit", headers=auth_headers(auditor))
    assert response.status_code == 200
    report = response.json()
    assert report["consistent"] is False
    mismatches = [row for row in report["findings"] if row["check_id"] == "sale_payment_match"]
    assert len(mismatches) == 1
    assert mismatches[0]["severity"] == "CRITICAL"
    assert mismatches[0]["entity_id"] == str(movement.id)
    assert mismatches[0]["details"]["payment_amount"] == "45000.00"
    assert money(report["expected_cash"]["recomputed"]) == money("140000")
    assert money(report["expected_cash"]["cached"]) == money("145000")
