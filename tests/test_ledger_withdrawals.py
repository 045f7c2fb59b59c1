from app.ledger.core.enums import Role
from app.ledger.core.error_catalog import ErrorCatalog
from tests.ledger_helpers import auth_headers, get_session, make_actor, money, open_session


def _request(client, actor, session_id, amount, reason="bank deposit"):
    return client.post(
        "/ledger/withdrawals",
        headers=auth_headers(actor),
        json={"session_id": session_id, "amount": str(amount), "reason": reason, "destination": "bank"},
    )


def _decide(client, actor, withdrawal_id, decision, notes=None):
    return client.post(
        f"/ledger/withdrawals/{withdrawal_id}/authorization",
        headers=auth_headers(actor),
        json={"decision": decision, "notes": notes},
    )


def test_small_withdrawal_is_authorized_immediately(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="100000")

    response = _request(client, cashier, session["id"], "30000")
    assert response.status_code == 201
    assert response.json()["status"] == "AUTHORIZED"

    body = get_session(client, cashier, session["id"])
    assert money(body["total_withdrawals"]) == money("30000")
    assert money(body["expected_cash"]) == money("70000")


def test_withdrawal_cannot_exceed_available_cash(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="20000")

    response = _request(client, cashier, session["id"], "25000")
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.INSUFFICIENT_FUNDS.code


def test_large_withdrawal_lifecycle(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="500000")

    pending = _request(client, cashier, session["id"], "200000")
    assert pending.status_code == 201
    withdrawal = pending.json()
    assert withdrawal["status"] == "PENDING"
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("500000")

    self_approval = _decide(client, cashier, withdrawal["id"], "APPROVE")
    assert self_approval.status_code == 403

    approved = _decide(client, supervisor, withdrawal["id"], "APPROVE", "night deposit")
    assert approved.status_code == 200
    assert approved.json()["status"] == "AUTHORIZED"
    assert approved.json()["authorized_by"] == str(supervisor.actor_id)
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("300000")

    completed = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/complete",
        headers=auth_headers(cashier),
        json={"receipt_reference": "DEP-0001"},
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"
    assert completed.json()["receipt_reference"] == "DEP-0001"
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("300000")

    cancel = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/cancel",
        headers=auth_headers(supervisor),
        json={"reason": "too late to cancel this"},
    )
    assert cancel.status_code == 409
    assert cancel.json()["code"] == ErrorCatalog.NOT_CANCELLABLE.code


def test_rejected_withdrawal_cannot_be_completed(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="500000")
    withdrawal = _request(client, cashier, session["id"], "150000").json()

    rejected = _decide(client, supervisor, withdrawal["id"], "REJECT", "not needed today")
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "REJECTED"

    complete = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/complete",
        headers=auth_headers(cashier),
        json={"receipt_reference": "DEP-0002"},
    )
    assert complete.status_code == 409
    assert complete.json()["code"] == ErrorCatalog.NOT_AUTHORIZED.code
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("500000")


def test_pending_withdrawal_is_cancelled_by_requester_only(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="500000")
    withdrawal = _request(client, cashier, session["id"], "150000").json()

    by_other = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/cancel",
        headers=auth_headers(make_actor(Role.SUPERVISOR)),
        json={},
    )
    assert by_other.status_code == 403

    response = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/cancel",
        headers=auth_headers(cashier),
        json={"reason": "changed my mind"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"


def test_cancel_authorized_withdrawal_restores_expected_cash(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="100000")
    withdrawal = _request(client, cashier, session["id"], "40000").json()
    assert withdrawal["status"] == "AUTHORIZED"

    by_cashier = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/cancel",
        headers=auth_headers(cashier),
        json={"reason": "courier did not arrive"},
    )
    assert by_cashier.status_code == 403

    response = client.post(
        f"/ledger/withdrawals/{withdrawal['id']}/cancel",
        headers=auth_headers(supervisor),
        json={"reason": "courier did not arrive"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    body = get_session(client, cashier, session["id"])
    assert money(body["expected_cash"]) == money("100000")

    movements = client.get(f"/ledger/sessions/{session['id']}/movements", headers=auth_headers(cashier)).json()
    kinds = sorted(row["kind"] for row in movements["rows"])
    assert kinds == ["MANUAL_INCOME", "WITHDRAWAL"]


def test_list_withdrawals_by_status(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="500000")
    small = _request(client, cashier, session["id"], "1000").json()
    large = _request(client, cashier, session["id"], "150000").json()

    response = client.get(
        "/ledger/withdrawals",
        params={"session_id": session["id"], "status": "PENDING"},
        headers=auth_headers(cashier),
    )
    assert response.status_code == 200
    ids = [row["id"] for row in response.json()["rows"]]
    assert ids == [large["id"]]
    assert small["id"] not in ids
