import uuid

from app.ledger.core.enums import Role
from app.ledger.core.error_catalog import ErrorCatalog
from tests.ledger_helpers import auth_headers, close_session, get_session, make_actor, money, open_session, record_sale


def _pending_reconciliation(client, cashier, *, counted="130000"):
    session = open_session(client, cashier, initial_float="100000")
    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "45000"}])
    response = close_session(client, cashier, session["id"], counted)
    assert response.status_code == 200
    return session, response.json()


def test_breakdown_template_lists_denominations(client):
    response = client.get("/ledger/reconciliations/breakdown-template", headers=auth_headers(make_actor()))
    assert response.status_code == 200
    body = response.json()
    assert body["currency"] == "COP"
    assert body["rows"][0]["denomination"] == "100000"
    assert body["rows"][0]["kind"] == "bill"
    assert body["rows"][-1]["kind"] == "coin"
    assert all(row["count"] == 0 for row in body["rows"])


def test_breakdown_rejects_unknown_denomination(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="3000")

    response = close_session(client, cashier, session["id"], "3000", breakdown=[{"denomination": "3000", "count": 1}])
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.BREAKDOWN_MISMATCH.code


def test_out_of_tolerance_count_blocks_new_entries(client):
    cashier = make_actor()
    session, body = _pending_reconciliation(client, cashier)
    assert body["closed"] is False
    assert body["session"]["status"] == "OPEN"

    response = client.post(
        "/ledger/sales",
        headers=auth_headers(cashier),
        json={"session_id": session["id"], "sale_id": str(uuid.uuid4()), "payments": [{"method": "CASH", "amount": "10"}]},
    )
    assert response.status_code == 409
    assert response.json()["code"] == ErrorCatalog.RECONCILIATION_PENDING.code


def test_repeating_the_same_count_returns_pending_reconciliation(client):
    cashier = make_actor()
    session, body = _pending_reconciliation(client, cashier)

    again = close_session(client, cashier, session["id"], "130000")
    assert again.status_code == 200
    assert again.json()["reconciliation"]["id"] == body["reconciliation"]["id"]

    different = close_session(client, cashier, session["id"], "131000")
    assert different.status_code == 409
    assert different.json()["code"] == ErrorCatalog.RECONCILIATION_PENDING.code


def test_approval_rules(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session, body = _pending_reconciliation(client, cashier)
    reconciliation_id = body["reconciliation"]["id"]

    by_cashier = client.post(
        f"/ledger/reconciliations/{reconciliation_id}/approve",
        headers=auth_headers(cashier),
        json={"notes": "counted again, same result"},
    )
    assert by_cashier.status_code == 403
    assert by_cashier.json()["code"] == ErrorCatalog.FORBIDDEN.code

    pending = client.get("/ledger/reconciliations/pending", headers=auth_headers(supervisor))
    assert pending.status_code == 200
    assert reconciliation_id in {row["id"] for row in pending.json()["rows"]}

    approved = client.post(
        f"/ledger/reconciliations/{reconciliation_id}/approve",
        headers=auth_headers(supervisor),
        json={"notes": "shortage reported to store manager"},
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["approved_by"] == str(supervisor.actor_id)

    closed = get_session(client, cashier, session["id"])
    assert closed["status"] == "CLOSED"
    assert closed["balanced"] is False
    assert closed["closed_by"] == str(supervisor.actor_id)

    twice = client.post(
        f"/ledger/reconciliations/{reconciliation_id}/approve",
        headers=auth_headers(supervisor),
        json={"notes": "shortage reported to store manager"},
    )
    assert twice.status_code == 409
    assert twice.json()["code"] == ErrorCatalog.RECONCILIATION_NOT_PENDING.code

    detail = client.get(f"/ledger/sessions/{session['id']}/reconciliation", headers=auth_headers(cashier))
    assert detail.status_code == 200
    assert detail.json()["id"] == reconciliation_id


def test_unknown_reconciliation(client):
    response = client.post(
        f"/ledger/reconciliations/{uuid.uuid4()}/approve",
        headers=auth_headers(make_actor(Role.ADMIN)),
        json={"notes": "approving something that does not exist"},
    )
    assert response.status_code == 404
    assert response.json()["code"] == ErrorCatalog.RECONCILIATION_NOT_FOUND.code


def test_count_over_expected_is_classified_over(client):
    cashier = make_actor()
    _session, body = _pending_reconciliation(client, cashier, counted="160000")
    reconciliation = body["reconciliation"]
    assert reconciliation["difference_type"] == "OVER"
    assert money(reconciliation["difference"]) == money("15000")
    assert money(reconciliation["expected_total"]) == money("145000")
