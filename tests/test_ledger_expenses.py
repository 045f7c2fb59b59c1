from app.ledger.core.enums import Role
from app.ledger.core.error_catalog import ErrorCatalog
from tests.ledger_helpers import auth_headers, get_session, make_actor, money, open_session


def _expense(client, actor, session_id, amount, *, category="SUPPLIES", authorizer=None, **extra):
    return client.post(
        "/ledger/expenses",
        headers=auth_headers(actor, authorizer=authorizer),
        json={
            "session_id": session_id,
            "amount": str(amount),
            "category": category,
            "description": "cleaning products",
            **extra,
        },
    )


def test_expense_below_threshold_is_recorded(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="100000")

    response = _expense(client, cashier, session["id"], "12000", invoice_number="F-100", beneficiary="Store Co")
    assert response.status_code == 201
    body = response.json()
    assert body["category"] == "SUPPLIES"
    assert body["authorized_by"] is None
    assert body["invoice_number"] == "F-100"

    session_body = get_session(client, cashier, session["id"])
    assert money(session_body["total_expenses"]) == money("12000")
    assert money(session_body["expected_cash"]) == money("88000")

    fetched = client.get(f"/ledger/expenses/{body['id']}", headers=auth_headers(cashier))
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]


def test_expense_above_threshold_with_authorizer(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="800000")

    response = _expense(client, cashier, session["id"], "600000", category="MAINTENANCE", authorizer=supervisor)
    assert response.status_code == 201
    assert response.json()["authorized_by"] == str(supervisor.actor_id)
    assert money(get_session(client, cashier, session["id"])["expected_cash"]) == money("200000")


def test_expense_authorizer_needs_authority(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="800000")

    response = _expense(client, cashier, session["id"], "600000", authorizer=make_actor())
    assert response.status_code == 403
    assert response.json()["code"] == ErrorCatalog.FORBIDDEN.code


def test_expense_rejects_unknown_category_and_empty_description(client):
    cashier = make_actor()
    session = open_session(client, cashier)

    unknown = _expense(client, cashier, session["id"], "1000", category="PARTY")
    assert unknown.status_code == 422

    empty = client.post(
        "/ledger/expenses",
        headers=auth_headers(cashier),
        json={"session_id": session["id"], "amount": "1000", "category": "OTHER", "description": "  "},
    )
    assert empty.status_code == 422
    assert empty.json()["details"]["field"] == "description"


def test_non_cash_expense_needs_method_balance(client):
    cashier = make_actor()
    session = open_session(client, cashier)

    response = _expense(client, cashier, session["id"], "1000", method="TRANSFER")
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.INSUFFICIENT_FUNDS.code


def test_expense_totals_by_category(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="100000")
    _expense(client, cashier, session["id"], "1000", category="SUPPLIES")
    _expense(client, cashier, session["id"], "2500", category="SUPPLIES")
    _expense(client, cashier, session["id"], "4000", category="TRANSPORT")

    response = client.get(f"/ledger/sessions/{session['id']}/expenses/by-category", headers=auth_headers(cashier))
    assert response.status_code == 200
    totals = {key: money(value) for key, value in response.json()["totals"].items()}
    assert totals == {"SUPPLIES": money("3500"), "TRANSPORT": money("4000")}

    listed = client.get(
        "/ledger/expenses",
        params={"session_id": session["id"], "category": "TRANSPORT"},
        headers=auth_headers(cashier),
    )
    assert listed.json()["total"] == 1
