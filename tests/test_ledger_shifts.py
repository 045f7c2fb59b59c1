from app.ledger.core.enums import Role
from app.ledger.core.error_catalog import ErrorCatalog
from tests.ledger_helpers import auth_headers, make_actor, money, open_session, record_sale, start_shift


def _close_shift(client, actor, shift_id, ending_cash, **extra):
    return client.post(
        f"/ledger/shifts/{shift_id}/close",
        headers=auth_headers(actor),
        json={"ending_cash": str(ending_cash), **extra},
    )


def test_start_shift_uses_session_float_as_starting_cash(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="80000")

    shift = start_shift(client, cashier, session["id"])
    assert shift["status"] == "ACTIVE"
    assert shift["relief_type"] == "NORMAL"
    assert shift["cashier_id"] == str(cashier.actor_id)
    assert money(shift["starting_cash"]) == money("80000")
    assert shift["previous_shift_id"] is None

    current = client.get("/ledger/shifts/current", headers=auth_headers(cashier))
    assert current.json()["shift"]["id"] == shift["id"]


def test_cashier_cannot_hold_two_open_shifts(client):
    cashier = make_actor()
    session = open_session(client, cashier)
    start_shift(client, cashier, session["id"])

    response = client.post("/ledger/shifts", headers=auth_headers(cashier), json={"session_id": session["id"]})
    assert response.status_code == 409
    assert response.json()["code"] == ErrorCatalog.ALREADY_ACTIVE.code


def test_sales_in_shift_update_shift_totals(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="50000")
    shift = start_shift(client, cashier, session["id"])

    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "20000"}], shift_id=shift["id"])
    record_sale(client, cashier, session["id"], [{"method": "TRANSFER", "amount": "7000"}], shift_id=shift["id"])

    response = client.get(f"/ledger/shifts/{shift['id']}", headers=auth_headers(cashier))
    assert response.status_code == 200
    body = response.json()
    assert money(body["cash_sales"]) == money("20000")
    assert money(body["transfer_sales"]) == money("7000")
    assert money(body["expected_cash"]) == money("70000")

    summary = client.get(f"/ledger/shifts/{shift['id']}/summary", headers=auth_headers(cashier))
    assert summary.status_code == 200
    assert summary.json()["movement_count"] == 2
    assert summary.json()["exceeds_max_duration"] is False


def test_close_shift_records_difference(client):
    cashier = make_actor()
    session = open_session(client, cashier, initial_float="50000")
    shift = start_shift(client, cashier, session["id"])
    record_sale(client, cashier, session["id"], [{"method": "CASH", "amount": "10000"}], shift_id=shift["id"])

    response = _close_shift(client, cashier, shift["id"], "59000", notes="end of morning")
    assert response.status_code == 200
    closed = response.json()["shift"]
    assert closed["status"] == "CLOSED"
    assert money(closed["expected_cash"]) == money("60000")
    assert money(closed["ending_cash"]) == money("59000")
    assert money(closed["difference"]) == money("-1000")
    assert response.json()["next_shift"] is None

    again = _close_shift(client, cashier, shift["id"], "59000")
    assert again.status_code == 409
    assert again.json()["code"] == ErrorCatalog.NOT_ACTIVE.code


def test_handover_starts_next_shift_with_ending_cash(client):
    cashier = make_actor()
    relief = make_actor()
    session = open_session(client, cashier, initial_float="50000")
    shift = start_shift(client, cashier, session["id"])

    response = _close_shift(client, cashier, shift["id"], "50000", next_cashier_id=str(relief.actor_id))
    assert response.status_code == 200
    next_shift = response.json()["next_shift"]
    assert next_shift["cashier_id"] == str(relief.actor_id)
    assert next_shift["status"] == "ACTIVE"
    assert next_shift["previous_shift_id"] == shift["id"]
    assert money(next_shift["starting_cash"]) == money("50000")


def test_next_shift_carries_over_last_closed_shift(client):
    cashier = make_actor()
    second = make_actor()
    session = open_session(client, cashier, initial_float="50000")
    shift = start_shift(client, cashier, session["id"])
    assert _close_shift(client, cashier, shift["id"], "48000").status_code == 200

    preview = client.get(f"/ledger/sessions/{session['id']}/starting-cash", headers=auth_headers(second))
    assert preview.status_code == 200
    assert preview.json()["source"] == "previous_shift"
    assert money(preview.json()["amount"]) == money("48000")

    follow_up = start_shift(client, second, session["id"])
    assert money(follow_up["starting_cash"]) == money("48000")
    assert follow_up["previous_shift_id"] == shift["id"]


def test_emergency_relief_requires_supervisor(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier)

    denied = client.post(
        "/ledger/shifts",
        headers=auth_headers(cashier),
        json={"session_id": session["id"], "relief_type": "EMERGENCY"},
    )
    assert denied.status_code == 403
    assert denied.json()["code"] == ErrorCatalog.FORBIDDEN.code

    response = client.post(
        "/ledger/shifts",
        headers=auth_headers(cashier, authorizer=supervisor),
        json={"session_id": session["id"], "relief_type": "EMERGENCY"},
    )
    assert response.status_code == 201
    assert response.json()["relief_type"] == "EMERGENCY"
    assert response.json()["authorized_by"] == str(supervisor.actor_id)


def test_supervisor_suspends_and_resumes_shift(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier)
    shift = start_shift(client, cashier, session["id"])

    by_cashier = client.post(
        f"/ledger/shifts/{shift['id']}/suspend",
        headers=auth_headers(cashier),
        json={"reason": "cashier wants a break"},
    )
    assert by_cashier.status_code == 403

    short_reason = client.post(
        f"/ledger/shifts/{shift['id']}/suspend",
        headers=auth_headers(supervisor),
        json={"reason": "break"},
    )
    assert short_reason.status_code == 422

    suspended = client.post(
        f"/ledger/shifts/{shift['id']}/suspend",
        headers=auth_headers(supervisor),
        json={"reason": "drawer count in progress"},
    )
    assert suspended.status_code == 200
    assert suspended.json()["status"] == "SUSPENDED"
    assert suspended.json()["suspended_by"] == str(supervisor.actor_id)

    blocked_sale = client.post(
        "/ledger/sales",
        headers=auth_headers(cashier),
        json={
            "session_id": session["id"],
            "shift_id": shift["id"],
            "sale_id": shift["id"],
            "payments": [{"method": "CASH", "amount": "1000"}],
        },
    )
    assert blocked_sale.status_code == 409
    assert blocked_sale.json()["code"] == ErrorCatalog.NOT_ACTIVE.code

    resumed = client.post(f"/ledger/shifts/{shift['id']}/resume", headers=auth_headers(supervisor), json={})
    assert resumed.status_code == 200
    assert resumed.json()["status"] == "ACTIVE"

    again = client.post(f"/ledger/shifts/{shift['id']}/resume", headers=auth_headers(supervisor), json={})
    assert again.status_code == 409
    assert again.json()["code"] == ErrorCatalog.NOT_SUSPENDED.code


def test_only_owner_or_admin_closes_shift(client):
    cashier = make_actor()
    session = open_session(client, cashier)
    shift = start_shift(client, cashier, session["id"])

    other = _close_shift(client, make_actor(), shift["id"], "100000")
    assert other.status_code == 403

    supervisor = _close_shift(client, make_actor(Role.SUPERVISOR), shift["id"], "100000")
    assert supervisor.status_code == 403

    admin = make_actor(Role.ADMIN)
    response = _close_shift(client, admin, shift["id"], "100000")
    assert response.status_code == 200
    assert response.json()["shift"]["closed_by"] == str(admin.actor_id)


def test_list_session_shifts(client):
    cashier = make_actor()
    session = open_session(client, cashier)
    first = start_shift(client, cashier, session["id"])
    second = start_shift(client, make_actor(), session["id"])

    response = client.get(f"/ledger/sessions/{session['id']}/shifts", headers=auth_headers(cashier))
    assert response.status_code == 200
    assert response.json()["total"] == 2
    assert {row["id"] for row in response.json()["rows"]} == {first["id"], second["id"]}


def test_suspended_cashier_cannot_write_without_shift_id(client):
    cashier = make_actor()
    supervisor = make_actor(Role.SUPERVISOR)
    session = open_session(client, cashier, initial_float="100000")
    shift = start_shift(client, cashier, session["id"])
    client.post(
        f"/ledger/shifts/{shift['id']}/suspend",
        headers=auth_headers(supervisor),
        json={"reason": "drawer count in progress"},
    )

    writes = [
        (
            "/ledger/movements",
            {"session_id": session["id"], "kind": "MANUAL_EXPENSE", "method": "CASH", "amount": "5000", "reason": "taxi"},
        ),
        ("/ledger/withdrawals", {"session_id": session["id"], "amount": "5000", "reason": "bank deposit"}),
        (
            "/ledger/expenses",
            {"session_id": session["id"], "amount": "5000", "category": "TRANSPORT", "description": "taxi"},
        ),
    ]
    for path, payload in writes:
        response = client.post(path, headers=auth_headers(cashier), json=payload)
        assert response.status_code == 409, path
        assert response.json()["code"] == ErrorCatalog.NOT_ACTIVE.code

    body = client.get(f"/ledger/sessions/{session['id']}", headers=auth_headers(cashier)).json()
    assert money(body["expected_cash"]) == money("100000")

    client.post(f"/ledger/shifts/{shift['id']}/resume", headers=auth_headers(supervisor), json={})
    path, payload = writes[0]
    assert client.post(path, headers=auth_headers(cashier), json=payload).status_code == 201
