from __future__ import annotations

import uuid
from decimal import Decimal

from app.ledger.core.enums import Role
from app.ledger.core.security import AUTHORIZER_TOKEN_HEADER, Actor, create_actor_access_token


def make_actor(role: Role = Role.CASHIER, *, name: str | None = None) -> Actor:
    return Actor(actor_id=uuid.uuid4(), role=role, name=name or role.value.lower())


def auth_headers(actor: Actor, *, idempotency_key: str | None = None, authorizer: Actor | None = None) -> dict:
    headers = {"Authorization": f"Bearer {create_actor_access_token(actor)}"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    if authorizer is not None:
        headers[AUTHORIZER_TOKEN_HEADER] = create_actor_access_token(authorizer)
    return headers


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def open_session(client, actor: Actor, *, initial_float="100000", register_id: str | None = None) -> dict:
    response = client.post(
        "/ledger/sessions",
        headers=auth_headers(actor),
        json={"register_id": register_id or str(uuid.uuid4()), "initial_float": str(initial_float)},
    )
    assert response.status_code == 201, response.text
    return response.json()


def start_shift(client, actor: Actor, session_id: str, **extra) -> dict:
    response = client.post(
        "/ledger/shifts",
        headers=auth_headers(actor),
        json={"session_id": session_id, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


def record_sale(client, actor: Actor, session_id: str, payments: list[dict], *, shift_id: str | None = None) -> dict:
    response = client.post(
        "/ledger/sales",
        headers=auth_headers(actor),
        json={
            "session_id": session_id,
            "shift_id": shift_id,
            "sale_id": str(uuid.uuid4()),
            "payments": payments,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def get_session(client, actor: Actor, session_id: str) -> dict:
    response = client.get(f"/ledger/sessions/{session_id}", headers=auth_headers(actor))
    assert response.status_code == 200, response.text
    return response.json()


def close_session(client, actor: Actor, session_id: str, counted_cash, **extra):
    return client.post(
        f"/ledger/sessions/{session_id}/close",
        headers=auth_headers(actor),
        json={"counted_cash": str(counted_cash), **extra},
    )
