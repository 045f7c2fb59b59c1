import json
import uuid
from decimal import Decimal

from app.ledger.core.enums import Role
from app.ledger.core.security import Actor
from app.ledger.services.movements import MovementRecorder, SalePaymentLine
from app.ledger.services.sessions import SessionManager
from app.ops.ledger_scan import main, run_scan


def _database_url(db_session) -> str:
    return db_session.get_bind().url.render_as_string(hide_password=False)


def _session_with_sale(db_session):
    cashier = Actor(actor_id=uuid.uuid4(), role=Role.CASHIER)
    session = SessionManager(db_session).open(str(uuid.uuid4()), cashier, Decimal("100000"))
    MovementRecorder(db_session).record_sale(
        session.id, None, uuid.uuid4(), [SalePaymentLine(method="CASH", amount=Decimal("45000"))], cashier
    )
    return session


def test_scan_clean_session_json(db_session, capsys):
    session = _session_with_sale(db_session)

    exit_code = run_scan(str(session.id), "json", True, database_url=_database_url(db_session))
    captured = capsys.readouterr()
    payload = json.loads(captured.out)

    assert exit_code == 0
    assert payload["summary"]["sessions"] == 1
    assert payload["summary"]["critical"] == 0
    assert payload["sessions"][0]["consistent"] is True
    assert Decimal(payload["sessions"][0]["expected_cash"]["recomputed"]) == Decimal("145000")


def test_scan_fails_on_critical_when_requested(db_session, capsys):
    session = _session_with_sale(db_session)
    session.expected_cash = Decimal("150000")
    db_session.commit()
    url = _database_url(db_session)

    assert run_scan(str(session.id), "json", False, database_url=url) == 0
    capsys.readouterr()

    exit_code = run_scan(str(session.id), "json", True, database_url=url)
    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["summary"]["inconsistent_sessions"] == 1
    assert [f["check_id"] for f in payload["sessions"][0]["findings"]] == ["cached_expected_cash"]


def test_scan_missing_session_exits_2(db_session, capsys):
    exit_code = run_scan(str(uuid.uuid4()), "json", False, database_url=_database_url(db_session))
    captured = capsys.readouterr()

    assert exit_code == 2
    assert "Cash session not found" in captured.err


def test_scan_all_sessions_text_output(db_session, capsys):
    first = _session_with_sale(db_session)
    second = _session_with_sale(db_session)

    exit_code = main(["--session", "all", "--format", "text", "--database-url", _database_url(db_session)])
    output = capsys.readouterr().out

    assert exit_code == 0
    assert output.startswith("Ledger Scan Report")
    assert "Sessions scanned: 2" in output
    assert f"session={first.id}" in output
    assert f"session={second.id}" in output


def test_scan_open_selector_skips_closed_sessions(db_session, capsys):
    cashier = Actor(actor_id=uuid.uuid4(), role=Role.CASHIER)
    manager = SessionManager(db_session)
    closed = manager.open(str(uuid.uuid4()), cashier, Decimal("1000"))
    manager.close(closed.id, cashier, Decimal("1000"))
    still_open = _session_with_sale(db_session)

    exit_code = main(["--session", "open", "--format", "json", "--database-url", _database_url(db_session)])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert [report["session_id"] for report in payload["sessions"]] == [str(still_open.id)]
