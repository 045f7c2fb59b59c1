from __future__ import annotations

import argparse
import json
import sys
import uuid

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from app.ledger.core import config
from app.ledger.core.db_timing import measure_db_time
from app.ledger.db.models import CashSession
from app.ledger.core.policy import LedgerPolicy
from app.ledger.db.session import install_db_timing
from app.ops.ledger_checks import build_audit_report, resolve_sessions


def _summarize(reports: list[dict]) -> dict:
    return {
        "sessions": len(reports),
        "inconsistent_sessions": sum(1 for report in reports if not report["consistent"]),
        "total": sum(report["summary"]["total"] for report in reports),
        "critical": sum(report["summary"]["critical"] for report in reports),
        "warn": sum(report["summary"]["warn"] for report in reports),
    }


def _format_text(summary: dict, reports: list[dict]) -> str:
    lines = [
        "Ledger Scan Report",
        f"Sessions scanned: {summary['sessions']}",
        f"Total findings: {summary['total']}",
        f"CRITICAL: {summary['critical']}",
        f"WARN: {summary['warn']}",
        "",
    ]
    for report in reports:
        expected = report["expected_cash"]
        lines.append(
            f"session={report['session_id']} status={report['status']} consistent={report['consistent']} "
            f"expected_cash={expected['recomputed']} cached={expected['cached']}"
        )
        for finding in report["findings"]:
            lines.append(
                f"[{finding['severity']}] {finding['check_id']} "
                f"entity={finding['entity']} id={finding['entity_id'] or '-'} {finding['message']}"
            )
            if finding["details"]:
                lines.append(f"  details={json.dumps(finding['details'], default=str)}")
    return "\n".join(lines)


def _engine(database_url: str):
    options = {}
    if make_url(database_url).get_backend_name() == "postgresql":
        # one consistent snapshot for every check of the scan
        options["isolation_level"] = "REPEATABLE READ"
    engine = create_engine(database_url, future=True, **options)
    install_db_timing(engine)
    return engine


def run_scan(session: str, output_format: str, fail_on_critical: bool, *, database_url: str | None = None) -> int:
    settings = config.settings
    if not settings.OPS_ENABLE_LEDGER_SCAN:
        print("Ledger scan disabled by OPS_ENABLE_LEDGER_SCAN.", file=sys.stderr)
        return 2
    policy = LedgerPolicy.from_settings(settings)
    engine = _engine(database_url or settings.DATABASE_URL)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    reports: list[dict] = []
    missing: list[str] = []
    try:
        with measure_db_time() as timing, SessionLocal() as db:
            with db.begin():
                for session_id in resolve_sessions(db, session):
                    cash_session = _load_session(db, session_id)
                    if cash_session is None:
                        missing.append(session_id)
                        continue
                    reports.append(build_audit_report(db, cash_session, policy=policy))
    finally:
        engine.dispose()
    if missing:
        print(f"Cash session not found: {', '.join(missing)}", file=sys.stderr)
        return 2
    summary = _summarize(reports)
    summary["db_time_ms"] = timing["db_time_ms"]
    output = {"summary": summary, "sessions": reports}
    if output_format == "json":
        print(json.dumps(output, indent=2, default=str))
    else:
        print(_format_text(summary, reports))
    if fail_on_critical and summary["critical"] > 0:
        return 1
    return 0


def _load_session(db, session_id: str) -> CashSession | None:
    try:
        key = uuid.UUID(session_id)
    except ValueError:
        return None
    return db.get(CashSession, key)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Cash ledger consistency scan")
    parser.add_argument("--session", required=True, help="Cash session ID, 'open' or 'all'")
    parser.add_argument("--format", choices=["json", "text"], default="text")
    parser.add_argument("--fail-on-critical", action="store_true")
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args(argv)
    return run_scan(args.session, args.format, args.fail_on_critical, database_url=args.database_url)


if __name__ == "__main__":
    raise SystemExit(main())
