from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.ledger.schemas.common import id_or_none


class AuditEventResponse(BaseModel):
    id: str
    actor_id: str | None
    actor_role: str | None
    trace_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    session_id: str | None
    before: dict | None
    after: dict | None
    metadata: dict | None
    result: str
    created_at: datetime


class AuditEventListResponse(BaseModel):
    rows: list[AuditEventResponse]
    total: int


class LedgerFindingResponse(BaseModel):
    check_id: str
    severity: str
    session_id: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


class AuditSummaryResponse(BaseModel):
    total: int
    critical: int
    warn: int


class ExpectedCashComparison(BaseModel):
    cached: Decimal
    recomputed: Decimal
    difference: Decimal


class LedgerAuditReportResponse(BaseModel):
    session_id: str
    status: str
    consistent: bool
    summary: AuditSummaryResponse
    findings: list[LedgerFindingResponse]
    expected_cash: ExpectedCashComparison
    stats: dict


def audit_event_response(event) -> AuditEventResponse:
    return AuditEventResponse(
        id=str(event.id),
        actor_id=id_or_none(event.actor_id),
        actor_role=event.actor_role,
        trace_id=event.trace_id,
        action=event.action,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        session_id=id_or_none(event.session_id),
        before=event.before_payload,
        after=event.after_payload,
        metadata=event.event_metadata,
        result=event.result,
        created_at=event.created_at,
    )
