from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.ledger.core.capabilities import Capability
from app.ledger.core.deps import require_actor_capability
from app.ledger.core.error_catalog import validation_error
from app.ledger.db.session import get_db
from app.ledger.repos.audit import AuditRepository
from app.ledger.schemas.audit import AuditEventListResponse, audit_event_response


router = APIRouter()


@router.get("/ledger/audit-events", response_model=AuditEventListResponse)
def list_audit_events(
    session_id: UUID | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    _actor=Depends(require_actor_capability(Capability.AUDIT)),
    db=Depends(get_db),
):
    repo = AuditRepository(db)
    if session_id is not None:
        rows = repo.list_for_session(session_id)
    elif entity_type and entity_id:
        rows = repo.list_for_entity(entity_type, entity_id)
    else:
        raise validation_error("session_id", "session_id or entity_type and entity_id are required")
    return AuditEventListResponse(rows=[audit_event_response(row) for row in rows], total=len(rows))
