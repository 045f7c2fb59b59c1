import logging
from dataclasses import dataclass

from app.ledger.core.errors import json_safe
from app.ledger.db.models import AuditEvent, utcnow
from app.ledger.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    actor_id: str | None
    actor_role: str | None
    trace_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    session_id: str | None = None
    before: dict | None = None
    after: dict | None = None
    metadata: dict | None = None
    result: str = "success"


class AuditService:
    """Best-effort audit trail.

    Runs after the ledger transaction has committed; failures are logged and
    swallowed so that a committed cash operation is never reported as failed.
    """

    def __init__(self, db):
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload) -> None:
        try:
            event = AuditEvent(
                actor_id=payload.actor_id,
                actor_role=payload.actor_role,
                trace_id=payload.trace_id,
                action=payload.action,
                entity_type=payload.entity_type,
                entity_id=payload.entity_id,
                session_id=payload.session_id,
                before_payload=json_safe(payload.before),
                after_payload=json_safe(payload.after),
                event_metadata=json_safe(payload.metadata or {}),
                result=payload.result,
                created_at=utcnow(),
            )
            self.repo.create(event)
        except Exception:
            self.repo.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={
                    "action": payload.action,
                    "trace_id": payload.trace_id,
                    "entity_id": payload.entity_id,
                },
            )


def record_ledger_event(
    db,
    request,
    actor,
    *,
    action: str,
    entity_type: str,
    entity_id,
    session_id=None,
    before: dict | None = None,
    after: dict | None = None,
    metadata: dict | None = None,
) -> None:
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=str(actor.actor_id),
            actor_role=actor.role.value,
            trace_id=getattr(request.state, "trace_id", None),
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            session_id=str(session_id) if session_id is not None else None,
            before=before,
            after=after,
            metadata=metadata,
        )
    )
