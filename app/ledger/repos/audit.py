from sqlalchemy import select

from app.ledger.db.models import AuditEvent


class AuditRepository:
    def __init__(self, db):
        self.db = db

    def create(self, event: AuditEvent) -> AuditEvent:
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        query = (
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at)
        )
        return list(self.db.execute(query).scalars().all())

    def list_for_session(self, session_id) -> list[AuditEvent]:
        query = select(AuditEvent).where(AuditEvent.session_id == session_id).order_by(AuditEvent.created_at)
        return list(self.db.execute(query).scalars().all())
