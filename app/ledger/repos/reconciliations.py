from sqlalchemy import select

from app.ledger.core.enums import ReconciliationStatus
from app.ledger.db.models import Reconciliation


class ReconciliationRepository:
    def __init__(self, db):
        self.db = db

    def get(self, reconciliation_id, *, for_update: bool = False) -> Reconciliation | None:
        query = select(Reconciliation).where(Reconciliation.id == reconciliation_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_for_session(self, session_id) -> Reconciliation | None:
        query = select(Reconciliation).where(Reconciliation.session_id == session_id)
        return self.db.execute(query).scalars().first()

    def search(self, *, status: ReconciliationStatus | None = None) -> list[Reconciliation]:
        query = select(Reconciliation)
        if status is not None:
            query = query.where(Reconciliation.status == status)
        return list(self.db.execute(query.order_by(Reconciliation.created_at)).scalars().all())

    def add(self, reconciliation: Reconciliation) -> Reconciliation:
        self.db.add(reconciliation)
        self.db.flush()
        return reconciliation
