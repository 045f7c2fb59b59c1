from sqlalchemy import or_, select

from app.ledger.core.enums import OPEN_SHIFT_STATUSES, SessionStatus
from app.ledger.db.models import CashSession, Shift


class CashSessionRepository:
    def __init__(self, db):
        self.db = db

    def get(self, session_id, *, for_update: bool = False) -> CashSession | None:
        query = select(CashSession).where(CashSession.id == session_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_open_for_register(self, register_id) -> CashSession | None:
        query = select(CashSession).where(
            CashSession.register_id == register_id,
            CashSession.status == SessionStatus.OPEN,
        )
        return self.db.execute(query).scalars().first()

    def get_open_opened_by(self, actor_id) -> CashSession | None:
        query = select(CashSession).where(
            CashSession.opened_by == actor_id,
            CashSession.status == SessionStatus.OPEN,
        )
        return self.db.execute(query).scalars().first()

    def get_active_for_actor(self, actor_id) -> CashSession | None:
        shift_sessions = select(Shift.session_id).where(
            Shift.cashier_id == actor_id,
            Shift.status.in_(OPEN_SHIFT_STATUSES),
        )
        query = (
            select(CashSession)
            .where(CashSession.status == SessionStatus.OPEN)
            .where(or_(CashSession.opened_by == actor_id, CashSession.id.in_(shift_sessions)))
            .order_by(CashSession.opened_at.desc())
        )
        return self.db.execute(query).scalars().first()

    def search(self, *, status: SessionStatus | None = None, register_id=None) -> list[CashSession]:
        query = select(CashSession)
        if status is not None:
            query = query.where(CashSession.status == status)
        if register_id is not None:
            query = query.where(CashSession.register_id == register_id)
        return list(self.db.execute(query.order_by(CashSession.opened_at.desc())).scalars().all())

    def add(self, session: CashSession) -> CashSession:
        self.db.add(session)
        self.db.flush()
        return session
