from datetime import datetime

from sqlalchemy import select

from app.ledger.core.enums import OPEN_SHIFT_STATUSES, ShiftStatus
from app.ledger.db.models import Shift


class ShiftRepository:
    def __init__(self, db):
        self.db = db

    def get(self, shift_id, *, for_update: bool = False) -> Shift | None:
        query = select(Shift).where(Shift.id == shift_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_open_for_cashier(self, cashier_id) -> Shift | None:
        query = select(Shift).where(
            Shift.cashier_id == cashier_id,
            Shift.status.in_(OPEN_SHIFT_STATUSES),
        )
        return self.db.execute(query).scalars().first()

    def list_for_session(self, session_id, *, statuses=None) -> list[Shift]:
        query = select(Shift).where(Shift.session_id == session_id)
        if statuses:
            query = query.where(Shift.status.in_(statuses))
        return list(self.db.execute(query.order_by(Shift.started_at)).scalars().all())

    def latest_closed_since(self, session_id, since: datetime) -> Shift | None:
        query = (
            select(Shift)
            .where(
                Shift.session_id == session_id,
                Shift.status == ShiftStatus.CLOSED,
                Shift.started_at >= since,
            )
            .order_by(Shift.ended_at.desc(), Shift.started_at.desc())
        )
        return self.db.execute(query).scalars().first()

    def add(self, shift: Shift) -> Shift:
        self.db.add(shift)
        self.db.flush()
        return shift
