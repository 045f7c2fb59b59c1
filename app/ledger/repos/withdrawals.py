from sqlalchemy import select

from app.ledger.core.enums import WithdrawalStatus
from app.ledger.db.models import Withdrawal


class WithdrawalRepository:
    def __init__(self, db):
        self.db = db

    def get(self, withdrawal_id, *, for_update: bool = False) -> Withdrawal | None:
        query = select(Withdrawal).where(Withdrawal.id == withdrawal_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def search(self, *, session_id=None, status: WithdrawalStatus | None = None) -> list[Withdrawal]:
        query = select(Withdrawal)
        if session_id is not None:
            query = query.where(Withdrawal.session_id == session_id)
        if status is not None:
            query = query.where(Withdrawal.status == status)
        return list(self.db.execute(query.order_by(Withdrawal.created_at)).scalars().all())

    def add(self, withdrawal: Withdrawal) -> Withdrawal:
        self.db.add(withdrawal)
        self.db.flush()
        return withdrawal
