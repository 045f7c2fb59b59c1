from sqlalchemy import select

from app.ledger.db.models import SalePayment


class SalePaymentRepository:
    def __init__(self, db):
        self.db = db

    def get(self, payment_id) -> SalePayment | None:
        return self.db.execute(select(SalePayment).where(SalePayment.id == payment_id)).scalars().first()

    def list_for_session(self, session_id) -> list[SalePayment]:
        query = select(SalePayment).where(SalePayment.session_id == session_id).order_by(SalePayment.created_at)
        return list(self.db.execute(query).scalars().all())

    def add(self, payment: SalePayment) -> SalePayment:
        self.db.add(payment)
        self.db.flush()
        return payment
