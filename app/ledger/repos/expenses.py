from sqlalchemy import select

from app.ledger.core.enums import ExpenseCategory
from app.ledger.db.models import Expense


class ExpenseRepository:
    def __init__(self, db):
        self.db = db

    def get(self, expense_id) -> Expense | None:
        return self.db.execute(select(Expense).where(Expense.id == expense_id)).scalars().first()

    def search(self, *, session_id=None, category: ExpenseCategory | None = None) -> list[Expense]:
        query = select(Expense)
        if session_id is not None:
            query = query.where(Expense.session_id == session_id)
        if category is not None:
            query = query.where(Expense.category == category)
        return list(self.db.execute(query.order_by(Expense.created_at)).scalars().all())

    def add(self, expense: Expense) -> Expense:
        self.db.add(expense)
        self.db.flush()
        return expense
