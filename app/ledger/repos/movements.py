from sqlalchemy import func, select

from app.ledger.core.enums import AuthorizationState, MovementKind
from app.ledger.db.models import Movement


class MovementRepository:
    def __init__(self, db):
        self.db = db

    def get(self, movement_id, *, for_update: bool = False) -> Movement | None:
        query = select(Movement).where(Movement.id == movement_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def list_for_session(
        self,
        session_id,
        *,
        kind: MovementKind | None = None,
        authorization_state: AuthorizationState | None = None,
    ) -> list[Movement]:
        query = select(Movement).where(Movement.session_id == session_id)
        if kind is not None:
            query = query.where(Movement.kind == kind)
        if authorization_state is not None:
            query = query.where(Movement.authorization_state == authorization_state)
        return list(self.db.execute(query.order_by(Movement.occurred_at, Movement.id)).scalars().all())

    def list_for_shift(self, shift_id) -> list[Movement]:
        query = select(Movement).where(Movement.shift_id == shift_id).order_by(Movement.occurred_at, Movement.id)
        return list(self.db.execute(query).scalars().all())

    def list_pending(self) -> list[Movement]:
        query = select(Movement).where(Movement.authorization_state == AuthorizationState.PENDING)
        return list(self.db.execute(query.order_by(Movement.occurred_at)).scalars().all())

    def list_for_withdrawal(self, withdrawal_id) -> list[Movement]:
        query = select(Movement).where(Movement.withdrawal_id == withdrawal_id)
        return list(self.db.execute(query).scalars().all())

    def get_offset_of(self, movement_id) -> Movement | None:
        query = select(Movement).where(Movement.offsets_movement_id == movement_id)
        return self.db.execute(query).scalars().first()

    def count_for_session(self, session_id) -> int:
        query = select(func.count()).select_from(Movement).where(Movement.session_id == session_id)
        return int(self.db.execute(query).scalar_one())

    def add(self, movement: Movement) -> Movement:
        self.db.add(movement)
        self.db.flush()
        return movement
