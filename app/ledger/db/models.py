import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import CHAR, TypeDecorator

from app.ledger.core.enums import (
    AuthorizationState,
    DifferenceType,
    ExpenseCategory,
    MovementKind,
    PaymentMethod,
    ReconciliationStatus,
    ReliefType,
    SessionStatus,
    ShiftStatus,
    WithdrawalStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


def _money(**kwargs):
    return mapped_column(Numeric(14, 2, asdecimal=True), **kwargs)


def _enum(enum_cls, length: int = 32):
    return Enum(enum_cls, native_enum=False, length=length, validate_strings=True)


class Base(DeclarativeBase):
    pass


class CashSession(Base):
    __tablename__ = "cash_sessions"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    register_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    opened_by: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    closed_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    status: Mapped[SessionStatus] = mapped_column(_enum(SessionStatus), default=SessionStatus.OPEN, nullable=False)
    initial_float: Mapped[Decimal] = _money(nullable=False)
    cash_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    card_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    transfer_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    wallet_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_income: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_manual_egress: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_withdrawals: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_expenses: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    expected_cash: Mapped[Decimal] = _money(nullable=False)
    counted_cash: Mapped[Decimal | None] = _money(nullable=True)
    difference: Mapped[Decimal | None] = _money(nullable=True)
    balanced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opening_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    closing_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    opened_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    shifts = relationship("Shift", back_populates="session", order_by="Shift.started_at")

    __table_args__ = (
        CheckConstraint("initial_float >= 0", name="ck_cash_sessions_initial_float"),
        Index(
            "uq_cash_sessions_open_register",
            "register_id",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
    )


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), index=True, nullable=False)
    cashier_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    relief_type: Mapped[ReliefType] = mapped_column(_enum(ReliefType), default=ReliefType.NORMAL, nullable=False)
    status: Mapped[ShiftStatus] = mapped_column(_enum(ShiftStatus), default=ShiftStatus.ACTIVE, nullable=False)
    starting_cash: Mapped[Decimal] = _money(nullable=False)
    previous_shift_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    cash_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    card_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    transfer_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    wallet_sales: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_income: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_manual_egress: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_withdrawals: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    total_expenses: Mapped[Decimal] = _money(default=Decimal("0"), nullable=False)
    expected_cash: Mapped[Decimal | None] = _money(nullable=True)
    ending_cash: Mapped[Decimal | None] = _money(nullable=True)
    difference: Mapped[Decimal | None] = _money(nullable=True)
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    suspended_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    suspension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    closed_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    closing_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    session = relationship("CashSession", back_populates="shifts")

    __table_args__ = (
        Index(
            "uq_shifts_open_cashier",
            "cashier_id",
            unique=True,
            sqlite_where=text("status IN ('ACTIVE', 'SUSPENDED')"),
            postgresql_where=text("status IN ('ACTIVE', 'SUSPENDED')"),
        ),
    )


class SalePayment(Base):
    __tablename__ = "sale_payments"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), index=True, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = _money(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), index=True, nullable=False)
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = _money(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    destination: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[WithdrawalStatus] = mapped_column(
        _enum(WithdrawalStatus), default=WithdrawalStatus.PENDING, index=True, nullable=False
    )
    requested_by: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    authorized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    receipt_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), index=True, nullable=False)
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = _money(nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(_enum(ExpenseCategory), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    beneficiary: Mapped[str | None] = mapped_column(String(255), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receipt_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requested_by: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),)


class Movement(Base):
    __tablename__ = "movements"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), index=True, nullable=False)
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("shifts.id", ondelete="SET NULL"), index=True, nullable=True
    )
    kind: Mapped[MovementKind] = mapped_column(_enum(MovementKind), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = _money(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    authorization_state: Mapped[AuthorizationState] = mapped_column(
        _enum(AuthorizationState), default=AuthorizationState.NONE_REQUIRED, nullable=False
    )
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    authorized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    authorization_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sale_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    sale_payment_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("sale_payments.id"), unique=True, nullable=True
    )
    withdrawal_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("withdrawals.id"), index=True, nullable=True
    )
    expense_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), ForeignKey("expenses.id"), index=True, nullable=True)
    offsets_movement_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("movements.id"), nullable=True
    )
    trace_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_movements_amount_positive"),)


class Reconciliation(Base):
    __tablename__ = "reconciliations"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cash_sessions.id"), nullable=False)
    counted_total: Mapped[Decimal] = _money(nullable=False)
    expected_total: Mapped[Decimal] = _money(nullable=False)
    difference: Mapped[Decimal] = _money(nullable=False)
    difference_type: Mapped[DifferenceType] = mapped_column(_enum(DifferenceType), nullable=False)
    breakdown: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[ReconciliationStatus] = mapped_column(_enum(ReconciliationStatus), index=True, nullable=False)
    performed_by: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("session_id", name="uq_reconciliations_session"),)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("actor_id", "endpoint", "method", "idempotency_key", name="uq_idempotency_records_key"),
    )


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    session_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    before_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    result: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


Index("ix_movements_session_kind", Movement.session_id, Movement.kind)
Index("ix_shifts_session_status", Shift.session_id, Shift.status)
