"""ledger core tables

Revision ID: 0001_ledger_core
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_ledger_core"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def _money(name: str, nullable: bool = False, zero: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(14, 2),
        nullable=nullable,
        server_default=sa.text("0") if zero else None,
    )


def _totals() -> list[sa.Column]:
    return [
        _money("cash_sales", zero=True),
        _money("card_sales", zero=True),
        _money("transfer_sales", zero=True),
        _money("wallet_sales", zero=True),
        _money("total_income", zero=True),
        _money("total_manual_egress", zero=True),
        _money("total_withdrawals", zero=True),
        _money("total_expenses", zero=True),
    ]


def upgrade() -> None:
    op.create_table(
        "cash_sessions",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("register_id", GUID(), nullable=False),
        sa.Column("opened_by", GUID(), nullable=False),
        sa.Column("closed_by", GUID(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        _money("initial_float"),
        *_totals(),
        _money("expected_cash"),
        _money("counted_cash", nullable=True),
        _money("difference", nullable=True),
        sa.Column("balanced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("initial_float >= 0", name="ck_cash_sessions_initial_float"),
    )
    op.create_index("ix_cash_sessions_register_id", "cash_sessions", ["register_id"])
    op.create_index("ix_cash_sessions_opened_by", "cash_sessions", ["opened_by"])
    op.create_index(
        "uq_cash_sessions_open_register",
        "cash_sessions",
        ["register_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "shifts",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("cashier_id", GUID(), nullable=False),
        sa.Column("relief_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        _money("starting_cash"),
        sa.Column("previous_shift_id", GUID(), nullable=True),
        *_totals(),
        _money("expected_cash", nullable=True),
        _money("ending_cash", nullable=True),
        _money("difference", nullable=True),
        sa.Column("authorized_by", GUID(), nullable=True),
        sa.Column("suspended_by", GUID(), nullable=True),
        sa.Column("suspension_reason", sa.Text(), nullable=True),
        sa.Column("suspended_at", sa.DateTime(), nullable=True),
        sa.Column("closed_by", GUID(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_shifts_session_id", "shifts", ["session_id"])
    op.create_index("ix_shifts_cashier_id", "shifts", ["cashier_id"])
    op.create_index("ix_shifts_session_status", "shifts", ["session_id", "status"])
    op.create_index(
        "uq_shifts_open_cashier",
        "shifts",
        ["cashier_id"],
        unique=True,
        sqlite_where=sa.text("status IN ('ACTIVE', 'SUSPENDED')"),
        postgresql_where=sa.text("status IN ('ACTIVE', 'SUSPENDED')"),
    )

    op.create_table(
        "sale_payments",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("sale_id", GUID(), nullable=False),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False),
        _money("amount"),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sale_payments_sale_id", "sale_payments", ["sale_id"])
    op.create_index("ix_sale_payments_session_id", "sale_payments", ["session_id"])

    op.create_table(
        "withdrawals",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("shift_id", GUID(), sa.ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True),
        _money("amount"),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("destination", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("requested_by", GUID(), nullable=False),
        sa.Column("authorized_by", GUID(), nullable=True),
        sa.Column("authorized_at", sa.DateTime(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decision_notes", sa.Text(), nullable=True),
        sa.Column("receipt_reference", sa.String(length=255), nullable=True),
        sa.Column("completed_by", GUID(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", GUID(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),
    )
    op.create_index("ix_withdrawals_session_id", "withdrawals", ["session_id"])
    op.create_index("ix_withdrawals_status", "withdrawals", ["status"])

    op.create_table(
        "expenses",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("shift_id", GUID(), sa.ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True),
        _money("amount"),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("beneficiary", sa.String(length=255), nullable=True),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("receipt_reference", sa.String(length=255), nullable=True),
        sa.Column("requested_by", GUID(), nullable=False),
        sa.Column("authorized_by", GUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_session_id", "expenses", ["session_id"])

    op.create_table(
        "movements",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("shift_id", GUID(), sa.ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False),
        _money("amount"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("actor_id", GUID(), nullable=False),
        sa.Column("authorization_state", sa.String(length=32), nullable=False),
        sa.Column("authorized_by", GUID(), nullable=True),
        sa.Column("authorized_at", sa.DateTime(), nullable=True),
        sa.Column("authorization_notes", sa.Text(), nullable=True),
        sa.Column("sale_id", GUID(), nullable=True),
        sa.Column("sale_payment_id", GUID(), sa.ForeignKey("sale_payments.id"), nullable=True, unique=True),
        sa.Column("withdrawal_id", GUID(), sa.ForeignKey("withdrawals.id"), nullable=True),
        sa.Column("expense_id", GUID(), sa.ForeignKey("expenses.id"), nullable=True),
        sa.Column("offsets_movement_id", GUID(), sa.ForeignKey("movements.id"), nullable=True),
        sa.Column("trace_id", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_movements_amount_positive"),
    )
    op.create_index("ix_movements_session_id", "movements", ["session_id"])
    op.create_index("ix_movements_shift_id", "movements", ["shift_id"])
    op.create_index("ix_movements_sale_id", "movements", ["sale_id"])
    op.create_index("ix_movements_withdrawal_id", "movements", ["withdrawal_id"])
    op.create_index("ix_movements_expense_id", "movements", ["expense_id"])
    op.create_index("ix_movements_occurred_at", "movements", ["occurred_at"])
    op.create_index("ix_movements_session_kind", "movements", ["session_id", "kind"])

    op.create_table(
        "reconciliations",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", GUID(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        _money("counted_total"),
        _money("expected_total"),
        _money("difference"),
        sa.Column("difference_type", sa.String(length=32), nullable=False),
        sa.Column("breakdown", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("performed_by", GUID(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_by", GUID(), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("session_id", name="uq_reconciliations_session"),
    )
    op.create_index("ix_reconciliations_status", "reconciliations", ["status"])

    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor_id", GUID(), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("actor_id", "endpoint", "method", "idempotency_key", name="uq_idempotency_records_key"),
    )
    op.create_index("ix_idempotency_records_actor_id", "idempotency_records", ["actor_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor_id", GUID(), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("trace_id", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("session_id", GUID(), nullable=True),
        sa.Column("before_payload", sa.JSON(), nullable=True),
        sa.Column("after_payload", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_session_id", "audit_events", ["session_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("idempotency_records")
    op.drop_table("reconciliations")
    op.drop_table("movements")
    op.drop_table("expenses")
    op.drop_table("withdrawals")
    op.drop_table("sale_payments")
    op.drop_index("uq_shifts_open_cashier", table_name="shifts")
    op.drop_table("shifts")
    op.drop_index("uq_cash_sessions_open_register", table_name="cash_sessions")
    op.drop_table("cash_sessions")
