from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    user_role = postgresql.ENUM(
        "manager", "studio_owner", "customer", name="userrole", create_type=False
    )
    user_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255)),
        sa.Column("first_name", sa.String(length=128)),
        sa.Column("last_name", sa.String(length=128)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("role", user_role, server_default="customer"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "studios",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("machine_count", sa.Integer(), server_default="1"),
        sa.Column("cancellation_advance_hours", sa.Integer(), server_default="48"),
        sa.Column("postponement_advance_hours", sa.Integer(), server_default="48"),
        sa.Column("max_advance_booking_days", sa.Integer(), server_default="30"),
        sa.Column("settings_updated_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("machine_count > 0", name="ck_studio_machine_count_positive"),
    )
    op.create_index("ix_studios_owner_id", "studios", ["owner_id"])

    op.create_table(
        "appointment_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("studio_id", sa.Integer(), sa.ForeignKey("studios.id", ondelete="CASCADE")),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("duration", sa.Integer(), server_default="60"),
        sa.Column("consumes_session", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )
    op.create_index("ix_appointment_types_studio_id", "appointment_types", ["studio_id"])

    appointment_status = postgresql.ENUM(
        "pending",
        "confirmed",
        "cancelled",
        "completed",
        "no_show",
        name="appointmentstatus",
        create_type=False,
    )
    appointment_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("studio_id", sa.Integer(), sa.ForeignKey("studios.id", ondelete="CASCADE")),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE")),
        sa.Column(
            "appointment_type_id",
            sa.Integer(),
            sa.ForeignKey("appointment_types.id", ondelete="SET NULL"),
        ),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", appointment_status, server_default="pending"),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("start_time < end_time", name="ck_appointment_time_range"),
    )
    op.create_index("ix_appointments_studio_date", "appointments", ["studio_id", "appointment_date"])
    op.create_index("ix_appointments_customer_id", "appointments", ["customer_id"])
    op.create_index("ix_appointments_status", "appointments", ["status"])

    op.create_table(
        "customer_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE")),
        sa.Column("studio_id", sa.Integer(), sa.ForeignKey("studios.id", ondelete="CASCADE")),
        sa.Column("total_sessions", sa.Integer(), nullable=False),
        sa.Column("remaining_sessions", sa.Integer(), nullable=False),
        sa.Column("purchase_date", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("block_order", sa.Integer(), server_default="1"),
        sa.Column("block_type", sa.String(length=32), server_default="standard"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("total_sessions > 0", name="ck_customer_session_total_positive"),
        sa.CheckConstraint(
            "remaining_sessions >= 0", name="ck_customer_session_remaining_non_negative"
        ),
        sa.CheckConstraint(
            "remaining_sessions <= total_sessions",
            name="ck_customer_session_remaining_within_total",
        ),
    )
    op.create_index(
        "ix_customer_sessions_block_order",
        "customer_sessions",
        ["customer_id", "studio_id", "block_order", "is_active"],
    )

    transaction_type = postgresql.ENUM(
        "purchase",
        "deduction",
        "topup",
        "refund",
        "edit",
        "deactivation",
        name="transactiontype",
        create_type=False,
    )
    transaction_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "session_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "customer_session_id",
            sa.Integer(),
            sa.ForeignKey("customer_sessions.id", ondelete="CASCADE"),
        ),
        sa.Column("transaction_type", transaction_type, nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "appointment_id", sa.Integer(), sa.ForeignKey("appointments.id", ondelete="SET NULL")
        ),
        sa.Column(
            "created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "appointment_id",
            "transaction_type",
            name="uq_session_transaction_appointment_type",
        ),
    )
    op.create_index(
        "ix_session_transactions_customer_session_id",
        "session_transactions",
        ["customer_session_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_session_transactions_customer_session_id", table_name="session_transactions")
    op.drop_table("session_transactions")
    op.drop_index("ix_customer_sessions_block_order", table_name="customer_sessions")
    op.drop_table("customer_sessions")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_customer_id", table_name="appointments")
    op.drop_index("ix_appointments_studio_date", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_appointment_types_studio_id", table_name="appointment_types")
    op.drop_table("appointment_types")
    op.drop_index("ix_studios_owner_id", table_name="studios")
    op.drop_table("studios")
    op.drop_table("users")
    for enum_name in ("transactiontype", "appointmentstatus", "userrole"):
        postgresql.ENUM(name=enum_name).drop(op.get_bind(), checkfirst=True)
