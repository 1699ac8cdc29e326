"""create applications, interview bookings, payment attempts

Revision ID: 001_create_portal_tables
Revises: 
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001_create_portal_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_name", sa.String(length=100), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("user_id", sa.String(length=100), nullable=True),
        sa.Column("project_data", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("payment_status", sa.String(length=20), server_default=sa.text("'unpaid'"), nullable=False),
        sa.Column("payment_reference", sa.String(length=100), nullable=True),
        sa.Column("payment_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("email", name="uq_applications_email"),
    )
    op.create_index("idx_applications_payment_reference", "applications", ["payment_reference"], unique=False)

    op.create_table(
        "interview_bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("position", sa.String(length=255), nullable=True),
        sa.Column("interview_type", sa.String(length=50), nullable=True),
        sa.Column("interview_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=30), server_default=sa.text("'pending_payment'"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )

    op.create_table(
        "payment_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("checkout_request_id", sa.String(length=100), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("applications.id", ondelete="SET NULL"), nullable=True),
        sa.Column("interview_booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("interview_bookings.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.String(length=100), nullable=True),
        sa.Column("purpose", sa.String(length=30), server_default=sa.text("'unknown'"), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("result_code", sa.Integer(), nullable=True),
        sa.Column("result_description", sa.String(length=255), nullable=True),
        sa.Column("mpesa_receipt", sa.String(length=50), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("checkout_request_id", name="uq_payment_attempts_checkout_request_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'cancelled')",
            name="ck_payment_attempts_status",
        ),
    )
    op.create_index("idx_payment_attempts_status_created", "payment_attempts", ["status", "created_at"], unique=False)
    op.create_index("idx_payment_attempts_application", "payment_attempts", ["application_id"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_payment_attempts_application", table_name="payment_attempts")
    op.drop_index("idx_payment_attempts_status_created", table_name="payment_attempts")
    op.drop_table("payment_attempts")

    op.drop_table("interview_bookings")

    op.drop_index("idx_applications_payment_reference", table_name="applications")
    op.drop_table("applications")
