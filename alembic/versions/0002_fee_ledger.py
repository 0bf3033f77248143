"""fee structure lines, student fees, payments, mpesa transactions and audit log

Revision ID: 0002_fee_ledger
Revises: 0001_tenants_and_users
Create Date: 2026-10-05 09:30:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0002_fee_ledger"
down_revision = "0001_tenants_and_users"
branch_labels = None
depends_on = None

TERMS = ("term1", "term2", "term3")
FEE_STATUSES = ("unpaid", "partially_paid", "paid")
PAYMENT_METHODS = ("cash", "bank_transfer", "pos", "online", "mpesa")
MPESA_STATUSES = ("pending", "success", "failed")
MPESA_REVIEW_REASONS = ("no_student", "multiple_students", "no_fees", "other")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    term = postgresql.ENUM(*TERMS, name="term")
    term.create(op.get_bind(), checkfirst=True)
    term_column_type = postgresql.ENUM(*TERMS, name="term", create_type=False)

    op.create_table(
        "fee_structure_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("school_classes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("term", term_column_type, nullable=True),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "school_id", "class_id", "category_id", "term", "academic_year", name="uq_fee_structure_line"
        ),
    )
    op.create_index("ix_fee_structure_lines_id", "fee_structure_lines", ["id"], unique=False)
    op.create_index("ix_fee_structure_lines_school_id", "fee_structure_lines", ["school_id"], unique=False)
    op.create_index("ix_fee_structure_lines_class_id", "fee_structure_lines", ["class_id"], unique=False)
    op.create_index("ix_fee_structure_lines_academic_year", "fee_structure_lines", ["academic_year"], unique=False)

    op.create_table(
        "student_fees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "source_structure_line_id",
            sa.Integer(),
            sa.ForeignKey("fee_structure_lines.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("term", term_column_type, nullable=False),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("base_amount_minor", sa.Integer(), nullable=True),
        sa.Column("amount_due_minor", sa.Integer(), nullable=False),
        sa.Column("amount_paid_minor", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.Enum(*FEE_STATUSES, name="fee_status"), nullable=False),
        sa.Column("discount_reason", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "category_id", "term", "academic_year", name="uq_student_fee_period"),
        sa.CheckConstraint("amount_due_minor >= 0", name="ck_student_fees_due_non_negative"),
        sa.CheckConstraint("amount_paid_minor >= 0", name="ck_student_fees_paid_non_negative"),
    )
    op.create_index("ix_student_fees_id", "student_fees", ["id"], unique=False)
    op.create_index("ix_student_fees_school_id", "student_fees", ["school_id"], unique=False)
    op.create_index("ix_student_fees_student_id", "student_fees", ["student_id"], unique=False)
    op.create_index(
        "ix_student_fees_source_structure_line_id", "student_fees", ["source_structure_line_id"], unique=False
    )
    op.create_index("ix_student_fees_academic_year", "student_fees", ["academic_year"], unique=False)
    op.create_index("ix_student_fees_status", "student_fees", ["status"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "student_fee_id", sa.Integer(), sa.ForeignKey("student_fees.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("method", sa.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False),
        sa.Column("reference", sa.String(length=100), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_request_id", sa.String(length=100), nullable=True),
        sa.Column("created_from_offline", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("student_fee_id", "client_request_id", name="uq_payment_client_request"),
        sa.CheckConstraint("amount_minor > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_id", "payments", ["id"], unique=False)
    op.create_index("ix_payments_student_fee_id", "payments", ["student_fee_id"], unique=False)
    op.create_index("ix_payments_reference", "payments", ["reference"], unique=False)
    op.create_index("ix_payments_paid_at", "payments", ["paid_at"], unique=False)

    op.create_table(
        "mpesa_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "student_fee_id", sa.Integer(), sa.ForeignKey("student_fees.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("phone_number", sa.String(length=30), nullable=False),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*MPESA_STATUSES, name="mpesa_transaction_status"), nullable=False),
        sa.Column("review_reason", sa.Enum(*MPESA_REVIEW_REASONS, name="mpesa_review_reason"), nullable=True),
        sa.Column("checkout_request_id", sa.String(length=100), nullable=True),
        sa.Column("merchant_request_id", sa.String(length=100), nullable=True),
        sa.Column("mpesa_receipt_number", sa.String(length=50), nullable=True),
        sa.Column("raw_callback", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_mpesa_transactions_id", "mpesa_transactions", ["id"], unique=False)
    op.create_index("ix_mpesa_transactions_school_id", "mpesa_transactions", ["school_id"], unique=False)
    op.create_index("ix_mpesa_transactions_student_fee_id", "mpesa_transactions", ["student_fee_id"], unique=False)
    op.create_index("ix_mpesa_transactions_status", "mpesa_transactions", ["status"], unique=False)
    op.create_index(
        "ix_mpesa_transactions_checkout_request_id", "mpesa_transactions", ["checkout_request_id"], unique=True
    )
    op.create_index(
        "ix_mpesa_transactions_mpesa_receipt_number", "mpesa_transactions", ["mpesa_receipt_number"], unique=True
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_audit_logs_id", "audit_logs", ["id"], unique=False)
    op.create_index("ix_audit_logs_school_id", "audit_logs", ["school_id"], unique=False)
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"], unique=False)
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity"], unique=False)
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"], unique=False)

    # Audit rows are append-only.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION audit_logs_reject_change() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_logs is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER audit_logs_append_only
        BEFORE UPDATE OR DELETE ON audit_logs
        FOR EACH ROW EXECUTE FUNCTION audit_logs_reject_change()
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS audit_logs_append_only ON audit_logs")
    op.execute("DROP FUNCTION IF EXISTS audit_logs_reject_change()")
    op.drop_table("audit_logs")
    op.drop_table("mpesa_transactions")
    op.drop_table("payments")
    op.drop_table("student_fees")
    op.drop_table("fee_structure_lines")
    bind = op.get_bind()
    for enum_name in ("mpesa_review_reason", "mpesa_transaction_status", "payment_method", "fee_status", "term"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
