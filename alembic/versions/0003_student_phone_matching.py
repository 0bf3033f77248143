"""student phone numbers and payer phone aliases

Revision ID: 0003_student_phone_matching
Revises: 0002_fee_ledger
Create Date: 2026-10-19 10:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0003_student_phone_matching"
down_revision = "0002_fee_ledger"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("students", sa.Column("phone_number", sa.String(length=30), nullable=True))
    op.add_column("students", sa.Column("guardian_phone_number", sa.String(length=30), nullable=True))

    op.create_table(
        "student_phone_aliases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("phone_number", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_student_phone_aliases_id", "student_phone_aliases", ["id"], unique=False)
    op.create_index("ix_student_phone_aliases_school_id", "student_phone_aliases", ["school_id"], unique=False)
    op.create_index("ix_student_phone_aliases_student_id", "student_phone_aliases", ["student_id"], unique=False)
    op.create_index("ix_student_phone_aliases_phone_number", "student_phone_aliases", ["phone_number"], unique=False)


def downgrade() -> None:
    op.drop_table("student_phone_aliases")
    op.drop_column("students", "guardian_phone_number")
    op.drop_column("students", "phone_number")
