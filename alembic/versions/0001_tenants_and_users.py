"""users, schools, memberships, classes, students and fee categories

Revision ID: 0001_tenants_and_users
Revises:
Create Date: 2026-10-05 09:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_tenants_and_users"
down_revision = None
branch_labels = None
depends_on = None

BASE_ROLES = ("admin", "teacher", "student", "parent", "accountant")
TENANT_ROLES = ("super_admin", "school_admin", "accountant")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum(*BASE_ROLES, name="base_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "schools",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_schools_id", "schools", ["id"], unique=False)
    op.create_index("ix_schools_slug", "schools", ["slug"], unique=True)

    op.create_table(
        "school_memberships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Enum(*TENANT_ROLES, name="tenant_role"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "school_id", "role", name="uq_school_membership"),
    )
    op.create_index("ix_school_memberships_id", "school_memberships", ["id"], unique=False)
    op.create_index("ix_school_memberships_user_id", "school_memberships", ["user_id"], unique=False)
    op.create_index("ix_school_memberships_school_id", "school_memberships", ["school_id"], unique=False)
    op.create_index("ix_school_memberships_role", "school_memberships", ["role"], unique=False)

    op.create_table(
        "school_classes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_school_classes_id", "school_classes", ["id"], unique=False)
    op.create_index("ix_school_classes_school_id", "school_classes", ["school_id"], unique=False)

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("school_classes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("admission_number", sa.String(length=50), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("school_id", "admission_number", name="uq_student_admission_number"),
    )
    op.create_index("ix_students_id", "students", ["id"], unique=False)
    op.create_index("ix_students_school_id", "students", ["school_id"], unique=False)
    op.create_index("ix_students_class_id", "students", ["class_id"], unique=False)
    op.create_index("ix_students_admission_number", "students", ["admission_number"], unique=False)

    op.create_table(
        "fee_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("school_id", "code", name="uq_fee_category_code"),
    )
    op.create_index("ix_fee_categories_id", "fee_categories", ["id"], unique=False)
    op.create_index("ix_fee_categories_school_id", "fee_categories", ["school_id"], unique=False)


def downgrade() -> None:
    op.drop_table("fee_categories")
    op.drop_table("students")
    op.drop_table("school_classes")
    op.drop_table("school_memberships")
    op.drop_table("schools")
    op.drop_table("users")
    sa.Enum(name="tenant_role").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="base_role").drop(op.get_bind(), checkfirst=True)
