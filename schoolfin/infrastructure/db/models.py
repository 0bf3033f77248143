from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolfin.domain.fee_enums import FeeStatus, PaymentMethod, Term
from schoolfin.domain.mpesa_enums import MpesaReviewReason, MpesaTransactionStatus
from schoolfin.domain.roles import BaseRole, TenantRole
from schoolfin.infrastructure.db.session import Base


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TenantScopedMixin:
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[BaseRole] = mapped_column(Enum(BaseRole, name="base_role"), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    school_memberships: Mapped[list["SchoolMembership"]] = relationship(
        "SchoolMembership",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class School(TimestampMixin, Base):
    __tablename__ = "schools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    members: Mapped[list["SchoolMembership"]] = relationship(
        "SchoolMembership",
        back_populates="school",
        cascade="all, delete-orphan",
    )


class SchoolMembership(TimestampMixin, Base):
    __tablename__ = "school_memberships"
    __table_args__ = (UniqueConstraint("user_id", "school_id", "role", name="uq_school_membership"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[TenantRole] = mapped_column(Enum(TenantRole, name="tenant_role"), nullable=False, index=True)

    user: Mapped[User] = relationship("User", back_populates="school_memberships")
    school: Mapped[School] = relationship("School", back_populates="members")


class SchoolClass(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "school_classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    students: Mapped[list["Student"]] = relationship("Student", back_populates="school_class")


class Student(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("school_id", "admission_number", name="uq_student_admission_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int | None] = mapped_column(
        ForeignKey("school_classes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    admission_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    guardian_phone_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    school_class: Mapped[SchoolClass | None] = relationship("SchoolClass", back_populates="students")
    fees: Mapped[list["StudentFee"]] = relationship("StudentFee", back_populates="student")


class StudentPhoneAlias(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "student_phone_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    phone_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)


class FeeCategory(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "fee_categories"
    __table_args__ = (UniqueConstraint("school_id", "code", name="uq_fee_category_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(10), nullable=False)


class FeeStructureLine(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "fee_structure_lines"
    __table_args__ = (
        UniqueConstraint("school_id", "class_id", "category_id", "term", "academic_year", name="uq_fee_structure_line"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("school_classes.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False)
    term: Mapped[Term | None] = mapped_column(Enum(Term, name="term"), nullable=True)
    academic_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    category: Mapped[FeeCategory] = relationship("FeeCategory")


class StudentFee(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "student_fees"
    __table_args__ = (
        UniqueConstraint("student_id", "category_id", "term", "academic_year", name="uq_student_fee_period"),
        CheckConstraint("amount_due_minor >= 0", name="ck_student_fees_due_non_negative"),
        CheckConstraint("amount_paid_minor >= 0", name="ck_student_fees_paid_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False)
    source_structure_line_id: Mapped[int | None] = mapped_column(
        ForeignKey("fee_structure_lines.id", ondelete="SET NULL"), nullable=True, index=True
    )
    term: Mapped[Term] = mapped_column(Enum(Term, name="term"), nullable=False)
    academic_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    base_amount_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_due_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid_minor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[FeeStatus] = mapped_column(Enum(FeeStatus, name="fee_status"), nullable=False, index=True)
    discount_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    student: Mapped[Student] = relationship("Student", back_populates="fees")
    category: Mapped[FeeCategory] = relationship("FeeCategory")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="student_fee")


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("student_fee_id", "client_request_id", name="uq_payment_client_request"),
        CheckConstraint("amount_minor > 0", name="ck_payments_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_fee_id: Mapped[int] = mapped_column(
        ForeignKey("student_fees.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    client_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_from_offline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    student_fee: Mapped[StudentFee] = relationship("StudentFee", back_populates="payments")


class MpesaTransaction(TimestampMixin, Base):
    __tablename__ = "mpesa_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int | None] = mapped_column(
        ForeignKey("schools.id", ondelete="SET NULL"), nullable=True, index=True
    )
    student_fee_id: Mapped[int | None] = mapped_column(
        ForeignKey("student_fees.id", ondelete="SET NULL"), nullable=True, index=True
    )
    payment_id: Mapped[int | None] = mapped_column(ForeignKey("payments.id", ondelete="SET NULL"), nullable=True)
    phone_number: Mapped[str] = mapped_column(String(30), nullable=False)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[MpesaTransactionStatus] = mapped_column(
        Enum(MpesaTransactionStatus, name="mpesa_transaction_status"), nullable=False, index=True
    )
    review_reason: Mapped[MpesaReviewReason | None] = mapped_column(
        Enum(MpesaReviewReason, name="mpesa_review_reason"), nullable=True
    )
    checkout_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True, index=True)
    merchant_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    mpesa_receipt_number: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True, index=True)
    raw_callback: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int | None] = mapped_column(
        ForeignKey("schools.id", ondelete="SET NULL"), nullable=True, index=True
    )
    actor_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    entity: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
