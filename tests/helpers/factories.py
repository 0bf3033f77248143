from datetime import datetime, timezone

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity
from schoolfin.application.services.security_service import hash_password
from schoolfin.domain.fee_engine import compute_status
from schoolfin.domain.fee_enums import FeeStatus, PaymentMethod, Term
from schoolfin.domain.mpesa_enums import MpesaTransactionStatus
from schoolfin.domain.roles import BaseRole, TenantRole
from schoolfin.infrastructure.db.models import (
    AuditLog,
    FeeCategory,
    FeeStructureLine,
    MpesaTransaction,
    Payment,
    School,
    SchoolClass,
    SchoolMembership,
    Student,
    StudentFee,
    StudentPhoneAlias,
    User,
)


def identity_for(user: User) -> Identity:
    return Identity(user_id=user.id, role=user.role)


def create_user(
    db: Session,
    username: str,
    role: BaseRole,
    password: str = "pass123",
    is_active: bool = True,
) -> User:
    user = User(username=username, hashed_password=hash_password(password), role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_school(db: Session, name: str, slug: str, is_active: bool = True) -> School:
    school = School(name=name, slug=slug, is_active=is_active)
    db.add(school)
    db.commit()
    db.refresh(school)
    return school


def add_membership(db: Session, user_id: int, school_id: int, role: TenantRole) -> SchoolMembership:
    membership = SchoolMembership(user_id=user_id, school_id=school_id, role=role)
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


def create_class(db: Session, *, school_id: int, name: str) -> SchoolClass:
    school_class = SchoolClass(school_id=school_id, name=name)
    db.add(school_class)
    db.commit()
    db.refresh(school_class)
    return school_class


def create_student(
    db: Session,
    *,
    school_id: int,
    admission_number: str,
    class_id: int | None = None,
    first_name: str = "Test",
    last_name: str = "Student",
    phone_number: str | None = None,
    guardian_phone_number: str | None = None,
) -> Student:
    student = Student(
        school_id=school_id,
        class_id=class_id,
        admission_number=admission_number,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        guardian_phone_number=guardian_phone_number,
    )
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def create_category(db: Session, *, school_id: int, name: str, code: str) -> FeeCategory:
    category = FeeCategory(school_id=school_id, name=name, code=code)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def create_structure_line(
    db: Session,
    *,
    school_id: int,
    class_id: int,
    category_id: int,
    academic_year: int,
    amount_minor: int,
    term: Term | None = None,
    is_active: bool = True,
) -> FeeStructureLine:
    line = FeeStructureLine(
        school_id=school_id,
        class_id=class_id,
        category_id=category_id,
        term=term,
        academic_year=academic_year,
        amount_minor=amount_minor,
        is_active=is_active,
    )
    db.add(line)
    db.commit()
    db.refresh(line)
    return line


def create_student_fee(
    db: Session,
    *,
    school_id: int,
    student_id: int,
    category_id: int,
    amount_due_minor: int,
    amount_paid_minor: int = 0,
    academic_year: int = 2026,
    term: Term = Term.term1,
    locked: bool = False,
    status: FeeStatus | None = None,
    base_amount_minor: int | None = None,
) -> StudentFee:
    fee = StudentFee(
        school_id=school_id,
        student_id=student_id,
        category_id=category_id,
        term=term,
        academic_year=academic_year,
        base_amount_minor=base_amount_minor,
        amount_due_minor=amount_due_minor,
        amount_paid_minor=amount_paid_minor,
        locked=locked,
        status=status or compute_status(amount_due_minor, amount_paid_minor),
    )
    db.add(fee)
    db.commit()
    db.refresh(fee)
    return fee


def create_payment(
    db: Session,
    *,
    student_fee_id: int,
    amount_minor: int,
    method: PaymentMethod = PaymentMethod.cash,
    client_request_id: str | None = None,
    reference: str | None = None,
) -> Payment:
    payment = Payment(
        student_fee_id=student_fee_id,
        amount_minor=amount_minor,
        method=method,
        reference=reference,
        paid_at=datetime.now(timezone.utc),
        client_request_id=client_request_id,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def create_mpesa_transaction(
    db: Session,
    *,
    student_fee_id: int | None,
    amount_minor: int,
    checkout_request_id: str | None = None,
    school_id: int | None = None,
    status: MpesaTransactionStatus = MpesaTransactionStatus.pending,
    phone_number: str = "254712345678",
    mpesa_receipt_number: str | None = None,
) -> MpesaTransaction:
    transaction = MpesaTransaction(
        school_id=school_id,
        student_fee_id=student_fee_id,
        phone_number=phone_number,
        amount_minor=amount_minor,
        status=status,
        checkout_request_id=checkout_request_id,
        mpesa_receipt_number=mpesa_receipt_number,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def persist_entities(db: Session, *entities: object) -> None:
    db.add_all(entities)
    db.commit()


def refresh_entity(db: Session, entity: object) -> None:
    db.refresh(entity)


def get_entity_by_id(db: Session, model: type, entity_id: int):
    return db.get(model, entity_id)


def list_from_query(db: Session, query: Select):
    return list(db.execute(query).scalars().all())


def list_student_fees_for_student(db: Session, *, student_id: int) -> list[StudentFee]:
    return list_from_query(
        db,
        select(StudentFee).where(StudentFee.student_id == student_id).order_by(StudentFee.category_id, StudentFee.id),
    )


def list_payments_for_student_fee(db: Session, *, student_fee_id: int) -> list[Payment]:
    return list_from_query(db, select(Payment).where(Payment.student_fee_id == student_fee_id).order_by(Payment.id))


def list_audit_entries(db: Session, *, entity: str | None = None) -> list[AuditLog]:
    query = select(AuditLog).order_by(AuditLog.id)
    if entity is not None:
        query = query.where(AuditLog.entity == entity)
    return list_from_query(db, query)


def list_mpesa_transactions(db: Session) -> list[MpesaTransaction]:
    return list_from_query(db, select(MpesaTransaction).order_by(MpesaTransaction.id))


def create_phone_alias(db: Session, *, student: Student, phone_number: str) -> StudentPhoneAlias:
    alias = StudentPhoneAlias(school_id=student.school_id, student_id=student.id, phone_number=phone_number)
    db.add(alias)
    db.commit()
    db.refresh(alias)
    return alias


def list_phone_aliases(db: Session) -> list[StudentPhoneAlias]:
    return list_from_query(db, select(StudentPhoneAlias).order_by(StudentPhoneAlias.id))


def list_mpesa_payments(db: Session, *, receipt_number: str) -> list[Payment]:
    return list_from_query(
        db,
        select(Payment)
        .where(Payment.method == PaymentMethod.mpesa, Payment.client_request_id == receipt_number)
        .order_by(Payment.id),
    )
