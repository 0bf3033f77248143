from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfin.application.errors import NotFoundError
from schoolfin.application.services.authorization_service import Identity, TenantScope, ensure_permission
from schoolfin.application.services.fee_summary_service import get_student_fee_summary
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import Student, StudentFee


def serialize_student_fee_response(fee: StudentFee) -> dict:
    return {
        "id": fee.id,
        "school_id": fee.school_id,
        "student_id": fee.student_id,
        "category_id": fee.category_id,
        "source_structure_line_id": fee.source_structure_line_id,
        "term": fee.term,
        "academic_year": fee.academic_year,
        "base_amount_minor": fee.base_amount_minor,
        "amount_due_minor": fee.amount_due_minor,
        "amount_paid_minor": fee.amount_paid_minor,
        "locked": fee.locked,
        "status": fee.status,
        "discount_reason": fee.discount_reason,
        "updated_at": fee.updated_at,
    }


def get_student_in_scope(db: Session, *, student_id: int, scope: TenantScope) -> Student:
    student = db.execute(
        select(Student).where(Student.id == student_id, scope.filter(Student.school_id))
    ).scalar_one_or_none()
    if student is None:
        raise NotFoundError("Student not found")
    return student


def list_student_fees(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    student_id: int,
    academic_year: int | None = None,
) -> list[StudentFee]:
    ensure_permission(identity, Permission.fees_read)
    get_student_in_scope(db, student_id=student_id, scope=scope)
    query = select(StudentFee).where(StudentFee.student_id == student_id, scope.filter(StudentFee.school_id))
    if academic_year is not None:
        query = query.where(StudentFee.academic_year == academic_year)
    query = query.order_by(StudentFee.academic_year, StudentFee.term, StudentFee.id)
    return list(db.execute(query).scalars().all())


def get_student_fee_summary_in_scope(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    student_id: int,
) -> dict:
    ensure_permission(identity, Permission.fees_read)
    get_student_in_scope(db, student_id=student_id, scope=scope)
    return {"student_id": student_id, **get_student_fee_summary(db, student_id=student_id)}
