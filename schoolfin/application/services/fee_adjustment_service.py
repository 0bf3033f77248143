from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolfin.application.errors import NotFoundError
from schoolfin.application.services.audit_service import record_audit
from schoolfin.application.services.authorization_service import Identity, TenantScope, ensure_permission
from schoolfin.application.services.fee_summary_service import invalidate_fee_summary_cache
from schoolfin.domain.fee_engine import compute_status
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import StudentFee
from schoolfin.infrastructure.logging import get_logger
from schoolfin.interfaces.api.v1.schemas.student_fee import StudentFeeAdjust

logger = get_logger(__name__)

STUDENT_FEE_ENTITY = "student_fee"


def _fee_snapshot(fee: StudentFee) -> dict:
    return {
        "base_amount_minor": fee.base_amount_minor,
        "amount_due_minor": fee.amount_due_minor,
        "amount_paid_minor": fee.amount_paid_minor,
        "locked": fee.locked,
        "status": fee.status.value,
        "discount_reason": fee.discount_reason,
    }


def adjust_student_fee(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    student_fee_id: int,
    payload: StudentFeeAdjust,
) -> StudentFee:
    """
    Administrative override of a single fee row.

    The row is locked by default so a later structure change cannot undo the
    adjustment; ``locked=False`` is the only way to release it. The first
    adjustment remembers the structure amount in ``base_amount_minor``.
    """
    context = ensure_permission(identity, Permission.fees_write)
    reason = (payload.reason.strip() or None) if payload.reason is not None else None
    try:
        fee = db.execute(
            select(StudentFee)
            .where(StudentFee.id == student_fee_id, scope.filter(StudentFee.school_id))
            .with_for_update()
        ).scalar_one_or_none()
        if fee is None:
            raise NotFoundError("Student fee not found")

        before = _fee_snapshot(fee)
        if fee.base_amount_minor is None:
            fee.base_amount_minor = fee.amount_due_minor
        fee.amount_due_minor = payload.new_amount_due_minor
        if payload.new_amount_paid_minor is not None:
            fee.amount_paid_minor = payload.new_amount_paid_minor
        fee.locked = payload.locked
        fee.status = compute_status(fee.amount_due_minor, fee.amount_paid_minor)
        if payload.reason is not None:
            fee.discount_reason = reason
        after = _fee_snapshot(fee)
        db.commit()
    except (SQLAlchemyError, NotFoundError):
        db.rollback()
        raise

    invalidate_fee_summary_cache(student_id=fee.student_id)
    record_audit(
        db,
        actor_user_id=context.user_id,
        entity=STUDENT_FEE_ENTITY,
        entity_id=fee.id,
        old_value=before,
        new_value=after,
        reason=reason,
        school_id=fee.school_id,
    )
    logger.info(
        "student_fee_adjusted",
        student_fee_id=fee.id,
        actor_user_id=context.user_id,
        amount_due_minor=fee.amount_due_minor,
        amount_paid_minor=fee.amount_paid_minor,
        locked=fee.locked,
    )
    return fee
