from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.application.services.fee_adjustment_service import adjust_student_fee
from schoolfin.application.services.payment_service import list_payments_for_fee, serialize_payment_response
from schoolfin.application.services.student_fee_service import (
    get_student_fee_summary_in_scope,
    list_student_fees,
    serialize_student_fee_response,
)
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.interfaces.api.v1.dependencies.auth import get_current_identity, get_tenant_scope, require_permissions
from schoolfin.interfaces.api.v1.schemas.payment import PaymentListResponse
from schoolfin.interfaces.api.v1.schemas.student_fee import (
    StudentFeeAdjust,
    StudentFeeListResponse,
    StudentFeeResponse,
    StudentFeeSummaryResponse,
)

router = APIRouter(tags=["student-fees"])


@router.get(
    "/students/{student_id}/fees",
    response_model=StudentFeeListResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read))],
    summary="List student fee rows",
    description="List fee rows for a student visible in the active tenant scope.",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}, 404: {"description": "Student not found"}},
)
def get_student_fees(
    student_id: int,
    academic_year: int | None = Query(default=None),
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    fees = list_student_fees(db, identity=identity, scope=scope, student_id=student_id, academic_year=academic_year)
    return {"items": [serialize_student_fee_response(fee) for fee in fees]}


@router.get(
    "/students/{student_id}/fees/summary",
    response_model=StudentFeeSummaryResponse,
    dependencies=[Depends(require_permissions(Permission.fees_read))],
    summary="Student fee summary",
    description="Totals and status counts across a student's fee rows. Served from cache when fresh.",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}, 404: {"description": "Student not found"}},
)
def get_student_fee_summary_endpoint(
    student_id: int,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    return get_student_fee_summary_in_scope(db, identity=identity, scope=scope, student_id=student_id)


@router.post(
    "/student-fees/{student_fee_id}/adjust",
    response_model=StudentFeeResponse,
    dependencies=[Depends(require_permissions(Permission.fees_write))],
    summary="Adjust student fee",
    description=(
        "Override the amount due (and optionally the amount paid) of one fee row. "
        "The row is locked unless `locked` is false. Every adjustment is audited."
    ),
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}, 404: {"description": "Student fee not found"}},
)
def adjust_student_fee_endpoint(
    student_fee_id: int,
    payload: StudentFeeAdjust,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    fee = adjust_student_fee(db, identity=identity, scope=scope, student_fee_id=student_fee_id, payload=payload)
    return serialize_student_fee_response(fee)


@router.get(
    "/student-fees/{student_fee_id}/payments",
    response_model=PaymentListResponse,
    dependencies=[Depends(require_permissions(Permission.payments_read))],
    summary="List payments for a fee row",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}, 404: {"description": "Student fee not found"}},
)
def get_student_fee_payments(
    student_fee_id: int,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    payments = list_payments_for_fee(db, identity=identity, scope=scope, student_fee_id=student_fee_id)
    return {"items": [serialize_payment_response(payment) for payment in payments]}
