from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.application.services.payment_service import record_payment, serialize_payment_response
from schoolfin.application.services.student_fee_service import serialize_student_fee_response
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.interfaces.api.v1.dependencies.auth import get_current_identity, get_tenant_scope, require_permissions
from schoolfin.interfaces.api.v1.schemas.payment import PaymentApplicationResponse, PaymentCreate

router = APIRouter(tags=["payments"])


@router.post(
    "/payments",
    response_model=PaymentApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(Permission.payments_write))],
    summary="Record payment",
    description=(
        "Apply a payment to a student fee row visible in the active tenant scope. "
        "Resending the same `client_request_id` returns the original payment with `replayed: true` "
        "and status 200 instead of crediting the row twice. "
        "Payment processing uses a short Redis lock to reject concurrent duplicate submits."
    ),
    responses={
        200: {"description": "Replayed payment"},
        400: {"description": "Payment validation error"},
        401: {"description": "Unauthorized"},
        403: {"description": "Missing permission"},
        404: {"description": "Student fee not found"},
        409: {"description": "Payment already in progress"},
    },
)
def create_payment_endpoint(
    payload: PaymentCreate,
    response: Response,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    result = record_payment(db, identity=identity, scope=scope, payload=payload)
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return {
        "payment": serialize_payment_response(result.payment),
        "student_fee": serialize_student_fee_response(result.student_fee),
        "replayed": result.replayed,
    }
