from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfin.application.services.authorization_service import Identity, TenantScope
from schoolfin.application.services.mpesa_service import (
    handle_c2b_confirmation,
    handle_stk_callback,
    list_review_queue,
    register_stk_request,
    serialize_mpesa_transaction,
)
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.session import get_db
from schoolfin.interfaces.api.v1.dependencies.auth import (
    get_current_identity,
    get_tenant_scope,
    require_permissions,
    verify_mpesa_callback_token,
)
from schoolfin.interfaces.api.v1.schemas.mpesa import (
    MpesaCallbackAck,
    MpesaReviewListResponse,
    MpesaStkRequestCreate,
    MpesaTransactionResponse,
    StkCallbackEnvelope,
)

router = APIRouter(prefix="/mpesa", tags=["mpesa"])


@router.post(
    "/stk-requests",
    response_model=MpesaTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(Permission.payments_write))],
    summary="Register STK push request",
    description="Record a pending STK push for a fee row using the checkout id returned by the provider.",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Missing permission"},
        404: {"description": "Student fee not found"},
        409: {"description": "Checkout request already registered"},
    },
)
def register_stk_request_endpoint(
    payload: MpesaStkRequestCreate,
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    transaction = register_stk_request(db, identity=identity, scope=scope, payload=payload)
    return serialize_mpesa_transaction(transaction)


@router.post(
    "/callback",
    response_model=MpesaCallbackAck,
    dependencies=[Depends(verify_mpesa_callback_token)],
    summary="STK push result callback",
    description="Provider webhook. A successful result applies the payment once; a failed result marks the request failed.",
    responses={401: {"description": "Invalid callback token"}, 404: {"description": "Unknown checkout request"}},
)
def stk_callback_endpoint(envelope: StkCallbackEnvelope, db: Session = Depends(get_db)):
    raw_callback = envelope.model_dump(mode="json", by_alias=True, exclude_none=True)
    transaction = handle_stk_callback(db, envelope=envelope, raw_callback=raw_callback)
    return {"ok": True, "status": transaction.status}


@router.post(
    "/c2b/confirm",
    dependencies=[Depends(verify_mpesa_callback_token)],
    summary="Paybill confirmation",
    description="Provider webhook for paybill payments. Always acknowledged; unmatched payments go to the review queue.",
    responses={401: {"description": "Invalid callback token"}},
)
def c2b_confirm_endpoint(raw_callback: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    return handle_c2b_confirmation(db, raw_callback=raw_callback)


@router.post(
    "/c2b/validate",
    dependencies=[Depends(verify_mpesa_callback_token)],
    summary="Paybill validation",
    description="Provider validation hook; every transaction is accepted.",
)
def c2b_validate_endpoint():
    return {"ResultCode": "0", "ResultDesc": "Accepted"}


@router.get(
    "/review",
    response_model=MpesaReviewListResponse,
    dependencies=[Depends(require_permissions(Permission.payments_read))],
    summary="M-Pesa review queue",
    description="Pending transactions that need manual reconciliation, newest first.",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Missing permission"}},
)
def review_queue_endpoint(
    limit: int = Query(default=50, ge=1, le=200),
    identity: Identity | None = Depends(get_current_identity),
    scope: TenantScope = Depends(get_tenant_scope),
    db: Session = Depends(get_db),
):
    transactions = list_review_queue(db, identity=identity, scope=scope, limit=limit)
    return {"items": [serialize_mpesa_transaction(transaction) for transaction in transactions]}
