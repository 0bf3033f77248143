from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from schoolfin.application.errors import NotFoundError, ValidationError
from schoolfin.application.ports import PaymentLedger
from schoolfin.application.services.authorization_service import Identity, TenantScope, ensure_permission
from schoolfin.application.services.fee_summary_service import invalidate_fee_summary_cache
from schoolfin.application.services.payment_lock_service import payment_submission_lock
from schoolfin.domain.fee_engine import compute_status
from schoolfin.domain.fee_enums import PaymentMethod
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import Payment, StudentFee
from schoolfin.infrastructure.logging import get_logger
from schoolfin.infrastructure.repositories.payment_ledger_repository import SqlAlchemyPaymentLedger
from schoolfin.interfaces.api.v1.schemas.payment import PaymentCreate

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaymentApplication:
    payment: Payment
    student_fee: StudentFee
    replayed: bool = False


def apply_payment(
    ledger: PaymentLedger,
    *,
    student_fee_id: int,
    amount_minor: int,
    method: PaymentMethod,
    reference: str | None = None,
    client_request_id: str | None = None,
    created_from_offline: bool = False,
    paid_at: datetime | None = None,
) -> PaymentApplication:
    if amount_minor <= 0:
        raise ValidationError("Payment amount must be a positive number of minor units")

    logger.info(
        "payment_application_started",
        student_fee_id=student_fee_id,
        amount_minor=amount_minor,
        method=method.value,
        client_request_id=client_request_id,
    )
    try:
        fee = ledger.lock_student_fee(student_fee_id)
        if fee is None:
            raise NotFoundError("Student fee not found")

        if client_request_id is not None:
            previous = ledger.find_payment_by_client_request(student_fee_id, client_request_id)
            if previous is not None:
                ledger.rollback()
                logger.info(
                    "payment_application_replayed",
                    student_fee_id=student_fee_id,
                    payment_id=previous.id,
                    client_request_id=client_request_id,
                )
                return PaymentApplication(payment=previous, student_fee=fee, replayed=True)

        payment = Payment(
            student_fee_id=fee.id,
            amount_minor=amount_minor,
            method=method,
            reference=reference,
            paid_at=paid_at or datetime.now(timezone.utc),
            client_request_id=client_request_id,
            created_from_offline=created_from_offline,
        )
        ledger.add_payment(payment)
        fee.amount_paid_minor = fee.amount_paid_minor + amount_minor
        fee.status = compute_status(fee.amount_due_minor, fee.amount_paid_minor)
        ledger.commit()
    except IntegrityError:
        ledger.rollback()
        if client_request_id is None:
            raise
        # A concurrent delivery with the same client request id won the insert.
        return _replayed_after_conflict(ledger, student_fee_id=student_fee_id, client_request_id=client_request_id)
    except (SQLAlchemyError, NotFoundError):
        ledger.rollback()
        raise

    invalidate_fee_summary_cache(student_id=fee.student_id)
    logger.info(
        "payment_application_completed",
        student_fee_id=fee.id,
        payment_id=payment.id,
        amount_paid_minor=fee.amount_paid_minor,
        status=fee.status.value,
        locked=fee.locked,
    )
    return PaymentApplication(payment=payment, student_fee=fee)


def _replayed_after_conflict(ledger: PaymentLedger, *, student_fee_id: int, client_request_id: str) -> PaymentApplication:
    previous = ledger.find_payment_by_client_request(student_fee_id, client_request_id)
    fee = ledger.lock_student_fee(student_fee_id)
    ledger.rollback()
    if previous is None or fee is None:
        raise NotFoundError("Student fee not found")
    logger.info(
        "payment_application_replayed",
        student_fee_id=student_fee_id,
        payment_id=previous.id,
        client_request_id=client_request_id,
    )
    return PaymentApplication(payment=previous, student_fee=fee, replayed=True)


def get_student_fee_in_scope(db: Session, *, student_fee_id: int, scope: TenantScope) -> StudentFee:
    fee = db.execute(
        select(StudentFee).where(StudentFee.id == student_fee_id, scope.filter(StudentFee.school_id))
    ).scalar_one_or_none()
    if fee is None:
        raise NotFoundError("Student fee not found")
    return fee


def record_payment(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    payload: PaymentCreate,
) -> PaymentApplication:
    context = ensure_permission(identity, Permission.payments_write)
    get_student_fee_in_scope(db, student_fee_id=payload.student_fee_id, scope=scope)
    with payment_submission_lock(student_fee_id=payload.student_fee_id):
        result = apply_payment(
            SqlAlchemyPaymentLedger(db),
            student_fee_id=payload.student_fee_id,
            amount_minor=payload.amount_minor,
            method=payload.method,
            reference=payload.reference,
            client_request_id=payload.client_request_id,
            created_from_offline=payload.created_from_offline,
            paid_at=payload.paid_at,
        )
    logger.info(
        "payment_recorded",
        actor_user_id=context.user_id,
        student_fee_id=payload.student_fee_id,
        payment_id=result.payment.id,
        replayed=result.replayed,
    )
    return result


def list_payments_for_fee(db: Session, *, identity: Identity | None, scope: TenantScope, student_fee_id: int) -> list[Payment]:
    ensure_permission(identity, Permission.payments_read)
    get_student_fee_in_scope(db, student_fee_id=student_fee_id, scope=scope)
    return list(
        db.execute(
            select(Payment)
            .where(Payment.student_fee_id == student_fee_id)
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
        )
        .scalars()
        .all()
    )


def serialize_payment_response(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "student_fee_id": payment.student_fee_id,
        "amount_minor": payment.amount_minor,
        "method": payment.method,
        "reference": payment.reference,
        "paid_at": payment.paid_at,
        "client_request_id": payment.client_request_id,
        "created_from_offline": payment.created_from_offline,
        "created_at": payment.created_at,
    }
