import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import pydantic
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from schoolfin.application.errors import ApplicationError, ConflictError, NotFoundError, ValidationError
from schoolfin.application.services.authorization_service import Identity, TenantScope, ensure_permission
from schoolfin.application.services.payment_service import apply_payment, get_student_fee_in_scope
from schoolfin.domain.fee_enums import FeeStatus, PaymentMethod
from schoolfin.domain.mpesa_enums import MpesaReviewReason, MpesaTransactionStatus
from schoolfin.domain.permissions import Permission
from schoolfin.infrastructure.db.models import (
    FeeCategory,
    MpesaTransaction,
    Payment,
    Student,
    StudentFee,
    StudentPhoneAlias,
)
from schoolfin.infrastructure.logging import get_logger
from schoolfin.infrastructure.repositories.payment_ledger_repository import SqlAlchemyPaymentLedger
from schoolfin.interfaces.api.v1.schemas.mpesa import C2bConfirmation, MpesaStkRequestCreate, StkCallbackEnvelope

logger = get_logger(__name__)

C2B_ACK = {"ResultCode": "0", "ResultDesc": "Received"}
OUTSTANDING_STATUSES = (FeeStatus.unpaid, FeeStatus.partially_paid)
_NON_DIGITS = re.compile(r"\D")


def normalize_msisdn(raw: str | None) -> str | None:
    """Return a Kenyan number as ``2547XXXXXXXX`` or None when it cannot be read."""
    if not raw:
        return None
    digits = _NON_DIGITS.sub("", raw)
    if digits.startswith("254") and len(digits) == 12:
        return digits
    if digits.startswith("0") and len(digits) == 10:
        return f"254{digits[1:]}"
    if len(digits) == 9:
        return f"254{digits}"
    return None


def parse_bill_reference(raw: str | None) -> tuple[str, str | None]:
    reference = (raw or "").strip()
    admission_number, _, fee_code = reference.partition("-")
    fee_code = fee_code.strip().upper()
    return admission_number.strip(), fee_code or None


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def serialize_mpesa_transaction(transaction: MpesaTransaction) -> dict:
    return {
        "id": transaction.id,
        "school_id": transaction.school_id,
        "student_fee_id": transaction.student_fee_id,
        "payment_id": transaction.payment_id,
        "phone_number": transaction.phone_number,
        "amount_minor": transaction.amount_minor,
        "status": transaction.status,
        "review_reason": transaction.review_reason,
        "checkout_request_id": transaction.checkout_request_id,
        "mpesa_receipt_number": transaction.mpesa_receipt_number,
        "created_at": transaction.created_at,
    }


def register_stk_request(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    payload: MpesaStkRequestCreate,
) -> MpesaTransaction:
    context = ensure_permission(identity, Permission.payments_write)
    fee = get_student_fee_in_scope(db, student_fee_id=payload.student_fee_id, scope=scope)
    phone_number = normalize_msisdn(payload.phone_number)
    if phone_number is None:
        raise ValidationError("Phone number is not a valid M-Pesa number")

    transaction = MpesaTransaction(
        school_id=fee.school_id,
        student_fee_id=fee.id,
        phone_number=phone_number,
        amount_minor=payload.amount_minor,
        status=MpesaTransactionStatus.pending,
        checkout_request_id=payload.checkout_request_id,
        merchant_request_id=payload.merchant_request_id,
    )
    db.add(transaction)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Checkout request already registered") from exc
    db.refresh(transaction)
    logger.info(
        "mpesa_stk_request_registered",
        transaction_id=transaction.id,
        student_fee_id=fee.id,
        actor_user_id=context.user_id,
    )
    return transaction


def handle_stk_callback(db: Session, *, envelope: StkCallbackEnvelope, raw_callback: dict[str, Any]) -> MpesaTransaction:
    callback = envelope.body.stk_callback
    transaction = db.execute(
        select(MpesaTransaction).where(MpesaTransaction.checkout_request_id == callback.checkout_request_id)
    ).scalar_one_or_none()
    if transaction is None or transaction.student_fee_id is None:
        raise NotFoundError("M-Pesa transaction not found")

    if transaction.status == MpesaTransactionStatus.success:
        logger.info("mpesa_stk_callback_duplicate", transaction_id=transaction.id)
        return transaction

    if callback.result_code != 0:
        transaction.status = MpesaTransactionStatus.failed
        transaction.raw_callback = raw_callback
        db.commit()
        logger.info(
            "mpesa_stk_payment_failed",
            transaction_id=transaction.id,
            result_code=callback.result_code,
            result_desc=callback.result_desc,
        )
        return transaction

    receipt = callback.metadata_value("MpesaReceiptNumber")
    receipt_number = str(receipt) if receipt is not None else None
    transaction_id = transaction.id
    result = apply_payment(
        SqlAlchemyPaymentLedger(db),
        student_fee_id=transaction.student_fee_id,
        amount_minor=transaction.amount_minor,
        method=PaymentMethod.mpesa,
        reference=receipt_number,
        client_request_id=callback.checkout_request_id,
    )

    transaction = db.get(MpesaTransaction, transaction_id)
    transaction.status = MpesaTransactionStatus.success
    transaction.payment_id = result.payment.id
    transaction.mpesa_receipt_number = receipt_number or transaction.mpesa_receipt_number
    transaction.raw_callback = raw_callback
    db.commit()
    logger.info(
        "mpesa_stk_payment_applied",
        transaction_id=transaction.id,
        payment_id=result.payment.id,
        replayed=result.replayed,
    )
    return transaction


def _find_students_by_admission(db: Session, admission_number: str) -> list[Student]:
    if not admission_number:
        return []
    # Admission numbers are only unique per school.
    return list(
        db.execute(select(Student).where(Student.admission_number == admission_number).order_by(Student.id))
        .scalars()
        .all()
    )


def _find_student_ids_by_phone(db: Session, msisdn: str) -> set[int]:
    # Stored numbers come in mixed formats; compare the subscriber part only.
    subscriber = msisdn[-9:]
    student_ids = set(
        db.execute(
            select(Student.id).where(
                or_(
                    Student.phone_number.endswith(subscriber),
                    Student.guardian_phone_number.endswith(subscriber),
                )
            )
        ).scalars()
    )
    student_ids.update(
        db.execute(
            select(StudentPhoneAlias.student_id).where(StudentPhoneAlias.phone_number.endswith(subscriber))
        ).scalars()
    )
    return student_ids


def _resolve_payer(db: Session, *, admission_number: str, msisdn: str | None) -> tuple[Student | None, bool]:
    """
    Find the student a paybill confirmation pays for.

    The bill reference wins; the payer's number is only consulted when the
    reference names no student. Returns the student (or None) and whether the
    match was ambiguous.
    """
    students = _find_students_by_admission(db, admission_number)
    if len(students) > 1:
        return None, True
    if students:
        return students[0], False
    if msisdn is None:
        return None, False

    student_ids = _find_student_ids_by_phone(db, msisdn)
    if len(student_ids) > 1:
        return None, True
    if student_ids:
        return db.get(Student, student_ids.pop()), False
    return None, False


def _remember_payer_phone(db: Session, *, student: Student, msisdn: str) -> None:
    existing = db.execute(
        select(StudentPhoneAlias.id).where(
            StudentPhoneAlias.student_id == student.id,
            StudentPhoneAlias.phone_number == msisdn,
        )
    ).first()
    if existing is None:
        db.add(StudentPhoneAlias(school_id=student.school_id, student_id=student.id, phone_number=msisdn))


def _receipt_already_recorded(db: Session, receipt_number: str) -> bool:
    transaction_id = db.execute(
        select(MpesaTransaction.id).where(MpesaTransaction.mpesa_receipt_number == receipt_number)
    ).first()
    if transaction_id is not None:
        return True
    # Any fee of any student: the oldest outstanding fee moves once a receipt is credited.
    payment_id = db.execute(
        select(Payment.id)
        .where(Payment.method == PaymentMethod.mpesa, Payment.client_request_id == receipt_number)
        .limit(1)
    ).first()
    return payment_id is not None


def _find_oldest_outstanding_fee(db: Session, *, student: Student, fee_code: str | None) -> StudentFee | None:
    query = select(StudentFee).where(
        StudentFee.student_id == student.id,
        StudentFee.status.in_(OUTSTANDING_STATUSES),
    )
    if fee_code is not None:
        query = query.join(FeeCategory, FeeCategory.id == StudentFee.category_id).where(
            FeeCategory.school_id == student.school_id,
            FeeCategory.code == fee_code,
        )
    query = query.order_by(StudentFee.academic_year, StudentFee.term, StudentFee.created_at, StudentFee.id)
    return db.execute(query.limit(1)).scalars().first()


def _store_for_review(db: Session, fields: dict[str, Any], reason: MpesaReviewReason) -> MpesaTransaction | None:
    transaction = MpesaTransaction(**fields, status=MpesaTransactionStatus.pending, review_reason=reason)
    db.add(transaction)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same receipt already stored it.
        db.rollback()
        return None
    return transaction


def _credit_confirmation(
    db: Session,
    *,
    fields: dict[str, Any],
    student: Student,
    msisdn: str | None,
) -> MpesaTransaction | None:
    receipt_number = fields["mpesa_receipt_number"]
    transaction = MpesaTransaction(**fields, status=MpesaTransactionStatus.success)
    db.add(transaction)
    try:
        # Claims the receipt number before the fee row is touched.
        db.flush()
    except IntegrityError:
        db.rollback()
        return None

    try:
        # Commits the receipt row in the same transaction as the payment.
        result = apply_payment(
            SqlAlchemyPaymentLedger(db),
            student_fee_id=fields["student_fee_id"],
            amount_minor=fields["amount_minor"],
            method=PaymentMethod.mpesa,
            reference=receipt_number,
            client_request_id=receipt_number,
        )
    except (ApplicationError, SQLAlchemyError) as exc:
        db.rollback()
        logger.warning(
            "mpesa_c2b_apply_failed",
            receipt_number=receipt_number,
            student_fee_id=fields["student_fee_id"],
            error=str(exc),
        )
        return _store_for_review(db, fields, MpesaReviewReason.other)

    if result.replayed:
        return None

    transaction.payment_id = result.payment.id
    if msisdn is not None:
        _remember_payer_phone(db, student=student, msisdn=msisdn)
    db.commit()
    return transaction


def handle_c2b_confirmation(db: Session, *, raw_callback: dict[str, Any]) -> dict[str, str]:
    """
    Record a paybill confirmation and apply it when the payer resolves.

    The provider retries on anything but an acknowledgement, so every outcome
    acknowledges; unresolved confirmations wait in the review queue.
    """
    try:
        confirmation = C2bConfirmation.model_validate(raw_callback)
    except pydantic.ValidationError as exc:
        logger.warning("mpesa_c2b_payload_invalid", error_count=exc.error_count())
        return C2B_ACK

    receipt_number = confirmation.trans_id
    if _receipt_already_recorded(db, receipt_number):
        logger.info("mpesa_c2b_duplicate", receipt_number=receipt_number)
        return C2B_ACK

    msisdn = normalize_msisdn(confirmation.msisdn)
    admission_number, fee_code = parse_bill_reference(confirmation.bill_ref_number)
    student, ambiguous = _resolve_payer(db, admission_number=admission_number, msisdn=msisdn)
    fee = _find_oldest_outstanding_fee(db, student=student, fee_code=fee_code) if student is not None else None

    fields = {
        "school_id": student.school_id if student is not None else None,
        "student_fee_id": fee.id if fee is not None else None,
        "phone_number": msisdn or confirmation.msisdn or "UNKNOWN",
        "amount_minor": to_minor_units(confirmation.trans_amount),
        "mpesa_receipt_number": receipt_number,
        "raw_callback": raw_callback,
    }
    if ambiguous:
        transaction = _store_for_review(db, fields, MpesaReviewReason.multiple_students)
    elif student is None:
        transaction = _store_for_review(db, fields, MpesaReviewReason.no_student)
    elif fee is None:
        transaction = _store_for_review(db, fields, MpesaReviewReason.no_fees)
    else:
        transaction = _credit_confirmation(db, fields=fields, student=student, msisdn=msisdn)

    if transaction is None:
        logger.info("mpesa_c2b_duplicate", receipt_number=receipt_number)
        return C2B_ACK

    logger.info(
        "mpesa_c2b_recorded",
        transaction_id=transaction.id,
        receipt_number=receipt_number,
        status=transaction.status.value,
        review_reason=transaction.review_reason.value if transaction.review_reason is not None else None,
    )
    return C2B_ACK




def list_review_queue(
    db: Session,
    *,
    identity: Identity | None,
    scope: TenantScope,
    limit: int = 50,
) -> list[MpesaTransaction]:
    ensure_permission(identity, Permission.payments_read)
    return list(
        db.execute(
            select(MpesaTransaction)
            .where(
                MpesaTransaction.status == MpesaTransactionStatus.pending,
                scope.filter(MpesaTransaction.school_id),
            )
            .order_by(MpesaTransaction.created_at.desc(), MpesaTransaction.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
