from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfin.infrastructure.db.models import Payment, StudentFee


class SqlAlchemyPaymentLedger:
    def __init__(self, db: Session) -> None:
        self._db = db

    def lock_student_fee(self, student_fee_id: int) -> StudentFee | None:
        return self._db.execute(
            select(StudentFee).where(StudentFee.id == student_fee_id).with_for_update()
        ).scalar_one_or_none()

    def find_payment_by_client_request(self, student_fee_id: int, client_request_id: str) -> Payment | None:
        return self._db.execute(
            select(Payment).where(
                Payment.student_fee_id == student_fee_id,
                Payment.client_request_id == client_request_id,
            )
        ).scalar_one_or_none()

    def add_payment(self, payment: Payment) -> None:
        self._db.add(payment)
        self._db.flush()

    def commit(self) -> None:
        self._db.commit()

    def rollback(self) -> None:
        self._db.rollback()
