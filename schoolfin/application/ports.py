"""
Narrow persistence interfaces used by the authorization and ledger core.

Each protocol covers only the entity operations one component needs; SQLAlchemy
adapters live in ``schoolfin.infrastructure.repositories``.
"""
from dataclasses import dataclass
from typing import Any, Protocol

from schoolfin.domain.roles import TenantRole
from schoolfin.infrastructure.db.models import AuditLog, Payment, StudentFee


@dataclass(frozen=True)
class MembershipRecord:
    school_id: int
    role: TenantRole


class MembershipReader(Protocol):
    def list_for_user(self, user_id: int) -> list[MembershipRecord]:
        """Return memberships in a stable order (oldest first)."""
        ...


class PaymentLedger(Protocol):
    def lock_student_fee(self, student_fee_id: int) -> StudentFee | None:
        """Load the fee row holding a write lock until the transaction ends."""
        ...

    def find_payment_by_client_request(self, student_fee_id: int, client_request_id: str) -> Payment | None: ...

    def add_payment(self, payment: Payment) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class AuditSink(Protocol):
    def append(self, entry: AuditLog) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


AuditValue = dict[str, Any] | list[Any] | str | int | None
