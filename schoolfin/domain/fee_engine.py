"""
Student fee state machine.

Pure reconciliation of a student fee row against a (re)proposed structure amount.
All amounts are integer minor units.
"""
from dataclasses import dataclass

from schoolfin.domain.fee_enums import FeeStatus


@dataclass(frozen=True)
class FeeRowState:
    amount_due_minor: int
    amount_paid_minor: int
    locked: bool
    status: FeeStatus


@dataclass(frozen=True)
class StructureChangeResult:
    amount_due_minor: int
    amount_paid_minor: int
    locked: bool
    status: FeeStatus
    changed: bool

    def as_state(self) -> FeeRowState:
        return FeeRowState(
            amount_due_minor=self.amount_due_minor,
            amount_paid_minor=self.amount_paid_minor,
            locked=self.locked,
            status=self.status,
        )


def compute_status(amount_due_minor: int, amount_paid_minor: int) -> FeeStatus:
    if amount_paid_minor <= 0:
        return FeeStatus.paid if amount_due_minor <= 0 else FeeStatus.unpaid
    if amount_paid_minor >= amount_due_minor:
        return FeeStatus.paid
    return FeeStatus.partially_paid


def apply_structure_change(existing: FeeRowState | None, new_amount_due_minor: int) -> StructureChangeResult:
    if existing is None:
        return StructureChangeResult(
            amount_due_minor=new_amount_due_minor,
            amount_paid_minor=0,
            locked=False,
            status=compute_status(new_amount_due_minor, 0),
            changed=True,
        )

    # Overpaid against the revised charge: keep every recorded payment and freeze the row.
    if existing.amount_paid_minor > new_amount_due_minor:
        return StructureChangeResult(
            amount_due_minor=new_amount_due_minor,
            amount_paid_minor=existing.amount_paid_minor,
            locked=True,
            status=FeeStatus.paid,
            changed=(
                not existing.locked
                or existing.amount_due_minor != new_amount_due_minor
                or existing.status != FeeStatus.paid
            ),
        )

    if existing.locked:
        return StructureChangeResult(
            amount_due_minor=existing.amount_due_minor,
            amount_paid_minor=existing.amount_paid_minor,
            locked=True,
            status=existing.status,
            changed=False,
        )

    next_status = compute_status(new_amount_due_minor, existing.amount_paid_minor)
    return StructureChangeResult(
        amount_due_minor=new_amount_due_minor,
        amount_paid_minor=existing.amount_paid_minor,
        locked=False,
        status=next_status,
        changed=existing.amount_due_minor != new_amount_due_minor or existing.status != next_status,
    )
