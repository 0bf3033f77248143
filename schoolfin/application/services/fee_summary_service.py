from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfin.config import settings
from schoolfin.infrastructure.cache.cache_service import delete_key, get_json, set_json
from schoolfin.infrastructure.db.models import StudentFee

SUMMARY_FIELDS = (
    "total_due_minor",
    "total_paid_minor",
    "outstanding_minor",
    "credit_minor",
    "unpaid_count",
    "partially_paid_count",
    "paid_count",
    "locked_count",
)


def fee_summary_cache_key(*, student_id: int) -> str:
    return f"student_fee_summary:{student_id}"


def invalidate_fee_summary_cache(*, student_id: int) -> None:
    delete_key(fee_summary_cache_key(student_id=student_id))


def get_student_fee_summary(db: Session, *, student_id: int) -> dict[str, int]:
    cache_key = fee_summary_cache_key(student_id=student_id)
    cached = get_json(cache_key)
    if cached is not None and all(field in cached for field in SUMMARY_FIELDS):
        return {field: int(cached[field]) for field in SUMMARY_FIELDS}

    fees = db.execute(select(StudentFee).where(StudentFee.student_id == student_id)).scalars().all()

    summary = {field: 0 for field in SUMMARY_FIELDS}
    for fee in fees:
        summary["total_due_minor"] += fee.amount_due_minor
        summary["total_paid_minor"] += fee.amount_paid_minor
        # Overpayment on one row never offsets debt on another.
        summary["outstanding_minor"] += max(fee.amount_due_minor - fee.amount_paid_minor, 0)
        summary["credit_minor"] += max(fee.amount_paid_minor - fee.amount_due_minor, 0)
        summary[f"{fee.status.value}_count"] += 1
        if fee.locked:
            summary["locked_count"] += 1

    set_json(cache_key, summary, settings.fee_summary_cache_ttl_seconds)
    return summary
