from collections.abc import Iterator
from contextlib import contextmanager

from schoolfin.application.errors import ConflictError
from schoolfin.config import settings
from schoolfin.infrastructure.cache.cache_service import acquire_lock, release_lock


def payment_lock_key(*, student_fee_id: int) -> str:
    return f"payment_lock:student_fee:{student_fee_id}"


@contextmanager
def payment_submission_lock(*, student_fee_id: int) -> Iterator[None]:
    lock_key = payment_lock_key(student_fee_id=student_fee_id)
    lock_token = acquire_lock(lock_key, settings.payment_lock_ttl_seconds)
    if lock_token is None:
        raise ConflictError("A payment is already being processed for this student fee")
    try:
        yield
    finally:
        release_lock(lock_key, lock_token)
