from schoolfin.domain.fee_engine import FeeRowState, StructureChangeResult, apply_structure_change, compute_status
from schoolfin.domain.fee_enums import FeeStatus


def test_compute_status_boundaries():
    """
    Validate status derivation from due and paid.

    1. Evaluate zero paid against positive and zero due.
    2. Evaluate partial payment.
    3. Evaluate exact and over payment.
    4. Validate each combination maps to the expected status.
    """
    assert compute_status(5000, 0) == FeeStatus.unpaid
    assert compute_status(0, 0) == FeeStatus.paid
    assert compute_status(5000, 1000) == FeeStatus.partially_paid
    assert compute_status(5000, 5000) == FeeStatus.paid
    assert compute_status(5000, 7000) == FeeStatus.paid


def test_new_row_for_positive_amount_is_unpaid():
    """
    Validate a missing row is created unpaid.

    1. Apply a structure amount with no existing row.
    2. Read the resulting state.
    3. Validate due equals the new amount and nothing is paid.
    4. Validate row is unlocked, unpaid and marked changed.
    """
    result = apply_structure_change(None, 5000)
    assert result == StructureChangeResult(
        amount_due_minor=5000,
        amount_paid_minor=0,
        locked=False,
        status=FeeStatus.unpaid,
        changed=True,
    )


def test_new_row_for_zero_amount_is_paid():
    """
    Validate a free charge starts out paid.

    1. Apply a zero structure amount with no existing row.
    2. Read the resulting state.
    3. Validate due and paid are zero.
    4. Validate status is paid and row is marked changed.
    """
    result = apply_structure_change(None, 0)
    assert result.amount_due_minor == 0
    assert result.amount_paid_minor == 0
    assert result.status == FeeStatus.paid
    assert result.changed is True


def test_overpaid_row_is_locked_with_payments_preserved():
    """
    Validate a reduction below what was paid locks the row.

    1. Start from an unlocked row with 6000 due and 7000 paid.
    2. Apply a new amount of 5000.
    3. Validate due becomes 5000 while paid stays 7000.
    4. Validate row is locked, paid and marked changed.
    """
    existing = FeeRowState(amount_due_minor=6000, amount_paid_minor=7000, locked=False, status=FeeStatus.paid)
    result = apply_structure_change(existing, 5000)
    assert result.amount_due_minor == 5000
    assert result.amount_paid_minor == 7000
    assert result.locked is True
    assert result.status == FeeStatus.paid
    assert result.changed is True


def test_locked_row_keeps_its_balance():
    """
    Validate a locked row ignores a structure change it can absorb.

    1. Start from a locked row with 6000 due and 1000 paid.
    2. Apply a new amount of 5000.
    3. Validate due, paid and status are unchanged.
    4. Validate row stays locked and is not marked changed.
    """
    existing = FeeRowState(
        amount_due_minor=6000, amount_paid_minor=1000, locked=True, status=FeeStatus.partially_paid
    )
    result = apply_structure_change(existing, 5000)
    assert result.amount_due_minor == 6000
    assert result.amount_paid_minor == 1000
    assert result.status == FeeStatus.partially_paid
    assert result.locked is True
    assert result.changed is False


def test_unlocked_row_moves_to_partially_paid():
    """
    Validate an unlocked row takes the new amount.

    1. Start from an unlocked row with 6000 due and 1000 paid.
    2. Apply a new amount of 5000.
    3. Validate due is 5000 and paid stays 1000.
    4. Validate status is partially_paid and row is marked changed.
    """
    existing = FeeRowState(amount_due_minor=6000, amount_paid_minor=1000, locked=False, status=FeeStatus.unpaid)
    result = apply_structure_change(existing, 5000)
    assert result.locked is False
    assert result.amount_due_minor == 5000
    assert result.amount_paid_minor == 1000
    assert result.status == FeeStatus.partially_paid
    assert result.changed is True


def test_exact_payment_after_reduction_is_paid_and_unlocked():
    """
    Validate paid-equals-due is settled without locking.

    1. Start from an unlocked row with 6000 due and 5000 paid.
    2. Apply a new amount of 5000.
    3. Validate status becomes paid.
    4. Validate row remains unlocked and is marked changed.
    """
    existing = FeeRowState(
        amount_due_minor=6000, amount_paid_minor=5000, locked=False, status=FeeStatus.partially_paid
    )
    result = apply_structure_change(existing, 5000)
    assert result.status == FeeStatus.paid
    assert result.locked is False
    assert result.changed is True


def test_reapplying_the_same_amount_is_a_no_op():
    """
    Validate structure application is idempotent.

    1. Apply several amounts to a range of starting rows.
    2. Feed each result back with the same amount.
    3. Validate the second pass reports no change.
    4. Validate the second pass returns an identical state.
    """
    starting_rows = [
        None,
        FeeRowState(amount_due_minor=6000, amount_paid_minor=0, locked=False, status=FeeStatus.unpaid),
        FeeRowState(amount_due_minor=6000, amount_paid_minor=2500, locked=False, status=FeeStatus.partially_paid),
        FeeRowState(amount_due_minor=6000, amount_paid_minor=9000, locked=False, status=FeeStatus.paid),
        FeeRowState(amount_due_minor=6000, amount_paid_minor=1000, locked=True, status=FeeStatus.partially_paid),
    ]
    for existing in starting_rows:
        for amount in (0, 2500, 5000, 8000):
            first = apply_structure_change(existing, amount)
            second = apply_structure_change(first.as_state(), amount)
            assert second.changed is False
            assert second.as_state() == first.as_state()


def test_lock_is_never_cleared_and_paid_never_reduced():
    """
    Validate structure changes cannot release a lock or lose money.

    1. Start from locked and unlocked rows with payments.
    2. Apply a sweep of new amounts.
    3. Validate a locked row stays locked.
    4. Validate amount paid is never reduced.
    """
    starting_rows = [
        FeeRowState(amount_due_minor=6000, amount_paid_minor=3000, locked=True, status=FeeStatus.partially_paid),
        FeeRowState(amount_due_minor=1000, amount_paid_minor=4000, locked=True, status=FeeStatus.paid),
        FeeRowState(amount_due_minor=6000, amount_paid_minor=3000, locked=False, status=FeeStatus.partially_paid),
    ]
    for existing in starting_rows:
        for amount in (0, 1000, 3000, 6000, 12000):
            result = apply_structure_change(existing, amount)
            assert result.amount_paid_minor == existing.amount_paid_minor
            if existing.locked:
                assert result.locked is True


def test_locked_row_balance_is_frozen_when_amount_covers_payments():
    """
    Validate locked balances only move when the new amount is below paid.

    1. Start from a locked row with 6000 due and 3000 paid.
    2. Apply amounts at or above the paid amount.
    3. Validate due is unchanged for each of them.
    4. Validate no change is reported.
    """
    existing = FeeRowState(
        amount_due_minor=6000, amount_paid_minor=3000, locked=True, status=FeeStatus.partially_paid
    )
    for amount in (3000, 4500, 6000, 9000):
        result = apply_structure_change(existing, amount)
        assert result.amount_due_minor == 6000
        assert result.changed is False


def test_status_always_matches_due_and_paid_for_unlocked_rows():
    """
    Validate the status invariant after every reconciliation.

    1. Sweep unlocked starting rows across paid amounts.
    2. Apply a sweep of new amounts to each row.
    3. Recompute status from the resulting due and paid.
    4. Validate the stored status equals the recomputed one.
    """
    for paid in (0, 1000, 5000, 9000):
        existing = FeeRowState(
            amount_due_minor=5000,
            amount_paid_minor=paid,
            locked=False,
            status=compute_status(5000, paid),
        )
        for amount in (0, 1000, 5000, 9000, 15000):
            result = apply_structure_change(existing, amount)
            assert result.status == compute_status(result.amount_due_minor, result.amount_paid_minor)
