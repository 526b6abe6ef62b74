"""
Tests for the payment state machine.

Verifies:
- Change detection by value, never by field presence
- Reconciliation reason selection
- Transition table (opt-in)
- Status derivation from paid vs total (opt-in)
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from booking_kernel.domain.payment_status import (
    INITIAL_PAYMENT_STATUSES,
    PAYMENT_STATUS_TRANSITIONS,
    PaymentStatus,
    ReconciliationReason,
    derive_payment_status,
    detect_status_change,
    is_transition_allowed,
)

statuses = st.sampled_from(list(PaymentStatus))
amounts = st.decimals(min_value=0, max_value=100_000, places=2, allow_nan=False, allow_infinity=False)


class TestDetectStatusChange:
    def test_not_requested_is_no_change(self):
        change = detect_status_change(PaymentStatus.DEPOSIT_PAID, None)
        assert not change.changed
        assert change.current == PaymentStatus.DEPOSIT_PAID

    def test_same_value_is_no_change(self):
        change = detect_status_change("FULLY_PAID", PaymentStatus.FULLY_PAID)
        assert not change.changed
        assert change.reconciliation_reason is None

    def test_arrival_at_fully_paid(self):
        change = detect_status_change(PaymentStatus.DEPOSIT_PENDING, PaymentStatus.FULLY_PAID)
        assert change.changed
        assert change.became_fully_paid
        assert change.reconciliation_reason == ReconciliationReason.FULLY_PAID

    def test_cancellation_is_status_change(self):
        change = detect_status_change(PaymentStatus.FULLY_PAID, PaymentStatus.CANCELLED)
        assert change.changed
        assert not change.became_fully_paid
        assert change.reconciliation_reason == ReconciliationReason.STATUS_CHANGE

    @given(previous=statuses, requested=statuses)
    def test_changed_iff_values_differ(self, previous, requested):
        change = detect_status_change(previous, requested)
        assert change.changed == (previous != requested)
        assert (change.reconciliation_reason is None) == (previous == requested)


class TestTransitionTable:
    def test_initial_statuses(self):
        assert INITIAL_PAYMENT_STATUSES == {PaymentStatus.DEPOSIT_PENDING, PaymentStatus.DEPOSIT_PAID}

    @pytest.mark.parametrize(
        "from_status, to_status",
        [
            (PaymentStatus.DEPOSIT_PENDING, PaymentStatus.DEPOSIT_PAID),
            (PaymentStatus.DEPOSIT_PENDING, PaymentStatus.FULLY_PAID),
            (PaymentStatus.DEPOSIT_PAID, PaymentStatus.FULLY_PAID),
            (PaymentStatus.FULLY_PAID, PaymentStatus.CANCELLED),
        ],
    )
    def test_forward_moves_allowed(self, from_status, to_status):
        assert is_transition_allowed(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status, to_status",
        [
            (PaymentStatus.FULLY_PAID, PaymentStatus.DEPOSIT_PAID),
            (PaymentStatus.DEPOSIT_PAID, PaymentStatus.DEPOSIT_PENDING),
            (PaymentStatus.CANCELLED, PaymentStatus.FULLY_PAID),
        ],
    )
    def test_backward_moves_rejected(self, from_status, to_status):
        assert not is_transition_allowed(from_status, to_status)

    def test_cancelled_is_terminal(self):
        assert PAYMENT_STATUS_TRANSITIONS[PaymentStatus.CANCELLED] == frozenset()

    @given(status=statuses)
    def test_same_status_always_allowed(self, status):
        assert is_transition_allowed(status, status)


class TestDerivePaymentStatus:
    def test_nothing_paid(self):
        assert derive_payment_status(Decimal("0"), Decimal("10000"), PaymentStatus.DEPOSIT_PAID) == PaymentStatus.DEPOSIT_PENDING

    def test_partially_paid(self):
        assert derive_payment_status(Decimal("5000"), Decimal("10000"), PaymentStatus.DEPOSIT_PENDING) == PaymentStatus.DEPOSIT_PAID

    def test_exactly_paid(self):
        assert derive_payment_status(Decimal("10000"), Decimal("10000"), PaymentStatus.DEPOSIT_PAID) == PaymentStatus.FULLY_PAID

    def test_overpaid(self):
        assert derive_payment_status(Decimal("10500"), Decimal("10000"), PaymentStatus.DEPOSIT_PAID) == PaymentStatus.FULLY_PAID

    @given(paid=amounts, total=amounts)
    def test_cancelled_never_overridden(self, paid, total):
        assert derive_payment_status(paid, total, PaymentStatus.CANCELLED) == PaymentStatus.CANCELLED

    @given(paid=amounts, total=amounts, current=st.sampled_from([
        PaymentStatus.DEPOSIT_PENDING, PaymentStatus.DEPOSIT_PAID, PaymentStatus.FULLY_PAID,
    ]))
    def test_never_derives_cancelled(self, paid, total, current):
        assert derive_payment_status(paid, total, current) != PaymentStatus.CANCELLED
