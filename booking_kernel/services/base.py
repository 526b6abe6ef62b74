"""
BaseService -- common constructor for booking kernel services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session``.  Services persist through
    ``session.flush()`` and never commit or roll back; the
    ReconciliationOrchestrator (or a test) owns the transaction.

Architecture position:
    Kernel > Services.  Every write service in ``booking_kernel/services/``
    extends this class.
"""

from abc import ABC
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from booking_kernel.db.types import ZERO, to_money
from booking_kernel.domain.money import FirstPaymentRatio
from booking_kernel.domain.payment_status import PaymentStatus
from booking_kernel.exceptions import (
    InvalidAmountError,
    InvalidFirstPaymentRatioError,
    InvalidPaymentStatusError,
)


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session


def coerce_amount(field: str, value, *, allow_none: bool = True) -> Decimal | None:
    """
    Validate a monetary input and return it as a Decimal.

    Raises:
        InvalidAmountError: value is a float, non-numeric, not finite,
            negative, or None where None is not allowed.
    """
    if value is None:
        if allow_none:
            return None
        raise InvalidAmountError(field, "None")
    try:
        amount = to_money(value)
    except (TypeError, InvalidOperation) as exc:
        raise InvalidAmountError(field, repr(value)) from exc
    if not amount.is_finite() or amount < ZERO:
        raise InvalidAmountError(field, str(amount))
    return amount


def coerce_payment_status(value) -> PaymentStatus:
    """Raises InvalidPaymentStatusError for anything but a PaymentStatus value."""
    try:
        return PaymentStatus(value)
    except ValueError as exc:
        raise InvalidPaymentStatusError(repr(value)) from exc


def coerce_first_payment_ratio(value) -> FirstPaymentRatio:
    try:
        return FirstPaymentRatio(value)
    except ValueError as exc:
        raise InvalidFirstPaymentRatioError(repr(value)) from exc
