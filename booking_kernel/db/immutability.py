"""
ORM-level immutability enforcement for payment records.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL reaches the database.  The listeners registered here reject:

    Entity      | When immutable              | Rule
    ------------|-----------------------------|------------------------------
    Payment     | ALWAYS (from creation)      | Tranches are append-only
    Commission  | After status = PAID         | Paid-out amount is settled

A PAID commission may still be forced back to PENDING by a booking
cancellation (status is the one mutable field); its amount, agent and
booking are frozen.

Only ORM operations are covered.  Raw SQL bypasses these listeners.
"""

from sqlalchemy import event, inspect

from booking_kernel.exceptions import ImmutabilityViolationError
from booking_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_FROZEN_PAID_COMMISSION_FIELDS = ("amount", "agent_id", "booking_id")


def _reject(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_payment_update(mapper, connection, target):
    _reject("Payment", target.id, "UPDATE", "Payment tranches cannot be modified")


def _check_payment_delete(mapper, connection, target):
    _reject("Payment", target.id, "DELETE", "Payment tranches cannot be deleted")


def _check_commission_update(mapper, connection, target):
    """Block changes to the settled fields of a commission that was PAID."""
    from booking_kernel.domain.commission import CommissionStatus

    state = inspect(target)
    status_history = state.attrs.status.history
    previous_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )
    if previous_status != CommissionStatus.PAID.value:
        return

    changed = [
        name for name in _FROZEN_PAID_COMMISSION_FIELDS
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        _reject(
            "Commission",
            target.id,
            "UPDATE",
            f"Paid commission fields are frozen: {', '.join(changed)}",
        )


def _check_commission_delete(mapper, connection, target):
    from booking_kernel.domain.commission import CommissionStatus

    if target.status == CommissionStatus.PAID.value:
        _reject("Commission", target.id, "DELETE", "Paid commissions cannot be deleted")


_LISTENERS = (
    ("Payment", "before_update", _check_payment_update),
    ("Payment", "before_delete", _check_payment_delete),
    ("Commission", "before_update", _check_commission_update),
    ("Commission", "before_delete", _check_commission_delete),
)


def _targets():
    from booking_kernel.models.commission import Commission
    from booking_kernel.models.payment import Payment

    return {"Payment": Payment, "Commission": Commission}


def register_immutability_listeners() -> None:
    """
    Register the immutability event listeners.

    Safe to call repeatedly; a listener already registered is skipped.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        target = targets[name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    Only for tests that need to violate the rules on purpose.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        target = targets[name]
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
