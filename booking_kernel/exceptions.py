"""
Typed Exception Hierarchy for the Booking Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the booking engine (HTTP handlers, CLI tools, background sweeps)
must react to failures by category, not by parsing messages:

  - ValidationError / NotFoundError -> reject the request, nothing was written
  - StateError                      -> reject, no partial effect
  - SideEffectError                 -> booking committed; repair later

Every exception carries:
  1. a TYPED class (catch by type, not message)
  2. a CODE class attribute (machine-readable, API-safe)
  3. structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BookingKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingAgentError
    |   +-- InvalidCompanionCustomersError
    |   +-- InvalidTrancheOrderError
    |   +-- TrancheAlreadyExistsError
    |   +-- MissingFirstPaymentError
    |   +-- InvalidAmountError
    |   +-- InvalidPaymentStatusError
    |   +-- InvalidFirstPaymentRatioError
    |   +-- InvalidInitialStatusError
    |   +-- InvalidPaymentTransitionError
    |
    +-- NotFoundError
    |   +-- BookingNotFoundError
    |   +-- CommissionNotFoundError
    |   +-- AgentNotFoundError
    |   +-- TripNotFoundError
    |   +-- CustomerNotFoundError
    |
    +-- StateError
    |   +-- InvalidCommissionStateError
    |
    +-- SideEffectError
    |   +-- CommissionReconciliationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                            | When Raised
--------------|---------------------------------|---------------------------------------
Validation    | MISSING_AGENT                   | Booking has no sales agent
              | INVALID_COMPANION_CUSTOMERS     | Companion holds no booking on the trip
              | INVALID_TRANCHE_ORDER           | second without first, third without second
              | TRANCHE_ALREADY_EXISTS          | Slot already holds a payment
              | MISSING_FIRST_PAYMENT           | Booking created without first tranche
              | INVALID_AMOUNT                  | Negative price/extra/payment amount
              | INVALID_PAYMENT_STATUS          | Unknown payment status value
              | INVALID_FIRST_PAYMENT_RATIO     | Ratio other than 100 / 50 / 30
              | INVALID_INITIAL_STATUS          | Created as FULLY_PAID / CANCELLED
              | INVALID_PAYMENT_TRANSITION      | Transition table rejects the move
--------------|---------------------------------|---------------------------------------
Not found     | BOOKING_NOT_FOUND               | Booking id unknown
              | COMMISSION_NOT_FOUND            | Commission id unknown
              | AGENT_NOT_FOUND                 | Sales user id unknown
              | TRIP_NOT_FOUND                  | Trip id unknown
              | CUSTOMER_NOT_FOUND              | Customer id unknown
--------------|---------------------------------|---------------------------------------
State         | INVALID_COMMISSION_STATE        | mark_paid on non-APPROVED commission
--------------|---------------------------------|---------------------------------------
Side effect   | COMMISSION_RECONCILIATION_FAILED| Post-commit reconciliation errored
--------------|---------------------------------|---------------------------------------
Immutability  | IMMUTABILITY_VIOLATION          | Modifying a recorded payment tranche

===============================================================================
HANDLING PATTERNS
===============================================================================

1. REJECT BEFORE WRITE:

    try:
        orchestrator.update_booking(booking_id, update)
    except ValidationError as e:
        return {"error": e.code, "message": str(e)}
    except NotFoundError as e:
        return {"error": e.code}, 404

2. SIDE EFFECTS ARE NOT RAISED:

    result = orchestrator.update_booking(booking_id, update)
    if result.reconciliation_error is not None:
        # booking is committed; the outbox sweep repairs the commission
        log.warning(result.reconciliation_error.code)
"""


class BookingKernelError(Exception):
    """
    Base exception for all booking kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BOOKING_KERNEL_ERROR"


# Validation exceptions


class ValidationError(BookingKernelError):
    """Request rejected before any write."""

    code: str = "VALIDATION_ERROR"


class MissingAgentError(ValidationError):
    """Booking has no assigned sales agent."""

    code: str = "MISSING_AGENT"

    def __init__(self, booking_id: str | None = None):
        self.booking_id = booking_id
        target = f"booking {booking_id}" if booking_id else "booking"
        super().__init__(f"A sales agent is required for {target}")


class InvalidCompanionCustomersError(ValidationError):
    """Companion customers must already hold a booking on the same trip."""

    code: str = "INVALID_COMPANION_CUSTOMERS"

    def __init__(self, trip_id: str, invalid_customer_ids: list[str]):
        self.trip_id = trip_id
        self.invalid_customer_ids = invalid_customer_ids
        super().__init__(
            f"Companion customers without a booking on trip {trip_id}: "
            f"{', '.join(invalid_customer_ids)}"
        )


class InvalidTrancheOrderError(ValidationError):
    """Tranche slots must be populated strictly in order."""

    code: str = "INVALID_TRANCHE_ORDER"

    def __init__(self, booking_id: str, slot: str, missing_slot: str):
        self.booking_id = booking_id
        self.slot = slot
        self.missing_slot = missing_slot
        super().__init__(
            f"Cannot record {slot} payment for booking {booking_id}: "
            f"{missing_slot} payment is missing"
        )


class TrancheAlreadyExistsError(ValidationError):
    """Tranche slot already holds an (immutable) payment."""

    code: str = "TRANCHE_ALREADY_EXISTS"

    def __init__(self, booking_id: str, slot: str, payment_id: str):
        self.booking_id = booking_id
        self.slot = slot
        self.payment_id = payment_id
        super().__init__(
            f"Booking {booking_id} already has a {slot} payment ({payment_id})"
        )


class MissingFirstPaymentError(ValidationError):
    """Bookings are created with their first tranche."""

    code: str = "MISSING_FIRST_PAYMENT"

    def __init__(self):
        super().__init__("A first payment is required to create a booking")


class InvalidAmountError(ValidationError):
    """Monetary input is negative or not a decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid amount for {field}: {value}")


class InvalidPaymentStatusError(ValidationError):
    """Value is not one of the PaymentStatus members."""

    code: str = "INVALID_PAYMENT_STATUS"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unknown payment status: {value}")


class InvalidFirstPaymentRatioError(ValidationError):
    code: str = "INVALID_FIRST_PAYMENT_RATIO"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unknown first payment ratio: {value}")


class InvalidInitialStatusError(ValidationError):
    """Bookings start as DEPOSIT_PENDING or DEPOSIT_PAID."""

    code: str = "INVALID_INITIAL_STATUS"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Booking cannot be created with payment status {status}")


class InvalidPaymentTransitionError(ValidationError):
    """Payment status transition rejected by the transition table."""

    code: str = "INVALID_PAYMENT_TRANSITION"

    def __init__(self, booking_id: str, from_status: str, to_status: str):
        self.booking_id = booking_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Booking {booking_id}: payment status cannot move "
            f"from {from_status} to {to_status}"
        )


# Not-found exceptions


class NotFoundError(BookingKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class BookingNotFoundError(NotFoundError):
    """Booking with given ID was not found."""

    code: str = "BOOKING_NOT_FOUND"

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class CommissionNotFoundError(NotFoundError):
    """Commission with given ID was not found."""

    code: str = "COMMISSION_NOT_FOUND"

    def __init__(self, commission_id: str):
        self.commission_id = commission_id
        super().__init__(f"Commission not found: {commission_id}")


class AgentNotFoundError(NotFoundError):
    """Sales user with given ID was not found."""

    code: str = "AGENT_NOT_FOUND"

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Sales agent not found: {agent_id}")


class TripNotFoundError(NotFoundError):
    """Trip with given ID was not found."""

    code: str = "TRIP_NOT_FOUND"

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip not found: {trip_id}")


class CustomerNotFoundError(NotFoundError):
    """Customer with given ID was not found."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


# State exceptions


class StateError(BookingKernelError):
    """Entity is not in a state that allows the operation."""

    code: str = "STATE_ERROR"


class InvalidCommissionStateError(StateError):
    """Commission must be APPROVED before it can be marked PAID."""

    code: str = "INVALID_COMMISSION_STATE"

    def __init__(self, commission_id: str, current_status: str, required_status: str):
        self.commission_id = commission_id
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(
            f"Commission {commission_id} is {current_status}; "
            f"must be {required_status} to be marked paid"
        )


# Side-effect exceptions


class SideEffectError(BookingKernelError):
    """A derived, post-commit effect failed after the primary write succeeded."""

    code: str = "SIDE_EFFECT_ERROR"


class CommissionReconciliationError(SideEffectError):
    """Commission reconciliation failed after the booking was committed."""

    code: str = "COMMISSION_RECONCILIATION_FAILED"

    def __init__(self, booking_id: str, reason: str, cause: str):
        self.booking_id = booking_id
        self.reason = reason
        self.cause = cause
        super().__init__(
            f"Commission reconciliation ({reason}) failed for booking "
            f"{booking_id}: {cause}"
        )


# Immutability exceptions


class ImmutabilityError(BookingKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
