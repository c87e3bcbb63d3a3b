"""Domain exceptions for the creator escrow ledger.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Every error carries a ``kind`` so callers can tell "this already happened"
apart from "this isn't allowed (yet)", and a ``retryable`` flag. Only
ConcurrentModificationError is retryable.
"""

from __future__ import annotations

# Error kinds surfaced to the human actor
KIND_ALREADY_HAPPENED = "already_happened"
KIND_NOT_ALLOWED = "not_allowed"
KIND_CONFLICT = "conflict"
KIND_FORBIDDEN = "forbidden"
KIND_NOT_FOUND = "not_found"
KIND_INVALID = "invalid"


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    kind: str = KIND_INVALID
    retryable: bool = False

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- State Machine Errors ---


class InvalidTransitionError(MarketplaceError):
    """Raised when a booking is not in a state that permits the requested move.

    Example: pending_payment -> delivery_accepted (must be paid and delivered first)
    """

    kind = KIND_NOT_ALLOWED

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Cannot apply '{attempted_event}' to a booking in status '{current_state}'",
            code="INVALID_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class ConcurrentModificationError(MarketplaceError):
    """Raised when an optimistic conditional update matched zero rows.

    Another actor changed the record between our read and our write. The
    caller should re-read and decide again.
    """

    kind = KIND_CONFLICT
    retryable = True

    def __init__(self, entity: str, entity_id: str, expected: str) -> None:
        super().__init__(
            message=(
                f"{entity} {entity_id} was modified concurrently "
                f"(expected {expected}); reload and try again"
            ),
            code="CONCURRENT_MODIFICATION",
        )
        self.entity = entity
        self.entity_id = entity_id
        self.expected = expected


# --- Eligibility Errors ---


class NotEligibleError(MarketplaceError):
    """Raised when a time window or status precondition is not met."""

    kind = KIND_NOT_ALLOWED

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_ELIGIBLE")


class PaymentNotVerifiedError(MarketplaceError):
    """Raised when a booking is marked paid without exactly one verified payment."""

    kind = KIND_NOT_ALLOWED

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            message=f"Booking {booking_id} has no verified payment",
            code="PAYMENT_NOT_VERIFIED",
        )
        self.booking_id = booking_id


class BookingNotEligibleError(MarketplaceError):
    """Raised when a payment operation targets a booking that has moved on."""

    kind = KIND_NOT_ALLOWED

    def __init__(self, booking_id: str, status: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(
            message=f"Booking {booking_id} in status '{status}' is not eligible{detail}",
            code="BOOKING_NOT_ELIGIBLE",
        )
        self.booking_id = booking_id
        self.status = status


# --- One-shot Write Errors ---


class AlreadyResolvedError(MarketplaceError):
    """Raised on a second resolution of a payment claim or dispute."""

    kind = KIND_ALREADY_HAPPENED

    def __init__(self, entity: str, entity_id: str, status: str) -> None:
        super().__init__(
            message=f"{entity} {entity_id} was already resolved ({status})",
            code="ALREADY_RESOLVED",
        )
        self.entity = entity
        self.entity_id = entity_id
        self.status = status


class AlreadyExecutedError(MarketplaceError):
    """Raised when an obligation's execution is recorded a second time."""

    kind = KIND_ALREADY_HAPPENED

    def __init__(self, obligation_id: str, tx_ref: str) -> None:
        super().__init__(
            message=f"Obligation {obligation_id} was already executed with {tx_ref}",
            code="ALREADY_EXECUTED",
        )
        self.obligation_id = obligation_id
        self.tx_ref = tx_ref


class ObligationAlreadyExistsError(MarketplaceError):
    """Raised when a second settlement obligation is created for a booking."""

    kind = KIND_ALREADY_HAPPENED

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            message=f"A settlement obligation already exists for booking {booking_id}",
            code="OBLIGATION_ALREADY_EXISTS",
        )
        self.booking_id = booking_id


class TransactionReferenceInUseError(MarketplaceError):
    """Raised when a transaction reference is already claimed or recorded."""

    kind = KIND_ALREADY_HAPPENED

    def __init__(self, tx_ref: str) -> None:
        super().__init__(
            message=f"Transaction reference already in use: {tx_ref}",
            code="TX_REF_IN_USE",
        )
        self.tx_ref = tx_ref


# --- Authorization ---


class PermissionDeniedError(MarketplaceError):
    """Raised when the actor's role or party does not match the guard."""

    kind = KIND_FORBIDDEN

    def __init__(self, actor_id: str, action: str, reason: str) -> None:
        super().__init__(
            message=f"Actor {actor_id} may not {action}: {reason}",
            code="PERMISSION_DENIED",
        )
        self.actor_id = actor_id
        self.action = action


# --- Lookup Errors ---


class NotFoundError(MarketplaceError):
    """Base for missing entities."""

    kind = KIND_NOT_FOUND
    entity = "Entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(
            message=f"{self.entity} not found: {entity_id}",
            code=f"{self.entity.upper().replace(' ', '_')}_NOT_FOUND",
        )
        self.entity_id = entity_id


class BookingNotFoundError(NotFoundError):
    entity = "Booking"


class PaymentNotFoundError(NotFoundError):
    entity = "Payment"


class DisputeNotFoundError(NotFoundError):
    entity = "Dispute"


class ObligationNotFoundError(NotFoundError):
    entity = "Obligation"


class ServiceNotFoundError(NotFoundError):
    entity = "Service"


# --- Input Errors ---


class InvalidClaimError(MarketplaceError):
    """Raised when an operator-supplied claim is malformed (address, tx ref, amount)."""

    kind = KIND_INVALID

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_CLAIM")


# --- Idempotency Errors ---


class DuplicateOperationError(MarketplaceError):
    """Raised when a duplicate idempotency key is detected."""

    kind = KIND_ALREADY_HAPPENED

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
