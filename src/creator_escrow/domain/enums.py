"""Domain enumerations for the creator escrow ledger.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class BookingStatus(enum.StrEnum):
    """Lifecycle states of a booking.

    Transitions are enforced by BookingStateMachine.
    See domain/state_machine.py for the transition table.
    """

    PENDING_PAYMENT = "pending_payment"
    PAYMENT_REJECTED = "payment_rejected"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    DISPUTED = "disputed"
    ACCEPTED = "accepted"
    AUTO_RELEASED = "auto_released"
    REFUNDED = "refunded"
    REJECTED_BY_CREATOR = "rejected_by_creator"


TERMINAL_BOOKING_STATUSES = frozenset(
    {
        BookingStatus.ACCEPTED,
        BookingStatus.AUTO_RELEASED,
        BookingStatus.REFUNDED,
        BookingStatus.REJECTED_BY_CREATOR,
    }
)


class PaymentStatus(enum.StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PaymentPurpose(enum.StrEnum):
    SERVICE_BOOKING = "service_booking"
    CREATOR_TIER = "creator_tier"


class PaymentDecision(enum.StrEnum):
    """What an admin decides about a pending payment claim."""

    VERIFIED = "verified"
    REJECTED = "rejected"


class CreatorTier(enum.StrEnum):
    BASIC = "basic"
    MID = "mid"
    PRO = "pro"


class DisputeStatus(enum.StrEnum):
    OPEN = "open"
    RESOLVED = "resolved"


class DisputeOutcome(enum.StrEnum):
    """Resolution of a dispute: money goes back to the client or on to the creator."""

    REFUND = "refund"
    RELEASE = "release"


class SettlementDirection(enum.StrEnum):
    PAYOUT = "payout"
    REFUND = "refund"


class ActorRole(enum.StrEnum):
    """Roles supplied by the identity collaborator.

    SYSTEM is reserved for background jobs such as the auto-release sweep.
    """

    CLIENT = "client"
    CREATOR = "creator"
    ADMIN = "admin"
    SYSTEM = "system"


class Network(enum.StrEnum):
    ETHEREUM = "ethereum"
    BASE = "base"
    SOLANA = "solana"
    BSC = "bsc"


EVM_NETWORKS = frozenset({Network.ETHEREUM, Network.BASE, Network.BSC})


class EventType(enum.StrEnum):
    """Types of audit events recorded in the ledger_events table.

    Every successful state change MUST produce exactly one event.
    """

    # Booking lifecycle
    BOOKING_CREATED = "booking.created"
    BOOKING_PAID = "booking.paid"
    BOOKING_PAYMENT_REJECTED = "booking.payment_rejected"
    BOOKING_PAYMENT_RESUBMITTED = "booking.payment_resubmitted"
    WORK_STARTED = "booking.work_started"
    WORK_DELIVERED = "booking.delivered"
    DELIVERY_ACCEPTED = "booking.accepted"
    AUTO_RELEASED = "booking.auto_released"
    DELIVERY_REJECTED = "booking.rejected_by_creator"
    BOOKING_DISPUTED = "booking.disputed"
    DISPUTE_RELEASED = "booking.dispute_released"
    DISPUTE_REFUNDED = "booking.dispute_refunded"

    # Payment ledger
    PAYMENT_SUBMITTED = "payment.submitted"
    PAYMENT_VERIFIED = "payment.verified"
    PAYMENT_REJECTED = "payment.rejected"

    # Dispute resolver
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_RESOLVED = "dispute.resolved"

    # Settlement ledger
    OBLIGATION_CREATED = "settlement.obligation_created"
    OBLIGATION_EXECUTED = "settlement.obligation_executed"
