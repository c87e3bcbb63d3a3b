"""Application services — use case orchestration."""

from creator_escrow.services.booking_service import BookingService
from creator_escrow.services.dispute_service import DisputeService
from creator_escrow.services.lifecycle import BookingLifecycle, Settled
from creator_escrow.services.payment_service import PaymentService
from creator_escrow.services.retry import retry_on_conflict
from creator_escrow.services.settlement_service import SettlementService

__all__ = [
    "BookingLifecycle",
    "BookingService",
    "DisputeService",
    "PaymentService",
    "SettlementService",
    "Settled",
    "retry_on_conflict",
]
