"""Pydantic API schemas."""

from creator_escrow.schemas.escrow import (
    BookingResponse,
    BookingStatusResponse,
    CheckoutRequest,
    CheckoutResponse,
    CreateBookingRequest,
    DeliverRequest,
    DisputeResolutionResponse,
    DisputeResponse,
    ErrorResponse,
    HealthResponse,
    LedgerEventResponse,
    ObligationResponse,
    OpenDisputeRequest,
    PaymentResponse,
    RecordExecutionRequest,
    RejectDeliveryRequest,
    ResolveDisputeRequest,
    SettledResponse,
    SubmitPaymentRequest,
    VerifyPaymentRequest,
)

__all__ = [
    "BookingResponse",
    "BookingStatusResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "CreateBookingRequest",
    "DeliverRequest",
    "DisputeResolutionResponse",
    "DisputeResponse",
    "ErrorResponse",
    "HealthResponse",
    "LedgerEventResponse",
    "ObligationResponse",
    "OpenDisputeRequest",
    "PaymentResponse",
    "RecordExecutionRequest",
    "RejectDeliveryRequest",
    "ResolveDisputeRequest",
    "SettledResponse",
    "SubmitPaymentRequest",
    "VerifyPaymentRequest",
]
