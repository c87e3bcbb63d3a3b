"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They
are separate from the ORM models to maintain clean boundaries between the
API and database layers. Format checks that depend on the network (wallet
addresses, transaction references) happen in the domain layer, so the API
and the services reject the same inputs.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateBookingRequest(BaseModel):
    """Request body for creating a booking awaiting payment."""

    service_id: str = Field(..., min_length=1, max_length=64, examples=["svc-logo-design"])
    network: str = Field(
        ...,
        description="Network the client will pay on (ethereum, base, solana, bsc)",
        examples=["base"],
    )


class CheckoutRequest(CreateBookingRequest):
    """Request body for creating a booking together with its payment claim."""

    claimed_amount: Decimal = Field(..., gt=0, description="Amount the client says was sent")
    claimed_tx_ref: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Transaction hash or signature of the claimed transfer",
    )
    payer_address: str | None = Field(
        default=None,
        description="Sending wallet; used for refunds when no wallet is registered",
    )
    idempotency_key: str | None = Field(
        default=None,
        max_length=128,
        description="Optional idempotency key to prevent duplicate checkouts",
    )


class DeliverRequest(BaseModel):
    """Request body for a creator delivering work."""

    artifacts: list[str] = Field(
        ...,
        min_length=1,
        description="Links or file references proving delivery",
        examples=[["https://files.example.com/final-logo.zip"]],
    )
    note: str | None = Field(default=None, max_length=5000)


class RejectDeliveryRequest(BaseModel):
    """Request body for a creator rejecting (withdrawing from) a booking."""

    reason: str = Field(..., min_length=1, max_length=2000)


class AutoReleaseRequest(BaseModel):
    """Request body for an admin triggering auto-release for one booking."""

    now: datetime | None = Field(
        default=None,
        description="Evaluate the deadline at this instant instead of the current time",
    )


class SubmitPaymentRequest(BaseModel):
    """Request body for recording a claimed payment."""

    purpose: str = Field(default="service_booking", examples=["service_booking", "creator_tier"])
    booking_id: uuid.UUID | None = None
    tier: str | None = Field(default=None, description="Creator tier, for creator_tier payments")
    network: str
    claimed_amount: Decimal = Field(..., gt=0)
    claimed_tx_ref: str = Field(..., min_length=1, max_length=100)
    payer_address: str | None = None


class VerifyPaymentRequest(BaseModel):
    """Request body for an admin's verification decision."""

    decision: str = Field(..., examples=["verified", "rejected"])
    reason: str | None = Field(default=None, max_length=2000)


class OpenDisputeRequest(BaseModel):
    """Request body for opening a dispute against a booking."""

    booking_id: uuid.UUID
    reason: str = Field(..., min_length=1, max_length=2000)
    opener_role: str | None = Field(
        default=None,
        description="client or creator; defaults to the caller's role",
    )


class ResolveDisputeRequest(BaseModel):
    """Request body for an admin resolving a dispute."""

    outcome: str = Field(..., examples=["refund", "release"])
    note: str | None = Field(default=None, max_length=5000)


class RecordExecutionRequest(BaseModel):
    """Request body for recording the external transfer that paid an obligation."""

    tx_ref: str = Field(..., min_length=1, max_length=100)
    executed_at: datetime | None = None
    beneficiary_address: str | None = Field(
        default=None,
        description="Required when the obligation was created without an address",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Response schema for a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: str
    creator_id: str
    service_id: str
    service_title: str
    amount: Decimal
    currency: str
    network: str
    delivery_days: int
    status: str
    delivery_artifacts: list[str] | None
    delivery_note: str | None
    rejection_reason: str | None
    created_at: datetime
    paid_at: datetime | None
    due_at: datetime | None
    delivered_at: datetime | None
    auto_release_at: datetime | None
    accepted_at: datetime | None
    settled_at: datetime | None
    updated_at: datetime


class PaymentResponse(BaseModel):
    """Response schema for a payment record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    payer_id: str
    purpose: str
    booking_id: uuid.UUID | None
    tier: str | None
    network: str
    claimed_amount: Decimal
    currency: str
    claimed_tx_ref: str
    payer_address: str | None
    status: str
    verifier_id: str | None
    verified_at: datetime | None
    rejection_reason: str | None
    created_at: datetime


class CheckoutResponse(BaseModel):
    booking: BookingResponse
    payment: PaymentResponse


class DisputeResponse(BaseModel):
    """Response schema for a dispute."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    opener_role: str
    opened_by: str
    reason: str
    status: str
    outcome: str | None
    resolver_id: str | None
    resolution_note: str | None
    resolved_at: datetime | None
    created_at: datetime


class ObligationResponse(BaseModel):
    """Response schema for a settlement obligation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    direction: str
    beneficiary_id: str
    beneficiary_address: str | None
    network: str
    currency: str
    gross_amount: Decimal
    fee_rate: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    execution_tx_ref: str | None
    executed_at: datetime | None
    executed_by: str | None
    created_at: datetime


class SettledResponse(BaseModel):
    """A booking that reached a terminal state and the obligation it created."""

    booking: BookingResponse
    obligation: ObligationResponse


class DisputeResolutionResponse(SettledResponse):
    dispute: DisputeResponse


class LedgerEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    event_type: str
    booking_id: uuid.UUID | None
    entity_id: uuid.UUID
    old_status: str | None
    new_status: str | None
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class BookingStatusResponse(BaseModel):
    """Lightweight status check response."""

    booking_id: uuid.UUID
    status: str
    is_terminal: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
    auto_release_at: datetime | None


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    error: str
    message: str
    kind: str
    retryable: bool = False


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    scheduler: str = "unknown"
