"""Booking REST API routes.

These endpoints drive a booking through its lifecycle. Every mutation goes
through BookingService, the same service the auto-release sweep uses, so the
HTTP surface cannot bypass a state machine guard.

Routes:
    POST   /api/v1/bookings                    — Create a booking awaiting payment
    POST   /api/v1/bookings/checkout           — Create a booking with its payment claim
    GET    /api/v1/bookings                    — List bookings visible to the caller
    GET    /api/v1/bookings/{id}               — Get booking details
    GET    /api/v1/bookings/{id}/status        — Lightweight status check
    GET    /api/v1/bookings/{id}/events        — Audit trail
    POST   /api/v1/bookings/{id}/start         — Creator starts work
    POST   /api/v1/bookings/{id}/deliver       — Creator delivers work
    POST   /api/v1/bookings/{id}/accept        — Client accepts delivery
    POST   /api/v1/bookings/{id}/reject        — Creator rejects the booking
    POST   /api/v1/bookings/{id}/auto-release  — Admin forces the deadline check
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creator_escrow.api.deps import get_booking_service, get_current_actor, get_db_session
from creator_escrow.domain.policy import Actor
from creator_escrow.logging_config import get_logger
from creator_escrow.schemas.escrow import (
    AutoReleaseRequest,
    BookingResponse,
    BookingStatusResponse,
    CheckoutRequest,
    CheckoutResponse,
    CreateBookingRequest,
    DeliverRequest,
    LedgerEventResponse,
    ObligationResponse,
    PaymentResponse,
    RejectDeliveryRequest,
    SettledResponse,
)
from creator_escrow.services.booking_service import BookingService
from creator_escrow.services.lifecycle import Settled
from creator_escrow.services.retry import retry_on_conflict

router = APIRouter(prefix="/api/v1/bookings", tags=["Bookings"])
logger = get_logger(__name__)


def _settled(result: Settled) -> SettledResponse:
    return SettledResponse(
        booking=BookingResponse.model_validate(result.booking),
        obligation=ObligationResponse.model_validate(result.obligation),
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=201,
    summary="Create a booking awaiting payment",
)
async def create_booking(
    request: CreateBookingRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Snapshot a catalog service into a new booking in PENDING_PAYMENT."""
    booking = await svc.create_booking(actor, request.service_id, request.network)
    return BookingResponse.model_validate(booking)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=201,
    summary="Create a booking together with its payment claim",
)
async def checkout(
    request: CheckoutRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> CheckoutResponse:
    """Create the booking and a pending payment record in one transaction."""
    booking, payment = await svc.checkout(
        actor,
        service_id=request.service_id,
        network=request.network,
        claimed_amount=request.claimed_amount,
        claimed_tx_ref=request.claimed_tx_ref,
        payer_address=request.payer_address,
        idempotency_key=request.idempotency_key,
    )
    return CheckoutResponse(
        booking=BookingResponse.model_validate(booking),
        payment=PaymentResponse.model_validate(payment),
    )


# ---------------------------------------------------------------------------
# Work and delivery
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/start",
    response_model=BookingResponse,
    summary="Creator starts work",
)
async def start_work(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
    session: AsyncSession = Depends(get_db_session),
) -> BookingResponse:
    """Transitions PAID -> IN_PROGRESS."""
    booking = await retry_on_conflict(session, lambda: svc.start_work(actor, booking_id))
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/deliver",
    response_model=BookingResponse,
    summary="Creator delivers work",
)
async def deliver(
    booking_id: str,
    request: DeliverRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
    session: AsyncSession = Depends(get_db_session),
) -> BookingResponse:
    """Transitions IN_PROGRESS -> DELIVERED and starts the auto-release countdown."""
    booking = await retry_on_conflict(
        session, lambda: svc.deliver(actor, booking_id, request.artifacts, request.note)
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/accept",
    response_model=SettledResponse,
    summary="Client accepts the delivery",
)
async def accept_delivery(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
    session: AsyncSession = Depends(get_db_session),
) -> SettledResponse:
    """Transitions DELIVERED -> ACCEPTED and creates the creator's payout obligation."""
    result = await retry_on_conflict(session, lambda: svc.accept_delivery(actor, booking_id))
    return _settled(result)


@router.post(
    "/{booking_id}/reject",
    response_model=SettledResponse,
    summary="Creator rejects the booking",
)
async def reject_delivery(
    booking_id: str,
    request: RejectDeliveryRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
    session: AsyncSession = Depends(get_db_session),
) -> SettledResponse:
    """Transitions DELIVERED -> REJECTED_BY_CREATOR and creates the client's refund."""
    result = await retry_on_conflict(
        session, lambda: svc.reject_delivery(actor, booking_id, request.reason)
    )
    return _settled(result)


@router.post(
    "/{booking_id}/auto-release",
    response_model=SettledResponse,
    summary="Release a delivered booking whose deadline has passed",
)
async def auto_release(
    booking_id: str,
    request: AutoReleaseRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
    session: AsyncSession = Depends(get_db_session),
) -> SettledResponse:
    """Admin-triggered equivalent of one auto-release sweep step."""
    now = request.now if request is not None else None
    result = await retry_on_conflict(
        session, lambda: svc.auto_release(booking_id, now=now, actor=actor)
    )
    return _settled(result)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[BookingResponse],
    summary="List bookings",
)
async def list_bookings(
    status: str | None = Query(default=None),
    client_id: str | None = Query(default=None),
    creator_id: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    """Admins see every booking; clients and creators see their own."""
    bookings = await svc.list_bookings(
        actor, status=status, client_id=client_id, creator_id=creator_id
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking details",
)
async def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await svc.get_booking(actor, booking_id)
    return BookingResponse.model_validate(booking)


@router.get(
    "/{booking_id}/status",
    response_model=BookingStatusResponse,
    summary="Get booking status",
)
async def get_booking_status(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingStatusResponse:
    """Lightweight status check with the events that may fire next."""
    status = await svc.get_status(actor, booking_id)
    return BookingStatusResponse(**status)


@router.get(
    "/{booking_id}/events",
    response_model=list[LedgerEventResponse],
    summary="Get booking audit trail",
)
async def get_booking_events(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> list[LedgerEventResponse]:
    """Fetch the full audit trail for a booking, oldest first."""
    events = await svc.get_events(actor, booking_id)
    return [LedgerEventResponse.model_validate(e) for e in events]
