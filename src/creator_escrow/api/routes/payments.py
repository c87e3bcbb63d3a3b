"""Payment ledger REST API routes.

Routes:
    POST   /api/v1/payments               — Record a claimed payment
    GET    /api/v1/payments               — Admin list with filters
    GET    /api/v1/payments/{id}          — Get one record (admin or payer)
    POST   /api/v1/payments/{id}/verify   — Admin verifies or rejects a claim
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creator_escrow.api.deps import get_current_actor, get_db_session, get_payment_service
from creator_escrow.domain.policy import Actor
from creator_escrow.schemas.escrow import (
    PaymentResponse,
    SubmitPaymentRequest,
    VerifyPaymentRequest,
)
from creator_escrow.services.payment_service import PaymentService
from creator_escrow.services.retry import retry_on_conflict

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=201,
    summary="Record a claimed payment",
)
async def submit_payment(
    request: SubmitPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_payment_service),
    session: AsyncSession = Depends(get_db_session),
) -> PaymentResponse:
    """Create a PENDING payment record for a booking or a creator tier."""
    record = await retry_on_conflict(
        session,
        lambda: svc.submit_payment(
            actor,
            purpose=request.purpose,
            network=request.network,
            claimed_amount=request.claimed_amount,
            claimed_tx_ref=request.claimed_tx_ref,
            booking_id=request.booking_id,
            tier=request.tier,
            payer_address=request.payer_address,
        ),
    )
    return PaymentResponse.model_validate(record)


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentResponse,
    summary="Verify or reject a payment claim",
)
async def verify_payment(
    payment_id: str,
    request: VerifyPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_payment_service),
    session: AsyncSession = Depends(get_db_session),
) -> PaymentResponse:
    """Resolve a PENDING record exactly once. Verification marks the booking PAID."""
    record = await retry_on_conflict(
        session,
        lambda: svc.verify_payment(actor, payment_id, request.decision, request.reason),
    )
    return PaymentResponse.model_validate(record)


@router.get(
    "",
    response_model=list[PaymentResponse],
    summary="List payment records",
)
async def list_payments(
    status: str | None = Query(default=None),
    purpose: str | None = Query(default=None),
    booking_id: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_payment_service),
) -> list[PaymentResponse]:
    records = await svc.list_payments(actor, status=status, purpose=purpose, booking_id=booking_id)
    return [PaymentResponse.model_validate(r) for r in records]


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get a payment record",
)
async def get_payment(
    payment_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    record = await svc.get_payment(actor, payment_id)
    return PaymentResponse.model_validate(record)
