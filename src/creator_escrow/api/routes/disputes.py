"""Dispute REST API routes.

Routes:
    POST   /api/v1/disputes                — Open a dispute on a booking
    GET    /api/v1/disputes                — Admin list with filters
    GET    /api/v1/disputes/{id}           — Get one dispute (admin or a party)
    POST   /api/v1/disputes/{id}/resolve   — Admin resolves with refund or release
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creator_escrow.api.deps import get_current_actor, get_db_session, get_dispute_service
from creator_escrow.domain.policy import Actor
from creator_escrow.schemas.escrow import (
    BookingResponse,
    DisputeResolutionResponse,
    DisputeResponse,
    ObligationResponse,
    OpenDisputeRequest,
    ResolveDisputeRequest,
)
from creator_escrow.services.dispute_service import DisputeService
from creator_escrow.services.retry import retry_on_conflict

router = APIRouter(prefix="/api/v1/disputes", tags=["Disputes"])


@router.post(
    "",
    response_model=DisputeResponse,
    status_code=201,
    summary="Open a dispute",
)
async def open_dispute(
    request: OpenDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    svc: DisputeService = Depends(get_dispute_service),
    session: AsyncSession = Depends(get_db_session),
) -> DisputeResponse:
    """Freeze a paid, in-progress or delivered booking. Valid within the dispute window."""
    dispute = await retry_on_conflict(
        session,
        lambda: svc.open_dispute(actor, request.booking_id, request.reason, request.opener_role),
    )
    return DisputeResponse.model_validate(dispute)


@router.post(
    "/{dispute_id}/resolve",
    response_model=DisputeResolutionResponse,
    summary="Resolve a dispute",
)
async def resolve_dispute(
    dispute_id: str,
    request: ResolveDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    svc: DisputeService = Depends(get_dispute_service),
    session: AsyncSession = Depends(get_db_session),
) -> DisputeResolutionResponse:
    """Settle the booking: ``release`` pays the creator, ``refund`` repays the client."""
    dispute, settled = await retry_on_conflict(
        session,
        lambda: svc.resolve_dispute(actor, dispute_id, request.outcome, request.note),
    )
    return DisputeResolutionResponse(
        dispute=DisputeResponse.model_validate(dispute),
        booking=BookingResponse.model_validate(settled.booking),
        obligation=ObligationResponse.model_validate(settled.obligation),
    )


@router.get(
    "",
    response_model=list[DisputeResponse],
    summary="List disputes",
)
async def list_disputes(
    status: str | None = Query(default=None),
    booking_id: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> list[DisputeResponse]:
    disputes = await svc.list_disputes(actor, status=status, booking_id=booking_id)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get(
    "/{dispute_id}",
    response_model=DisputeResponse,
    summary="Get a dispute",
)
async def get_dispute(
    dispute_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    dispute = await svc.get_dispute(actor, dispute_id)
    return DisputeResponse.model_validate(dispute)
