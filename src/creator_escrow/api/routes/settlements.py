"""Settlement ledger REST API routes (admin console).

Routes:
    GET    /api/v1/settlements/pending        — Obligations awaiting a transfer
    GET    /api/v1/settlements/executed       — Obligations already paid out
    GET    /api/v1/settlements/{id}           — Get one obligation
    POST   /api/v1/settlements/{id}/execute   — Record the transfer that paid it
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creator_escrow.api.deps import get_current_actor, get_db_session, get_settlement_service
from creator_escrow.domain.policy import Actor
from creator_escrow.schemas.escrow import ObligationResponse, RecordExecutionRequest
from creator_escrow.services.retry import retry_on_conflict
from creator_escrow.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/v1/settlements", tags=["Settlements"])


@router.get(
    "/pending",
    response_model=list[ObligationResponse],
    summary="List obligations awaiting execution",
)
async def list_pending(
    direction: str | None = Query(default=None, description="payout or refund"),
    actor: Actor = Depends(get_current_actor),
    svc: SettlementService = Depends(get_settlement_service),
) -> list[ObligationResponse]:
    obligations = await svc.list_pending(actor, direction)
    return [ObligationResponse.model_validate(o) for o in obligations]


@router.get(
    "/executed",
    response_model=list[ObligationResponse],
    summary="List executed obligations",
)
async def list_executed(
    direction: str | None = Query(default=None, description="payout or refund"),
    actor: Actor = Depends(get_current_actor),
    svc: SettlementService = Depends(get_settlement_service),
) -> list[ObligationResponse]:
    obligations = await svc.list_executed(actor, direction)
    return [ObligationResponse.model_validate(o) for o in obligations]


@router.get(
    "/{obligation_id}",
    response_model=ObligationResponse,
    summary="Get a settlement obligation",
)
async def get_obligation(
    obligation_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: SettlementService = Depends(get_settlement_service),
) -> ObligationResponse:
    obligation = await svc.get_obligation(actor, obligation_id)
    return ObligationResponse.model_validate(obligation)


@router.post(
    "/{obligation_id}/execute",
    response_model=ObligationResponse,
    summary="Record the external transfer for an obligation",
)
async def record_execution(
    obligation_id: str,
    request: RecordExecutionRequest,
    actor: Actor = Depends(get_current_actor),
    svc: SettlementService = Depends(get_settlement_service),
    session: AsyncSession = Depends(get_db_session),
) -> ObligationResponse:
    """Set the execution reference once. A second call fails with ALREADY_EXECUTED."""
    obligation = await retry_on_conflict(
        session,
        lambda: svc.record_execution(
            actor,
            obligation_id,
            tx_ref=request.tx_ref,
            executed_at=request.executed_at,
            beneficiary_address=request.beneficiary_address,
        ),
    )
    return ObligationResponse.model_validate(obligation)
