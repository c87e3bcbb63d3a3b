"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the calling actor, services, Redis clients, and configuration.

Authentication happens upstream. The gateway forwards the authenticated
caller as two headers, ``X-Actor-Id`` and ``X-Actor-Role``; this module only
parses them into an ``Actor``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from creator_escrow.config import Settings, get_settings
from creator_escrow.domain.collaborators import EventPublisher
from creator_escrow.domain.enums import ActorRole
from creator_escrow.domain.policy import Actor
from creator_escrow.infrastructure.database.engine import get_async_session
from creator_escrow.infrastructure.notifications import get_event_publisher
from creator_escrow.infrastructure.redis_client import get_redis_or_none
from creator_escrow.services.booking_service import BookingService
from creator_escrow.services.dispute_service import DisputeService
from creator_escrow.services.lifecycle import BookingLifecycle
from creator_escrow.services.payment_service import PaymentService
from creator_escrow.services.settlement_service import SettlementService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when Redis was unreachable at startup."""
    return get_redis_or_none()


def get_publisher() -> EventPublisher:
    """Provide the ledger event publisher."""
    return get_event_publisher()


def get_current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    """Build the calling Actor from the identity headers.

    The system role is reserved for the in-process scheduler and is never
    accepted from a request.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required",
        )
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown actor role '{x_actor_role}'",
        ) from None
    if role == ActorRole.SYSTEM:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="The system role cannot be used over HTTP",
        )
    return Actor(id=x_actor_id.strip(), role=role)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


async def get_booking_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    publisher: EventPublisher = Depends(get_publisher),
    redis: aioredis.Redis | None = Depends(get_redis_client),
) -> BookingService:
    """Provide a BookingService bound to the current session."""
    return BookingService(session, settings=settings, publisher=publisher, redis=redis)


async def get_payment_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    publisher: EventPublisher = Depends(get_publisher),
) -> PaymentService:
    """Provide a PaymentService bound to the current session."""
    return PaymentService(session, settings=settings, publisher=publisher)


async def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    publisher: EventPublisher = Depends(get_publisher),
) -> DisputeService:
    """Provide a DisputeService bound to the current session."""
    return DisputeService(session, settings=settings, publisher=publisher)


async def get_settlement_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    publisher: EventPublisher = Depends(get_publisher),
) -> SettlementService:
    """Provide the SettlementService, sharing the lifecycle's audit trail."""
    return BookingLifecycle(session, settings=settings, publisher=publisher).settlement
