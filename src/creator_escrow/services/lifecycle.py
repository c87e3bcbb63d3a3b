"""Booking Lifecycle — the single path through which a booking changes status.

Every status change, whichever service asks for it, goes through
``BookingLifecycle.apply``:

    1. The domain state machine validates the event from the current status.
    2. The repository runs a conditional UPDATE guarded by that status.
    3. One ledger event is appended and published.

Terminal transitions go through ``settle``, which additionally creates the
booking's settlement obligation in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from creator_escrow.config import get_settings
from creator_escrow.domain.deadlines import utcnow
from creator_escrow.domain.enums import EventType, PaymentStatus
from creator_escrow.domain.exceptions import BookingNotFoundError, PaymentNotVerifiedError
from creator_escrow.domain.fees import FeeSchedule
from creator_escrow.domain.state_machine import BookingStateMachine
from creator_escrow.infrastructure.database.repositories import (
    BookingRepository,
    PaymentRepository,
)
from creator_escrow.logging_config import get_logger
from creator_escrow.services.audit import AuditTrail
from creator_escrow.services.ids import parse_id
from creator_escrow.services.settlement_service import SettlementService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.config import Settings
    from creator_escrow.domain.collaborators import EventPublisher, WalletDirectory
    from creator_escrow.domain.enums import SettlementDirection
    from creator_escrow.domain.policy import Actor, RolePolicy
    from creator_escrow.infrastructure.database.orm_models import (
        Booking,
        SettlementObligation,
    )

logger = get_logger(__name__)

# state machine event -> audit event type
BOOKING_EVENTS: MappingProxyType[str, EventType] = MappingProxyType(
    {
        "payment_verified": EventType.BOOKING_PAID,
        "payment_rejected": EventType.BOOKING_PAYMENT_REJECTED,
        "payment_resubmitted": EventType.BOOKING_PAYMENT_RESUBMITTED,
        "work_started": EventType.WORK_STARTED,
        "work_delivered": EventType.WORK_DELIVERED,
        "delivery_accepted": EventType.DELIVERY_ACCEPTED,
        "auto_release_elapsed": EventType.AUTO_RELEASED,
        "delivery_rejected": EventType.DELIVERY_REJECTED,
        "dispute_opened": EventType.BOOKING_DISPUTED,
        "dispute_released": EventType.DISPUTE_RELEASED,
        "dispute_refunded": EventType.DISPUTE_REFUNDED,
    }
)


@dataclass(frozen=True)
class Settled:
    """A booking that reached a terminal state, and what it now owes."""

    booking: Booking
    obligation: SettlementObligation


class BookingLifecycle:
    """Applies state machine events to persisted bookings."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        publisher: EventPublisher | None = None,
        wallets: WalletDirectory | None = None,
        policy: RolePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.fees = FeeSchedule.from_settings(self.settings)
        self.clock = clock or utcnow
        self.audit = AuditTrail(session, publisher)
        self.settlement = SettlementService(
            session,
            self.audit,
            settings=self.settings,
            wallets=wallets,
            policy=policy,
            clock=self.clock,
        )
        self._bookings = BookingRepository(session)
        self._payments = PaymentRepository(session)

    async def get_or_raise(self, booking_id: str | uuid.UUID) -> Booking:
        booking = await self._bookings.get_by_id(parse_id(booking_id, BookingNotFoundError))
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def apply(
        self,
        booking: Booking,
        event_name: str,
        actor: Actor,
        *,
        metadata: dict | None = None,
        **values: Any,
    ) -> Booking:
        """Validate and persist one transition.

        Raises:
            InvalidTransitionError: If ``event_name`` may not fire from the current status.
            ConcurrentModificationError: If the row changed since it was read.
        """
        old_status = booking.status
        new_status = BookingStateMachine(current_status=old_status).fire(event_name)
        await self._bookings.transition(booking, old_status, new_status.value, **values)

        await self.audit.record(
            BOOKING_EVENTS[event_name],
            entity_id=booking.id,
            booking_id=booking.id,
            actor=actor,
            old_status=old_status,
            new_status=new_status.value,
            metadata=metadata,
        )
        logger.info(
            "booking.transitioned",
            booking_id=str(booking.id),
            transition=event_name,
            old_status=old_status,
            new_status=new_status.value,
            actor=str(actor),
        )
        return booking

    async def mark_paid(self, booking: Booking, actor: Actor, payment_id: uuid.UUID) -> Booking:
        """Advance to ``paid``; requires exactly one verified payment record."""
        verified = await self._payments.count_by_booking(booking.id, PaymentStatus.VERIFIED)
        if verified != 1:
            raise PaymentNotVerifiedError(str(booking.id))
        return await self.apply(
            booking,
            "payment_verified",
            actor,
            metadata={"payment_id": str(payment_id)},
            paid_at=self.clock(),
        )

    async def settle(
        self,
        booking: Booking,
        event_name: str,
        actor: Actor,
        direction: SettlementDirection,
        fee_rate: Decimal,
        *,
        metadata: dict | None = None,
        **values: Any,
    ) -> Settled:
        """Move to a terminal state and create the obligation it implies."""
        booking = await self.apply(
            booking,
            event_name,
            actor,
            metadata=metadata,
            settled_at=self.clock(),
            auto_release_at=None,
            **values,
        )
        obligation = await self.settlement.create_obligation(booking, direction, fee_rate, actor)
        return Settled(booking=booking, obligation=obligation)
