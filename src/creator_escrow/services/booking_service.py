"""Booking Service — use cases of the booking escrow lifecycle.

This is the application layer that coordinates between:
    - Role policy (who may do what to which booking)
    - Domain state machine and time rules (via BookingLifecycle)
    - Repositories (data access)
    - Settlement ledger (obligations for terminal states)

REST routes and the auto-release sweep both call into this service,
ensuring a single source of truth for all business rules.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from creator_escrow.domain.addresses import parse_network
from creator_escrow.domain.deadlines import as_utc, auto_release_deadline, is_auto_release_due
from creator_escrow.domain.enums import (
    ActorRole,
    BookingStatus,
    EventType,
    PaymentPurpose,
    SettlementDirection,
)
from creator_escrow.domain.exceptions import (
    DuplicateOperationError,
    InvalidClaimError,
    NotEligibleError,
    ServiceNotFoundError,
)
from creator_escrow.domain.policy import SYSTEM_ACTOR, Action, default_policy
from creator_escrow.domain.state_machine import BookingStateMachine
from creator_escrow.infrastructure.database.orm_models import Booking
from creator_escrow.infrastructure.database.repositories import BookingRepository, SqlCatalog
from creator_escrow.infrastructure.redis_client import claim_idempotency, release_idempotency
from creator_escrow.logging_config import get_logger
from creator_escrow.services.lifecycle import BookingLifecycle
from creator_escrow.services.payment_service import PaymentService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime
    from decimal import Decimal

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.config import Settings
    from creator_escrow.domain.collaborators import (
        CatalogProvider,
        EventPublisher,
        WalletDirectory,
    )
    from creator_escrow.domain.policy import Actor, RolePolicy
    from creator_escrow.infrastructure.database.orm_models import LedgerEvent, PaymentRecord
    from creator_escrow.services.lifecycle import Settled

logger = get_logger(__name__)


class BookingService:
    """Manages the booking lifecycle from checkout to settlement."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        publisher: EventPublisher | None = None,
        catalog: CatalogProvider | None = None,
        wallets: WalletDirectory | None = None,
        policy: RolePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        redis: aioredis.Redis | None = None,
    ) -> None:
        self._lifecycle = BookingLifecycle(
            session,
            settings=settings,
            publisher=publisher,
            wallets=wallets,
            policy=policy,
            clock=clock,
        )
        self._settings = self._lifecycle.settings
        self._policy = policy or default_policy
        self._catalog = catalog or SqlCatalog(session)
        self._bookings = BookingRepository(session)
        self._payments = PaymentService(session, policy=self._policy, lifecycle=self._lifecycle)
        self._redis = redis

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_booking(self, actor: Actor, service_id: str, network: str) -> Booking:
        """Snapshot a catalog service into a new booking awaiting payment."""
        self._policy.authorize(actor, Action.CREATE_BOOKING)
        net = parse_network(network, self._settings.supported_network_list)

        service = await self._catalog.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        if not service.active:
            raise NotEligibleError(f"Service {service_id} is not currently bookable")
        if service.creator_id == actor.id:
            raise NotEligibleError("Creators cannot book their own services")
        if service.price <= 0:
            raise InvalidClaimError(f"Service {service_id} has no valid price")

        now = self._lifecycle.clock()
        booking = Booking(
            client_id=actor.id,
            creator_id=service.creator_id,
            service_id=service.service_id,
            service_title=service.title,
            amount=service.price,
            currency=service.currency,
            network=net.value,
            delivery_days=service.delivery_days,
            due_at=now + timedelta(days=service.delivery_days),
            status=BookingStatus.PENDING_PAYMENT.value,
        )
        booking = await self._bookings.create(booking)

        await self._lifecycle.audit.record(
            EventType.BOOKING_CREATED,
            entity_id=booking.id,
            booking_id=booking.id,
            actor=actor,
            new_status=BookingStatus.PENDING_PAYMENT,
            metadata={
                "service_id": service.service_id,
                "amount": str(service.price),
                "network": net.value,
            },
        )
        logger.info(
            "booking.created",
            booking_id=str(booking.id),
            service_id=service.service_id,
            amount=str(service.price),
        )
        return booking

    async def checkout(
        self,
        actor: Actor,
        service_id: str,
        network: str,
        claimed_amount: Decimal | str,
        claimed_tx_ref: str,
        payer_address: str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Booking, PaymentRecord]:
        """Create a booking and its first payment claim in one transaction.

        Raises:
            DuplicateOperationError: If ``idempotency_key`` was already used.
        """
        claimed = False
        key = f"checkout:{actor.id}:{idempotency_key}"
        if idempotency_key and self._redis is not None:
            claimed = await claim_idempotency(key, client=self._redis)
            if not claimed:
                raise DuplicateOperationError(idempotency_key)

        try:
            booking = await self.create_booking(actor, service_id, network)
            payment = await self._payments.submit_payment(
                actor,
                purpose=PaymentPurpose.SERVICE_BOOKING,
                network=network,
                claimed_amount=claimed_amount,
                claimed_tx_ref=claimed_tx_ref,
                booking_id=booking.id,
                payer_address=payer_address,
            )
        except Exception:
            if claimed:
                await release_idempotency(key, client=self._redis)
            raise
        return booking, payment

    # ------------------------------------------------------------------
    # Work and delivery (creator)
    # ------------------------------------------------------------------

    async def start_work(self, actor: Actor, booking_id: str | uuid.UUID) -> Booking:
        booking = await self._lifecycle.get_or_raise(booking_id)
        self._authorize(actor, Action.START_WORK, booking)
        return await self._lifecycle.apply(booking, "work_started", actor)

    async def deliver(
        self,
        actor: Actor,
        booking_id: str | uuid.UUID,
        artifacts: list[str],
        note: str | None = None,
    ) -> Booking:
        """Attach proof of delivery and start the auto-release countdown."""
        cleaned = [a.strip() for a in artifacts or [] if a and a.strip()]
        if not cleaned:
            raise InvalidClaimError("At least one delivery artifact is required")

        booking = await self._lifecycle.get_or_raise(booking_id)
        self._authorize(actor, Action.DELIVER, booking)

        delivered_at = self._lifecycle.clock()
        deadline = auto_release_deadline(delivered_at, self._settings.auto_release_delay)
        return await self._lifecycle.apply(
            booking,
            "work_delivered",
            actor,
            metadata={"artifacts": len(cleaned), "auto_release_at": deadline.isoformat()},
            delivered_at=delivered_at,
            auto_release_at=deadline,
            delivery_artifacts=cleaned,
            delivery_note=note,
        )

    # ------------------------------------------------------------------
    # Delivery outcomes
    # ------------------------------------------------------------------

    async def accept_delivery(self, actor: Actor, booking_id: str | uuid.UUID) -> Settled:
        """Client accepts the delivery; the creator is owed a payout."""
        booking = await self._lifecycle.get_or_raise(booking_id)
        self._authorize(actor, Action.ACCEPT_DELIVERY, booking)
        return await self._lifecycle.settle(
            booking,
            "delivery_accepted",
            actor,
            SettlementDirection.PAYOUT,
            self._lifecycle.fees.payout,
            accepted_at=self._lifecycle.clock(),
        )

    async def reject_delivery(
        self, actor: Actor, booking_id: str | uuid.UUID, reason: str
    ) -> Settled:
        """Creator withdraws from a delivered booking; the client is owed a refund."""
        if not reason or not reason.strip():
            raise InvalidClaimError("A rejection reason is required")
        booking = await self._lifecycle.get_or_raise(booking_id)
        self._authorize(actor, Action.REJECT_DELIVERY, booking)
        return await self._lifecycle.settle(
            booking,
            "delivery_rejected",
            actor,
            SettlementDirection.REFUND,
            self._lifecycle.fees.creator_rejection,
            metadata={"reason": reason.strip()},
            rejection_reason=reason.strip(),
        )

    async def auto_release(
        self,
        booking_id: str | uuid.UUID,
        now: datetime | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Settled:
        """Release an undisputed delivery once its deadline has passed.

        Raises:
            InvalidTransitionError: If the booking is not delivered.
            NotEligibleError: If the deadline has not passed yet.
        """
        self._policy.authorize(actor, Action.AUTO_RELEASE)
        booking = await self._lifecycle.get_or_raise(booking_id)
        BookingStateMachine(current_status=booking.status).target_of("auto_release_elapsed")

        now = as_utc(now) if now is not None else self._lifecycle.clock()
        if not is_auto_release_due(booking.auto_release_at, now):
            raise NotEligibleError(
                f"Booking {booking.id} is not due for auto-release "
                f"(deadline {booking.auto_release_at})"
            )
        return await self._lifecycle.settle(
            booking,
            "auto_release_elapsed",
            actor,
            SettlementDirection.PAYOUT,
            self._lifecycle.fees.payout,
            metadata={"deadline": booking.auto_release_at.isoformat()},
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_booking(self, actor: Actor, booking_id: str | uuid.UUID) -> Booking:
        booking = await self._lifecycle.get_or_raise(booking_id)
        self._authorize(actor, Action.VIEW_BOOKING, booking)
        return booking

    async def get_status(self, actor: Actor, booking_id: str | uuid.UUID) -> dict:
        """Get booking status with the events that may legally fire next."""
        booking = await self.get_booking(actor, booking_id)
        sm = BookingStateMachine(current_status=booking.status)
        return {
            "booking_id": str(booking.id),
            "status": booking.status,
            "is_terminal": sm.is_terminal,
            "allowed_events": sm.get_allowed_events(),
            "auto_release_at": booking.auto_release_at,
        }

    async def get_events(self, actor: Actor, booking_id: str | uuid.UUID) -> list[LedgerEvent]:
        """Get audit trail."""
        booking = await self.get_booking(actor, booking_id)
        return await self._lifecycle.audit.history(booking.id)

    async def list_bookings(
        self,
        actor: Actor,
        status: str | None = None,
        client_id: str | None = None,
        creator_id: str | None = None,
    ) -> list[Booking]:
        """Admins list everything; clients and creators only their own bookings."""
        self._policy.authorize(actor, Action.LIST_BOOKINGS)
        if actor.role == ActorRole.CLIENT:
            client_id = actor.id
        elif actor.role == ActorRole.CREATOR:
            creator_id = actor.id
        return await self._bookings.list(status=status, client_id=client_id, creator_id=creator_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _authorize(self, actor: Actor, action: Action, booking: Booking) -> None:
        self._policy.authorize(
            actor, action, client_id=booking.client_id, creator_id=booking.creator_id
        )
