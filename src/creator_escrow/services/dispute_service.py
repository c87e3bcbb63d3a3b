"""Dispute Service — at most one open dispute per booking, resolved once.

Opening a dispute freezes the booking (``disputed``) and suspends its
auto-release deadline. Resolution is the only way out of ``disputed``: the
admin's outcome drives the booking to a terminal state and creates the
matching settlement obligation in the same transaction.

    release -> booking accepted, payout to the creator
    refund  -> booking refunded, refund to the client
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from creator_escrow.domain.deadlines import dispute_reference_time, within_dispute_window
from creator_escrow.domain.enums import (
    ActorRole,
    BookingStatus,
    DisputeOutcome,
    DisputeStatus,
    EventType,
    SettlementDirection,
)
from creator_escrow.domain.exceptions import (
    AlreadyResolvedError,
    DisputeNotFoundError,
    InvalidClaimError,
    NotEligibleError,
)
from creator_escrow.domain.policy import Action, default_policy
from creator_escrow.infrastructure.database.orm_models import Dispute
from creator_escrow.infrastructure.database.repositories import DisputeRepository
from creator_escrow.logging_config import get_logger
from creator_escrow.services.ids import parse_id
from creator_escrow.services.lifecycle import BookingLifecycle

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.config import Settings
    from creator_escrow.domain.collaborators import EventPublisher, WalletDirectory
    from creator_escrow.domain.policy import Actor, RolePolicy
    from creator_escrow.services.lifecycle import Settled

logger = get_logger(__name__)

DISPUTABLE_STATUSES = frozenset(
    {BookingStatus.PAID, BookingStatus.IN_PROGRESS, BookingStatus.DELIVERED}
)


class DisputeService:
    """Opens and resolves disputes."""

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
        self._disputes = DisputeRepository(session)

    async def open_dispute(
        self,
        actor: Actor,
        booking_id: str | uuid.UUID,
        reason: str,
        opener_role: str | None = None,
    ) -> Dispute:
        """Open a dispute on a paid, in-progress or delivered booking.

        Raises:
            NotEligibleError: If the booking is not disputable, a dispute is
                already open, or the dispute window has closed.
        """
        try:
            role = ActorRole(opener_role) if opener_role else actor.role
        except ValueError:
            raise InvalidClaimError(f"Unknown opener role '{opener_role}'") from None
        if role != actor.role:
            raise InvalidClaimError(f"Cannot open a dispute as {role} while acting as {actor.role}")
        if not reason or not reason.strip():
            raise InvalidClaimError("A dispute reason is required")

        booking = await self._lifecycle.get_or_raise(booking_id)
        self._policy.authorize(
            actor, Action.OPEN_DISPUTE, client_id=booking.client_id, creator_id=booking.creator_id
        )

        if booking.status not in DISPUTABLE_STATUSES:
            raise NotEligibleError(
                f"Booking {booking.id} in status '{booking.status}' cannot be disputed"
            )
        if await self._disputes.get_open_for_booking(booking.id) is not None:
            raise NotEligibleError(f"Booking {booking.id} already has an open dispute")

        now = self._lifecycle.clock()
        reference = dispute_reference_time(booking.status, booking.paid_at, booking.delivered_at)
        if not within_dispute_window(reference, now, self._settings.dispute_window):
            raise NotEligibleError(
                f"The {self._settings.dispute_window_hours}h dispute window "
                f"for booking {booking.id} has closed"
            )

        await self._lifecycle.apply(
            booking,
            "dispute_opened",
            actor,
            metadata={"reason": reason.strip()},
            auto_release_at=None,
        )
        dispute = await self._disputes.create(
            Dispute(
                booking_id=booking.id,
                opener_role=role.value,
                opened_by=actor.id,
                reason=reason.strip(),
                status=DisputeStatus.OPEN.value,
            )
        )

        await self._lifecycle.audit.record(
            EventType.DISPUTE_OPENED,
            entity_id=dispute.id,
            booking_id=booking.id,
            actor=actor,
            new_status=DisputeStatus.OPEN,
            metadata={"opener_role": role.value},
        )
        logger.info(
            "dispute.opened",
            dispute_id=str(dispute.id),
            booking_id=str(booking.id),
            by=str(actor),
        )
        return dispute

    async def resolve_dispute(
        self,
        actor: Actor,
        dispute_id: str | uuid.UUID,
        outcome: str,
        note: str | None = None,
    ) -> tuple[Dispute, Settled]:
        """Resolve an open dispute and settle its booking.

        Raises:
            AlreadyResolvedError: If the dispute was already resolved.
        """
        self._policy.authorize(actor, Action.RESOLVE_DISPUTE)
        try:
            outcome = DisputeOutcome(outcome)
        except ValueError:
            raise InvalidClaimError(f"Unknown dispute outcome '{outcome}'") from None

        dispute = await self._get_or_raise(dispute_id)
        if dispute.status != DisputeStatus.OPEN:
            raise AlreadyResolvedError("Dispute", str(dispute.id), dispute.outcome or dispute.status)

        booking = await self._lifecycle.get_or_raise(dispute.booking_id)
        dispute = await self._disputes.resolve(
            dispute,
            outcome=outcome.value,
            resolver_id=actor.id,
            note=note,
            resolved_at=self._lifecycle.clock(),
        )

        metadata = {"dispute_id": str(dispute.id), "outcome": outcome.value}
        if outcome == DisputeOutcome.RELEASE:
            settled = await self._lifecycle.settle(
                booking,
                "dispute_released",
                actor,
                SettlementDirection.PAYOUT,
                self._lifecycle.fees.payout,
                metadata=metadata,
                accepted_at=self._lifecycle.clock(),
            )
        else:
            settled = await self._lifecycle.settle(
                booking,
                "dispute_refunded",
                actor,
                SettlementDirection.REFUND,
                self._lifecycle.fees.dispute_refund,
                metadata=metadata,
            )

        await self._lifecycle.audit.record(
            EventType.DISPUTE_RESOLVED,
            entity_id=dispute.id,
            booking_id=booking.id,
            actor=actor,
            old_status=DisputeStatus.OPEN,
            new_status=DisputeStatus.RESOLVED,
            metadata={"outcome": outcome.value, "note": note},
        )
        logger.info(
            "dispute.resolved",
            dispute_id=str(dispute.id),
            booking_id=str(booking.id),
            outcome=outcome.value,
        )
        return dispute, settled

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_dispute(self, actor: Actor, dispute_id: str | uuid.UUID) -> Dispute:
        dispute = await self._get_or_raise(dispute_id)
        booking = await self._lifecycle.get_or_raise(dispute.booking_id)
        self._policy.authorize(
            actor, Action.VIEW_BOOKING, client_id=booking.client_id, creator_id=booking.creator_id
        )
        return dispute

    async def list_disputes(
        self,
        actor: Actor,
        status: str | None = None,
        booking_id: str | uuid.UUID | None = None,
    ) -> list[Dispute]:
        self._policy.authorize(actor, Action.VIEW_LEDGER)
        return await self._disputes.list(
            status=status,
            booking_id=parse_id(booking_id, DisputeNotFoundError) if booking_id else None,
        )

    async def _get_or_raise(self, dispute_id: str | uuid.UUID) -> Dispute:
        dispute = await self._disputes.get(parse_id(dispute_id, DisputeNotFoundError))
        if dispute is None:
            raise DisputeNotFoundError(str(dispute_id))
        return dispute
