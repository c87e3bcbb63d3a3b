"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every status-changing write is a conditional UPDATE:

    UPDATE <table> SET ... WHERE id = :id AND <expected state>

Zero rows affected means another actor got there first; the repository
raises ConcurrentModificationError and the caller decides whether to
re-read and retry. Uniqueness violations from the database guards are
translated into the matching domain error here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from creator_escrow.domain.collaborators import ServiceSnapshot
from creator_escrow.domain.enums import BookingStatus, DisputeStatus, PaymentStatus
from creator_escrow.domain.exceptions import (
    ConcurrentModificationError,
    NotEligibleError,
    ObligationAlreadyExistsError,
    TransactionReferenceInUseError,
)
from creator_escrow.infrastructure.database.orm_models import (
    Booking,
    Dispute,
    LedgerEvent,
    PaymentRecord,
    PayoutWallet,
    ServiceListing,
    SettlementObligation,
)
from creator_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _conditional_update(
    session: AsyncSession,
    model: type,
    entity_id: uuid.UUID,
    condition: Any,
    values: dict[str, Any],
) -> int:
    stmt = (
        update(model)
        .where(model.id == entity_id, condition)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount


class BookingRepository:
    """Data access for bookings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, booking: Booking) -> Booking:
        """Insert a new booking."""
        self._session.add(booking)
        await self._session.flush()
        return booking

    async def get_by_id(self, booking_id: uuid.UUID) -> Booking | None:
        """Fetch a booking by its UUID."""
        result = await self._session.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def transition(
        self,
        booking: Booking,
        expected: str,
        new_status: str,
        **values: Any,
    ) -> Booking:
        """Move ``booking`` from ``expected`` to ``new_status`` (call AFTER state machine validation).

        Raises:
            ConcurrentModificationError: If the row is no longer in ``expected``.
        """
        rowcount = await _conditional_update(
            self._session,
            Booking,
            booking.id,
            Booking.status == expected,
            {"status": new_status, **values},
        )
        if rowcount == 0:
            logger.warning(
                "booking.concurrent_modification",
                booking_id=str(booking.id),
                expected=expected,
                attempted=new_status,
            )
            raise ConcurrentModificationError("Booking", str(booking.id), expected)
        await self._session.refresh(booking)
        return booking

    async def list_due_for_auto_release(self, now: datetime, limit: int = 100) -> list[uuid.UUID]:
        """Return ids of delivered bookings whose auto-release deadline has passed."""
        result = await self._session.execute(
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.DELIVERED.value,
                Booking.auto_release_at.is_not(None),
                Booking.auto_release_at <= now,
            )
            .order_by(Booking.auto_release_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list(
        self,
        status: str | None = None,
        client_id: str | None = None,
        creator_id: str | None = None,
        limit: int = 100,
    ) -> list[Booking]:
        """List bookings, newest first, optionally filtered."""
        stmt = select(Booking)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if client_id is not None:
            stmt = stmt.where(Booking.client_id == client_id)
        if creator_id is not None:
            stmt = stmt.where(Booking.creator_id == creator_id)
        result = await self._session.execute(
            stmt.order_by(Booking.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


class PaymentRepository:
    """Data access for payment records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, record: PaymentRecord) -> PaymentRecord:
        """Insert a new pending payment claim."""
        self._session.add(record)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise TransactionReferenceInUseError(record.claimed_tx_ref) from exc
        return record

    async def get(self, payment_id: uuid.UUID) -> PaymentRecord | None:
        result = await self._session.execute(
            select(PaymentRecord).where(PaymentRecord.id == payment_id)
        )
        return result.scalar_one_or_none()

    async def resolve(
        self,
        record: PaymentRecord,
        status: PaymentStatus,
        verifier_id: str,
        verified_at: datetime,
        rejection_reason: str | None = None,
    ) -> PaymentRecord:
        """Resolve a pending record exactly once.

        Raises:
            ConcurrentModificationError: If the record is no longer pending, or
                another record for the same booking was verified first.
        """
        try:
            rowcount = await _conditional_update(
                self._session,
                PaymentRecord,
                record.id,
                PaymentRecord.status == PaymentStatus.PENDING.value,
                {
                    "status": status.value,
                    "verifier_id": verifier_id,
                    "verified_at": verified_at,
                    "rejection_reason": rejection_reason,
                },
            )
        except IntegrityError as exc:
            # uq_payment_verified_per_booking: a sibling record won the race
            raise ConcurrentModificationError(
                "Booking", str(record.booking_id), "no verified payment"
            ) from exc
        if rowcount == 0:
            raise ConcurrentModificationError("Payment", str(record.id), PaymentStatus.PENDING)
        await self._session.refresh(record)
        return record

    async def list_by_booking(self, booking_id: uuid.UUID) -> list[PaymentRecord]:
        """Fetch all records for a booking in submission order."""
        result = await self._session.execute(
            select(PaymentRecord)
            .where(PaymentRecord.booking_id == booking_id)
            .order_by(PaymentRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def count_by_booking(self, booking_id: uuid.UUID, status: PaymentStatus) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(PaymentRecord)
            .where(PaymentRecord.booking_id == booking_id, PaymentRecord.status == status.value)
        )
        return result.scalar_one()

    async def get_verified_for_booking(self, booking_id: uuid.UUID) -> PaymentRecord | None:
        result = await self._session.execute(
            select(PaymentRecord).where(
                PaymentRecord.booking_id == booking_id,
                PaymentRecord.status == PaymentStatus.VERIFIED.value,
            )
        )
        return result.scalar_one_or_none()

    async def find_live_claim(self, network: str, tx_ref: str) -> PaymentRecord | None:
        """Return a pending or verified claim already using ``tx_ref`` on ``network``."""
        result = await self._session.execute(
            select(PaymentRecord).where(
                PaymentRecord.network == network,
                PaymentRecord.claimed_tx_ref == tx_ref,
                PaymentRecord.status.in_(
                    [PaymentStatus.PENDING.value, PaymentStatus.VERIFIED.value]
                ),
            )
        )
        return result.scalars().first()

    async def list(
        self,
        status: str | None = None,
        purpose: str | None = None,
        booking_id: uuid.UUID | None = None,
        limit: int = 100,
    ) -> list[PaymentRecord]:
        stmt = select(PaymentRecord)
        if status is not None:
            stmt = stmt.where(PaymentRecord.status == status)
        if purpose is not None:
            stmt = stmt.where(PaymentRecord.purpose == purpose)
        if booking_id is not None:
            stmt = stmt.where(PaymentRecord.booking_id == booking_id)
        result = await self._session.execute(
            stmt.order_by(PaymentRecord.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


class DisputeRepository:
    """Data access for disputes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, dispute: Dispute) -> Dispute:
        """Insert a new open dispute."""
        self._session.add(dispute)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise NotEligibleError(
                f"Booking {dispute.booking_id} already has an open dispute"
            ) from exc
        return dispute

    async def get(self, dispute_id: uuid.UUID) -> Dispute | None:
        result = await self._session.execute(select(Dispute).where(Dispute.id == dispute_id))
        return result.scalar_one_or_none()

    async def get_open_for_booking(self, booking_id: uuid.UUID) -> Dispute | None:
        result = await self._session.execute(
            select(Dispute).where(
                Dispute.booking_id == booking_id,
                Dispute.status == DisputeStatus.OPEN.value,
            )
        )
        return result.scalar_one_or_none()

    async def resolve(
        self,
        dispute: Dispute,
        outcome: str,
        resolver_id: str,
        note: str | None,
        resolved_at: datetime,
    ) -> Dispute:
        """Resolve an open dispute exactly once.

        Raises:
            ConcurrentModificationError: If the dispute is no longer open.
        """
        rowcount = await _conditional_update(
            self._session,
            Dispute,
            dispute.id,
            Dispute.status == DisputeStatus.OPEN.value,
            {
                "status": DisputeStatus.RESOLVED.value,
                "outcome": outcome,
                "resolver_id": resolver_id,
                "resolution_note": note,
                "resolved_at": resolved_at,
            },
        )
        if rowcount == 0:
            raise ConcurrentModificationError("Dispute", str(dispute.id), DisputeStatus.OPEN)
        await self._session.refresh(dispute)
        return dispute

    async def list(
        self,
        status: str | None = None,
        booking_id: uuid.UUID | None = None,
        limit: int = 100,
    ) -> list[Dispute]:
        stmt = select(Dispute)
        if status is not None:
            stmt = stmt.where(Dispute.status == status)
        if booking_id is not None:
            stmt = stmt.where(Dispute.booking_id == booking_id)
        result = await self._session.execute(
            stmt.order_by(Dispute.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


class ObligationRepository:
    """Data access for settlement obligations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, obligation: SettlementObligation) -> SettlementObligation:
        """Insert the single obligation for a booking.

        Raises:
            ObligationAlreadyExistsError: If the booking already has one.
        """
        if await self.get_by_booking(obligation.booking_id) is not None:
            raise ObligationAlreadyExistsError(str(obligation.booking_id))
        self._session.add(obligation)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ObligationAlreadyExistsError(str(obligation.booking_id)) from exc
        return obligation

    async def get(self, obligation_id: uuid.UUID) -> SettlementObligation | None:
        result = await self._session.execute(
            select(SettlementObligation).where(SettlementObligation.id == obligation_id)
        )
        return result.scalar_one_or_none()

    async def get_by_booking(self, booking_id: uuid.UUID) -> SettlementObligation | None:
        result = await self._session.execute(
            select(SettlementObligation).where(SettlementObligation.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def get_by_tx_ref(self, tx_ref: str) -> SettlementObligation | None:
        result = await self._session.execute(
            select(SettlementObligation).where(SettlementObligation.execution_tx_ref == tx_ref)
        )
        return result.scalar_one_or_none()

    async def record_execution(
        self,
        obligation: SettlementObligation,
        tx_ref: str,
        executed_at: datetime,
        executed_by: str,
        beneficiary_address: str | None = None,
    ) -> SettlementObligation:
        """Set the execution reference exactly once.

        Raises:
            ConcurrentModificationError: If another execution was recorded first.
            TransactionReferenceInUseError: If ``tx_ref`` is on another obligation.
        """
        values: dict[str, Any] = {
            "execution_tx_ref": tx_ref,
            "executed_at": executed_at,
            "executed_by": executed_by,
        }
        if beneficiary_address is not None:
            values["beneficiary_address"] = beneficiary_address
        try:
            rowcount = await _conditional_update(
                self._session,
                SettlementObligation,
                obligation.id,
                SettlementObligation.execution_tx_ref.is_(None),
                values,
            )
        except IntegrityError as exc:
            raise TransactionReferenceInUseError(tx_ref) from exc
        if rowcount == 0:
            raise ConcurrentModificationError("Obligation", str(obligation.id), "unexecuted")
        await self._session.refresh(obligation)
        return obligation

    async def list_pending(self, direction: str | None = None) -> list[SettlementObligation]:
        """Obligations still awaiting an external transfer, oldest first."""
        stmt = select(SettlementObligation).where(SettlementObligation.execution_tx_ref.is_(None))
        if direction is not None:
            stmt = stmt.where(SettlementObligation.direction == direction)
        result = await self._session.execute(stmt.order_by(SettlementObligation.created_at.asc()))
        return list(result.scalars().all())

    async def list_executed(self, direction: str | None = None) -> list[SettlementObligation]:
        """Obligations with a recorded transfer, most recently executed first."""
        stmt = select(SettlementObligation).where(
            SettlementObligation.execution_tx_ref.is_not(None)
        )
        if direction is not None:
            stmt = stmt.where(SettlementObligation.direction == direction)
        result = await self._session.execute(
            stmt.order_by(SettlementObligation.executed_at.desc())
        )
        return list(result.scalars().all())


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        event_type: str,
        entity_id: uuid.UUID,
        booking_id: uuid.UUID | None = None,
        old_status: str | None = None,
        new_status: str | None = None,
        actor: str = "system:SYSTEM",
        metadata: dict | None = None,
    ) -> LedgerEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = LedgerEvent(
            event_type=str(event_type),
            entity_id=entity_id,
            booking_id=booking_id,
            old_status=str(old_status) if old_status is not None else None,
            new_status=str(new_status) if new_status is not None else None,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_booking(self, booking_id: uuid.UUID) -> list[LedgerEvent]:
        """Fetch all events for a booking in chronological order."""
        result = await self._session.execute(
            select(LedgerEvent)
            .where(LedgerEvent.booking_id == booking_id)
            .order_by(LedgerEvent.created_at.asc())
        )
        return list(result.scalars().all())


class SqlCatalog:
    """CatalogProvider backed by the read-only service_listings table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_service(self, service_id: str) -> ServiceSnapshot | None:
        listing = await self._session.get(ServiceListing, service_id)
        if listing is None:
            return None
        return ServiceSnapshot(
            service_id=listing.id,
            creator_id=listing.creator_id,
            title=listing.title,
            price=listing.price,
            currency=listing.currency,
            delivery_days=listing.delivery_days,
            active=listing.active,
        )


class SqlWalletDirectory:
    """WalletDirectory backed by the read-only payout_wallets table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_address(self, user_id: str, network: str) -> str | None:
        wallet = await self._session.get(PayoutWallet, (user_id, network))
        return wallet.address if wallet is not None else None
