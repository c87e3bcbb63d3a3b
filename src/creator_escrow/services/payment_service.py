"""Payment Service — the ledger of claimed incoming payments.

A payment record is an operator-supplied claim ("I sent 100 USDC on base,
tx 0x..."). Nothing here looks at a chain: the claim is format-checked,
stored as ``pending``, and an admin later verifies or rejects it exactly once.

Booking payments drive the booking lifecycle:
    - verified  -> booking pending_payment -> paid
    - rejected  -> booking pending_payment -> payment_rejected
                   (only when no other claim is still pending)
    - a new claim on a payment_rejected booking moves it back to pending_payment
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from creator_escrow.domain.addresses import parse_network, validate_tx_ref, validate_wallet_address
from creator_escrow.domain.enums import (
    BookingStatus,
    CreatorTier,
    EventType,
    PaymentDecision,
    PaymentPurpose,
    PaymentStatus,
)
from creator_escrow.domain.exceptions import (
    AlreadyResolvedError,
    BookingNotEligibleError,
    InvalidClaimError,
    PaymentNotFoundError,
    PermissionDeniedError,
    TransactionReferenceInUseError,
)
from creator_escrow.domain.policy import Action, default_policy
from creator_escrow.infrastructure.database.orm_models import PaymentRecord
from creator_escrow.infrastructure.database.repositories import PaymentRepository
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

logger = get_logger(__name__)

_FUNDABLE = frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_REJECTED})


class PaymentService:
    """Records payment claims and their one-time verification."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        publisher: EventPublisher | None = None,
        wallets: WalletDirectory | None = None,
        policy: RolePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        lifecycle: BookingLifecycle | None = None,
    ) -> None:
        if lifecycle is None:
            lifecycle = BookingLifecycle(
                session,
                settings=settings,
                publisher=publisher,
                wallets=wallets,
                policy=policy,
                clock=clock,
            )
        self._lifecycle = lifecycle
        self._settings = lifecycle.settings
        self._policy = policy or default_policy
        self._payments = PaymentRepository(session)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_payment(
        self,
        actor: Actor,
        purpose: str,
        network: str,
        claimed_amount: Decimal | str,
        claimed_tx_ref: str,
        booking_id: str | uuid.UUID | None = None,
        tier: str | None = None,
        payer_address: str | None = None,
    ) -> PaymentRecord:
        """Record a pending payment claim.

        Raises:
            BookingNotEligibleError: If the booking is not awaiting payment, or
                already has a claim awaiting verification.
            TransactionReferenceInUseError: If the reference backs another live claim.
            InvalidClaimError: If the claim is malformed.
        """
        try:
            purpose = PaymentPurpose(purpose)
        except ValueError:
            raise InvalidClaimError(f"Unknown payment purpose '{purpose}'") from None

        net = parse_network(network, self._settings.supported_network_list)
        amount = _positive_amount(claimed_amount)
        tx_ref = validate_tx_ref(claimed_tx_ref, net)
        if payer_address:
            payer_address = validate_wallet_address(payer_address, net)

        booking = None
        if purpose == PaymentPurpose.SERVICE_BOOKING:
            if booking_id is None:
                raise InvalidClaimError("A booking payment must name its booking")
            booking = await self._lifecycle.get_or_raise(booking_id)
            self._policy.authorize(
                actor,
                Action.SUBMIT_BOOKING_PAYMENT,
                client_id=booking.client_id,
                creator_id=booking.creator_id,
            )
            if booking.status not in _FUNDABLE:
                raise BookingNotEligibleError(str(booking.id), booking.status)
            if net.value != booking.network:
                raise InvalidClaimError(
                    f"Booking {booking.id} settles on {booking.network}, not {net.value}"
                )
            if await self._payments.count_by_booking(booking.id, PaymentStatus.PENDING):
                raise BookingNotEligibleError(
                    str(booking.id), booking.status, "a payment is already awaiting verification"
                )
            if amount != booking.amount:
                logger.warning(
                    "payment.amount_mismatch",
                    booking_id=str(booking.id),
                    claimed=str(amount),
                    expected=str(booking.amount),
                )
        else:
            if booking_id is not None:
                raise InvalidClaimError("A creator tier payment cannot fund a booking")
            self._policy.authorize(actor, Action.SUBMIT_TIER_PAYMENT)
            try:
                tier = CreatorTier(tier).value
            except ValueError:
                raise InvalidClaimError(f"Unknown creator tier '{tier}'") from None

        if await self._payments.find_live_claim(net.value, tx_ref) is not None:
            raise TransactionReferenceInUseError(tx_ref)

        record = PaymentRecord(
            payer_id=actor.id,
            purpose=purpose.value,
            booking_id=booking.id if booking is not None else None,
            tier=tier if purpose == PaymentPurpose.CREATOR_TIER else None,
            network=net.value,
            claimed_amount=amount,
            currency=booking.currency if booking is not None else self._settings.default_currency,
            claimed_tx_ref=tx_ref,
            payer_address=payer_address or None,
            status=PaymentStatus.PENDING.value,
        )
        record = await self._payments.create(record)

        await self._lifecycle.audit.record(
            EventType.PAYMENT_SUBMITTED,
            entity_id=record.id,
            booking_id=record.booking_id,
            actor=actor,
            new_status=PaymentStatus.PENDING,
            metadata={
                "purpose": purpose.value,
                "network": net.value,
                "claimed_amount": str(amount),
                "tx_ref": tx_ref,
            },
        )

        if booking is not None and booking.status == BookingStatus.PAYMENT_REJECTED:
            await self._lifecycle.apply(
                booking,
                "payment_resubmitted",
                actor,
                metadata={"payment_id": str(record.id)},
            )

        logger.info(
            "payment.submitted",
            payment_id=str(record.id),
            purpose=purpose.value,
            booking_id=str(record.booking_id) if record.booking_id else None,
        )
        return record

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_payment(
        self,
        actor: Actor,
        payment_id: str | uuid.UUID,
        decision: str,
        reason: str | None = None,
    ) -> PaymentRecord:
        """Resolve a pending claim. Never re-verifies.

        Raises:
            AlreadyResolvedError: If the record is not pending.
            BookingNotEligibleError: On ``verified`` when the booking is no
                longer awaiting payment.
        """
        self._policy.authorize(actor, Action.VERIFY_PAYMENT)
        try:
            decision = PaymentDecision(decision)
        except ValueError:
            raise InvalidClaimError(f"Unknown payment decision '{decision}'") from None

        record = await self._get_or_raise(payment_id)
        if record.status != PaymentStatus.PENDING:
            raise AlreadyResolvedError("Payment", str(record.id), record.status)

        booking = None
        if record.booking_id is not None:
            booking = await self._lifecycle.get_or_raise(record.booking_id)
            if (
                decision == PaymentDecision.VERIFIED
                and booking.status != BookingStatus.PENDING_PAYMENT
            ):
                raise BookingNotEligibleError(
                    str(booking.id), booking.status, "booking is no longer awaiting payment"
                )

        new_status = PaymentStatus(decision.value)
        record = await self._payments.resolve(
            record,
            new_status,
            verifier_id=actor.id,
            verified_at=self._lifecycle.clock(),
            rejection_reason=reason if new_status == PaymentStatus.REJECTED else None,
        )
        await self._lifecycle.audit.record(
            EventType.PAYMENT_VERIFIED
            if new_status == PaymentStatus.VERIFIED
            else EventType.PAYMENT_REJECTED,
            entity_id=record.id,
            booking_id=record.booking_id,
            actor=actor,
            old_status=PaymentStatus.PENDING,
            new_status=new_status,
            metadata={"reason": reason} if reason else None,
        )

        if booking is not None:
            if new_status == PaymentStatus.VERIFIED:
                await self._lifecycle.mark_paid(booking, actor, record.id)
            elif booking.status == BookingStatus.PENDING_PAYMENT and not (
                await self._payments.count_by_booking(booking.id, PaymentStatus.PENDING)
            ):
                await self._lifecycle.apply(
                    booking,
                    "payment_rejected",
                    actor,
                    metadata={"payment_id": str(record.id), "reason": reason},
                )

        logger.info(
            "payment.resolved",
            payment_id=str(record.id),
            decision=new_status.value,
            verifier=actor.id,
        )
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_payment(self, actor: Actor, payment_id: str | uuid.UUID) -> PaymentRecord:
        """Admins see every record; payers see their own."""
        record = await self._get_or_raise(payment_id)
        if not self._policy.allows(actor, Action.VIEW_LEDGER) and actor.id != record.payer_id:
            raise PermissionDeniedError(actor.id, "view_payment", "not the payer")
        return record

    async def list_payments(
        self,
        actor: Actor,
        status: str | None = None,
        purpose: str | None = None,
        booking_id: str | uuid.UUID | None = None,
    ) -> list[PaymentRecord]:
        self._policy.authorize(actor, Action.VIEW_LEDGER)
        return await self._payments.list(
            status=status,
            purpose=purpose,
            booking_id=parse_id(booking_id, PaymentNotFoundError) if booking_id else None,
        )

    async def _get_or_raise(self, payment_id: str | uuid.UUID) -> PaymentRecord:
        record = await self._payments.get(parse_id(payment_id, PaymentNotFoundError))
        if record is None:
            raise PaymentNotFoundError(str(payment_id))
        return record


def _positive_amount(value: Decimal | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidClaimError(f"Invalid amount '{value}'") from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidClaimError("Claimed amount must be positive")
    return amount
