"""Settlement Service — the ledger of money owed after a booking ends.

Each booking that reaches a terminal state owes exactly one transfer: a
payout to the creator or a refund to the client. This service derives that
obligation (and is the only place a net amount is computed) and later
records the external transfer that discharged it, exactly once.

Nothing here moves money. ``record_execution`` is the admin telling the
ledger that a transfer happened on chain.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from creator_escrow.config import get_settings
from creator_escrow.domain.addresses import validate_tx_ref, validate_wallet_address
from creator_escrow.domain.deadlines import as_utc, utcnow
from creator_escrow.domain.enums import EventType, SettlementDirection
from creator_escrow.domain.exceptions import (
    AlreadyExecutedError,
    InvalidClaimError,
    ObligationNotFoundError,
    TransactionReferenceInUseError,
)
from creator_escrow.domain.fees import split_gross
from creator_escrow.domain.policy import Action, default_policy
from creator_escrow.infrastructure.database.orm_models import SettlementObligation
from creator_escrow.infrastructure.database.repositories import (
    ObligationRepository,
    PaymentRepository,
    SqlWalletDirectory,
)
from creator_escrow.logging_config import get_logger
from creator_escrow.services.ids import parse_id

if TYPE_CHECKING:
    from collections.abc import Callable
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.config import Settings
    from creator_escrow.domain.collaborators import WalletDirectory
    from creator_escrow.domain.policy import Actor, RolePolicy
    from creator_escrow.infrastructure.database.orm_models import Booking
    from creator_escrow.services.audit import AuditTrail

logger = get_logger(__name__)


class SettlementService:
    """Creates and executes settlement obligations."""

    def __init__(
        self,
        session: AsyncSession,
        audit: AuditTrail,
        *,
        settings: Settings | None = None,
        wallets: WalletDirectory | None = None,
        policy: RolePolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._obligations = ObligationRepository(session)
        self._payments = PaymentRepository(session)
        self._wallets = wallets or SqlWalletDirectory(session)
        self._policy = policy or default_policy
        self._audit = audit
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation (internal: only lifecycle transitions call this)
    # ------------------------------------------------------------------

    async def create_obligation(
        self,
        booking: Booking,
        direction: SettlementDirection,
        fee_rate: Decimal,
        actor: Actor,
        beneficiary_address: str | None = None,
        gross_amount: Decimal | None = None,
    ) -> SettlementObligation:
        """Record what the booking's terminal state owes, once.

        Raises:
            ObligationAlreadyExistsError: If the booking already has an obligation.
        """
        split = split_gross(gross_amount if gross_amount is not None else booking.amount, fee_rate)
        beneficiary_id = (
            booking.creator_id if direction == SettlementDirection.PAYOUT else booking.client_id
        )
        if beneficiary_address is None:
            beneficiary_address = await self._resolve_beneficiary_address(booking, direction)

        obligation = SettlementObligation(
            booking_id=booking.id,
            direction=direction.value,
            beneficiary_id=beneficiary_id,
            beneficiary_address=beneficiary_address,
            network=booking.network,
            currency=booking.currency,
            gross_amount=split.gross_amount,
            fee_rate=split.fee_rate,
            fee_amount=split.fee_amount,
            net_amount=split.net_amount,
        )
        obligation = await self._obligations.create(obligation)

        await self._audit.record(
            EventType.OBLIGATION_CREATED,
            entity_id=obligation.id,
            booking_id=booking.id,
            actor=actor,
            metadata={
                "direction": direction.value,
                "beneficiary_id": beneficiary_id,
                "gross_amount": str(split.gross_amount),
                "fee_rate": str(split.fee_rate),
                "net_amount": str(split.net_amount),
            },
        )
        logger.info(
            "settlement.obligation_created",
            booking_id=str(booking.id),
            obligation_id=str(obligation.id),
            direction=direction.value,
            net_amount=str(split.net_amount),
            has_address=beneficiary_address is not None,
        )
        return obligation

    async def _resolve_beneficiary_address(
        self, booking: Booking, direction: SettlementDirection
    ) -> str | None:
        if direction == SettlementDirection.PAYOUT:
            candidates = [await self._wallets.get_address(booking.creator_id, booking.network)]
        else:
            verified = await self._payments.get_verified_for_booking(booking.id)
            candidates = [
                await self._wallets.get_address(booking.client_id, booking.network),
                verified.payer_address if verified is not None else None,
            ]

        for address in candidates:
            if not address:
                continue
            try:
                return validate_wallet_address(address, booking.network)
            except InvalidClaimError:
                logger.warning(
                    "settlement.invalid_registered_address",
                    booking_id=str(booking.id),
                    direction=direction.value,
                    network=booking.network,
                )
        return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def record_execution(
        self,
        actor: Actor,
        obligation_id: str,
        tx_ref: str,
        executed_at: datetime | None = None,
        beneficiary_address: str | None = None,
    ) -> SettlementObligation:
        """Record the external transfer that paid an obligation. Settable once.

        Raises:
            AlreadyExecutedError: If an execution is already recorded.
            TransactionReferenceInUseError: If ``tx_ref`` already paid something else
                or is claimed as an incoming payment.
            InvalidClaimError: If the reference or address is malformed, or no
                beneficiary address is known.
        """
        self._policy.authorize(actor, Action.RECORD_EXECUTION)
        obligation = await self._get_or_raise(obligation_id)

        if obligation.execution_tx_ref is not None:
            raise AlreadyExecutedError(str(obligation.id), obligation.execution_tx_ref)

        tx_ref = validate_tx_ref(tx_ref, obligation.network)
        new_address = None
        if beneficiary_address is not None:
            new_address = validate_wallet_address(beneficiary_address, obligation.network)
            if obligation.beneficiary_address and new_address != obligation.beneficiary_address:
                raise InvalidClaimError(
                    f"Obligation {obligation.id} already pays {obligation.beneficiary_address}"
                )
        elif obligation.beneficiary_address is None:
            raise InvalidClaimError(
                f"Obligation {obligation.id} has no beneficiary address; one must be supplied"
            )

        if await self._obligations.get_by_tx_ref(tx_ref) is not None:
            raise TransactionReferenceInUseError(tx_ref)
        if await self._payments.find_live_claim(obligation.network, tx_ref) is not None:
            raise TransactionReferenceInUseError(tx_ref)

        when = as_utc(executed_at) if executed_at is not None else self._clock()
        obligation = await self._obligations.record_execution(
            obligation,
            tx_ref=tx_ref,
            executed_at=when,
            executed_by=actor.id,
            beneficiary_address=new_address,
        )

        await self._audit.record(
            EventType.OBLIGATION_EXECUTED,
            entity_id=obligation.id,
            booking_id=obligation.booking_id,
            actor=actor,
            metadata={
                "direction": obligation.direction,
                "tx_ref": tx_ref,
                "net_amount": str(obligation.net_amount),
                "beneficiary_address": obligation.beneficiary_address,
            },
        )
        logger.info(
            "settlement.executed",
            obligation_id=str(obligation.id),
            booking_id=str(obligation.booking_id),
            tx_ref=tx_ref,
        )
        return obligation

    # ------------------------------------------------------------------
    # Queries (admin console)
    # ------------------------------------------------------------------

    async def get_obligation(self, actor: Actor, obligation_id: str) -> SettlementObligation:
        self._policy.authorize(actor, Action.VIEW_LEDGER)
        return await self._get_or_raise(obligation_id)

    async def get_for_booking(self, booking: Booking) -> SettlementObligation | None:
        return await self._obligations.get_by_booking(booking.id)

    async def list_pending(
        self, actor: Actor, direction: str | None = None
    ) -> list[SettlementObligation]:
        self._policy.authorize(actor, Action.VIEW_LEDGER)
        return await self._obligations.list_pending(_direction(direction))

    async def list_executed(
        self, actor: Actor, direction: str | None = None
    ) -> list[SettlementObligation]:
        self._policy.authorize(actor, Action.VIEW_LEDGER)
        return await self._obligations.list_executed(_direction(direction))

    async def _get_or_raise(self, obligation_id: str) -> SettlementObligation:
        obligation = await self._obligations.get(parse_id(obligation_id, ObligationNotFoundError))
        if obligation is None:
            raise ObligationNotFoundError(str(obligation_id))
        return obligation


def _direction(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return SettlementDirection(value).value
    except ValueError:
        raise InvalidClaimError(f"Unknown settlement direction '{value}'") from None
