"""End-to-end escrow scenarios: auto-release, dispute refund, payment retry."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import CLIENT_WALLET, CREATOR_WALLET, tx_ref

from creator_escrow.domain.enums import BookingStatus, PaymentStatus
from creator_escrow.domain.exceptions import AlreadyResolvedError
from creator_escrow.orchestration.auto_release import AutoReleaseSweeper


class TestAutoReleaseScenario:
    @pytest.mark.asyncio
    async def test_undisputed_delivery_pays_the_creator(
        self,
        services,
        session_factory,
        client_actor,
        creator_actor,
        admin_actor,
        clock,
        settings,
        publisher,
        catalog,
        wallets,
    ) -> None:
        booking, payment = await services.bookings.checkout(
            client_actor, "svc-logo", "base", Decimal("100.00"), tx_ref(), CLIENT_WALLET
        )
        await services.payments.verify_payment(admin_actor, payment.id, "verified")
        assert booking.status == BookingStatus.PAID

        await services.bookings.start_work(creator_actor, booking.id)
        clock.advance(days=1)
        await services.bookings.deliver(creator_actor, booking.id, ["https://cdn.example.com/v.mp4"])
        await services.session.commit()
        assert booking.auto_release_at == booking.delivered_at + timedelta(days=3)

        clock.advance(days=3, minutes=1)
        sweeper = AutoReleaseSweeper(
            session_factory,
            clock=clock,
            settings=settings,
            publisher=publisher,
            catalog=catalog,
            wallets=wallets,
        )
        booking_id = booking.id
        report = await sweeper.run_once()
        assert report["released"] == [str(booking_id)]
        services.session.expire_all()

        status = await services.bookings.get_status(admin_actor, booking_id)
        assert status["status"] == "auto_released"
        assert status["is_terminal"] is True
        [obligation] = await services.settlement.list_pending(admin_actor, "payout")
        assert obligation.booking_id == booking_id
        assert obligation.net_amount == Decimal("85")
        assert obligation.beneficiary_address == CREATOR_WALLET


class TestDisputeRefundScenario:
    @pytest.mark.asyncio
    async def test_refund_then_second_resolve_refused(
        self, ledger, services, client_actor, admin_actor, clock
    ) -> None:
        booking = await ledger.delivered()
        clock.advance(hours=1)
        dispute = await services.disputes.open_dispute(client_actor, booking.id, "Missing scenes")
        await services.session.commit()

        _, settled = await services.disputes.resolve_dispute(admin_actor, dispute.id, "refund")
        await services.session.commit()
        assert settled.booking.status == BookingStatus.REFUNDED
        assert settled.obligation.direction == "refund"
        assert settled.obligation.beneficiary_id == "client-1"

        with pytest.raises(AlreadyResolvedError):
            await services.disputes.resolve_dispute(admin_actor, dispute.id, "refund")


class TestPaymentRetryScenario:
    @pytest.mark.asyncio
    async def test_rejected_claim_then_verified_retry(
        self, ledger, services, client_actor, admin_actor
    ) -> None:
        booking, first = await ledger.checkout()
        await services.payments.verify_payment(
            admin_actor, first.id, "rejected", reason="Amount never arrived"
        )
        await services.session.commit()
        assert booking.status == BookingStatus.PAYMENT_REJECTED

        second = await services.payments.submit_payment(
            client_actor,
            purpose="service_booking",
            network="base",
            claimed_amount="100.00",
            claimed_tx_ref=tx_ref(),
            booking_id=booking.id,
            payer_address=CLIENT_WALLET,
        )
        await services.session.commit()

        records = await services.payments.list_payments(admin_actor, booking_id=str(booking.id))
        assert sorted(r.status for r in records) == [PaymentStatus.PENDING, PaymentStatus.REJECTED]
        assert booking.status == BookingStatus.PENDING_PAYMENT

        await services.payments.verify_payment(admin_actor, second.id, "verified")
        await services.session.commit()
        assert booking.status == BookingStatus.PAID

        with pytest.raises(AlreadyResolvedError):
            await services.payments.verify_payment(admin_actor, first.id, "verified")
