"""Tests for work, delivery and the delivery outcomes of a booking."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import CLIENT_WALLET, CREATOR_WALLET, START
from structlog.testing import capture_logs

from creator_escrow.domain.enums import BookingStatus
from creator_escrow.domain.exceptions import (
    BookingNotFoundError,
    InvalidClaimError,
    InvalidTransitionError,
    PermissionDeniedError,
)


class TestWork:
    @pytest.mark.asyncio
    async def test_transition_is_logged(self, ledger, services, creator_actor) -> None:
        booking = await ledger.paid()

        with capture_logs() as logs:
            await services.bookings.start_work(creator_actor, booking.id)

        [entry] = [e for e in logs if e["event"] == "booking.transitioned"]
        assert entry["transition"] == "work_started"
        assert entry["old_status"] == "paid"
        assert entry["new_status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_creator_starts_work(self, ledger, services, creator_actor) -> None:
        booking = await ledger.paid()
        await services.bookings.start_work(creator_actor, booking.id)
        assert booking.status == BookingStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unpaid_booking_cannot_start(self, ledger, services, creator_actor) -> None:
        booking, _ = await ledger.checkout()
        with pytest.raises(InvalidTransitionError) as exc_info:
            await services.bookings.start_work(creator_actor, booking.id)
        assert exc_info.value.current_state == "pending_payment"

    @pytest.mark.asyncio
    async def test_other_creator_cannot_start(self, ledger, services, other_creator) -> None:
        booking = await ledger.paid()
        with pytest.raises(PermissionDeniedError, match="not the booking's creator"):
            await services.bookings.start_work(other_creator, booking.id)

    @pytest.mark.asyncio
    async def test_delivery_starts_auto_release_countdown(
        self, ledger, services, creator_actor, clock
    ) -> None:
        booking = await ledger.in_progress()
        clock.advance(days=2)

        await services.bookings.deliver(
            creator_actor, booking.id, ["  https://files.example.com/a.png ", ""], "v1"
        )

        assert booking.status == BookingStatus.DELIVERED
        assert booking.delivered_at == START + timedelta(days=2)
        assert booking.auto_release_at == START + timedelta(days=5)
        assert booking.delivery_artifacts == ["https://files.example.com/a.png"]
        assert booking.delivery_note == "v1"

    @pytest.mark.asyncio
    async def test_paid_booking_may_be_delivered_directly(
        self, ledger, services, creator_actor
    ) -> None:
        booking = await ledger.paid()
        await services.bookings.deliver(creator_actor, booking.id, ["ipfs://bafy"])
        assert booking.status == BookingStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_delivery_needs_an_artifact(self, ledger, services, creator_actor) -> None:
        booking = await ledger.in_progress()
        with pytest.raises(InvalidClaimError, match="artifact"):
            await services.bookings.deliver(creator_actor, booking.id, ["  "])


class TestAcceptDelivery:
    @pytest.mark.asyncio
    async def test_accept_creates_creator_payout(
        self, ledger, services, client_actor, publisher
    ) -> None:
        booking = await ledger.delivered()
        settled = await services.bookings.accept_delivery(client_actor, booking.id)

        assert settled.booking.status == BookingStatus.ACCEPTED
        assert settled.booking.accepted_at == START
        assert settled.booking.settled_at == START
        assert settled.booking.auto_release_at is None

        obligation = settled.obligation
        assert obligation.direction == "payout"
        assert obligation.beneficiary_id == "creator-1"
        assert obligation.beneficiary_address == CREATOR_WALLET
        assert obligation.gross_amount == Decimal("100")
        assert obligation.net_amount == Decimal("85")
        assert obligation.fee_amount == Decimal("15")
        assert obligation.execution_tx_ref is None

        await services.session.commit()
        assert publisher.event_types[-2:] == ["booking.accepted", "settlement.obligation_created"]

    @pytest.mark.asyncio
    async def test_accept_twice_is_an_invalid_transition(
        self, ledger, services, client_actor
    ) -> None:
        booking = await ledger.delivered()
        await services.bookings.accept_delivery(client_actor, booking.id)
        with pytest.raises(InvalidTransitionError):
            await services.bookings.accept_delivery(client_actor, booking.id)

    @pytest.mark.asyncio
    async def test_cannot_accept_before_delivery(self, ledger, services, client_actor) -> None:
        booking = await ledger.in_progress()
        with pytest.raises(InvalidTransitionError):
            await services.bookings.accept_delivery(client_actor, booking.id)

    @pytest.mark.asyncio
    async def test_creator_cannot_accept(self, ledger, services, creator_actor) -> None:
        booking = await ledger.delivered()
        with pytest.raises(PermissionDeniedError):
            await services.bookings.accept_delivery(creator_actor, booking.id)

    @pytest.mark.asyncio
    async def test_payout_without_registered_wallet_has_no_address(
        self, ledger, services, client_actor, wallets
    ) -> None:
        del wallets.addresses[("creator-1", "base")]
        booking = await ledger.delivered()
        settled = await services.bookings.accept_delivery(client_actor, booking.id)
        assert settled.obligation.beneficiary_address is None


class TestRejectDelivery:
    @pytest.mark.asyncio
    async def test_creator_rejection_refunds_client(
        self, ledger, services, creator_actor
    ) -> None:
        booking = await ledger.delivered()
        settled = await services.bookings.reject_delivery(
            creator_actor, booking.id, "  Cannot complete the brief "
        )

        assert settled.booking.status == BookingStatus.REJECTED_BY_CREATOR
        assert settled.booking.rejection_reason == "Cannot complete the brief"
        assert settled.obligation.direction == "refund"
        assert settled.obligation.beneficiary_id == "client-1"
        assert settled.obligation.beneficiary_address == CLIENT_WALLET
        assert settled.obligation.net_amount == Decimal("95")

    @pytest.mark.asyncio
    async def test_refund_falls_back_to_payer_address(
        self, ledger, services, creator_actor, wallets
    ) -> None:
        del wallets.addresses[("client-1", "base")]
        booking = await ledger.delivered()
        settled = await services.bookings.reject_delivery(creator_actor, booking.id, "Overbooked")
        assert settled.obligation.beneficiary_address == CLIENT_WALLET

    @pytest.mark.asyncio
    async def test_reason_required(self, ledger, services, creator_actor) -> None:
        booking = await ledger.delivered()
        with pytest.raises(InvalidClaimError, match="reason"):
            await services.bookings.reject_delivery(creator_actor, booking.id, " ")

    @pytest.mark.asyncio
    async def test_client_cannot_reject_on_creators_behalf(
        self, ledger, services, client_actor
    ) -> None:
        booking = await ledger.delivered()
        with pytest.raises(PermissionDeniedError):
            await services.bookings.reject_delivery(client_actor, booking.id, "Changed my mind")


class TestBookingQueries:
    @pytest.mark.asyncio
    async def test_status_lists_next_events(self, ledger, services, client_actor) -> None:
        booking = await ledger.delivered()
        status = await services.bookings.get_status(client_actor, booking.id)

        assert status["status"] == "delivered"
        assert status["is_terminal"] is False
        assert status["allowed_events"] == [
            "delivery_accepted",
            "auto_release_elapsed",
            "delivery_rejected",
            "dispute_opened",
        ]
        assert status["auto_release_at"] == START + timedelta(hours=72)

    @pytest.mark.asyncio
    async def test_events_trace_the_whole_history(self, ledger, services, client_actor) -> None:
        booking = await ledger.delivered()
        await services.bookings.accept_delivery(client_actor, booking.id)

        events = await services.bookings.get_events(client_actor, booking.id)
        types = {e.event_type for e in events}
        assert {
            "booking.created",
            "payment.submitted",
            "payment.verified",
            "booking.paid",
            "booking.work_started",
            "booking.delivered",
            "booking.accepted",
            "settlement.obligation_created",
        } <= types
        accepted = next(e for e in events if e.event_type == "booking.accepted")
        assert accepted.old_status == "delivered"
        assert accepted.new_status == "accepted"
        assert accepted.actor == "client:client-1"

    @pytest.mark.asyncio
    async def test_strangers_cannot_view(self, ledger, services, other_client) -> None:
        booking, _ = await ledger.checkout()
        with pytest.raises(PermissionDeniedError):
            await services.bookings.get_booking(other_client, booking.id)

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, services, client_actor) -> None:
        with pytest.raises(BookingNotFoundError):
            await services.bookings.get_booking(client_actor, "42")

    @pytest.mark.asyncio
    async def test_listing_is_scoped_to_the_caller(
        self, ledger, services, client_actor, other_client, creator_actor, admin_actor
    ) -> None:
        booking, _ = await ledger.checkout()

        assert [b.id for b in await services.bookings.list_bookings(client_actor)] == [booking.id]
        assert await services.bookings.list_bookings(other_client) == []
        assert [b.id for b in await services.bookings.list_bookings(creator_actor)] == [booking.id]
        assert len(await services.bookings.list_bookings(admin_actor, status="pending_payment")) == 1
        assert await services.bookings.list_bookings(admin_actor, status="paid") == []

    @pytest.mark.asyncio
    async def test_client_cannot_widen_listing_with_filters(
        self, ledger, services, other_client
    ) -> None:
        await ledger.checkout()

        listed = await services.bookings.list_bookings(other_client, client_id="client-1")
        assert listed == []
