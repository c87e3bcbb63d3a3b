"""Concurrent writers against one booking.

Each "actor" gets its own session (and its own SQLite connection) and reads
the booking before anyone writes, so every session but the first acts on a
stale copy. The conditional UPDATE must let exactly one of them through.
"""

from __future__ import annotations

import pytest
from conftest import tx_ref
from sqlalchemy import func, select

from creator_escrow.domain.exceptions import (
    AlreadyExecutedError,
    AlreadyResolvedError,
    ConcurrentModificationError,
    InvalidTransitionError,
)
from creator_escrow.infrastructure.database.orm_models import Booking, SettlementObligation
from creator_escrow.services.retry import retry_on_conflict


async def _count_obligations(session_factory) -> int:  # noqa: ANN001
    async with session_factory() as s:
        result = await s.execute(select(func.count()).select_from(SettlementObligation))
        return result.scalar_one()


async def _status(session_factory, booking_id) -> str:  # noqa: ANN001
    async with session_factory() as s:
        return (await s.get(Booking, booking_id)).status


class TestConcurrentAccept:
    @pytest.mark.asyncio
    async def test_stale_accepts_create_one_obligation(
        self, ledger, session_factory, make_services, client_actor
    ) -> None:
        booking = await ledger.delivered()

        sessions = [session_factory() for _ in range(4)]
        try:
            actors = [make_services(s) for s in sessions]
            stale = [await svc.bookings.get_booking(client_actor, booking.id) for svc in actors]
            assert all(row.status == "delivered" for row in stale)

            winner, *losers = actors
            await winner.bookings.accept_delivery(client_actor, booking.id)
            await winner.session.commit()

            for svc in losers:
                with pytest.raises(ConcurrentModificationError) as exc_info:
                    await svc.bookings.accept_delivery(client_actor, booking.id)
                assert exc_info.value.retryable is True
                await svc.session.rollback()
        finally:
            for s in sessions:
                await s.close()

        assert await _count_obligations(session_factory) == 1
        assert await _status(session_factory, booking.id) == "accepted"

    @pytest.mark.asyncio
    async def test_retry_rereads_and_reports_the_decided_state(
        self, ledger, session_factory, make_services, client_actor
    ) -> None:
        booking = await ledger.delivered()

        async with session_factory() as first, session_factory() as second:
            a, b = make_services(first), make_services(second)
            stale = [
                await a.bookings.get_booking(client_actor, booking.id),
                await b.bookings.get_booking(client_actor, booking.id),
            ]
            assert [row.status for row in stale] == ["delivered", "delivered"]

            await a.bookings.accept_delivery(client_actor, booking.id)
            await first.commit()

            with pytest.raises(InvalidTransitionError) as exc_info:
                await retry_on_conflict(
                    second,
                    lambda: b.bookings.accept_delivery(client_actor, booking.id),
                    attempts=2,
                )
            assert exc_info.value.current_state == "accepted"
            await second.rollback()

        assert await _count_obligations(session_factory) == 1

    @pytest.mark.asyncio
    async def test_dispute_wins_over_stale_accept(
        self, ledger, session_factory, make_services, client_actor, creator_actor
    ) -> None:
        booking = await ledger.delivered()

        async with session_factory() as first, session_factory() as second:
            disputer, accepter = make_services(first), make_services(second)
            stale = [
                await disputer.bookings.get_booking(creator_actor, booking.id),
                await accepter.bookings.get_booking(client_actor, booking.id),
            ]
            assert [row.status for row in stale] == ["delivered", "delivered"]

            await disputer.disputes.open_dispute(creator_actor, booking.id, "Client vanished")
            await first.commit()

            with pytest.raises(InvalidTransitionError):
                await retry_on_conflict(
                    second,
                    lambda: accepter.bookings.accept_delivery(client_actor, booking.id),
                    attempts=2,
                )
            await second.rollback()

        assert await _count_obligations(session_factory) == 0
        assert await _status(session_factory, booking.id) == "disputed"


class TestConcurrentOneShotWrites:
    @pytest.mark.asyncio
    async def test_payment_verified_once(
        self, ledger, session_factory, make_services, admin_actor
    ) -> None:
        booking, payment = await ledger.checkout()

        async with session_factory() as first, session_factory() as second:
            a, b = make_services(first), make_services(second)
            stale = []
            for svc in (a, b):
                stale.append(await svc.payments.get_payment(admin_actor, payment.id))
                stale.append(await svc.bookings.get_booking(admin_actor, booking.id))
            assert [row.status for row in stale] == ["pending", "pending_payment"] * 2

            await a.payments.verify_payment(admin_actor, payment.id, "verified")
            await first.commit()

            with pytest.raises(ConcurrentModificationError):
                await b.payments.verify_payment(admin_actor, payment.id, "rejected")
            await second.rollback()

            with pytest.raises(AlreadyResolvedError):
                await b.payments.verify_payment(admin_actor, payment.id, "rejected")
            await second.rollback()

        assert await _status(session_factory, booking.id) == "paid"

    @pytest.mark.asyncio
    async def test_dispute_resolved_once(
        self, ledger, session_factory, make_services, admin_actor
    ) -> None:
        booking, dispute = await ledger.disputed()

        async with session_factory() as first, session_factory() as second:
            a, b = make_services(first), make_services(second)
            stale = []
            for svc in (a, b):
                stale.append(await svc.disputes.get_dispute(admin_actor, dispute.id))
                stale.append(await svc.bookings.get_booking(admin_actor, booking.id))
            assert [row.status for row in stale] == ["open", "disputed"] * 2

            await a.disputes.resolve_dispute(admin_actor, dispute.id, "refund")
            await first.commit()

            with pytest.raises(AlreadyResolvedError):
                await retry_on_conflict(
                    second,
                    lambda: b.disputes.resolve_dispute(admin_actor, dispute.id, "release"),
                    attempts=2,
                )
            await second.rollback()

        assert await _count_obligations(session_factory) == 1
        assert await _status(session_factory, booking.id) == "refunded"

    @pytest.mark.asyncio
    async def test_execution_recorded_once(
        self, ledger, services, session_factory, make_services, client_actor, admin_actor
    ) -> None:
        booking = await ledger.delivered()
        settled = await services.bookings.accept_delivery(client_actor, booking.id)
        await services.session.commit()
        obligation_id = settled.obligation.id
        first_ref = tx_ref()

        async with session_factory() as first, session_factory() as second:
            a, b = make_services(first), make_services(second)
            stale = [
                await svc.settlement.get_obligation(admin_actor, str(obligation_id))
                for svc in (a, b)
            ]
            assert all(row.execution_tx_ref is None for row in stale)

            await a.settlement.record_execution(admin_actor, obligation_id, first_ref)
            await first.commit()

            with pytest.raises(AlreadyExecutedError):
                await retry_on_conflict(
                    second,
                    lambda: b.settlement.record_execution(admin_actor, obligation_id, tx_ref()),
                    attempts=2,
                )
            await second.rollback()

            reloaded = await b.settlement.get_obligation(admin_actor, str(obligation_id))
            assert reloaded.execution_tx_ref == first_ref
