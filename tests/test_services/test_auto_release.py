"""Tests for auto-release of undisputed deliveries and the periodic sweep."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import CREATOR_WALLET, START
from sqlalchemy import select

from creator_escrow.domain.enums import BookingStatus
from creator_escrow.domain.exceptions import (
    InvalidTransitionError,
    NotEligibleError,
    PermissionDeniedError,
)
from creator_escrow.infrastructure.database.orm_models import Booking, SettlementObligation
from creator_escrow.infrastructure.database.repositories import BookingRepository
from creator_escrow.orchestration.auto_release import AutoReleaseSweeper
from creator_escrow.orchestration.scheduler import AUTO_RELEASE_JOB_ID, build_scheduler

DEADLINE = START + timedelta(hours=72)


@pytest.fixture
def sweeper(session_factory, settings, publisher, catalog, wallets, clock) -> AutoReleaseSweeper:
    return AutoReleaseSweeper(
        session_factory,
        clock=clock,
        settings=settings,
        publisher=publisher,
        catalog=catalog,
        wallets=wallets,
    )


async def _reload(session_factory, booking_id):  # noqa: ANN001, ANN202
    async with session_factory() as s:
        booking = await s.get(Booking, booking_id)
        result = await s.execute(
            select(SettlementObligation).where(SettlementObligation.booking_id == booking_id)
        )
        return booking, result.scalar_one_or_none()


class TestAutoRelease:
    @pytest.mark.asyncio
    async def test_not_due_before_deadline(self, ledger, services) -> None:
        booking = await ledger.delivered()
        with pytest.raises(NotEligibleError, match="not due"):
            await services.bookings.auto_release(booking.id, now=DEADLINE - timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_released_at_deadline(self, ledger, services) -> None:
        booking = await ledger.delivered()
        settled = await services.bookings.auto_release(booking.id, now=DEADLINE)

        assert settled.booking.status == BookingStatus.AUTO_RELEASED
        assert settled.booking.auto_release_at is None
        assert settled.obligation.direction == "payout"
        assert settled.obligation.net_amount == Decimal("85")
        assert settled.obligation.beneficiary_address == CREATOR_WALLET

    @pytest.mark.asyncio
    async def test_uses_the_clock_when_no_time_given(self, ledger, services, clock) -> None:
        booking = await ledger.delivered()
        clock.advance(hours=72)
        settled = await services.bookings.auto_release(booking.id)
        assert settled.booking.status == BookingStatus.AUTO_RELEASED

    @pytest.mark.asyncio
    async def test_disputed_booking_is_never_released(self, ledger, services) -> None:
        booking, _ = await ledger.disputed()
        with pytest.raises(InvalidTransitionError):
            await services.bookings.auto_release(booking.id, now=DEADLINE + timedelta(days=30))

    @pytest.mark.asyncio
    async def test_clients_cannot_trigger_release(self, ledger, services, client_actor) -> None:
        booking = await ledger.delivered()
        with pytest.raises(PermissionDeniedError):
            await services.bookings.auto_release(booking.id, now=DEADLINE, actor=client_actor)

    @pytest.mark.asyncio
    async def test_admin_may_trigger_release(self, ledger, services, admin_actor) -> None:
        booking = await ledger.delivered()
        settled = await services.bookings.auto_release(booking.id, now=DEADLINE, actor=admin_actor)
        assert settled.booking.status == BookingStatus.AUTO_RELEASED


class TestSweeper:
    @pytest.mark.asyncio
    async def test_sweep_releases_only_due_deliveries(
        self, ledger, services, client_actor, session_factory, sweeper
    ) -> None:
        due = await ledger.delivered()
        accepted = await ledger.delivered()
        await services.bookings.accept_delivery(client_actor, accepted.id)
        await services.session.commit()
        disputed, _ = await ledger.disputed()

        report = await sweeper.run_once(now=DEADLINE)

        assert report == {"checked": 1, "released": [str(due.id)], "skipped": []}
        booking, obligation = await _reload(session_factory, due.id)
        assert booking.status == BookingStatus.AUTO_RELEASED
        assert obligation.net_amount == Decimal("85")
        untouched, _ = await _reload(session_factory, disputed.id)
        assert untouched.status == BookingStatus.DISPUTED

    @pytest.mark.asyncio
    async def test_nothing_due_before_deadline(self, ledger, sweeper, clock) -> None:
        await ledger.delivered()
        clock.advance(hours=71)
        report = await sweeper.run_once()
        assert report == {"checked": 0, "released": [], "skipped": []}

    @pytest.mark.asyncio
    async def test_booking_settled_after_selection_is_skipped(
        self, ledger, services, client_actor, sweeper, monkeypatch
    ) -> None:
        due = await ledger.delivered()
        raced = await ledger.delivered()
        await services.bookings.accept_delivery(client_actor, raced.id)
        await services.session.commit()

        async def stale_selection(self, now, limit=100):  # noqa: ANN001, ANN202
            return [raced.id, due.id]

        monkeypatch.setattr(BookingRepository, "list_due_for_auto_release", stale_selection)
        report = await sweeper.run_once(now=DEADLINE)

        assert report["checked"] == 2
        assert report["released"] == [str(due.id)]
        assert report["skipped"] == [str(raced.id)]

    @pytest.mark.asyncio
    async def test_second_sweep_finds_nothing(self, ledger, sweeper) -> None:
        await ledger.delivered()
        first = await sweeper.run_once(now=DEADLINE)
        second = await sweeper.run_once(now=DEADLINE + timedelta(minutes=5))
        assert len(first["released"]) == 1
        assert second["checked"] == 0


class TestScheduler:
    @pytest.mark.asyncio
    async def test_sweep_job_is_registered(self, session_factory, settings) -> None:
        scheduler = build_scheduler(session_factory, settings)
        job = scheduler.get_job(AUTO_RELEASE_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(minutes=5)
        assert scheduler.running is False
