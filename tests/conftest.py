"""Shared test fixtures for the Creator Escrow test suite.

Provides:
    - A file-backed aiosqlite database per test (separate connections per
      session, so concurrent-writer scenarios behave like they do on PostgreSQL)
    - A controllable clock, stub catalog and wallet directory, and a
      publisher that records every notification
    - A ``ledger`` helper that drives bookings to a given status
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from creator_escrow.config import Settings
from creator_escrow.domain.collaborators import ServiceSnapshot
from creator_escrow.domain.enums import ActorRole
from creator_escrow.domain.policy import Actor
from creator_escrow.infrastructure.database.engine import build_session_factory
from creator_escrow.infrastructure.database.orm_models import Base
from creator_escrow.services.booking_service import BookingService
from creator_escrow.services.dispute_service import DisputeService
from creator_escrow.services.lifecycle import BookingLifecycle
from creator_escrow.services.payment_service import PaymentService

CLIENT_WALLET = "0x" + "a1" * 20
CREATOR_WALLET = "0x" + "c3" * 20
START = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


def tx_ref() -> str:
    """A fresh, well-formed EVM transaction hash."""
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class StubCatalog:
    def __init__(self, services: dict[str, ServiceSnapshot]) -> None:
        self.services = services

    async def get_service(self, service_id: str) -> ServiceSnapshot | None:
        return self.services.get(service_id)


class StubWallets:
    def __init__(self, addresses: dict[tuple[str, str], str]) -> None:
        self.addresses = addresses

    async def get_address(self, user_id: str, network: str) -> str | None:
        return self.addresses.get((user_id, network))


class RecordingPublisher:
    def __init__(self) -> None:
        self.notifications = []

    async def publish(self, notification) -> None:  # noqa: ANN001
        self.notifications.append(notification)

    @property
    def event_types(self) -> list[str]:
        return [n.event_type for n in self.notifications]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, auto_release_sweep_enabled=False)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def catalog() -> StubCatalog:
    return StubCatalog(
        {
            "svc-logo": ServiceSnapshot(
                service_id="svc-logo",
                creator_id="creator-1",
                title="Logo design",
                price=Decimal("100.00"),
                delivery_days=5,
            ),
            "svc-retired": ServiceSnapshot(
                service_id="svc-retired",
                creator_id="creator-1",
                title="Retired service",
                price=Decimal("40.00"),
                active=False,
            ),
        }
    )


@pytest.fixture
def wallets() -> StubWallets:
    return StubWallets(
        {
            ("creator-1", "base"): CREATOR_WALLET,
            ("client-1", "base"): CLIENT_WALLET,
        }
    )


@pytest.fixture
def client_actor() -> Actor:
    return Actor("client-1", ActorRole.CLIENT)


@pytest.fixture
def other_client() -> Actor:
    return Actor("client-2", ActorRole.CLIENT)


@pytest.fixture
def creator_actor() -> Actor:
    return Actor("creator-1", ActorRole.CREATOR)


@pytest.fixture
def other_creator() -> Actor:
    return Actor("creator-2", ActorRole.CREATOR)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor("admin-1", ActorRole.ADMIN)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


class Services:
    """All services bound to one session, sharing the test doubles."""

    def __init__(self, session, *, settings, publisher, catalog, wallets, clock, redis=None):  # noqa: ANN001
        common = {
            "settings": settings,
            "publisher": publisher,
            "wallets": wallets,
            "clock": clock,
        }
        self.session = session
        self.bookings = BookingService(session, catalog=catalog, redis=redis, **common)
        self.payments = PaymentService(session, **common)
        self.disputes = DisputeService(session, **common)
        self.settlement = BookingLifecycle(session, **common).settlement


@pytest.fixture
def make_services(settings, publisher, catalog, wallets, clock):
    def factory(session, redis=None) -> Services:  # noqa: ANN001
        return Services(
            session,
            settings=settings,
            publisher=publisher,
            catalog=catalog,
            wallets=wallets,
            clock=clock,
            redis=redis,
        )

    return factory


@pytest.fixture
def services(session, make_services) -> Services:
    return make_services(session)


class LedgerDriver:
    """Drives a booking to a given status through the public services."""

    def __init__(self, services: Services, client: Actor, creator: Actor, admin: Actor) -> None:
        self.svc = services
        self.client = client
        self.creator = creator
        self.admin = admin

    async def checkout(self, network: str = "base"):
        booking, payment = await self.svc.bookings.checkout(
            self.client,
            service_id="svc-logo",
            network=network,
            claimed_amount=Decimal("100.00"),
            claimed_tx_ref=tx_ref(),
            payer_address=CLIENT_WALLET,
        )
        await self.svc.session.commit()
        return booking, payment

    async def paid(self):
        booking, payment = await self.checkout()
        await self.svc.payments.verify_payment(self.admin, payment.id, "verified")
        await self.svc.session.commit()
        return booking

    async def in_progress(self):
        booking = await self.paid()
        await self.svc.bookings.start_work(self.creator, booking.id)
        await self.svc.session.commit()
        return booking

    async def delivered(self):
        booking = await self.in_progress()
        await self.svc.bookings.deliver(
            self.creator, booking.id, ["https://files.example.com/logo.zip"], "Final files"
        )
        await self.svc.session.commit()
        return booking

    async def disputed(self, reason: str = "Not what was agreed"):
        booking = await self.delivered()
        dispute = await self.svc.disputes.open_dispute(self.client, booking.id, reason)
        await self.svc.session.commit()
        return booking, dispute


@pytest.fixture
def ledger(services, client_actor, creator_actor, admin_actor) -> LedgerDriver:
    return LedgerDriver(services, client_actor, creator_actor, admin_actor)
