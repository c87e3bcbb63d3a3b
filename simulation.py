#!/usr/bin/env python3
"""Creator Escrow — End-to-End Simulation.

Simulates three scenarios with ClientBot, CreatorBot and AdminBot actors:

    Scenario 1: Auto-release
        - Client books a 100 USDC service and pays; admin verifies
        - Creator delivers; nobody acts for 3 days
        - The sweep auto-releases -> payout of 85 USDC to the creator's wallet

    Scenario 2: Dispute refund
        - Booking is paid and delivered
        - Client disputes 1 hour later; admin resolves with refund
        - A second resolution is refused (ALREADY_RESOLVED)

    Scenario 3: Payment retry
        - Client's first payment claim is rejected -> PAYMENT_REJECTED
        - Client submits a new claim; admin verifies it -> PAID

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from creator_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from creator_escrow.domain.enums import ActorRole  # noqa: E402
from creator_escrow.domain.exceptions import MarketplaceError  # noqa: E402
from creator_escrow.domain.policy import Actor  # noqa: E402

# Module-level state
_sqlite_engine = None
_session_factory = None

SERVICE_ID = "svc-brand-video"
NETWORK = "base"
CLIENT_WALLET = "0x" + "a1" * 20
CREATOR_WALLET = "0x" + "c3" * 20


class SimClock:
    """A clock the scenarios can fast-forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)
        logger.info("⏩ CLOCK: advanced", now=self.now.isoformat())


def new_tx_ref() -> str:
    """A well-formed EVM transaction hash."""
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine, create tables and seed the catalog."""
    global _sqlite_engine, _session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import create_async_engine
        from sqlalchemy.pool import StaticPool

        from creator_escrow.infrastructure.database.engine import build_session_factory
        from creator_escrow.infrastructure.database.orm_models import Base

        _sqlite_engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            echo=False,
            poolclass=StaticPool,
        )
        _session_factory = build_session_factory(_sqlite_engine)
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from creator_escrow.infrastructure.database.engine import get_session_factory, init_db

        await init_db()
        _session_factory = get_session_factory()

    await seed_catalog()


async def seed_catalog() -> None:
    """Register the creator's service and both parties' wallets."""
    from creator_escrow.infrastructure.database.orm_models import PayoutWallet, ServiceListing

    async with _session_factory() as session:
        await session.merge(
            ServiceListing(
                id=SERVICE_ID,
                creator_id="creator-ada",
                title="30-second brand video",
                price=Decimal("100.00"),
                currency="USDC",
                delivery_days=5,
                active=True,
            )
        )
        await session.merge(
            PayoutWallet(user_id="creator-ada", network=NETWORK, address=CREATOR_WALLET)
        )
        await session.merge(
            PayoutWallet(user_id="client-bo", network=NETWORK, address=CLIENT_WALLET)
        )
        await session.commit()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
    else:
        from creator_escrow.infrastructure.database.engine import close_db

        await close_db()
    _session_factory = None


# ---------------------------------------------------------------------------
# Bot Actors
# ---------------------------------------------------------------------------
@dataclass
class Bot:
    clock: SimClock
    actor: Actor | None = None

    def services(self, session: Any) -> dict:
        from creator_escrow.services.booking_service import BookingService
        from creator_escrow.services.dispute_service import DisputeService
        from creator_escrow.services.payment_service import PaymentService

        return {
            "bookings": BookingService(session, clock=self.clock),
            "payments": PaymentService(session, clock=self.clock),
            "disputes": DisputeService(session, clock=self.clock),
        }


@dataclass
class ClientBot(Bot):
    """Simulated client who books, pays, accepts or disputes."""

    actor: Actor = field(default_factory=lambda: Actor("client-bo", ActorRole.CLIENT))

    async def book_and_pay(self, session: Any) -> tuple[str, str]:
        """Checkout in one step. Returns (booking_id, payment_id)."""
        booking, payment = await self.services(session)["bookings"].checkout(
            self.actor,
            service_id=SERVICE_ID,
            network=NETWORK,
            claimed_amount=Decimal("100.00"),
            claimed_tx_ref=new_tx_ref(),
            payer_address=CLIENT_WALLET,
        )
        await session.commit()
        logger.info(
            "🔵 CLIENT: Booked and paid",
            booking_id=str(booking.id),
            amount=str(booking.amount),
            payment_id=str(payment.id),
        )
        return str(booking.id), str(payment.id)

    async def pay_again(self, session: Any, booking_id: str) -> str:
        record = await self.services(session)["payments"].submit_payment(
            self.actor,
            purpose="service_booking",
            network=NETWORK,
            claimed_amount=Decimal("100.00"),
            claimed_tx_ref=new_tx_ref(),
            booking_id=booking_id,
        )
        await session.commit()
        logger.info("🔵 CLIENT: Resubmitted payment", payment_id=str(record.id))
        return str(record.id)

    async def dispute(self, session: Any, booking_id: str, reason: str) -> str:
        dispute = await self.services(session)["disputes"].open_dispute(
            self.actor, booking_id, reason
        )
        await session.commit()
        logger.info("🔵 CLIENT: Dispute opened", dispute_id=str(dispute.id))
        return str(dispute.id)


@dataclass
class CreatorBot(Bot):
    """Simulated creator who starts and delivers work."""

    actor: Actor = field(default_factory=lambda: Actor("creator-ada", ActorRole.CREATOR))

    async def start_and_deliver(self, session: Any, booking_id: str) -> None:
        svc = self.services(session)["bookings"]
        await svc.start_work(self.actor, booking_id)
        booking = await svc.deliver(
            self.actor, booking_id, ["https://files.example.com/brand-video-final.mp4"]
        )
        await session.commit()
        logger.info(
            "🟢 CREATOR: Delivered",
            booking_id=booking_id,
            auto_release_at=booking.auto_release_at.isoformat(),
        )


@dataclass
class AdminBot(Bot):
    """Simulated admin who verifies payments and resolves disputes."""

    actor: Actor = field(default_factory=lambda: Actor("admin-eve", ActorRole.ADMIN))

    async def verify(self, session: Any, payment_id: str, decision: str, reason: str | None = None):
        record = await self.services(session)["payments"].verify_payment(
            self.actor, payment_id, decision, reason
        )
        await session.commit()
        logger.info("🟣 ADMIN: Payment resolved", payment_id=payment_id, decision=record.status)

    async def resolve(self, session: Any, dispute_id: str, outcome: str):
        dispute, settled = await self.services(session)["disputes"].resolve_dispute(
            self.actor, dispute_id, outcome, note="Delivery did not match the brief"
        )
        await session.commit()
        logger.info(
            "🟣 ADMIN: Dispute resolved",
            dispute_id=str(dispute.id),
            outcome=outcome,
            net_amount=str(settled.obligation.net_amount),
        )
        return settled


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_obligation(obligation: Any) -> None:
    print(f"  💸 {obligation.direction.upper()} to {obligation.beneficiary_id}")
    print(f"     gross {obligation.gross_amount} - fee {obligation.fee_amount}"
          f" = net {obligation.net_amount} {obligation.currency}")
    print(f"     wallet: {obligation.beneficiary_address or '(to be supplied)'}")


async def print_audit_trail(session: Any, booking_id: str, admin: AdminBot) -> None:
    """Print the full audit trail for a booking."""
    events = await admin.services(session)["bookings"].get_events(admin.actor, booking_id)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "—"
        new = evt.new_status or "—"
        print(f"    {i}. [{evt.event_type}] {old} → {new} (by {evt.actor})")
    print()


# ===========================================================================
# Scenario 1: Auto-release
# ===========================================================================
async def scenario_1_auto_release() -> None:
    """Delivered booking nobody acts on is released after the deadline."""
    from creator_escrow.infrastructure.database.repositories import ObligationRepository
    from creator_escrow.orchestration.auto_release import AutoReleaseSweeper

    banner("SCENARIO 1: Auto-release — Delivered, Then Silence")

    clock = SimClock()
    client, creator, admin = ClientBot(clock=clock), CreatorBot(clock=clock), AdminBot(clock=clock)

    async with _session_factory() as session:
        section("Step 1: Client books and pays, admin verifies")
        booking_id, payment_id = await client.book_and_pay(session)
        await admin.verify(session, payment_id, "verified")

        section("Step 2: Creator delivers")
        clock.advance(days=2)
        await creator.start_and_deliver(session, booking_id)

    section("Step 3: Sweep before the deadline releases nothing")
    sweeper = AutoReleaseSweeper(_session_factory, clock=clock)
    clock.advance(days=2)
    report = await sweeper.run_once()
    print(f"  checked={report['checked']} released={len(report['released'])}")

    section("Step 4: Sweep after the deadline")
    clock.advance(days=1, minutes=1)
    report = await sweeper.run_once()
    print(f"  checked={report['checked']} released={len(report['released'])}")

    async with _session_factory() as session:
        status = await admin.services(session)["bookings"].get_status(admin.actor, booking_id)
        print(f"\n  Booking status: {status['status']}")
        obligation = await ObligationRepository(session).get_by_booking(uuid.UUID(booking_id))
        print_obligation(obligation)
        await print_audit_trail(session, booking_id, admin)


# ===========================================================================
# Scenario 2: Dispute refund
# ===========================================================================
async def scenario_2_dispute_refund() -> None:
    """Client disputes a delivery and the admin refunds."""
    banner("SCENARIO 2: Dispute Refund — Client Contests the Delivery")

    clock = SimClock()
    client, creator, admin = ClientBot(clock=clock), CreatorBot(clock=clock), AdminBot(clock=clock)

    async with _session_factory() as session:
        section("Step 1: Setup (Checkout -> Verify -> Deliver)")
        booking_id, payment_id = await client.book_and_pay(session)
        await admin.verify(session, payment_id, "verified")
        await creator.start_and_deliver(session, booking_id)

        section("Step 2: Client disputes one hour later")
        clock.advance(hours=1)
        dispute_id = await client.dispute(session, booking_id, "Wrong logo colours throughout")

        section("Step 3: Admin resolves with refund")
        settled = await admin.resolve(session, dispute_id, "refund")
        print(f"  Booking status: {settled.booking.status}")
        print_obligation(settled.obligation)

        section("Step 4: A second resolution is refused")
        try:
            await admin.resolve(session, dispute_id, "release")
        except MarketplaceError as exc:
            await session.rollback()
            print(f"  ✅ Refused: {exc.code} ({exc.kind})")

        await print_audit_trail(session, booking_id, admin)


# ===========================================================================
# Scenario 3: Payment retry
# ===========================================================================
async def scenario_3_payment_retry() -> None:
    """First payment claim is rejected; the retry is verified."""
    from creator_escrow.infrastructure.database.repositories import PaymentRepository

    banner("SCENARIO 3: Payment Retry — Rejected, Then Verified")

    clock = SimClock()
    client, admin = ClientBot(clock=clock), AdminBot(clock=clock)

    async with _session_factory() as session:
        section("Step 1: Client pays, admin rejects")
        booking_id, payment_id = await client.book_and_pay(session)
        await admin.verify(session, payment_id, "rejected", reason="No transfer found on-chain")
        status = await admin.services(session)["bookings"].get_status(admin.actor, booking_id)
        print(f"  Booking status: {status['status']}")

        section("Step 2: Client submits a new claim")
        clock.advance(hours=3)
        retry_id = await client.pay_again(session, booking_id)
        records = await PaymentRepository(session).list_by_booking(uuid.UUID(booking_id))
        for record in records:
            print(f"  payment {str(record.id)[:8]}… {record.status}")

        section("Step 3: Admin verifies the retry")
        await admin.verify(session, retry_id, "verified")
        status = await admin.services(session)["bookings"].get_status(admin.actor, booking_id)
        print(f"  Booking status: {status['status']}")

        await print_audit_trail(session, booking_id, admin)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_auto_release,
    2: scenario_2_dispute_refund,
    3: scenario_3_payment_retry,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🚀" * 35)
        print("  CREATOR ESCROW — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("🚀" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: 1, 2, 3")
        return

    await init_database(use_sqlite=use_sqlite)
    try:
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Creator Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
