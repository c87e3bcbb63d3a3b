"""SQLAlchemy 2.0 ORM models for the creator escrow ledger.

Owned tables:
    1. bookings                — One escrowed purchase of a creator's service.
    2. payment_records         — Claimed inbound transfers awaiting admin verification.
    3. disputes                — Contested deliveries, at most one open per booking.
    4. settlement_obligations  — Exactly-once payout/refund owed after a terminal state.
    5. ledger_events           — Append-only audit log of every state change.

Read-only collaborator tables (owned by the catalog/profile service):
    6. service_listings
    7. payout_wallets

Design decisions:
    - UUIDs as primary keys (no sequential leakage).
    - Decimal for amounts (no floating point rounding errors).
    - CHECK constraints on status columns to prevent invalid enum values at DB level.
    - Partial unique indexes carry the "at most one" invariants, so a lost race
      fails in the database even if an application check was bypassed.
    - No ORM relationships: repositories query explicitly, which keeps async
      sessions free of implicit lazy loads.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from creator_escrow.domain.enums import (
    BookingStatus,
    DisputeOutcome,
    DisputeStatus,
    Network,
    PaymentPurpose,
    PaymentStatus,
    SettlementDirection,
)
from creator_escrow.infrastructure.database.types import UTCDateTime

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _now() -> datetime:
    return datetime.now(UTC)


def _one_of(column: str, values: type[enum.Enum]) -> str:
    allowed = ", ".join(f"'{member.value}'" for member in values)
    return f"{column} IN ({allowed})"


# ---------------------------------------------------------------------------
# 1. bookings
# ---------------------------------------------------------------------------
class Booking(Base):
    """One purchase of one service by one client from one creator."""

    __tablename__ = "bookings"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Catalog snapshot (frozen at creation) ---
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    service_title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        comment="Escrowed gross amount; immutable after creation",
    )
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USDC")
    network: Mapped[str] = mapped_column(String(16), nullable=False)
    delivery_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(24),
        nullable=False,
        default=BookingStatus.PENDING_PAYMENT.value,
        comment="Current lifecycle state (guarded by BookingStateMachine)",
    )

    # --- Delivery ---
    delivery_artifacts: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=None)
    delivery_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    due_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_release_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Deadline after which an undisputed delivery is released; null when suspended",
    )
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        CheckConstraint(_one_of("status", BookingStatus), name="ck_booking_valid_status"),
        CheckConstraint(_one_of("network", Network), name="ck_booking_valid_network"),
        CheckConstraint("amount > 0", name="ck_booking_positive_amount"),
        Index("idx_booking_status", "status"),
        Index("idx_booking_client", "client_id"),
        Index("idx_booking_creator", "creator_id"),
        Index("idx_booking_auto_release", "status", "auto_release_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking id={self.id} status={self.status} amount={self.amount} {self.currency}>"


# ---------------------------------------------------------------------------
# 2. payment_records
# ---------------------------------------------------------------------------
class PaymentRecord(Base):
    """A claimed transfer funding a booking or a creator-tier upgrade."""

    __tablename__ = "payment_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    payer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    purpose: Mapped[str] = mapped_column(String(20), nullable=False)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=True,
        comment="Null for creator-tier purchases",
    )
    tier: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # --- Claim (operator-supplied, never checked on chain) ---
    network: Mapped[str] = mapped_column(String(16), nullable=False)
    claimed_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USDC")
    claimed_tx_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    payer_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # --- Verification ---
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.PENDING.value
    )
    verifier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint(_one_of("status", PaymentStatus), name="ck_payment_valid_status"),
        CheckConstraint(_one_of("purpose", PaymentPurpose), name="ck_payment_valid_purpose"),
        CheckConstraint("claimed_amount > 0", name="ck_payment_positive_amount"),
        CheckConstraint(
            "(purpose = 'service_booking' AND booking_id IS NOT NULL) OR "
            "(purpose = 'creator_tier' AND booking_id IS NULL)",
            name="ck_payment_booking_link",
        ),
        # At most one verified payment may ever fund a booking
        Index(
            "uq_payment_verified_per_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'verified'"),
            sqlite_where=text("status = 'verified'"),
        ),
        # A tx reference can back only one live claim per network
        Index(
            "uq_payment_live_tx_ref",
            "network",
            "claimed_tx_ref",
            unique=True,
            postgresql_where=text("status IN ('pending', 'verified')"),
            sqlite_where=text("status IN ('pending', 'verified')"),
        ),
        Index("idx_payment_status", "status"),
        Index("idx_payment_booking", "booking_id"),
    )

    def __repr__(self) -> str:
        return f"<PaymentRecord id={self.id} booking={self.booking_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. disputes
# ---------------------------------------------------------------------------
class Dispute(Base):
    """A contested claim about a single booking's delivery."""

    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False
    )

    opener_role: Mapped[str] = mapped_column(String(16), nullable=False)
    opened_by: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DisputeStatus.OPEN.value
    )
    outcome: Mapped[str | None] = mapped_column(String(16), nullable=True)
    resolver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint(_one_of("status", DisputeStatus), name="ck_dispute_valid_status"),
        CheckConstraint(
            f"outcome IS NULL OR {_one_of('outcome', DisputeOutcome)}",
            name="ck_dispute_valid_outcome",
        ),
        CheckConstraint("opener_role IN ('client', 'creator')", name="ck_dispute_opener_role"),
        Index(
            "uq_dispute_open_per_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_dispute_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} booking={self.booking_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. settlement_obligations
# ---------------------------------------------------------------------------
class SettlementObligation(Base):
    """Money owed after a booking reaches a terminal state: payout or refund."""

    __tablename__ = "settlement_obligations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    # --- Beneficiary ---
    beneficiary_id: Mapped[str] = mapped_column(String(64), nullable=False)
    beneficiary_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    network: Mapped[str] = mapped_column(String(16), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USDC")

    # --- Amounts ---
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    fee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    # --- Execution (set exactly once) ---
    execution_tx_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    executed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_obligation_booking"),
        UniqueConstraint("execution_tx_ref", name="uq_obligation_tx_ref"),
        CheckConstraint(
            _one_of("direction", SettlementDirection), name="ck_obligation_valid_direction"
        ),
        CheckConstraint("net_amount >= 0", name="ck_obligation_non_negative_net"),
        Index("idx_obligation_direction", "direction"),
    )

    @property
    def is_executed(self) -> bool:
        return self.execution_tx_ref is not None

    def __repr__(self) -> str:
        return (
            f"<SettlementObligation id={self.id} {self.direction} "
            f"net={self.net_amount} executed={self.is_executed}>"
        )


# ---------------------------------------------------------------------------
# 5. ledger_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class LedgerEvent(Base):
    """Immutable audit record of a state change on any ledger entity.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. Every row represents a single atomic event.
    """

    __tablename__ = "ledger_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    event_type: Mapped[str] = mapped_column(
        String(48),
        nullable=False,
        comment="EventType enum value (e.g., booking.delivered, payment.verified)",
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=True,
        comment="Null for creator-tier payments",
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, comment="The booking, payment, dispute or obligation changed"
    )
    old_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    actor: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        default="system:SYSTEM",
        comment="role:id of whoever triggered this event",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Event context: amounts, tx refs, outcomes",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        Index("idx_event_booking", "booking_id"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 6-7. Read-only collaborator tables
# ---------------------------------------------------------------------------
class ServiceListing(Base):
    """A creator's bookable service. Written by the catalog service only."""

    __tablename__ = "service_listings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USDC")
    delivery_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PayoutWallet(Base):
    """A user's registered receiving wallet on one network. Written by the profile service only."""

    __tablename__ = "payout_wallets"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    network: Mapped[str] = mapped_column(String(16), primary_key=True)
    address: Mapped[str] = mapped_column(String(64), nullable=False)
