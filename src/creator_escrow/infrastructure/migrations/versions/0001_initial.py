"""Initial escrow ledger schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

from creator_escrow.infrastructure.database.types import UTCDateTime

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "service_listings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("creator_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("delivery_days", sa.Integer, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False),
    )
    op.create_table(
        "payout_wallets",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("network", sa.String(16), primary_key=True),
        sa.Column("address", sa.String(64), nullable=False),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("creator_id", sa.String(64), nullable=False),
        sa.Column("service_id", sa.String(64), nullable=False),
        sa.Column("service_title", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("network", sa.String(16), nullable=False),
        sa.Column("delivery_days", sa.Integer, nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("delivery_artifacts", JSONType, nullable=True),
        sa.Column("delivery_note", sa.Text, nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("created_at", UTCDateTime, nullable=False),
        sa.Column("paid_at", UTCDateTime, nullable=True),
        sa.Column("due_at", UTCDateTime, nullable=True),
        sa.Column("delivered_at", UTCDateTime, nullable=True),
        sa.Column("auto_release_at", UTCDateTime, nullable=True),
        sa.Column("accepted_at", UTCDateTime, nullable=True),
        sa.Column("settled_at", UTCDateTime, nullable=True),
        sa.Column("updated_at", UTCDateTime, nullable=False),
        sa.CheckConstraint(
            "status IN ('pending_payment', 'payment_rejected', 'paid', 'in_progress', "
            "'delivered', 'disputed', 'accepted', 'auto_released', 'refunded', "
            "'rejected_by_creator')",
            name="ck_booking_valid_status",
        ),
        sa.CheckConstraint(
            "network IN ('ethereum', 'base', 'solana', 'bsc')",
            name="ck_booking_valid_network",
        ),
        sa.CheckConstraint("amount > 0", name="ck_booking_positive_amount"),
    )
    op.create_index("idx_booking_status", "bookings", ["status"])
    op.create_index("idx_booking_client", "bookings", ["client_id"])
    op.create_index("idx_booking_creator", "bookings", ["creator_id"])
    op.create_index("idx_booking_auto_release", "bookings", ["status", "auto_release_at"])

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("payer_id", sa.String(64), nullable=False),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column(
            "booking_id",
            sa.Uuid,
            sa.ForeignKey("bookings.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("tier", sa.String(16), nullable=True),
        sa.Column("network", sa.String(16), nullable=False),
        sa.Column("claimed_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("claimed_tx_ref", sa.String(100), nullable=False),
        sa.Column("payer_address", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("verifier_id", sa.String(64), nullable=True),
        sa.Column("verified_at", UTCDateTime, nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("created_at", UTCDateTime, nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'verified', 'rejected')", name="ck_payment_valid_status"
        ),
        sa.CheckConstraint(
            "purpose IN ('service_booking', 'creator_tier')", name="ck_payment_valid_purpose"
        ),
        sa.CheckConstraint("claimed_amount > 0", name="ck_payment_positive_amount"),
        sa.CheckConstraint(
            "(purpose = 'service_booking' AND booking_id IS NOT NULL) OR "
            "(purpose = 'creator_tier' AND booking_id IS NULL)",
            name="ck_payment_booking_link",
        ),
    )
    op.create_index(
        "uq_payment_verified_per_booking",
        "payment_records",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'verified'"),
        sqlite_where=sa.text("status = 'verified'"),
    )
    op.create_index(
        "uq_payment_live_tx_ref",
        "payment_records",
        ["network", "claimed_tx_ref"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'verified')"),
        sqlite_where=sa.text("status IN ('pending', 'verified')"),
    )
    op.create_index("idx_payment_status", "payment_records", ["status"])
    op.create_index("idx_payment_booking", "payment_records", ["booking_id"])

    op.create_table(
        "disputes",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid,
            sa.ForeignKey("bookings.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("opener_role", sa.String(16), nullable=False),
        sa.Column("opened_by", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=True),
        sa.Column("resolver_id", sa.String(64), nullable=True),
        sa.Column("resolution_note", sa.Text, nullable=True),
        sa.Column("resolved_at", UTCDateTime, nullable=True),
        sa.Column("created_at", UTCDateTime, nullable=False),
        sa.CheckConstraint("status IN ('open', 'resolved')", name="ck_dispute_valid_status"),
        sa.CheckConstraint(
            "outcome IS NULL OR outcome IN ('refund', 'release')",
            name="ck_dispute_valid_outcome",
        ),
        sa.CheckConstraint(
            "opener_role IN ('client', 'creator')", name="ck_dispute_opener_role"
        ),
    )
    op.create_index(
        "uq_dispute_open_per_booking",
        "disputes",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_index("idx_dispute_status", "disputes", ["status"])

    op.create_table(
        "settlement_obligations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid,
            sa.ForeignKey("bookings.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("beneficiary_id", sa.String(64), nullable=False),
        sa.Column("beneficiary_address", sa.String(64), nullable=True),
        sa.Column("network", sa.String(16), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("gross_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("fee_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("fee_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("net_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("execution_tx_ref", sa.String(100), nullable=True),
        sa.Column("executed_at", UTCDateTime, nullable=True),
        sa.Column("executed_by", sa.String(64), nullable=True),
        sa.Column("created_at", UTCDateTime, nullable=False),
        sa.UniqueConstraint("booking_id", name="uq_obligation_booking"),
        sa.UniqueConstraint("execution_tx_ref", name="uq_obligation_tx_ref"),
        sa.CheckConstraint(
            "direction IN ('payout', 'refund')", name="ck_obligation_valid_direction"
        ),
        sa.CheckConstraint("net_amount >= 0", name="ck_obligation_non_negative_net"),
    )
    op.create_index("idx_obligation_direction", "settlement_obligations", ["direction"])

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("event_type", sa.String(48), nullable=False),
        sa.Column(
            "booking_id",
            sa.Uuid,
            sa.ForeignKey("bookings.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("entity_id", sa.Uuid, nullable=False),
        sa.Column("old_status", sa.String(24), nullable=True),
        sa.Column("new_status", sa.String(24), nullable=True),
        sa.Column("actor", sa.String(80), nullable=False),
        sa.Column("metadata", JSONType, nullable=True),
        sa.Column("created_at", UTCDateTime, nullable=False),
    )
    op.create_index("idx_event_booking", "ledger_events", ["booking_id"])
    op.create_index("idx_event_type", "ledger_events", ["event_type"])
    op.create_index("idx_event_created_at", "ledger_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("ledger_events")
    op.drop_table("settlement_obligations")
    op.drop_table("disputes")
    op.drop_table("payment_records")
    op.drop_table("bookings")
    op.drop_table("payout_wallets")
    op.drop_table("service_listings")
