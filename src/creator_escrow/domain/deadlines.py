"""Time rules for the escrow lifecycle.

Both time-based rules live here and take their durations from Settings:
the auto-release deadline after delivery and the dispute eligibility window.
Callers pass ``now`` explicitly so rules stay deterministic under test.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from creator_escrow.domain.enums import BookingStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def auto_release_deadline(delivered_at: datetime, delay: timedelta) -> datetime:
    return as_utc(delivered_at) + delay


def is_auto_release_due(deadline: datetime | None, now: datetime) -> bool:
    """A missing deadline (suspended by a dispute) is never due."""
    if deadline is None:
        return False
    return as_utc(now) >= as_utc(deadline)


def dispute_reference_time(
    status: str,
    paid_at: datetime | None,
    delivered_at: datetime | None,
) -> datetime | None:
    """Delivery time once delivered, otherwise payment time."""
    if status == BookingStatus.DELIVERED and delivered_at is not None:
        return delivered_at
    return paid_at


def within_dispute_window(reference: datetime | None, now: datetime, window: timedelta) -> bool:
    if reference is None:
        return False
    return as_utc(now) - as_utc(reference) <= window
