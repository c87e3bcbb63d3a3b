"""Tests for the auto-release and dispute-window time rules."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from creator_escrow.domain.deadlines import (
    as_utc,
    auto_release_deadline,
    dispute_reference_time,
    is_auto_release_due,
    within_dispute_window,
)

DELIVERED = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
PAID = datetime(2025, 2, 27, 12, 0, tzinfo=UTC)


class TestAutoRelease:
    def test_deadline_is_three_days_after_delivery(self) -> None:
        deadline = auto_release_deadline(DELIVERED, timedelta(hours=72))
        assert deadline == datetime(2025, 3, 4, 12, 0, tzinfo=UTC)

    def test_due_exactly_at_deadline(self) -> None:
        deadline = auto_release_deadline(DELIVERED, timedelta(hours=72))
        assert not is_auto_release_due(deadline, deadline - timedelta(seconds=1))
        assert is_auto_release_due(deadline, deadline)

    def test_suspended_deadline_is_never_due(self) -> None:
        assert not is_auto_release_due(None, DELIVERED + timedelta(days=365))

    def test_naive_datetimes_are_utc(self) -> None:
        assert as_utc(datetime(2025, 3, 1, 12, 0)) == DELIVERED


class TestDisputeWindow:
    def test_reference_is_delivery_once_delivered(self) -> None:
        assert dispute_reference_time("delivered", PAID, DELIVERED) == DELIVERED

    def test_reference_is_payment_before_delivery(self) -> None:
        assert dispute_reference_time("in_progress", PAID, None) == PAID

    def test_inside_and_outside_window(self) -> None:
        window = timedelta(hours=48)
        assert within_dispute_window(DELIVERED, DELIVERED + timedelta(hours=1), window)
        assert within_dispute_window(DELIVERED, DELIVERED + window, window)
        assert not within_dispute_window(
            DELIVERED, DELIVERED + window + timedelta(seconds=1), window
        )

    def test_missing_reference_is_outside(self) -> None:
        assert not within_dispute_window(None, DELIVERED, timedelta(hours=48))
