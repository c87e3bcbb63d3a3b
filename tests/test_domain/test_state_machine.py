"""Tests for the BookingStateMachine domain guard.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function validate_transition works.
    4. Terminal states accept no further events.
"""

from __future__ import annotations

import pytest

from creator_escrow.domain.enums import TERMINAL_BOOKING_STATUSES, BookingStatus
from creator_escrow.domain.exceptions import InvalidTransitionError
from creator_escrow.domain.state_machine import BookingStateMachine, validate_transition

EVENTS = [
    "payment_verified",
    "payment_rejected",
    "payment_resubmitted",
    "work_started",
    "work_delivered",
    "delivery_accepted",
    "auto_release_elapsed",
    "delivery_rejected",
    "dispute_opened",
    "dispute_released",
    "dispute_refunded",
]


class TestHappyPath:
    """Test the full happy-path lifecycle: pending_payment -> accepted."""

    def test_full_lifecycle(self) -> None:
        sm = BookingStateMachine("pending_payment")
        assert sm.status == "pending_payment"

        sm.fire("payment_verified")
        assert sm.status == "paid"

        sm.fire("work_started")
        assert sm.status == "in_progress"

        sm.fire("work_delivered")
        assert sm.status == "delivered"

        sm.fire("delivery_accepted")
        assert sm.status == "accepted"
        assert sm.is_terminal

    def test_delivery_straight_from_paid(self) -> None:
        sm = BookingStateMachine("paid")
        assert sm.fire("work_delivered") == BookingStatus.DELIVERED


class TestPaymentRetryPath:
    """pending_payment -> payment_rejected -> pending_payment -> paid."""

    def test_rejected_then_resubmitted(self) -> None:
        sm = BookingStateMachine("pending_payment")
        sm.fire("payment_rejected")
        assert sm.status == "payment_rejected"

        sm.fire("payment_resubmitted")
        assert sm.status == "pending_payment"

        sm.fire("payment_verified")
        assert sm.status == "paid"

    def test_rejected_booking_cannot_be_paid_directly(self) -> None:
        sm = BookingStateMachine("payment_rejected")
        with pytest.raises(InvalidTransitionError):
            sm.fire("payment_verified")


class TestDeliveryOutcomes:
    @pytest.mark.parametrize(
        ("event", "target"),
        [
            ("delivery_accepted", "accepted"),
            ("auto_release_elapsed", "auto_released"),
            ("delivery_rejected", "rejected_by_creator"),
            ("dispute_opened", "disputed"),
        ],
    )
    def test_from_delivered(self, event: str, target: str) -> None:
        assert validate_transition("delivered", event) == target


class TestDisputePath:
    """Test dispute transitions."""

    @pytest.mark.parametrize("status", ["paid", "in_progress", "delivered"])
    def test_dispute_opens_from_funded_states(self, status: str) -> None:
        sm = BookingStateMachine(status)
        sm.fire("dispute_opened")
        assert sm.status == "disputed"

    def test_dispute_released(self) -> None:
        assert validate_transition("disputed", "dispute_released") == "accepted"

    def test_dispute_refunded(self) -> None:
        assert validate_transition("disputed", "dispute_refunded") == "refunded"

    def test_cannot_dispute_before_payment(self) -> None:
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending_payment", "dispute_opened")

    def test_disputed_booking_cannot_auto_release(self) -> None:
        with pytest.raises(InvalidTransitionError):
            validate_transition("disputed", "auto_release_elapsed")


class TestIllegalTransitions:
    """Verify that illegal transitions raise InvalidTransitionError."""

    def test_pending_payment_to_accepted(self) -> None:
        sm = BookingStateMachine("pending_payment")
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.fire("delivery_accepted")
        assert exc_info.value.current_state == "pending_payment"
        assert exc_info.value.attempted_event == "delivery_accepted"
        assert sm.status == "pending_payment"

    def test_paid_cannot_be_accepted(self) -> None:
        with pytest.raises(InvalidTransitionError):
            validate_transition("paid", "delivery_accepted")

    @pytest.mark.parametrize("status", sorted(TERMINAL_BOOKING_STATUSES))
    def test_terminal_states_are_final(self, status: str) -> None:
        sm = BookingStateMachine(status)
        assert sm.is_terminal
        assert sm.get_allowed_events() == []
        for event in EVENTS:
            with pytest.raises(InvalidTransitionError):
                sm.target_of(event)


class TestAllowedEvents:
    """Test the get_allowed_events helper."""

    def test_pending_payment_allowed(self) -> None:
        sm = BookingStateMachine("pending_payment")
        assert set(sm.get_allowed_events()) == {"payment_verified", "payment_rejected"}

    def test_delivered_allowed(self) -> None:
        sm = BookingStateMachine("delivered")
        assert set(sm.get_allowed_events()) == {
            "delivery_accepted",
            "auto_release_elapsed",
            "delivery_rejected",
            "dispute_opened",
        }

    def test_target_of_does_not_fire(self) -> None:
        sm = BookingStateMachine("delivered")
        assert sm.target_of("delivery_accepted") == BookingStatus.ACCEPTED
        assert sm.status == "delivered"


class TestValidateTransitionFunction:
    """Test the convenience function."""

    def test_valid_transition(self) -> None:
        assert validate_transition("paid", "work_started") == "in_progress"

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition("paid", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            BookingStateMachine("INVALID_STATUS")


class TestStatusCoverage:
    def test_every_booking_status_is_a_state(self) -> None:
        assert {s.value for s in BookingStateMachine.states} == {s.value for s in BookingStatus}

    @pytest.mark.parametrize(
        ("status", "events"),
        [
            ("payment_rejected", {"payment_resubmitted"}),
            ("paid", {"work_started", "work_delivered", "dispute_opened"}),
            ("in_progress", {"work_delivered", "dispute_opened"}),
            ("disputed", {"dispute_released", "dispute_refunded"}),
        ],
    )
    def test_allowed_events_per_status(self, status: str, events: set[str]) -> None:
        assert set(BookingStateMachine(status).get_allowed_events()) == events

    def test_status_enum_is_accepted(self) -> None:
        sm = BookingStateMachine(BookingStatus.DELIVERED)
        assert sm.fire("dispute_opened") == BookingStatus.DISPUTED
