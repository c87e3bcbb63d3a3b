"""Booking State Machine Guard.

Uses python-statemachine to enforce legal booking transitions at the domain
level. No matter what the API or a background job asks for, an illegal
transition (e.g. pending_payment -> accepted) raises InvalidTransitionError
before any row is touched.

The machine is instantiated per booking from its persisted status and
validates an event before the repository's conditional update runs.

Transition table:
    pending_payment   -> paid                 (payment_verified)
    pending_payment   -> payment_rejected     (payment_rejected)
    payment_rejected  -> pending_payment      (payment_resubmitted)
    paid              -> in_progress          (work_started)
    paid, in_progress -> delivered            (work_delivered)
    delivered         -> accepted             (delivery_accepted)
    delivered         -> auto_released        (auto_release_elapsed)
    delivered         -> rejected_by_creator  (delivery_rejected)
    paid, in_progress,
    delivered         -> disputed             (dispute_opened)
    disputed          -> accepted             (dispute_released)
    disputed          -> refunded             (dispute_refunded)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from creator_escrow.domain.enums import BookingStatus
from creator_escrow.domain.exceptions import InvalidTransitionError


class BookingStateMachine(StateMachine):
    """State machine that guards the booking lifecycle.

    Usage:
        sm = BookingStateMachine(current_status="delivered")
        sm.fire("delivery_accepted")  # transitions to accepted
        sm.status                     # "accepted"
    """

    # --- States ---
    pending_payment = State("Pending payment", initial=True)
    rejected_payment = State("Payment rejected", value=BookingStatus.PAYMENT_REJECTED.value)
    paid = State("Paid")
    in_progress = State("In progress")
    delivered = State("Delivered")
    disputed = State("Disputed")
    accepted = State("Accepted", final=True)
    auto_released = State("Auto released", final=True)
    rejected_by_creator = State("Rejected by creator", final=True)
    refunded = State("Refunded", final=True)

    # --- Events / Transitions ---

    # Funding
    payment_verified = pending_payment.to(paid)
    payment_rejected = pending_payment.to(rejected_payment)
    payment_resubmitted = rejected_payment.to(pending_payment)

    # Work
    work_started = paid.to(in_progress)
    work_delivered = paid.to(delivered) | in_progress.to(delivered)

    # Delivery outcomes
    delivery_accepted = delivered.to(accepted)
    auto_release_elapsed = delivered.to(auto_released)
    delivery_rejected = delivered.to(rejected_by_creator)

    # Disputes
    dispute_opened = paid.to(disputed) | in_progress.to(disputed) | delivered.to(disputed)
    dispute_released = disputed.to(accepted)
    dispute_refunded = disputed.to(refunded)

    def __init__(self, current_status: str = BookingStatus.PENDING_PAYMENT) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current BookingStatus value (e.g., "paid").
                           Must match one of the State value strings exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=str(current_status))

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches BookingStatus)."""
        return str(self.current_state.value)

    @property
    def is_terminal(self) -> bool:
        return self.current_state.final

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]

    def fire(self, event_name: str) -> BookingStatus:
        """Apply ``event_name`` and return the new status.

        Raises:
            InvalidTransitionError: If the event may not fire from the current status.
            ValueError: If the event name is unknown.
        """
        event_method = getattr(self, event_name, None)
        if event_method is None or not callable(event_method):
            raise ValueError(
                f"Unknown event '{event_name}'. "
                f"Allowed events from {self.status}: {self.get_allowed_events()}"
            )
        try:
            event_method()
        except TransitionNotAllowed:
            raise InvalidTransitionError(self.status, event_name) from None
        return BookingStatus(self.status)

    def target_of(self, event_name: str) -> BookingStatus:
        """Return where ``event_name`` would lead without firing it."""
        return BookingStateMachine(current_status=self.status).fire(event_name)


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Raises:
        InvalidTransitionError: If the event may not fire from ``current_status``.
        ValueError: If the status or event name is unknown.
    """
    return BookingStateMachine(current_status=current_status).fire(event_name).value
