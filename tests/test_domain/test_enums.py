"""Tests for domain enumerations."""

from __future__ import annotations

from creator_escrow.domain.enums import (
    EVM_NETWORKS,
    TERMINAL_BOOKING_STATUSES,
    BookingStatus,
    EventType,
    Network,
    SettlementDirection,
)


class TestBookingStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "pending_payment", "payment_rejected", "paid", "in_progress", "delivered",
            "disputed", "accepted", "auto_released", "refunded", "rejected_by_creator",
        }
        actual = {s.value for s in BookingStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(BookingStatus.PAID, str)
        assert BookingStatus.PAID == "paid"

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_BOOKING_STATUSES == {
            BookingStatus.ACCEPTED,
            BookingStatus.AUTO_RELEASED,
            BookingStatus.REFUNDED,
            BookingStatus.REJECTED_BY_CREATOR,
        }


class TestEventType:
    def test_event_types_are_dotted(self) -> None:
        for event_type in EventType:
            area, _, name = event_type.value.partition(".")
            assert area in {"booking", "payment", "dispute", "settlement"}
            assert name

    def test_event_type_values_are_unique(self) -> None:
        assert len({e.value for e in EventType}) == len(EventType)


class TestNetworks:
    def test_solana_is_the_only_non_evm_network(self) -> None:
        assert set(Network) - EVM_NETWORKS == {Network.SOLANA}

    def test_settlement_directions(self) -> None:
        assert {d.value for d in SettlementDirection} == {"payout", "refund"}
