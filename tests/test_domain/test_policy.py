"""Tests for the role policy table."""

from __future__ import annotations

import pytest

from creator_escrow.domain.enums import ActorRole
from creator_escrow.domain.exceptions import PermissionDeniedError
from creator_escrow.domain.policy import (
    ROLE_POLICY,
    SYSTEM_ACTOR,
    Action,
    Actor,
    RolePolicy,
    default_policy,
)

CLIENT = Actor("client-1", ActorRole.CLIENT)
CREATOR = Actor("creator-1", ActorRole.CREATOR)
ADMIN = Actor("admin-1", ActorRole.ADMIN)
PARTIES = {"client_id": "client-1", "creator_id": "creator-1"}


class TestRoleTable:
    def test_every_action_has_an_entry(self) -> None:
        assert set(ROLE_POLICY) == set(Action)

    @pytest.mark.parametrize(
        "action",
        [Action.VERIFY_PAYMENT, Action.RESOLVE_DISPUTE, Action.RECORD_EXECUTION],
    )
    def test_admin_only_actions(self, action: Action) -> None:
        assert default_policy.allows(ADMIN, action)
        assert not default_policy.allows(CLIENT, action)
        assert not default_policy.allows(CREATOR, action)

    def test_only_system_and_admin_auto_release(self) -> None:
        assert default_policy.allows(SYSTEM_ACTOR, Action.AUTO_RELEASE)
        assert default_policy.allows(ADMIN, Action.AUTO_RELEASE)
        assert not default_policy.allows(CLIENT, Action.AUTO_RELEASE)

    def test_actor_renders_role_and_id(self) -> None:
        assert str(CLIENT) == "client:client-1"


class TestPartyGuards:
    def test_client_accepts_own_booking(self) -> None:
        default_policy.authorize(CLIENT, Action.ACCEPT_DELIVERY, **PARTIES)

    def test_other_client_cannot_accept(self) -> None:
        stranger = Actor("client-9", ActorRole.CLIENT)
        with pytest.raises(PermissionDeniedError, match="not the booking's client"):
            default_policy.authorize(stranger, Action.ACCEPT_DELIVERY, **PARTIES)

    def test_creator_cannot_accept_own_delivery(self) -> None:
        with pytest.raises(PermissionDeniedError, match="not permitted"):
            default_policy.authorize(CREATOR, Action.ACCEPT_DELIVERY, **PARTIES)

    def test_either_party_may_open_dispute(self) -> None:
        default_policy.authorize(CLIENT, Action.OPEN_DISPUTE, **PARTIES)
        default_policy.authorize(CREATOR, Action.OPEN_DISPUTE, **PARTIES)

    def test_outsider_cannot_open_dispute(self) -> None:
        outsider = Actor("creator-2", ActorRole.CREATOR)
        with pytest.raises(PermissionDeniedError, match="not a party"):
            default_policy.authorize(outsider, Action.OPEN_DISPUTE, **PARTIES)

    def test_admin_is_not_party_bound(self) -> None:
        default_policy.authorize(ADMIN, Action.VIEW_BOOKING, **PARTIES)

    def test_admin_cannot_open_dispute(self) -> None:
        with pytest.raises(PermissionDeniedError):
            default_policy.authorize(ADMIN, Action.OPEN_DISPUTE, **PARTIES)

    def test_listing_needs_no_booking_party(self) -> None:
        default_policy.authorize(CLIENT, Action.LIST_BOOKINGS)
        default_policy.authorize(CREATOR, Action.LIST_BOOKINGS)
        default_policy.authorize(ADMIN, Action.LIST_BOOKINGS)
        with pytest.raises(PermissionDeniedError):
            default_policy.authorize(SYSTEM_ACTOR, Action.LIST_BOOKINGS)


class TestCustomPolicy:
    def test_table_is_data_not_code(self) -> None:
        policy = RolePolicy(roles={Action.VERIFY_PAYMENT: frozenset({ActorRole.CREATOR})})
        assert policy.allows(CREATOR, Action.VERIFY_PAYMENT)
        assert not policy.allows(ADMIN, Action.VERIFY_PAYMENT)

    def test_error_carries_kind(self) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            default_policy.authorize(CLIENT, Action.VERIFY_PAYMENT)
        assert exc_info.value.kind == "forbidden"
        assert exc_info.value.code == "PERMISSION_DENIED"
