"""Role policy table consulted by every guarded operation.

The identity collaborator hands us an ``Actor`` (id + role) for each call.
Whether that actor may perform an action is decided here, from data, never
by comparing an id against a hard-coded administrator:

    1. The actor's role must be listed for the action in ROLE_POLICY.
    2. For party-bound actions the actor must also *be* that party on the
       booking (the booking's client, or the booking's creator).
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from creator_escrow.domain.enums import ActorRole
from creator_escrow.domain.exceptions import PermissionDeniedError


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as reported by the identity collaborator."""

    id: str
    role: ActorRole

    def __str__(self) -> str:
        return f"{self.role.value}:{self.id}"


SYSTEM_ACTOR = Actor(id="SYSTEM", role=ActorRole.SYSTEM)


class Action(enum.StrEnum):
    CREATE_BOOKING = "create_booking"
    SUBMIT_BOOKING_PAYMENT = "submit_booking_payment"
    SUBMIT_TIER_PAYMENT = "submit_tier_payment"
    VERIFY_PAYMENT = "verify_payment"
    START_WORK = "start_work"
    DELIVER = "deliver"
    ACCEPT_DELIVERY = "accept_delivery"
    REJECT_DELIVERY = "reject_delivery"
    AUTO_RELEASE = "auto_release"
    OPEN_DISPUTE = "open_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    RECORD_EXECUTION = "record_execution"
    VIEW_BOOKING = "view_booking"
    LIST_BOOKINGS = "list_bookings"
    VIEW_LEDGER = "view_ledger"


class Party(enum.StrEnum):
    """Which side of the booking an actor must be."""

    CLIENT = "client"
    CREATOR = "creator"
    EITHER = "either"


_R = ActorRole

ROLE_POLICY: Mapping[Action, frozenset[ActorRole]] = MappingProxyType(
    {
        Action.CREATE_BOOKING: frozenset({_R.CLIENT}),
        Action.SUBMIT_BOOKING_PAYMENT: frozenset({_R.CLIENT}),
        Action.SUBMIT_TIER_PAYMENT: frozenset({_R.CREATOR}),
        Action.VERIFY_PAYMENT: frozenset({_R.ADMIN}),
        Action.START_WORK: frozenset({_R.CREATOR}),
        Action.DELIVER: frozenset({_R.CREATOR}),
        Action.ACCEPT_DELIVERY: frozenset({_R.CLIENT}),
        Action.REJECT_DELIVERY: frozenset({_R.CREATOR}),
        Action.AUTO_RELEASE: frozenset({_R.SYSTEM, _R.ADMIN}),
        Action.OPEN_DISPUTE: frozenset({_R.CLIENT, _R.CREATOR}),
        Action.RESOLVE_DISPUTE: frozenset({_R.ADMIN}),
        Action.RECORD_EXECUTION: frozenset({_R.ADMIN}),
        Action.VIEW_BOOKING: frozenset({_R.CLIENT, _R.CREATOR, _R.ADMIN}),
        Action.LIST_BOOKINGS: frozenset({_R.CLIENT, _R.CREATOR, _R.ADMIN}),
        Action.VIEW_LEDGER: frozenset({_R.ADMIN}),
    }
)

# Actions where a client/creator must be the matching party of the booking.
PARTY_POLICY: Mapping[Action, Party] = MappingProxyType(
    {
        Action.SUBMIT_BOOKING_PAYMENT: Party.CLIENT,
        Action.START_WORK: Party.CREATOR,
        Action.DELIVER: Party.CREATOR,
        Action.ACCEPT_DELIVERY: Party.CLIENT,
        Action.REJECT_DELIVERY: Party.CREATOR,
        Action.OPEN_DISPUTE: Party.EITHER,
        Action.VIEW_BOOKING: Party.EITHER,
    }
)


class RolePolicy:
    """Evaluates ROLE_POLICY / PARTY_POLICY for a given actor."""

    def __init__(
        self,
        roles: Mapping[Action, frozenset[ActorRole]] = ROLE_POLICY,
        parties: Mapping[Action, Party] = PARTY_POLICY,
    ) -> None:
        self._roles = roles
        self._parties = parties

    def allows(self, actor: Actor, action: Action) -> bool:
        return actor.role in self._roles.get(action, frozenset())

    def authorize(
        self,
        actor: Actor,
        action: Action,
        *,
        client_id: str | None = None,
        creator_id: str | None = None,
    ) -> None:
        """Raise PermissionDeniedError unless ``actor`` may perform ``action``.

        Admin and system actors are never party-bound; their access is
        decided by the role table alone.
        """
        if not self.allows(actor, action):
            raise PermissionDeniedError(
                actor.id, action.value, f"role '{actor.role.value}' is not permitted"
            )

        party = self._parties.get(action)
        if party is None or actor.role in (ActorRole.ADMIN, ActorRole.SYSTEM):
            return

        is_client = actor.role == ActorRole.CLIENT and actor.id == client_id
        is_creator = actor.role == ActorRole.CREATOR and actor.id == creator_id
        if party == Party.CLIENT and not is_client:
            raise PermissionDeniedError(actor.id, action.value, "not the booking's client")
        if party == Party.CREATOR and not is_creator:
            raise PermissionDeniedError(actor.id, action.value, "not the booking's creator")
        if party == Party.EITHER and not (is_client or is_creator):
            raise PermissionDeniedError(actor.id, action.value, "not a party to the booking")


default_policy = RolePolicy()
