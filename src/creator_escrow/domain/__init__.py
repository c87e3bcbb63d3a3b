"""Domain layer — pure business logic with zero framework dependencies."""

from creator_escrow.domain.collaborators import (
    CatalogProvider,
    EventPublisher,
    LedgerNotification,
    ServiceSnapshot,
    WalletDirectory,
)
from creator_escrow.domain.enums import (
    BookingStatus,
    EventType,
    PaymentStatus,
    SettlementDirection,
)
from creator_escrow.domain.exceptions import (
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
)
from creator_escrow.domain.policy import SYSTEM_ACTOR, Action, Actor, RolePolicy
from creator_escrow.domain.state_machine import (
    BookingStateMachine,
    validate_transition,
)

__all__ = [
    "BookingStatus",
    "EventType",
    "PaymentStatus",
    "SettlementDirection",
    "MarketplaceError",
    "NotFoundError",
    "InvalidTransitionError",
    "BookingStateMachine",
    "validate_transition",
    "Action",
    "Actor",
    "RolePolicy",
    "SYSTEM_ACTOR",
    "CatalogProvider",
    "EventPublisher",
    "LedgerNotification",
    "ServiceSnapshot",
    "WalletDirectory",
]
