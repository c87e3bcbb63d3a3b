"""Collaborator Protocols.

Defines the interfaces to the systems the ledger consumes but does not own:
the service catalog, the wallet directory and the notification channel.
These are Protocols (structural subtyping) so concrete adapters don't need
to inherit from a base class; they just need to match the shape.

The domain layer has ZERO imports from SQLAlchemy, Redis or any external service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ServiceSnapshot:
    """A bookable service as the catalog reports it at checkout time.

    Attributes:
        service_id: Catalog identifier of the service.
        creator_id: Creator who offers (and will deliver) the service.
        title: Display title, copied onto the booking.
        price: Gross price in ``currency``; becomes the booking's escrowed amount.
        currency: Settlement currency (USDC unless configured otherwise).
        delivery_days: Promised turnaround, used to compute the due date.
        active: Inactive services cannot be booked.
    """

    service_id: str
    creator_id: str
    title: str
    price: Decimal
    currency: str = "USDC"
    delivery_days: int = 7
    active: bool = True


@runtime_checkable
class CatalogProvider(Protocol):
    """Read-only access to creator service listings."""

    async def get_service(self, service_id: str) -> ServiceSnapshot | None:
        """Return the service, or None if the catalog does not know it."""
        ...


@runtime_checkable
class WalletDirectory(Protocol):
    """Read-only access to users' registered payout wallets."""

    async def get_address(self, user_id: str, network: str) -> str | None:
        """Return the user's wallet for ``network``, or None if none is registered."""
        ...


@dataclass(frozen=True)
class LedgerNotification:
    """A state change worth telling someone about.

    Attributes:
        event_type: Dotted EventType value (e.g. "booking.delivered").
        booking_id: Booking the change concerns, if any.
        actor: "role:id" of whoever caused it.
        occurred_at: When the change was committed to the ledger.
        data: Event-specific context (amounts, tx refs, outcomes).
    """

    event_type: str
    booking_id: str | None
    actor: str
    occurred_at: datetime
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize for publishing on the notification channel."""
        return {
            "event_type": self.event_type,
            "booking_id": self.booking_id,
            "actor": self.actor,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.data,
        }


@runtime_checkable
class EventPublisher(Protocol):
    """Protocol that all notification adapters must satisfy.

    Concrete implementations:
        - infrastructure/notifications.py  RedisEventPublisher (pub/sub)
        - infrastructure/notifications.py  LoggingEventPublisher (log only)
    """

    async def publish(self, notification: LedgerNotification) -> None:
        """Deliver a notification. Failures must not affect ledger state."""
        ...
