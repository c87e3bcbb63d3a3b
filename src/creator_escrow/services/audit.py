"""Audit trail: one ledger event row, one notification, per state change.

The notification is queued on the session and goes out when the caller commits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from creator_escrow.domain.collaborators import LedgerNotification
from creator_escrow.infrastructure.database.repositories import EventRepository
from creator_escrow.infrastructure.notifications import (
    LoggingEventPublisher,
    enqueue_notification,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.domain.collaborators import EventPublisher
    from creator_escrow.domain.policy import Actor
    from creator_escrow.infrastructure.database.orm_models import LedgerEvent


class AuditTrail:
    """Appends ledger events and fans them out to the notification channel."""

    def __init__(self, session: AsyncSession, publisher: EventPublisher | None = None) -> None:
        self._session = session
        self._events = EventRepository(session)
        self._publisher = publisher or LoggingEventPublisher()

    async def record(
        self,
        event_type: str,
        *,
        entity_id: uuid.UUID,
        actor: Actor,
        booking_id: uuid.UUID | None = None,
        old_status: str | None = None,
        new_status: str | None = None,
        metadata: dict | None = None,
    ) -> LedgerEvent:
        evt = await self._events.record(
            event_type=event_type,
            entity_id=entity_id,
            booking_id=booking_id,
            old_status=old_status,
            new_status=new_status,
            actor=str(actor),
            metadata=metadata,
        )
        enqueue_notification(
            self._session,
            self._publisher,
            LedgerNotification(
                event_type=evt.event_type,
                booking_id=str(booking_id) if booking_id is not None else None,
                actor=evt.actor,
                occurred_at=evt.created_at,
                data={
                    "entity_id": str(entity_id),
                    "old_status": evt.old_status,
                    "new_status": evt.new_status,
                    **(metadata or {}),
                },
            ),
        )
        return evt

    async def history(self, booking_id: uuid.UUID) -> list[LedgerEvent]:
        return await self._events.get_by_booking(booking_id)
