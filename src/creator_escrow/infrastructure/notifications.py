"""Notification adapters for ledger events.

Every successful state change is published as a LedgerNotification. Delivery
is fire-and-forget: a broken channel is logged and never propagates into the
ledger operation that produced the event.

Notifications are queued on the database session and only published once its
transaction commits. A rollback drops them.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from creator_escrow.config import get_settings
from creator_escrow.infrastructure.redis_client import get_redis_or_none
from creator_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

    from creator_escrow.domain.collaborators import EventPublisher, LedgerNotification

logger = get_logger(__name__)


class LoggingEventPublisher:
    """Writes notifications to the structured log only."""

    async def publish(self, notification: LedgerNotification) -> None:
        logger.info(
            "notification.logged",
            event_type=notification.event_type,
            booking_id=notification.booking_id,
            actor=notification.actor,
        )


class RedisEventPublisher:
    """Publishes notifications as JSON on a Redis pub/sub channel."""

    def __init__(self, client: aioredis.Redis, channel: str | None = None) -> None:
        self._client = client
        self._channel = channel or get_settings().redis_events_channel

    @property
    def channel(self) -> str:
        return self._channel

    async def publish(self, notification: LedgerNotification) -> None:
        payload = json.dumps(notification.to_dict(), default=str)
        receivers = await self._client.publish(self._channel, payload)
        logger.debug(
            "notification.published",
            event_type=notification.event_type,
            channel=self._channel,
            receivers=receivers,
        )


def get_event_publisher() -> EventPublisher:
    """Redis when the app connected to it at startup, logging otherwise."""
    client = get_redis_or_none()
    if client is None:
        return LoggingEventPublisher()
    return RedisEventPublisher(client)


async def publish_quietly(publisher: EventPublisher, notification: LedgerNotification) -> None:
    """Publish and swallow delivery failures after logging them."""
    try:
        await publisher.publish(notification)
    except Exception as exc:
        logger.warning(
            "notification.publish_failed",
            event_type=notification.event_type,
            booking_id=notification.booking_id,
            error=str(exc),
        )


# --- After-commit delivery ---

OUTBOX_KEY = "ledger_outbox"


def enqueue_notification(
    session: AsyncSession, publisher: EventPublisher, notification: LedgerNotification
) -> None:
    """Hold ``notification`` until the session's transaction commits."""
    session.info.setdefault(OUTBOX_KEY, []).append((publisher, notification))


def discard_notifications(session: AsyncSession) -> int:
    """Drop everything queued on ``session``; returns how many were dropped."""
    dropped = session.info.pop(OUTBOX_KEY, [])
    if dropped:
        logger.debug("notification.discarded", count=len(dropped))
    return len(dropped)


async def deliver_notifications(session: AsyncSession) -> None:
    """Publish, in order, everything queued on ``session`` since its last commit."""
    for publisher, notification in session.info.pop(OUTBOX_KEY, []):
        await publish_quietly(publisher, notification)
