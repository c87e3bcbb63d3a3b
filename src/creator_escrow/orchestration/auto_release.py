"""Auto-release sweep — releases delivered bookings nobody acted on.

The deadline is data on the booking (``auto_release_at``), not a live timer.
The sweep selects delivered bookings whose deadline has passed and settles
each one in its own transaction:

    find due -> [per booking] auto_release -> commit  OR  skip (lost a race)

A booking that a client accepted, or that got disputed, between selection
and release is skipped and logged, never raised.

Usage:
    from creator_escrow.orchestration.auto_release import AutoReleaseSweeper

    report = await AutoReleaseSweeper(session_factory).run_once()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypedDict

from creator_escrow.domain.deadlines import as_utc, utcnow
from creator_escrow.domain.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NotEligibleError,
)
from creator_escrow.infrastructure.database.repositories import BookingRepository
from creator_escrow.logging_config import get_logger
from creator_escrow.services.booking_service import BookingService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

_LOST_RACE = (InvalidTransitionError, NotEligibleError, ConcurrentModificationError)


class SweepReport(TypedDict):
    """Outcome of one sweep pass."""

    checked: int
    released: list[str]
    skipped: list[str]


class AutoReleaseSweeper:
    """Runs auto-release for every booking past its deadline."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        batch_size: int = 100,
        clock: Callable[[], datetime] | None = None,
        **service_kwargs: Any,
    ) -> None:
        self._session_factory = session_factory
        self._batch_size = batch_size
        self._clock = clock or utcnow
        self._service_kwargs = service_kwargs

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now = as_utc(now) if now is not None else self._clock()
        async with self._session_factory() as session:
            due = await BookingRepository(session).list_due_for_auto_release(
                now, limit=self._batch_size
            )

        report: SweepReport = {"checked": len(due), "released": [], "skipped": []}
        for booking_id in due:
            if await self._release_one(booking_id, now):
                report["released"].append(str(booking_id))
            else:
                report["skipped"].append(str(booking_id))

        if due:
            logger.info(
                "auto_release.sweep_completed",
                checked=report["checked"],
                released=len(report["released"]),
                skipped=len(report["skipped"]),
            )
        return report

    async def _release_one(self, booking_id: uuid.UUID, now: datetime) -> bool:
        async with self._session_factory() as session:
            service = BookingService(session, **self._service_kwargs)
            try:
                settled = await service.auto_release(booking_id, now=now)
                await session.commit()
            except _LOST_RACE as exc:
                await session.rollback()
                logger.info(
                    "auto_release.skipped",
                    booking_id=str(booking_id),
                    reason=exc.code,
                )
                return False
            except Exception:
                await session.rollback()
                logger.exception("auto_release.failed", booking_id=str(booking_id))
                return False

        logger.info(
            "booking.auto_released",
            booking_id=str(booking_id),
            obligation_id=str(settled.obligation.id),
            net_amount=str(settled.obligation.net_amount),
        )
        return True
