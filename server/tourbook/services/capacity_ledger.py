"""Capacity ledger over tour availability slots."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InsufficientCapacityError, IntegrityViolationError, NotFoundError
from ..core.observability import metrics_collector
from ..models.availability import TourAvailability

logger = logging.getLogger(__name__)


class CapacityLedger:
    """
    Reads and adjusts ``TourAvailability.available_slots``.

    None of these methods commit; the caller owns the transaction so slot
    changes land atomically with the booking status change that caused them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_availability(self, availability_id: str) -> Optional[TourAvailability]:
        return await self.db.get(TourAvailability, availability_id)

    async def get_availability_or_raise(self, availability_id: str) -> TourAvailability:
        availability = await self.get_availability(availability_id)
        if not availability:
            raise NotFoundError(resource_type="availability", resource_id=availability_id)
        return availability

    async def reserve_tentative(self, availability_id: str, count: int) -> TourAvailability:
        """
        Check that ``count`` slots are currently free without taking them.

        Two concurrent callers can both pass this check; ``commit`` is the
        operation that actually guards the slot count.

        Raises:
            NotFoundError: If the offering does not exist
            InsufficientCapacityError: If fewer than ``count`` slots are free
        """
        availability = await self.get_availability_or_raise(availability_id)

        if count > availability.available_slots:
            logger.warning(
                "Tentative reservation refused - insufficient capacity",
                extra={
                    "availability_id": availability_id,
                    "requested_slots": count,
                    "available_slots": availability.available_slots
                }
            )
            raise InsufficientCapacityError(
                availability_id=availability_id,
                requested_slots=count,
                available_slots=availability.available_slots
            )

        return availability

    async def commit(self, availability_id: str, count: int) -> int:
        """
        Take ``count`` slots with a compare-and-swap decrement.

        Returns:
            Remaining slots after the decrement

        Raises:
            NotFoundError: If the offering does not exist
            IntegrityViolationError: If fewer than ``count`` slots remain
        """
        stmt = (
            update(TourAvailability)
            .where(
                TourAvailability.id == availability_id,
                TourAvailability.available_slots >= count
            )
            .values(available_slots=TourAvailability.available_slots - count)
            .returning(TourAvailability.available_slots)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            self._record_violation(availability_id, count)
            raise IntegrityViolationError(
                "Available slots would become negative",
                context={"availability_id": availability_id, "requested_slots": count}
            ) from e

        remaining = result.scalar_one_or_none()
        if remaining is None:
            availability = await self.get_availability_or_raise(availability_id)
            self._record_violation(availability_id, count, availability.available_slots)
            raise IntegrityViolationError(
                "Available slots would become negative",
                context={
                    "availability_id": availability_id,
                    "requested_slots": count,
                    "available_slots": availability.available_slots
                }
            )

        await self._sync(availability_id)

        logger.info(
            "Slots committed",
            extra={"availability_id": availability_id, "slots": count, "remaining_slots": remaining}
        )
        return remaining

    async def release(self, availability_id: str, count: int) -> int:
        """
        Return ``count`` slots to the offering.

        Returns:
            Remaining slots after the increment
        """
        stmt = (
            update(TourAvailability)
            .where(TourAvailability.id == availability_id)
            .values(available_slots=TourAvailability.available_slots + count)
            .returning(TourAvailability.available_slots)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        remaining = result.scalar_one_or_none()
        if remaining is None:
            raise NotFoundError(resource_type="availability", resource_id=availability_id)

        await self._sync(availability_id)

        logger.info(
            "Slots released",
            extra={"availability_id": availability_id, "slots": count, "remaining_slots": remaining}
        )
        return remaining

    async def list_open_availabilities(
        self,
        tour_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TourAvailability]:
        """Offerings of ``tour_id`` with free slots, earliest first, optionally within [start, end]."""
        stmt = select(TourAvailability).where(
            TourAvailability.tour_id == tour_id,
            TourAvailability.available_slots > 0
        )
        if start is not None:
            stmt = stmt.where(TourAvailability.start_date >= start)
        if end is not None:
            stmt = stmt.where(TourAvailability.start_date <= end)

        result = await self.db.execute(stmt.order_by(TourAvailability.start_date))
        return list(result.scalars().all())

    async def _sync(self, availability_id: str) -> None:
        # Bulk UPDATE bypasses the identity map; reload so loaded copies see the new count
        await self.db.execute(
            select(TourAvailability)
            .where(TourAvailability.id == availability_id)
            .execution_options(populate_existing=True)
        )

    def _record_violation(self, availability_id: str, count: int, available: Optional[int] = None) -> None:
        metrics_collector.record_integrity_violation()
        logger.error(
            "Capacity integrity violation",
            extra={
                "availability_id": availability_id,
                "requested_slots": count,
                "available_slots": available
            }
        )
