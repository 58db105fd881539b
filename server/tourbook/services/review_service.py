"""Review service."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.exceptions import ConflictError, NotFoundError
from ..models.booking import Booking, BookingStatus
from ..models.review import Review
from ..models.tour import Tour
from .business_rules import validate_review

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for customer reviews. New reviews await moderation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def has_confirmed_booking(self, user_id: str, tour_id: str) -> bool:
        result = await self.db.execute(
            select(Booking.id)
            .where(
                Booking.user_id == user_id,
                Booking.tour_id == tour_id,
                Booking.status == BookingStatus.CONFIRMED
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_review(self, principal: Principal, tour_id: str, rating: int, comment: str) -> Review:
        """
        Store a review from a customer who has travelled (or will travel) with a confirmed booking.

        Raises:
            NotFoundError: If tour not found
            BusinessRuleError: If the caller has no confirmed booking, or the
                rating/comment are out of range
            ConflictError: If the caller already reviewed this tour
        """
        tour = await self.db.get(Tour, tour_id)
        if not tour:
            raise NotFoundError(resource_type="tour", resource_id=tour_id)

        eligible = await self.has_confirmed_booking(principal.id, tour_id)
        validate_review(rating, comment, eligible)

        existing = await self.db.execute(
            select(Review.id).where(Review.user_id == principal.id, Review.tour_id == tour_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                detail="You have already reviewed this tour",
                conflicting_resource={"tour_id": tour_id, "user_id": principal.id},
            )

        review = Review(
            user_id=principal.id,
            tour_id=tour_id,
            rating=rating,
            comment=comment.strip(),
            approved=False,
        )
        self.db.add(review)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent submission
            await self.db.rollback()
            raise ConflictError(detail="You have already reviewed this tour") from e
        await self.db.refresh(review)

        logger.info(
            "Review created",
            extra={"review_id": review.id, "tour_id": tour_id, "user_id": principal.id, "rating": rating}
        )
        return review
