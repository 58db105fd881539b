"""Review router."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.dependencies import get_current_user, get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.review import CreateReviewRequest, Review
from ..services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/review", tags=["review"], responses=PROBLEM_RESPONSES)


@router.post("/create", response_model=Review, status_code=201)
async def create_review(
    request: CreateReviewRequest,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Review a tour.

    Only customers holding a confirmed booking for the tour may review it,
    once. Reviews are stored unapproved.
    """
    review_service = ReviewService(db)

    try:
        review = await review_service.create_review(principal, request.tour_id, request.rating, request.comment)
        return JSONResponse(
            status_code=201,
            content=Review.model_validate(review).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in review creation",
            extra={"tour_id": request.tour_id, "user_id": principal.id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
