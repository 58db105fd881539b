"""Booking router for customer booking operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.dependencies import get_current_user, get_db, get_notification_service
from ..core.exceptions import PermissionDeniedError, ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingList,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    ListBookingsRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
AUTH_DEPENDENCY = Depends(get_current_user)
DB_DEPENDENCY = Depends(get_db)
NOTIFICATIONS_DEPENDENCY = Depends(get_notification_service)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking.model_validate(booking_model)


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationService = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Create a PENDING booking for the caller.

    Slots are checked but not taken until payment confirms the booking.
    """
    booking_service = BookingService(db, notifications)

    try:
        booking = await booking_service.create(
            user_id=principal.id,
            tour_id=request.tour_id,
            availability_id=request.availability_id,
            travelers_count=request.travelers_count
        )
        return JSONResponse(
            status_code=201,
            content=_convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "user_id": principal.id,
                "tour_id": request.tour_id,
                "availability_id": request.availability_id,
                "travelers_count": request.travelers_count,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get a booking owned by the caller (staff may read any booking)."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.get(principal, request.booking_id)
        return JSONResponse(
            status_code=200,
            content=_convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=BookingList)
async def list_bookings(
    request: ListBookingsRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List the caller's bookings; staff may list another user's."""
    booking_service = BookingService(db)
    user_id = request.user_id or principal.id

    try:
        if user_id != principal.id and not principal.is_staff:
            raise PermissionDeniedError("You can only list your own bookings")

        bookings = await booking_service.list_for_user(user_id)
        response_data = BookingList(bookings=[_convert_booking_to_schema(b) for b in bookings])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking listing",
            extra={"user_id": user_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationService = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking.

    Confirmed bookings give their slots back. Cancelling twice is harmless.
    """
    booking_service = BookingService(db, notifications)

    try:
        booking = await booking_service.cancel_for(principal, request.booking_id, request.reason)
        return JSONResponse(
            status_code=200,
            content=_convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
