"""Admin router for staff-only booking operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.dependencies import get_db, get_notification_service, require_staff
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import Booking, UpdateBookingStatusRequest
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"], responses=PROBLEM_RESPONSES)

STAFF_DEPENDENCY = Depends(require_staff)
DB_DEPENDENCY = Depends(get_db)
NOTIFICATIONS_DEPENDENCY = Depends(get_notification_service)


@router.post("/booking/update-status", response_model=Booking)
async def update_booking_status(
    request: UpdateBookingStatusRequest,
    principal: Principal = STAFF_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationService = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Override a booking's status.

    Confirming takes slots, cancelling a confirmed booking returns them and
    emails the customer. Bookings never return to PENDING.
    """
    booking_service = BookingService(db, notifications)

    try:
        booking = await booking_service.update_status(principal, request.booking_id, request.status)

        logger.info(
            "Booking status updated by staff",
            extra={
                "booking_id": request.booking_id,
                "status": request.status.value,
                "updated_by": principal.id
            }
        )

        return JSONResponse(
            status_code=200,
            content=Booking.model_validate(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking status update",
            extra={
                "booking_id": request.booking_id,
                "status": request.status.value,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
