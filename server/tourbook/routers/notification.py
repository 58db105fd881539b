"""Notification router for scheduler-triggered jobs."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..core.dependencies import get_notification_service, verify_cron_secret
from ..core.exceptions import ProblemDetailsException
from ..schemas.notification import ReminderRunResponse
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/notification", tags=["notification"])


@router.post(
    "/reminders",
    response_model=ReminderRunResponse,
    dependencies=[Depends(verify_cron_secret)]
)
async def send_tour_reminders(
    notifications: NotificationService = Depends(get_notification_service)
) -> JSONResponse:
    """
    Send upcoming-tour reminders.

    Called by an external scheduler, authenticated with the cron secret.
    """
    try:
        outcome = await notifications.send_tour_reminders()
        return JSONResponse(
            status_code=200,
            content=ReminderRunResponse.model_validate(outcome).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in reminder sweep", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e
