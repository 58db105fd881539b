"""Notification-related Pydantic schemas."""

from pydantic import BaseModel, Field


class ReminderRunResponse(BaseModel):
    """Summary of a reminder sweep."""

    candidates: int = Field(..., ge=0, description="Confirmed bookings starting on a reminder day")
    sent: int = Field(..., ge=0, description="Reminders delivered")
    failed: int = Field(..., ge=0, description="Reminders that could not be delivered")

    class Config:
        from_attributes = True
