"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    tour_id: str = Field(..., description="Tour to book")
    availability_id: str = Field(..., description="Dated offering of the tour")
    travelers_count: int = Field(..., ge=1, description="Number of travelers")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class ListBookingsRequest(BaseModel):
    """Request schema for listing bookings."""

    user_id: Optional[str] = Field(
        None,
        description="Whose bookings to list; staff only, defaults to the caller"
    )


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=500, description="Why the booking is cancelled")


class UpdateBookingStatusRequest(BaseModel):
    """Request schema for an administrative status change."""

    booking_id: str = Field(..., description="Booking to update")
    status: BookingStatus = Field(..., description="Target status")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    user_id: str = Field(..., description="Customer who made the booking")
    tour_id: str = Field(..., description="Booked tour")
    availability_id: str = Field(..., description="Booked offering")
    travelers_count: int = Field(..., ge=1, description="Number of travelers")
    total_price: float = Field(..., ge=0, description="Price per person times travelers")
    status: BookingStatus = Field(..., description="Booking status")
    cancellation_reason: Optional[str] = Field(None, description="Reason given on cancellation")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last change (ISO 8601)")

    class Config:
        from_attributes = True


class BookingList(BaseModel):
    """Booking list response schema."""

    bookings: List[Booking] = Field(default_factory=list, description="Bookings, newest first")
