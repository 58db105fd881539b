"""Review-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class CreateReviewRequest(BaseModel):
    """Request schema for reviewing a tour. Range checks happen in the review rules."""

    tour_id: str = Field(..., description="Reviewed tour")
    rating: int = Field(..., description="Rating from 1 to 5")
    comment: str = Field(..., description="Between 10 and 1000 characters")


class Review(BaseModel):
    """Review response schema."""

    id: str
    user_id: str
    tour_id: str
    rating: int
    comment: str
    approved: bool = Field(..., description="Reviews are hidden until approved")
    created_at: datetime

    class Config:
        from_attributes = True
