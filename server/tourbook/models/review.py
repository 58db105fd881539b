"""Review model definition."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .tour import Tour
    from .user import User


class Review(Base):
    """Customer review of a tour; one per user and tour."""

    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tour_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "tour_id", name="uq_review_user_tour"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    user: Mapped["User"] = relationship("User", back_populates="reviews")
    tour: Mapped["Tour"] = relationship("Tour", back_populates="reviews")

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, tour_id={self.tour_id}, rating={self.rating}, approved={self.approved})>"
