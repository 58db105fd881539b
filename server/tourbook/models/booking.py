"""Booking model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .availability import TourAvailability
    from .payment import Payment
    from .tour import Tour
    from .user import User


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(Base):
    """Booking entity representing a reservation against one tour offering."""

    __tablename__ = "bookings"

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
    availability_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("tour_availabilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Booking details
    travelers_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("travelers_count > 0", name="ck_booking_travelers_positive"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="bookings")
    tour: Mapped["Tour"] = relationship("Tour", back_populates="bookings")
    availability: Mapped["TourAvailability"] = relationship("TourAvailability", back_populates="bookings")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, availability_id={self.availability_id}, "
            f"travelers_count={self.travelers_count}, status={self.status})>"
        )
