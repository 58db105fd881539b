"""TourAvailability model definition."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .booking import Booking
    from .tour import Tour


class TourAvailability(Base):
    """A dated offering of a tour with a finite number of bookable slots."""

    __tablename__ = "tour_availabilities"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    tour_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Remaining capacity; the only place slot counts live
    available_slots: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_availability_slots_non_negative"),
        CheckConstraint("end_date >= start_date", name="ck_availability_dates_ordered"),
    )

    # Relationships
    tour: Mapped["Tour"] = relationship("Tour", back_populates="availabilities")
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="availability",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<TourAvailability(id={self.id}, tour_id={self.tour_id}, "
            f"start_date={self.start_date}, available_slots={self.available_slots})>"
        )
