"""Destination and Tour model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .availability import TourAvailability
    from .booking import Booking
    from .review import Review


class TourStatus(str, Enum):
    """Tour status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Destination(Base):
    """Destination grouping tours; deleting one removes its tours."""

    __tablename__ = "destinations"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    country: Mapped[str] = mapped_column(String(120), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    tours: Mapped[list["Tour"]] = relationship(
        "Tour",
        back_populates="destination",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Destination(id={self.id}, name='{self.name}', country='{self.country}')>"


class Tour(Base):
    """Tour entity representing a tour offering."""

    __tablename__ = "tours"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    destination_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("destinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_per_person: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TourStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TourStatus.ACTIVE,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("price_per_person > 0", name="ck_tour_price_positive"),
        CheckConstraint("price_per_person <= 100000", name="ck_tour_price_max"),
        CheckConstraint("max_group_size BETWEEN 1 AND 100", name="ck_tour_group_size_range"),
    )

    # Relationships
    destination: Mapped["Destination"] = relationship("Destination", back_populates="tours")
    availabilities: Mapped[list["TourAvailability"]] = relationship(
        "TourAvailability",
        back_populates="tour",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="tour",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="tour",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', status={self.status})>"
