"""User and notification preference model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .booking import Booking
    from .review import Review


class UserRole(str, Enum):
    """User role enumeration, ordered from least to most privileged."""
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class User(Base):
    """User entity. Accounts are provisioned by the identity layer."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    # Relationships
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="user")
    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="user")
    notification_preference: Mapped["NotificationPreference | None"] = relationship(
        "NotificationPreference",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"


class NotificationPreference(Base):
    """Per-user switches for outbound notifications."""

    __tablename__ = "notification_preferences"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    booking_confirmations: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tour_reminders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_updates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    marketing_emails: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped["User"] = relationship("User", back_populates="notification_preference")

    def __repr__(self) -> str:
        return f"<NotificationPreference(user_id={self.user_id})>"
