"""Notification audit record model definition."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, generate_id


class NotificationType(str, Enum):
    """Kinds of outbound notifications."""
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_CANCELLATION = "BOOKING_CANCELLATION"
    PAYMENT_STATUS = "PAYMENT_STATUS"
    PAYMENT_FAILURE = "PAYMENT_FAILURE"
    TOUR_REMINDER = "TOUR_REMINDER"


class NotificationRecord(Base):
    """Audit trail entry for an email that was handed to the transport."""

    __tablename__ = "notification_records"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    type: Mapped[NotificationType] = mapped_column(String(40), nullable=False, index=True)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    # Loose references; records outlive the rows they mention
    booking_id: Mapped[str] = mapped_column(String(25), nullable=False, index=True)
    payment_id: Mapped[str | None] = mapped_column(String(25), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<NotificationRecord(type={self.type}, recipient='{self.recipient_email}', booking_id={self.booking_id})>"
