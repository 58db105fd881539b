"""Payment model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, generate_id

if TYPE_CHECKING:
    from .booking import Booking


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CARD = "CARD"
    MOBILE_MONEY = "MOBILE_MONEY"
    BANK = "BANK"


class PaymentProvider(str, Enum):
    """Payment provider enumeration."""
    STRIPE = "STRIPE"
    PAYSTACK = "PAYSTACK"
    FLUTTERWAVE = "FLUTTERWAVE"


class Payment(Base):
    """A single payment attempt for a booking."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(25), primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(
        String(25),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    provider: Mapped[PaymentProvider] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )
    provider_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    payment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint("length(currency) = 3", name="ck_payment_currency_length"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, provider={self.provider}, "
            f"amount={self.amount} {self.currency}, status={self.status})>"
        )
