"""Payment-related Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.payment import PaymentMethod, PaymentProvider, PaymentStatus


class InitializePaymentRequest(BaseModel):
    """Request schema for opening a provider checkout."""

    booking_id: str = Field(..., description="Booking being paid for")
    amount: float = Field(..., description="Amount in major units; must equal the booking total")
    currency: str = Field(..., min_length=3, max_length=3, description="ISO 4217 currency code")
    method: PaymentMethod = Field(..., description="Payment method")
    provider: PaymentProvider = Field(..., description="Payment provider")


class VerifyPaymentRequest(BaseModel):
    """Request schema for re-checking a payment with its provider."""

    payment_id: str = Field(..., description="Payment to verify")


class InvoiceRequest(BaseModel):
    """Request schema for an invoice."""

    booking_id: str = Field(..., description="Paid booking")


class Payment(BaseModel):
    """Payment response schema."""

    id: str = Field(..., description="Unique payment ID")
    booking_id: str = Field(..., description="Booking being paid for")
    amount: float = Field(..., gt=0, description="Amount in major units")
    currency: str = Field(..., description="ISO 4217 currency code")
    method: PaymentMethod = Field(..., description="Payment method")
    provider: PaymentProvider = Field(..., description="Payment provider")
    status: PaymentStatus = Field(..., description="Payment status")
    provider_transaction_id: Optional[str] = Field(None, description="Provider's reference")
    payment_url: Optional[str] = Field(None, description="Checkout URL to redirect the customer to")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last change (ISO 8601)")

    class Config:
        from_attributes = True


class Invoice(BaseModel):
    """Invoice response schema."""

    invoice_number: str = Field(..., description="INV- followed by the booking ID")
    booking_id: str
    customer_name: Optional[str] = None
    customer_email: str
    tour_title: str
    destination: str
    tour_date: datetime
    travelers_count: int
    total_amount: float
    currency: str
    payment_method: PaymentMethod
    payment_date: datetime
    status: str

    class Config:
        from_attributes = True


class WebhookAck(BaseModel):
    """Acknowledgement returned to payment providers."""

    received: bool = True
    payment_id: str
    status: PaymentStatus
