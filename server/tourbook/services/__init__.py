"""Service layer package."""

from .booking_service import BookingService
from .capacity_ledger import CapacityLedger
from .email_transport import EmailTransport, LoggingEmailTransport, SmtpEmailTransport, build_email_transport
from .notification_service import NotificationService
from .payment_service import PaymentService
from .reconciliation_service import ReconciliationService
from .review_service import ReviewService

__all__ = [
    "BookingService",
    "CapacityLedger",
    "EmailTransport",
    "LoggingEmailTransport",
    "SmtpEmailTransport",
    "build_email_transport",
    "NotificationService",
    "PaymentService",
    "ReconciliationService",
    "ReviewService",
]
