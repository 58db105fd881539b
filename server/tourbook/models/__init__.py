"""Models module exporting all database models."""

from .availability import TourAvailability
from .booking import Booking, BookingStatus
from .notification import NotificationRecord, NotificationType
from .payment import Payment, PaymentMethod, PaymentProvider, PaymentStatus
from .review import Review
from .tour import Destination, Tour, TourStatus
from .user import NotificationPreference, User, UserRole

__all__ = [
    # Catalogue
    "Destination",
    "Tour",
    "TourStatus",
    "TourAvailability",

    # Accounts
    "User",
    "UserRole",
    "NotificationPreference",

    # Booking and payment
    "Booking",
    "BookingStatus",
    "Payment",
    "PaymentMethod",
    "PaymentProvider",
    "PaymentStatus",

    # Reviews
    "Review",

    # Notification audit trail
    "NotificationRecord",
    "NotificationType",
]
