"""FastAPI routers package."""

from .admin import router as admin_router
from .booking import router as booking_router
from .health import router as health_router
from .metrics import router as metrics_router
from .notification import router as notification_router
from .payment import router as payment_router
from .review import router as review_router

__all__ = [
    "admin_router",
    "booking_router",
    "health_router",
    "metrics_router",
    "notification_router",
    "payment_router",
    "review_router",
]
