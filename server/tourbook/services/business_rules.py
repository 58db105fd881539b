"""
Business rule validation.

Stateless checks shared by the booking, payment, review and admin flows.
Every function returns ``None`` when the rule holds and raises
``BusinessRuleError`` carrying the offending field and a human-readable
reason otherwise.
"""

import re
from datetime import date, datetime
from numbers import Real
from typing import Any, Optional, Union

from ..core.exceptions import BusinessRuleError
from ..models.tour import TourStatus
from ..models.user import UserRole

ROLE_RANK = {
    UserRole.CUSTOMER: 0,
    UserRole.STAFF: 1,
    UserRole.ADMIN: 2,
}

MIN_PRICE_PER_PERSON = 1
MAX_PRICE_PER_PERSON = 100_000
MIN_GROUP_SIZE = 1
MAX_GROUP_SIZE = 100
MAX_TOUR_REVENUE = 1_000_000
MAX_PAYMENT_AMOUNT = 1_000_000

SUPPORTED_CURRENCIES = frozenset({"USD", "EUR", "GBP", "NGN", "GHS", "KES"})

PROVIDER_METHODS = {
    "STRIPE": frozenset({"CARD"}),
    "PAYSTACK": frozenset({"CARD", "MOBILE_MONEY", "BANK"}),
    "FLUTTERWAVE": frozenset({"CARD", "MOBILE_MONEY", "BANK"}),
}

CONTENT_TYPES = frozenset({"BLOG", "FAQ", "PAGE"})

ENTITY_ID_PATTERN = re.compile(r"^c[a-z0-9]{24}$")

MIN_REVIEW_COMMENT = 10
MAX_REVIEW_COMMENT = 1000


def _name(value: Any) -> str:
    """Enum members and plain strings compare by their string value."""
    return getattr(value, "value", value)


def _role_of(user: Any) -> Optional[UserRole]:
    try:
        return UserRole(_name(user.role))
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_user_role(user: Any, required_role: Union[UserRole, str]) -> None:
    """Require ``user.role`` to rank at least ``required_role`` (CUSTOMER < STAFF < ADMIN)."""
    role = _role_of(user)
    required = UserRole(_name(required_role))
    if role is None or ROLE_RANK[role] < ROLE_RANK[required]:
        raise BusinessRuleError(
            f"Insufficient permissions. Required role: {required.value}",
            field="role",
        )


def validate_admin_access(user: Any) -> None:
    if _role_of(user) != UserRole.ADMIN:
        raise BusinessRuleError("Only administrators can perform this action", field="role")


def validate_pricing(price_per_person: float, max_group_size: int) -> None:
    """Price per person within [1, 100000], group size an integer within [1, 100], revenue capped."""
    if not _is_number(price_per_person):
        raise BusinessRuleError("Price per person must be a number", field="price_per_person")
    if price_per_person < MIN_PRICE_PER_PERSON:
        raise BusinessRuleError("Price per person must be at least $1", field="price_per_person")
    if price_per_person > MAX_PRICE_PER_PERSON:
        raise BusinessRuleError("Price per person cannot exceed $100,000", field="price_per_person")

    if not _is_number(max_group_size) or int(max_group_size) != max_group_size:
        raise BusinessRuleError("Maximum group size must be a whole number", field="max_group_size")
    if max_group_size < MIN_GROUP_SIZE:
        raise BusinessRuleError("Maximum group size must be at least 1", field="max_group_size")
    if max_group_size > MAX_GROUP_SIZE:
        raise BusinessRuleError("Maximum group size cannot exceed 100", field="max_group_size")

    if price_per_person * max_group_size > MAX_TOUR_REVENUE:
        raise BusinessRuleError(
            "Total maximum revenue per tour cannot exceed $1,000,000",
            field="price_per_person",
        )


def validate_payment(amount: Any, currency: str, method: Any, provider: Any) -> None:
    """
    Check a payment request before any provider is contacted.

    Currency is compared case-insensitively; provider and method must be a
    supported combination (Stripe takes cards only).
    """
    if not _is_number(amount) or amount <= 0:
        raise BusinessRuleError("Payment amount must be a positive number", field="amount")
    if amount > MAX_PAYMENT_AMOUNT:
        raise BusinessRuleError("Payment amount cannot exceed $1,000,000", field="amount")

    if not isinstance(currency, str) or currency.upper() not in SUPPORTED_CURRENCIES:
        raise BusinessRuleError(f"Unsupported currency: {currency}", field="currency")

    provider_name = _name(provider)
    method_name = _name(method)
    allowed_methods = PROVIDER_METHODS.get(provider_name)
    if allowed_methods is None:
        raise BusinessRuleError(f"Unsupported payment provider: {provider_name}", field="provider")
    if method_name not in allowed_methods:
        raise BusinessRuleError(
            f"Payment method {method_name} not supported by provider {provider_name}",
            field="method",
        )


def validate_content_management(user: Any, content_type: str) -> None:
    if _role_of(user) not in (UserRole.STAFF, UserRole.ADMIN):
        raise BusinessRuleError("Insufficient permissions to manage content", field="role")
    if not isinstance(content_type, str) or content_type.upper() not in CONTENT_TYPES:
        raise BusinessRuleError(f"Unsupported content type: {content_type}", field="content_type")


def validate_referential_integrity(
    entity_name: str,
    entity_id: Optional[str],
    related_entity_name: str,
    related_entity_id: Optional[str],
) -> None:
    """
    Shape check for a pair of entity ids.

    Both must be non-blank and match the ``c`` + 24 lowercase alphanumerics
    format. Existence is not checked here.
    """
    if not entity_id or not entity_id.strip():
        raise BusinessRuleError(f"{entity_name} ID is required", field=f"{entity_name.lower()}_id")
    if not related_entity_id or not related_entity_id.strip():
        raise BusinessRuleError(
            f"{related_entity_name} ID is required for {entity_name}",
            field=f"{related_entity_name.lower()}_id",
        )
    if not ENTITY_ID_PATTERN.match(entity_id):
        raise BusinessRuleError(f"Invalid {entity_name} ID format", field=f"{entity_name.lower()}_id")
    if not ENTITY_ID_PATTERN.match(related_entity_id):
        raise BusinessRuleError(
            f"Invalid {related_entity_name} ID format",
            field=f"{related_entity_name.lower()}_id",
        )


def validate_availability(tour: Any, availability: Any, requested_slots: int, today: date) -> None:
    """The tour is bookable on this offering for ``requested_slots`` travelers as of ``today``."""
    if _name(tour.status) != TourStatus.ACTIVE.value:
        raise BusinessRuleError("Cannot book inactive tours", field="tour_id")

    if availability.available_slots < requested_slots:
        raise BusinessRuleError(
            f"Insufficient availability. Requested: {requested_slots}, "
            f"Available: {availability.available_slots}",
            field="travelers_count",
        )

    if requested_slots > tour.max_group_size:
        raise BusinessRuleError(
            f"Requested slots ({requested_slots}) exceed tour's maximum group size ({tour.max_group_size})",
            field="travelers_count",
        )

    start = availability.start_date
    start_day = start.date() if isinstance(start, datetime) else start
    if start_day < today:
        raise BusinessRuleError("Cannot book tours that have already started", field="availability_id")


def validate_review(rating: Any, comment: Optional[str], has_confirmed_booking: bool) -> None:
    """Only customers with a confirmed booking may review; rating 1..5, comment 10..1000 chars."""
    if not has_confirmed_booking:
        raise BusinessRuleError("Only customers with completed bookings can leave reviews", field="tour_id")

    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise BusinessRuleError("Rating must be an integer between 1 and 5", field="rating")

    if not comment or not comment.strip():
        raise BusinessRuleError("Review comment is required", field="comment")
    if len(comment.strip()) < MIN_REVIEW_COMMENT:
        raise BusinessRuleError("Review comment must be at least 10 characters long", field="comment")
    if len(comment.strip()) > MAX_REVIEW_COMMENT:
        raise BusinessRuleError("Review comment cannot exceed 1000 characters", field="comment")
