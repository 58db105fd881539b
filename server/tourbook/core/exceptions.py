"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .database import utcnow


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt

    Every subclass carries an application ``code`` and a ``retryable`` flag
    so clients can tell capacity, payment and permission failures apart.
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        code: Optional[str] = None,
        retryable: bool = False,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            code: Application-specific error code
            retryable: Whether repeating the request may succeed
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.message = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.code = code
        self.retryable = retryable
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.message:
            self.problem_details["detail"] = self.message

        if self.instance:
            self.problem_details["instance"] = self.instance

        if self.code:
            self.problem_details["code"] = self.code
            self.problem_details["retryable"] = self.retryable

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    def __str__(self) -> str:
        return f"{self.title}: {self.message}" if self.message else self.title


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        field: Optional[str] = None,
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
        code: str = "VALIDATION_ERROR",
        title: str = "Validation Error",
    ):
        extensions: Dict[str, Any] = {}
        if field:
            extensions["field"] = field
        if errors:
            extensions["errors"] = errors

        self.field = field

        super().__init__(
            status_code=400,
            title=title,
            detail=detail,
            type_uri="https://tourbook.dev/problems/validation-error",
            instance=instance,
            code=code,
            extensions=extensions,
        )


class BusinessRuleError(ValidationError):
    """A business rule was violated; ``field`` names the offending input."""

    def __init__(self, reason: str, field: Optional[str] = None):
        self.reason = reason
        super().__init__(
            detail=reason,
            field=field,
            code="BUSINESS_RULE",
            title="Business Rule Violation",
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://tourbook.dev/problems/authentication-required",
            instance=instance,
            code="NOT_AUTHENTICATED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDeniedError(ProblemDetailsException):
    """Exception for role or ownership check failures."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_role: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if required_role:
            extensions["required_role"] = required_role

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri="https://tourbook.dev/problems/access-forbidden",
            instance=instance,
            code="NOT_AUTHORIZED",
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        self.resource_type = resource_type
        self.resource_id = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://tourbook.dev/problems/resource-not-found",
            instance=instance,
            code="NOT_FOUND",
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
        code: str = "CONFLICT",
        title: str = "Resource Conflict",
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri="https://tourbook.dev/problems/resource-conflict",
            instance=instance,
            code=code,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
        code: str = "INTERNAL_ERROR",
        title: str = "Internal Server Error",
        extensions: Optional[Dict[str, Any]] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        merged = {
            "error_id": error_id,
            "timestamp": utcnow().isoformat() + "Z",
        }
        merged.update(extensions or {})

        super().__init__(
            status_code=500,
            title=title,
            detail=detail,
            type_uri="https://tourbook.dev/problems/internal-server-error",
            instance=instance,
            code=code,
            extensions=merged,
        )


# Business logic exceptions

class InsufficientCapacityError(ConflictError):
    """Requested travelers exceed the offering's remaining slots."""

    def __init__(self, availability_id: str, requested_slots: int, available_slots: int):
        self.availability_id = availability_id
        self.requested_slots = requested_slots
        self.available_slots = available_slots
        super().__init__(
            detail=(
                f"Not enough available slots for this booking. "
                f"Requested: {requested_slots}, Available: {available_slots}"
            ),
            conflicting_resource={
                "availability_id": availability_id,
                "requested_slots": requested_slots,
                "available_slots": available_slots,
            },
            code="CAPACITY_EXHAUSTED",
            title="Capacity Exhausted",
        )


class IntegrityViolationError(InternalServerError):
    """An invariant of the store was about to be broken, e.g. slots going negative."""

    def __init__(self, detail: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(
            detail=detail,
            code="INTEGRITY_VIOLATION",
            title="Integrity Violation",
            extensions={"context": self.context} if self.context else None,
        )


class InvalidBookingTransitionError(ConflictError):
    """The booking state machine does not allow the requested transition."""

    def __init__(self, booking_id: str, current_status: str, target_status: str):
        current_status = getattr(current_status, "value", current_status)
        target_status = getattr(target_status, "value", target_status)
        self.booking_id = booking_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            detail=f"Booking {booking_id} cannot move from {current_status} to {target_status}",
            conflicting_resource={
                "booking_id": booking_id,
                "current_status": current_status,
                "target_status": target_status,
            },
            code="INVALID_TRANSITION",
            title="Invalid Booking Transition",
        )


class UnsupportedProviderError(ProblemDetailsException):
    """No payment gateway is registered for the provider."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            status_code=400,
            title="Unsupported Payment Provider",
            detail=f"Unsupported payment provider: {provider}",
            type_uri="https://tourbook.dev/problems/unsupported-provider",
            code="UNSUPPORTED_PROVIDER",
            extensions={"provider": provider},
        )


class ProviderMismatchError(ConflictError):
    """A webhook claims a different provider than the stored payment."""

    def __init__(self, payment_id: str, expected: str, received: str):
        super().__init__(
            detail=f"Provider mismatch in webhook for payment {payment_id}",
            conflicting_resource={
                "payment_id": payment_id,
                "expected_provider": expected,
                "received_provider": received,
            },
            code="PROVIDER_MISMATCH",
            title="Provider Mismatch",
        )


class MalformedWebhookError(ProblemDetailsException):
    """A webhook payload could not be correlated to a payment."""

    def __init__(self, provider: str, detail: str = "Invalid webhook data"):
        super().__init__(
            status_code=400,
            title="Malformed Webhook",
            detail=detail,
            type_uri="https://tourbook.dev/problems/malformed-webhook",
            code="MALFORMED_WEBHOOK",
            extensions={"provider": provider},
        )


class WebhookSignatureError(ProblemDetailsException):
    """A webhook signature did not match the configured secret."""

    def __init__(self, provider: str):
        super().__init__(
            status_code=401,
            title="Invalid Webhook Signature",
            detail=f"Webhook signature verification failed for {provider}",
            type_uri="https://tourbook.dev/problems/invalid-signature",
            code="INVALID_SIGNATURE",
            extensions={"provider": provider},
        )


class PaymentProviderError(ProblemDetailsException):
    """An outbound call to a payment provider failed."""

    def __init__(self, provider: str, detail: str, upstream_status: Optional[int] = None):
        self.provider = provider
        self.upstream_status = upstream_status
        extensions: Dict[str, Any] = {"provider": provider}
        if upstream_status is not None:
            extensions["upstream_status"] = upstream_status

        super().__init__(
            status_code=502,
            title="Payment Provider Error",
            detail=detail,
            type_uri="https://tourbook.dev/problems/payment-provider-error",
            code="PROVIDER_ERROR",
            retryable=True,
            extensions=extensions,
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", str(request.url.path))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": "https://tourbook.dev/problems/validation-error",
            "title": "Unprocessable Entity",
            "status": 422,
            "detail": "The request body failed schema validation",
            "instance": str(request.url.path),
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    problem_details = {
        "type": "https://tourbook.dev/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "code": "INTERNAL_ERROR",
        "retryable": False,
        "error_id": error_id,
        "timestamp": utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
