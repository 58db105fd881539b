"""Payment router for checkout, verification, invoices and provider webhooks."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.dependencies import get_current_user, get_db, get_notification_service, get_payment_gateways
from ..core.exceptions import (
    MalformedWebhookError,
    ProblemDetailsException,
    WebhookSignatureError,
)
from ..core.observability import metrics_collector
from ..payments import PaymentGatewayRegistry
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.payment import (
    InitializePaymentRequest,
    Invoice,
    InvoiceRequest,
    Payment,
    VerifyPaymentRequest,
    WebhookAck,
)
from ..services.notification_service import NotificationService
from ..services.payment_service import PaymentService
from ..services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"], responses=PROBLEM_RESPONSES)

AUTH_DEPENDENCY = Depends(get_current_user)
DB_DEPENDENCY = Depends(get_db)
GATEWAYS_DEPENDENCY = Depends(get_payment_gateways)
NOTIFICATIONS_DEPENDENCY = Depends(get_notification_service)


def _convert_payment_to_schema(payment_model) -> Payment:
    """Convert payment model to schema."""
    return Payment.model_validate(payment_model)


@router.post("/initialize", response_model=Payment, status_code=201)
async def initialize_payment(
    request: InitializePaymentRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    gateways: PaymentGatewayRegistry = GATEWAYS_DEPENDENCY
) -> JSONResponse:
    """
    Open a checkout with the chosen provider for a PENDING booking.

    The response carries the URL the customer should be sent to.
    """
    payment_service = PaymentService(db, gateways)

    try:
        payment = await payment_service.initialize(
            principal,
            booking_id=request.booking_id,
            amount=request.amount,
            currency=request.currency,
            method=request.method,
            provider=request.provider
        )
        return JSONResponse(
            status_code=201,
            content=_convert_payment_to_schema(payment).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment initialization",
            extra={
                "booking_id": request.booking_id,
                "provider": request.provider.value,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/verify", response_model=Payment)
async def verify_payment(
    request: VerifyPaymentRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    gateways: PaymentGatewayRegistry = GATEWAYS_DEPENDENCY,
    notifications: NotificationService = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """Re-check a pending payment with its provider and apply the outcome."""
    reconciliation = ReconciliationService(db, gateways, notifications)

    try:
        payment = await reconciliation.verify(request.payment_id, principal)
        return JSONResponse(
            status_code=200,
            content=_convert_payment_to_schema(payment).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment verification",
            extra={"payment_id": request.payment_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/invoice", response_model=Invoice)
async def get_invoice(
    request: InvoiceRequest,
    principal: Principal = AUTH_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    gateways: PaymentGatewayRegistry = GATEWAYS_DEPENDENCY
) -> JSONResponse:
    """Invoice for a booking with a successful payment."""
    payment_service = PaymentService(db, gateways)

    try:
        invoice = await payment_service.generate_invoice(principal, request.booking_id)
        return JSONResponse(
            status_code=200,
            content=Invoice.model_validate(invoice).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in invoice generation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/webhook/{provider}", response_model=WebhookAck, include_in_schema=True)
async def payment_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = DB_DEPENDENCY,
    gateways: PaymentGatewayRegistry = GATEWAYS_DEPENDENCY,
    notifications: NotificationService = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Receive a payment provider webhook.

    The signature is checked against the raw body before anything is parsed.
    Non-2xx responses make providers retry delivery.
    """
    gateway = gateways.get(provider)
    provider_name = gateway.provider.value
    raw_body = await request.body()

    if not gateway.verify_signature(request.headers, raw_body):
        metrics_collector.record_webhook(provider_name, "rejected")
        logger.warning("Webhook signature rejected", extra={"provider": provider_name})
        raise WebhookSignatureError(provider_name)

    try:
        payload = json.loads(raw_body)
    except ValueError:
        metrics_collector.record_webhook(provider_name, "malformed")
        raise MalformedWebhookError(provider_name, "Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        metrics_collector.record_webhook(provider_name, "malformed")
        raise MalformedWebhookError(provider_name, "Webhook body must be a JSON object")

    reconciliation = ReconciliationService(db, gateways, notifications)

    try:
        decoded = gateway.decode_webhook(payload)
        payment = await reconciliation.process_webhook(decoded)

        metrics_collector.record_webhook(provider_name, "processed")
        logger.info(
            "Webhook processed",
            extra={
                "provider": provider_name,
                "payment_id": payment.id,
                "event": payload.get("event") or payload.get("type"),
                "status": decoded.status.value
            }
        )

        ack = WebhookAck(payment_id=payment.id, status=payment.status)
        return JSONResponse(status_code=200, content=ack.model_dump(mode="json"))

    except MalformedWebhookError:
        metrics_collector.record_webhook(provider_name, "malformed")
        raise

    except ProblemDetailsException:
        metrics_collector.record_webhook(provider_name, "error")
        raise

    except Exception as e:
        metrics_collector.record_webhook(provider_name, "error")
        logger.error(
            "Unexpected error in webhook processing",
            extra={"provider": provider_name, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
