"""Unit tests for payment reconciliation."""

import pytest
from sqlalchemy import func, select

from conftest import PAYSTACK_BASE, reload
from tourbook.core.auth import Principal
from tourbook.core.exceptions import IntegrityViolationError, NotFoundError, ProviderMismatchError
from tourbook.models import (
    Booking,
    BookingStatus,
    NotificationRecord,
    NotificationType,
    Payment,
    PaymentProvider,
    PaymentStatus,
    TourAvailability,
    UserRole,
)
from tourbook.payments import DecodedWebhook
from tourbook.services.reconciliation_service import ReconciliationService


async def _paid_booking_setup(factory, slots=5, travelers=2, provider=PaymentProvider.PAYSTACK):
    customer = await factory.user(email="ada@example.com")
    admin = await factory.user(role=UserRole.ADMIN, name="Grace", email="ops@example.com")
    tour = await factory.tour()
    availability = await factory.availability(tour, slots=slots)
    booking = await factory.booking(customer, availability, travelers_count=travelers)
    payment = await factory.payment(booking, provider=provider)
    return customer, admin, availability, booking, payment


def _webhook(payment, status=PaymentStatus.SUCCESS, provider=PaymentProvider.PAYSTACK):
    return DecodedWebhook(
        payment_id=payment.id,
        status=status,
        provider_transaction_id="ref_from_webhook",
        provider=provider,
    )


async def _record_count(session, notification_type: NotificationType) -> int:
    result = await session.execute(
        select(func.count()).select_from(NotificationRecord).where(NotificationRecord.type == notification_type)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_success_webhook_confirms_booking(test_session, factory, gateways, notifications, email_transport):
    _, _, availability, booking, payment = await _paid_booking_setup(factory)
    service = ReconciliationService(test_session, gateways, notifications)

    updated = await service.process_webhook(_webhook(payment))

    assert updated.status == PaymentStatus.SUCCESS
    assert updated.provider_transaction_id == "ref_from_webhook"
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 3

    subjects = sorted(m.subject for m in email_transport.to("ada@example.com"))
    assert subjects == [
        "Booking Confirmation - Northern Lights Adventure",
        "Payment SUCCESS - Northern Lights Adventure",
    ]
    assert "Payment Receipt" in email_transport.to("ada@example.com")[-1].body_text


@pytest.mark.asyncio
async def test_duplicate_webhook_is_idempotent(test_session, factory, gateways, notifications, email_transport):
    _, _, availability, booking, payment = await _paid_booking_setup(factory)
    service = ReconciliationService(test_session, gateways, notifications)

    await service.process_webhook(_webhook(payment))
    await service.process_webhook(_webhook(payment))

    assert (await reload(test_session, TourAvailability, availability)).available_slots == 3
    assert await _record_count(test_session, NotificationType.PAYMENT_STATUS) == 1
    assert await _record_count(test_session, NotificationType.BOOKING_CONFIRMATION) == 1


@pytest.mark.asyncio
async def test_late_failure_event_does_not_undo_success(
    test_session, factory, gateways, notifications, email_transport
):
    _, _, _, booking, payment = await _paid_booking_setup(factory, provider=PaymentProvider.STRIPE)
    service = ReconciliationService(test_session, gateways, notifications)
    stripe = gateways.get("STRIPE")

    await service.process_webhook(stripe.decode_webhook({
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_paid", "payment_status": "paid", "metadata": {"paymentId": payment.id}}},
    }))
    # Intent events carry the same metadata and arrive out of order
    updated = await service.process_webhook(stripe.decode_webhook({
        "type": "payment_intent.created",
        "data": {"object": {"id": "pi_late", "status": "requires_payment_method", "metadata": {"paymentId": payment.id}}},
    }))

    assert updated.status == PaymentStatus.SUCCESS
    assert updated.provider_transaction_id == "cs_paid"
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED
    assert email_transport.to("ops@example.com") == []
    assert await _record_count(test_session, NotificationType.PAYMENT_FAILURE) == 0
    assert len(email_transport.sent) == 2


@pytest.mark.asyncio
async def test_provider_mismatch_leaves_payment_untouched(test_session, factory, gateways, notifications):
    _, _, _, booking, payment = await _paid_booking_setup(factory, provider=PaymentProvider.STRIPE)
    service = ReconciliationService(test_session, gateways, notifications)

    with pytest.raises(ProviderMismatchError):
        await service.process_webhook(_webhook(payment, provider=PaymentProvider.PAYSTACK))

    assert (await reload(test_session, Payment, payment)).status == PaymentStatus.PENDING
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_payment(test_session, gateways):
    service = ReconciliationService(test_session, gateways)
    missing = DecodedWebhook("c" + "0" * 24, PaymentStatus.SUCCESS, None, PaymentProvider.PAYSTACK)

    with pytest.raises(NotFoundError):
        await service.process_webhook(missing)


@pytest.mark.asyncio
async def test_failed_payment_alerts_admins(test_session, factory, gateways, notifications, email_transport):
    _, _, availability, booking, payment = await _paid_booking_setup(factory)
    service = ReconciliationService(test_session, gateways, notifications)

    updated = await service.process_webhook(_webhook(payment, status=PaymentStatus.FAILED))

    assert updated.status == PaymentStatus.FAILED
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.PENDING
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 5

    [alert] = email_transport.to("ops@example.com")
    assert alert.subject == "Payment Failure Alert - Northern Lights Adventure"
    assert "ada@example.com" in alert.body_text
    [status_email] = email_transport.to("ada@example.com")
    assert status_email.subject == "Payment FAILED - Northern Lights Adventure"


@pytest.mark.asyncio
async def test_email_outage_does_not_undo_reconciliation(
    test_session, factory, gateways, notifications, email_transport
):
    _, _, availability, booking, payment = await _paid_booking_setup(factory)
    email_transport.fail = True
    service = ReconciliationService(test_session, gateways, notifications)

    updated = await service.process_webhook(_webhook(payment))

    assert updated.status == PaymentStatus.SUCCESS
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 3
    assert await _record_count(test_session, NotificationType.PAYMENT_STATUS) == 0


@pytest.mark.asyncio
async def test_success_without_capacity_persists_nothing(test_session, factory, gateways, notifications):
    _, _, availability, booking, payment = await _paid_booking_setup(factory, slots=1, travelers=2)
    booking_id, payment_id = booking.id, payment.id
    service = ReconciliationService(test_session, gateways, notifications)

    with pytest.raises(IntegrityViolationError):
        await service.update_status(payment_id, PaymentStatus.SUCCESS)

    assert (await reload(test_session, Payment, payment_id)).status == PaymentStatus.PENDING
    assert (await reload(test_session, Booking, booking_id)).status == BookingStatus.PENDING
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 1


@pytest.mark.asyncio
async def test_success_for_cancelled_booking_does_not_confirm(test_session, factory, gateways):
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour, slots=5)
    booking = await factory.booking(customer, availability, status=BookingStatus.CANCELLED)
    payment = await factory.payment(booking)

    await ReconciliationService(test_session, gateways).update_status(payment.id, PaymentStatus.SUCCESS)

    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CANCELLED
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 5


@pytest.mark.asyncio
async def test_verify_applies_provider_status(test_session, factory, gateways, provider_stub):
    customer, _, _, booking, payment = await _paid_booking_setup(factory)
    provider_stub.add(
        "GET", f"{PAYSTACK_BASE}/transaction/verify/{payment.provider_transaction_id}",
        json={"status": True, "data": {"status": "success"}},
    )
    principal = Principal(id=customer.id, role=UserRole.CUSTOMER)

    verified = await ReconciliationService(test_session, gateways).verify(payment.id, principal)

    assert verified.status == PaymentStatus.SUCCESS
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_verify_survives_provider_outage(test_session, factory, gateways, provider_stub):
    _, _, _, _, payment = await _paid_booking_setup(factory)
    provider_stub.add(
        "GET", f"{PAYSTACK_BASE}/transaction/verify/{payment.provider_transaction_id}",
        status_code=500, json={"message": "boom"},
    )

    verified = await ReconciliationService(test_session, gateways).verify(payment.id)

    assert verified.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_verify_skips_settled_payments(test_session, factory, gateways, provider_stub):
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability, status=BookingStatus.CONFIRMED)
    payment = await factory.payment(booking, status=PaymentStatus.SUCCESS)

    verified = await ReconciliationService(test_session, gateways).verify(payment.id)

    assert verified.status == PaymentStatus.SUCCESS
    assert provider_stub.requests == []
