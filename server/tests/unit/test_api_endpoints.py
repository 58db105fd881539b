"""API tests through the full application stack."""

import hashlib
import hmac
import json

import pytest

from conftest import FLUTTERWAVE_WEBHOOK_HASH, PAYSTACK_BASE, PAYSTACK_SECRET_KEY, auth_headers, reload
from tourbook.core.config import settings
from tourbook.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    TourAvailability,
    UserRole,
)

PROBLEM_JSON = "application/problem+json"


async def _setup(factory, slots=5, travelers=2):
    customer = await factory.user(email="ada@example.com")
    tour = await factory.tour()
    availability = await factory.availability(tour, slots=slots)
    booking = await factory.booking(customer, availability, travelers_count=travelers)
    return customer, tour, availability, booking


def _paystack_signature(body: bytes) -> str:
    return hmac.new(PAYSTACK_SECRET_KEY.encode(), body, hashlib.sha512).hexdigest()


@pytest.mark.asyncio
async def test_health_endpoints(test_client):
    response = await test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    ping = await test_client.post("/v1/health/ping")
    assert ping.status_code == 200
    assert ping.json()["version"] == "1.0.0"

    info = await test_client.get("/info")
    assert info.json()["features"]["payment_providers"] == ["STRIPE", "PAYSTACK", "FLUTTERWAVE"]


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    response = await test_client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = await test_client.get("/health")
    assert generated.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    await test_client.get("/health")

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert "payment_webhooks_received_total" in response.text


@pytest.mark.asyncio
async def test_booking_requires_token(test_client):
    response = await test_client.post("/v1/booking/list", json={})

    assert response.status_code == 401
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
    assert response.json()["code"] == "NOT_AUTHENTICATED"


@pytest.mark.asyncio
async def test_create_and_fetch_booking(test_client, factory):
    customer = await factory.user()
    tour = await factory.tour(price_per_person=120.0)
    availability = await factory.availability(tour, slots=5)
    headers = auth_headers(customer)

    created = await test_client.post(
        "/v1/booking/create",
        json={"tour_id": tour.id, "availability_id": availability.id, "travelers_count": 2},
        headers=headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "PENDING"
    assert body["total_price"] == pytest.approx(240.0)

    fetched = await test_client.post("/v1/booking/get", json={"booking_id": body["id"]}, headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]

    listed = await test_client.post("/v1/booking/list", json={}, headers=headers)
    assert [b["id"] for b in listed.json()["bookings"]] == [body["id"]]


@pytest.mark.asyncio
async def test_create_booking_schema_violations(test_client, factory):
    customer = await factory.user()

    response = await test_client.post(
        "/v1/booking/create",
        json={"tour_id": "x", "travelers_count": 0},
        headers=auth_headers(customer),
    )

    assert response.status_code == 422
    problem = response.json()
    assert problem["code"] == "VALIDATION_ERROR"
    paths = {violation["path"] for violation in problem["violations"]}
    assert {"body.availability_id", "body.travelers_count"} <= paths


@pytest.mark.asyncio
async def test_create_booking_over_capacity(test_client, factory):
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour, slots=1)

    response = await test_client.post(
        "/v1/booking/create",
        json={"tour_id": tour.id, "availability_id": availability.id, "travelers_count": 3},
        headers=auth_headers(customer),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "CAPACITY_EXHAUSTED"


@pytest.mark.asyncio
async def test_business_rule_problem_names_field(test_client, factory):
    customer = await factory.user()
    tour = await factory.tour(max_group_size=2)
    availability = await factory.availability(tour)

    response = await test_client.post(
        "/v1/booking/create",
        json={"tour_id": tour.id, "availability_id": availability.id, "travelers_count": 3},
        headers=auth_headers(customer),
    )

    assert response.status_code == 400
    problem = response.json()
    assert problem["code"] == "BUSINESS_RULE"
    assert problem["field"] == "travelers_count"


@pytest.mark.asyncio
async def test_customers_cannot_list_other_users(test_client, factory):
    customer = await factory.user()
    other = await factory.user()
    staff = await factory.user(role=UserRole.STAFF)

    denied = await test_client.post("/v1/booking/list", json={"user_id": other.id}, headers=auth_headers(customer))
    assert denied.status_code == 403
    assert denied.json()["code"] == "NOT_AUTHORIZED"

    allowed = await test_client.post("/v1/booking/list", json={"user_id": other.id}, headers=auth_headers(staff))
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_cancel_booking(test_client, test_session, factory, email_transport):
    customer, _, _, booking = await _setup(factory)

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking.id, "reason": "Change of plans"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert (await reload(test_session, Booking, booking)).cancellation_reason == "Change of plans"
    assert email_transport.sent == []


@pytest.mark.asyncio
async def test_admin_status_update(test_client, test_session, factory, email_transport):
    _, _, availability, booking = await _setup(factory)
    customer = await factory.user()
    admin = await factory.user(role=UserRole.ADMIN)
    payload = {"booking_id": booking.id, "status": "CONFIRMED"}

    forbidden = await test_client.post("/v1/admin/booking/update-status", json=payload, headers=auth_headers(customer))
    assert forbidden.status_code == 403

    response = await test_client.post("/v1/admin/booking/update-status", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 3
    assert [m.subject for m in email_transport.to("ada@example.com")] == [
        "Booking Confirmation - Northern Lights Adventure"
    ]


@pytest.mark.asyncio
async def test_payment_initialize_and_verify(test_client, test_session, factory, provider_stub):
    customer, _, _, booking = await _setup(factory)
    headers = auth_headers(customer)
    provider_stub.add(
        "POST", f"{PAYSTACK_BASE}/transaction/initialize",
        json={"status": True, "data": {"authorization_url": "https://paystack.test/pay/x", "reference": "ref_x"}},
    )
    provider_stub.add(
        "GET", f"{PAYSTACK_BASE}/transaction/verify/ref_x",
        json={"status": True, "data": {"status": "success"}},
    )

    initialized = await test_client.post(
        "/v1/payment/initialize",
        json={
            "booking_id": booking.id,
            "amount": 300.0,
            "currency": "NGN",
            "method": "CARD",
            "provider": "PAYSTACK",
        },
        headers=headers,
    )
    assert initialized.status_code == 201
    payment = initialized.json()
    assert payment["payment_url"] == "https://paystack.test/pay/x"

    verified = await test_client.post("/v1/payment/verify", json={"payment_id": payment["id"]}, headers=headers)
    assert verified.status_code == 200
    assert verified.json()["status"] == "SUCCESS"
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED

    invoice = await test_client.post("/v1/payment/invoice", json={"booking_id": booking.id}, headers=headers)
    assert invoice.status_code == 200
    assert invoice.json()["invoice_number"] == f"INV-{booking.id}"


@pytest.mark.asyncio
async def test_payment_provider_outage_is_retryable(test_client, factory, provider_stub):
    customer, _, _, booking = await _setup(factory)
    provider_stub.add("POST", f"{PAYSTACK_BASE}/transaction/initialize", status_code=503, json={})

    response = await test_client.post(
        "/v1/payment/initialize",
        json={"booking_id": booking.id, "amount": 300.0, "currency": "USD", "method": "CARD", "provider": "PAYSTACK"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 502
    assert response.json()["code"] == "PROVIDER_ERROR"
    assert response.json()["retryable"] is True


@pytest.mark.asyncio
async def test_paystack_webhook_confirms_booking(test_client, test_session, factory, email_transport):
    _, _, availability, booking = await _setup(factory)
    payment = await factory.payment(booking)
    body = json.dumps({
        "event": "charge.success",
        "data": {"reference": "ref_1", "metadata": {"paymentId": payment.id}},
    }).encode()

    response = await test_client.post(
        "/v1/payment/webhook/paystack",
        content=body,
        headers={"x-paystack-signature": _paystack_signature(body), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "payment_id": payment.id, "status": "SUCCESS"}
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.CONFIRMED
    assert (await reload(test_session, TourAvailability, availability)).available_slots == 3
    assert len(email_transport.to("ada@example.com")) == 2


@pytest.mark.asyncio
async def test_webhook_with_bad_signature(test_client, test_session, factory):
    _, _, _, booking = await _setup(factory)
    payment = await factory.payment(booking)
    body = json.dumps({"event": "charge.success", "data": {"metadata": {"paymentId": payment.id}}}).encode()

    response = await test_client.post(
        "/v1/payment/webhook/paystack",
        content=body,
        headers={"x-paystack-signature": _paystack_signature(b"something else")},
    )

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_SIGNATURE"
    assert (await reload(test_session, Booking, booking)).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_rejections(test_client):
    unknown = await test_client.post("/v1/payment/webhook/paypal", content=b"{}")
    assert unknown.status_code == 400
    assert unknown.json()["code"] == "UNSUPPORTED_PROVIDER"

    body = b"not json"
    malformed = await test_client.post(
        "/v1/payment/webhook/paystack",
        content=body,
        headers={"x-paystack-signature": _paystack_signature(body)},
    )
    assert malformed.status_code == 400
    assert malformed.json()["code"] == "MALFORMED_WEBHOOK"


@pytest.mark.asyncio
async def test_flutterwave_webhook(test_client, test_session, factory):
    _, _, _, booking = await _setup(factory)
    payment = await factory.payment(booking, provider=PaymentProvider.FLUTTERWAVE)
    body = {
        "event": "charge.completed",
        "data": {"status": "failed", "flw_ref": "FLW-9", "meta": {"paymentId": payment.id}},
    }

    response = await test_client.post(
        "/v1/payment/webhook/flutterwave", json=body, headers={"verif-hash": FLUTTERWAVE_WEBHOOK_HASH}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "FAILED"
    stored = await reload(test_session, Payment, payment)
    assert stored.status == PaymentStatus.FAILED
    assert stored.provider_transaction_id == "FLW-9"


@pytest.mark.asyncio
async def test_create_review(test_client, factory):
    customer, tour, _, _ = await _setup(factory)
    await factory.booking(customer, await factory.availability(tour), status=BookingStatus.CONFIRMED)

    response = await test_client.post(
        "/v1/review/create",
        json={"tour_id": tour.id, "rating": 5, "comment": "Unforgettable nights under the aurora"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 201
    assert response.json()["approved"] is False


@pytest.mark.asyncio
async def test_reminder_endpoint_requires_cron_secret(test_client):
    denied = await test_client.post("/v1/notification/reminders", headers={"Authorization": "Bearer wrong"})
    assert denied.status_code == 401

    response = await test_client.post(
        "/v1/notification/reminders", headers={"Authorization": f"Bearer {settings.cron_secret}"}
    )
    assert response.status_code == 200
    assert response.json() == {"candidates": 0, "sent": 0, "failed": 0}
