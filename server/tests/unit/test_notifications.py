"""Unit tests for notification rendering, preferences and reminders."""

from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import select

from tourbook.models import BookingStatus, NotificationRecord, NotificationType, UserRole
from tourbook.services.notification_service import DEFAULT_PREFERENCES, render_email

TODAY = date(2026, 10, 18)


def _starting_in(days: int) -> datetime:
    return datetime.combine(TODAY + timedelta(days=days), time(9, 0))


def test_render_booking_confirmation_without_payment():
    rendered = render_email("booking_confirmation", {
        "customer_name": "Ada",
        "booking_id": "cbkg1",
        "tour_title": "Northern Lights Adventure",
        "travelers_count": 2,
        "total_price": 300,
        "currency": "",
        "tour_start_date": datetime(2026, 11, 1, 9, 0),
        "payment": None,
    })

    assert rendered.subject == "Booking Confirmation - Northern Lights Adventure"
    assert "Total Amount:  300.00" in rendered.body_text
    assert "Sun Nov 01 2026" in rendered.body_text
    assert "Payment Receipt" not in rendered.body_text
    assert "<html>" in rendered.body_html


def test_render_reminder_subject_pluralizes():
    context = {
        "customer_name": "Ada",
        "booking_id": "cbkg1",
        "tour_title": "Glacier Hike",
        "tour_start_date": datetime(2026, 10, 19, 9, 0),
    }
    assert render_email("tour_reminder", {**context, "days_until_tour": 1}).subject == (
        "Tour Reminder - Glacier Hike in 1 day"
    )
    assert render_email("tour_reminder", {**context, "days_until_tour": 3}).subject == (
        "Tour Reminder - Glacier Hike in 3 days"
    )


def test_html_parts_escape_user_content():
    rendered = render_email("booking_cancellation", {
        "customer_name": "<script>alert(1)</script>",
        "booking_id": "cbkg1",
        "tour_title": "Glacier Hike",
        "tour_start_date": datetime(2026, 10, 19, 9, 0),
        "reason": None,
    })
    assert "<script>" not in rendered.body_html
    assert "&lt;script&gt;" in rendered.body_html


@pytest.mark.asyncio
async def test_preferences_default_when_unset(factory, notifications):
    user = await factory.user()
    assert await notifications.get_preferences(user.id) == DEFAULT_PREFERENCES

    await factory.preferences(user, payment_updates=False)
    stored = await notifications.get_preferences(user.id)
    assert stored["payment_updates"] is False
    assert stored["email_notifications"] is True


@pytest.mark.asyncio
async def test_master_switch_silences_customer_emails(factory, notifications, email_transport):
    customer = await factory.user()
    await factory.preferences(customer, email_notifications=False)
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability, status=BookingStatus.CONFIRMED)

    sent = await notifications.dispatch_safely(
        "booking_confirmation", notifications.send_booking_confirmation, booking.id
    )

    assert sent is False
    assert email_transport.sent == []


@pytest.mark.asyncio
async def test_confirmation_without_payment_is_recorded(test_session, factory, notifications, email_transport):
    customer = await factory.user(email="ada@example.com")
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability, status=BookingStatus.CONFIRMED)

    assert await notifications.dispatch_safely(
        "booking_confirmation", notifications.send_booking_confirmation, booking.id
    )

    [message] = email_transport.sent
    assert message.to == "ada@example.com"
    assert "Payment Receipt" not in message.body_text
    record = (await test_session.execute(select(NotificationRecord))).scalar_one()
    assert record.type == NotificationType.BOOKING_CONFIRMATION
    assert record.booking_id == booking.id
    assert record.payment_id is None


@pytest.mark.asyncio
async def test_failure_alert_without_admins(factory, notifications, email_transport):
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability)
    payment = await factory.payment(booking)

    assert await notifications.dispatch_safely(
        "payment_failure", notifications.send_payment_failure_alert, payment.id
    ) is False
    assert email_transport.sent == []


@pytest.mark.asyncio
async def test_failure_alert_ignores_admin_preferences(factory, notifications, email_transport):
    admin = await factory.user(role=UserRole.ADMIN, email="ops@example.com")
    await factory.preferences(admin, email_notifications=False)
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability)
    payment = await factory.payment(booking)

    assert await notifications.dispatch_safely(
        "payment_failure", notifications.send_payment_failure_alert, payment.id
    )
    assert [m.to for m in email_transport.sent] == ["ops@example.com"]


@pytest.mark.asyncio
async def test_failure_alert_keeps_records_of_delivered_emails(test_session, factory, notifications, email_transport):
    await factory.user(role=UserRole.ADMIN, email="ops@example.com")
    await factory.user(role=UserRole.ADMIN, email="finance@example.com")
    customer = await factory.user()
    tour = await factory.tour()
    availability = await factory.availability(tour)
    booking = await factory.booking(customer, availability)
    payment = await factory.payment(booking)
    email_transport.fail_after = 1

    assert await notifications.dispatch_safely(
        "payment_failure", notifications.send_payment_failure_alert, payment.id
    ) is False

    records = (await test_session.execute(
        select(NotificationRecord).where(NotificationRecord.type == NotificationType.PAYMENT_FAILURE)
    )).scalars().all()
    assert len(email_transport.sent) == 1
    assert [r.recipient_email for r in records] == [email_transport.sent[0].to]


@pytest.mark.asyncio
async def test_tour_reminder_sweep(test_session, factory, notifications, email_transport):
    tour = await factory.tour(title="Glacier Hike")
    in_week = await factory.availability(tour, start=_starting_in(7))
    in_three = await factory.availability(tour, start=_starting_in(3))
    tomorrow = await factory.availability(tour, start=_starting_in(1))
    in_five = await factory.availability(tour, start=_starting_in(5))

    week_customer = await factory.user(email="week@example.com")
    three_customer = await factory.user(email="three@example.com")
    opted_out = await factory.user(email="quiet@example.com")
    await factory.preferences(opted_out, tour_reminders=False)
    five_customer = await factory.user(email="five@example.com")
    pending_customer = await factory.user(email="pending@example.com")

    await factory.booking(week_customer, in_week, status=BookingStatus.CONFIRMED)
    await factory.booking(three_customer, in_three, status=BookingStatus.CONFIRMED)
    await factory.booking(opted_out, tomorrow, status=BookingStatus.CONFIRMED)
    await factory.booking(five_customer, in_five, status=BookingStatus.CONFIRMED)
    await factory.booking(pending_customer, tomorrow, status=BookingStatus.PENDING)

    outcome = await notifications.send_tour_reminders(today=TODAY)

    assert (outcome.candidates, outcome.sent, outcome.failed) == (3, 2, 0)
    assert sorted(m.to for m in email_transport.sent) == ["three@example.com", "week@example.com"]
    [week_email] = email_transport.to("week@example.com")
    assert week_email.subject == "Tour Reminder - Glacier Hike in 7 days"

    records = (await test_session.execute(
        select(NotificationRecord).where(NotificationRecord.type == NotificationType.TOUR_REMINDER)
    )).scalars().all()
    assert sorted(r.recipient_email for r in records) == ["three@example.com", "week@example.com"]


@pytest.mark.asyncio
async def test_tour_reminder_sweep_counts_failures(factory, notifications, email_transport):
    tour = await factory.tour()
    tomorrow = await factory.availability(tour, start=_starting_in(1))
    for _ in range(2):
        customer = await factory.user()
        await factory.booking(customer, tomorrow, status=BookingStatus.CONFIRMED)
    email_transport.fail = True

    outcome = await notifications.send_tour_reminders(today=TODAY)

    assert (outcome.candidates, outcome.sent, outcome.failed) == (2, 0, 2)
