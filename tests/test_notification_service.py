"""
Tests for notification delivery and message templates.
"""

import asyncio
import json
from datetime import date

import httpx

from festbook import config, notification_templates
from festbook.models import BOOKING_EVENT_KINDS, Booking, CancelledBy, NotificationKind
from festbook.services.notification_service import (
    LoggingDelivery,
    NotificationMessage,
    WebhookDelivery,
    get_delivery,
)

MESSAGE = NotificationMessage(
    kind="payment_reminder_1h", title="Prepayment due soon", body="Pay now", url="https://x/pay"
)


def _delivery(handler, token=None):
    return WebhookDelivery(
        "https://gateway.test/notify", token=token, transport=httpx.MockTransport(handler)
    )


def test_webhook_posts_json_payload():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(202)

    ok, error = asyncio.run(_delivery(handler, token="secret").deliver("user-1", MESSAGE))

    assert ok and error is None
    assert captured["body"]["userId"] == "user-1"
    assert captured["body"]["kind"] == "payment_reminder_1h"
    assert captured["body"]["url"] == "https://x/pay"
    assert captured["auth"] == "Bearer secret"


def test_webhook_reports_gateway_error():
    ok, error = asyncio.run(
        _delivery(lambda request: httpx.Response(500, text="boom")).deliver("user-1", MESSAGE)
    )

    assert not ok
    assert "500" in error


def test_webhook_reports_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    ok, error = asyncio.run(_delivery(handler).deliver("user-1", MESSAGE))

    assert not ok
    assert "connection refused" in error


def test_logging_delivery_always_succeeds():
    assert asyncio.run(LoggingDelivery().deliver("user-1", MESSAGE)) == (True, None)


def test_get_delivery_follows_config(monkeypatch):
    monkeypatch.setattr(config, "DELIVERY_WEBHOOK_URL", None)
    assert isinstance(get_delivery(), LoggingDelivery)

    monkeypatch.setattr(config, "DELIVERY_WEBHOOK_URL", "https://gateway.test/notify")
    assert isinstance(get_delivery(), WebhookDelivery)


def _booking():
    return Booking(
        id="booking-1",
        customer_id="customer-1",
        performer_id="performer-1",
        booking_date=date(2026, 12, 31),
        booking_time="21:00",
        price_total=5000,
        prepayment_amount=1000,
    )


def test_payment_reminder_mentions_amount_and_time_left():
    message = notification_templates.payment_reminder(_booking(), NotificationKind.PAYMENT_REMINDER_10M)

    assert message.kind == "payment_reminder_10m"
    assert "10 minutes" in message.body
    assert "1000" in message.body
    assert message.url.endswith("?pay=booking-1")


def test_visit_reminder_differs_per_party():
    booking = _booking()
    customer = notification_templates.visit_reminder(booking, NotificationKind.VISIT_REMINDER_1D, False)
    performer = notification_templates.visit_reminder(booking, NotificationKind.VISIT_REMINDER_1D, True)

    assert customer.body != performer.body
    assert "/customer/" in customer.url
    assert "/performer/" in performer.url
    assert "21:00" in customer.body


def test_auto_cancel_notice():
    message = notification_templates.booking_auto_cancelled(_booking(), for_performer=True)
    assert message.kind == "booking_auto_cancelled"
    assert "slot is free again" in message.body


def test_booking_event_copy_per_kind():
    booking = _booking()
    booking.cancelled_by = CancelledBy.CUSTOMER

    cancelled = notification_templates.booking_event(booking, NotificationKind.BOOKING_CANCELLED, True)
    requested = notification_templates.booking_event(booking, NotificationKind.BOOKING_REQUESTED, True)
    confirmed = notification_templates.booking_event(booking, NotificationKind.BOOKING_CONFIRMED, False)

    assert cancelled.kind == "booking_cancelled"
    assert "cancelled by the customer" in cancelled.body
    assert "/performer/" in requested.url
    assert "1000" in confirmed.body
    assert "21:00" in confirmed.body


def test_every_booking_event_has_copy():
    assert set(notification_templates.BOOKING_EVENT_COPY) == BOOKING_EVENT_KINDS
