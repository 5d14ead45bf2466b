"""
HTTP surface tests: status code mapping, payment callback secret, queue trigger.
"""

from datetime import timedelta

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from festbook import config
from festbook.database import get_db
from festbook.domain.bookings.router import get_booking_service
from festbook.domain.bookings.service import BookingService
from festbook.domain.notifications.processor import NotificationQueueProcessor
from festbook.domain.notifications.router import get_queue_processor
from festbook.main import app
from tests.conftest import CUSTOMER_ID, PERFORMER_ID


@pytest.fixture
def client(session_factory, clock, delivery):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_booking_service(db: Session = Depends(get_db)):
        return BookingService(db, clock=clock)

    def override_processor(db: Session = Depends(get_db)):
        return NotificationQueueProcessor(db, delivery, clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_booking_service] = override_booking_service
    app.dependency_overrides[get_queue_processor] = override_processor
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_slot(client, start_time="18:00", price=5000):
    response = client.post(
        "/slots",
        json={"performerId": PERFORMER_ID, "date": "2026-12-20", "startTime": start_time, "price": price},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _create_booking(client, slot_id):
    return client.post("/bookings", json={"customerId": CUSTOMER_ID, "slotId": slot_id})


def test_create_slot_defaults_to_one_hour(client):
    slot = _create_slot(client)

    assert slot["endTime"] == "19:00"
    assert slot["status"] == "free"


def test_duplicate_slot_conflicts(client):
    _create_slot(client)
    response = client.post(
        "/slots", json={"performerId": PERFORMER_ID, "date": "2026-12-20", "startTime": "18:00"}
    )
    assert response.status_code == 409


def test_list_slots_by_performer(client):
    _create_slot(client, "18:00")
    _create_slot(client, "19:00")

    response = client.get("/slots", params={"performerId": PERFORMER_ID, "status": "free"})

    assert response.status_code == 200
    assert [s["startTime"] for s in response.json()] == ["18:00", "19:00"]


def test_booking_taken_slot_returns_409(client):
    slot = _create_slot(client)
    first = _create_booking(client, slot["id"])
    assert first.status_code == 201
    assert first.json()["prepaymentAmount"] == 1000

    second = _create_booking(client, slot["id"])

    assert second.status_code == 409
    assert second.json()["detail"]["message"] == "This time slot was just taken"


def test_unknown_booking_returns_404(client):
    assert client.get("/bookings/missing").status_code == 404
    assert client.post("/bookings/missing/confirm").status_code == 404


def test_invalid_transition_returns_400(client):
    slot = _create_slot(client)
    booking = _create_booking(client, slot["id"]).json()

    assert client.post(f"/bookings/{booking['id']}/complete").status_code == 400


def test_counter_proposal_flow(client):
    held = _create_slot(client, "18:00")
    alternative = _create_slot(client, "20:00")
    booking = _create_booking(client, held["id"]).json()

    response = client.post(
        f"/bookings/{booking['id']}/counter-proposals",
        json={"proposals": [{"proposedDate": "2026-12-20", "proposedTime": "20:00", "slotId": alternative["id"]}]},
    )
    assert response.json()["status"] == "counter_proposed"

    proposals = client.get(f"/bookings/{booking['id']}/proposals").json()
    accepted = client.post(f"/bookings/{booking['id']}/proposals/{proposals[0]['id']}/accept")

    assert accepted.status_code == 200
    assert accepted.json()["status"] == "customer_accepted"
    assert accepted.json()["bookingTime"] == "20:00"
    assert client.get(f"/slots/{held['id']}").json()["status"] == "free"


def test_too_many_proposals_rejected(client):
    slot = _create_slot(client)
    booking = _create_booking(client, slot["id"]).json()
    proposals = [{"proposedDate": "2026-12-21", "proposedTime": f"1{n}:00"} for n in range(6)]

    response = client.post(f"/bookings/{booking['id']}/counter-proposals", json={"proposals": proposals})

    assert response.status_code == 422


def test_cancel_rejects_system_actor(client):
    slot = _create_slot(client)
    booking = _create_booking(client, slot["id"]).json()

    response = client.post(f"/bookings/{booking['id']}/cancel", json={"cancelledBy": "system"})

    assert response.status_code == 422


def test_payment_callback_requires_secret(client, monkeypatch):
    monkeypatch.setattr(config, "PAYMENT_WEBHOOK_SECRET", "s3cret")
    slot = _create_slot(client)
    booking = _create_booking(client, slot["id"]).json()
    url = f"/bookings/{booking['id']}/payment"

    assert client.post(url, json={"paymentStatus": "prepayment_paid"}).status_code == 401
    assert (
        client.post(
            url, json={"paymentStatus": "prepayment_paid"}, headers={"X-Payment-Secret": "wrong"}
        ).status_code
        == 401
    )

    response = client.post(
        url, json={"paymentStatus": "prepayment_paid"}, headers={"X-Payment-Secret": "s3cret"}
    )
    assert response.status_code == 200
    assert response.json()["paymentStatus"] == "prepayment_paid"


def test_manual_queue_run_cancels_expired_booking(client, clock, delivery):
    slot = _create_slot(client)
    booking = _create_booking(client, slot["id"]).json()
    confirmed = client.post(f"/bookings/{booking['id']}/confirm").json()
    assert confirmed["status"] == "confirmed"

    notifications = client.get("/notifications", params={"bookingId": booking["id"]}).json()
    assert {"payment_deadline_expired", "visit_reminder_3d"} <= {n["kind"] for n in notifications}

    clock.advance(timedelta(hours=25))
    summary = client.post("/notifications/process").json()

    assert summary["cancelled"] == 1
    cancelled = client.get(f"/bookings/{booking['id']}").json()
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelledBy"] == "system"
    assert client.get(f"/slots/{slot['id']}").json()["status"] == "free"


def test_counter_proposal_for_a_different_hour_than_its_slot(client):
    held = _create_slot(client, "18:00")
    alternative = _create_slot(client, "20:00")
    booking = _create_booking(client, held["id"]).json()

    response = client.post(
        f"/bookings/{booking['id']}/counter-proposals",
        json={"proposals": [{"proposedDate": "2026-12-25", "proposedTime": "10:00", "slotId": alternative["id"]}]},
    )

    assert response.status_code == 422
    assert client.get(f"/bookings/{booking['id']}").json()["status"] == "pending"


def test_performer_cannot_book_own_slot(client):
    slot = _create_slot(client)

    response = client.post("/bookings", json={"customerId": PERFORMER_ID, "slotId": slot["id"]})

    assert response.status_code == 422
    assert client.get(f"/slots/{slot['id']}").json()["status"] == "free"
