# tests/test_api.py
"""HTTP surface — routers, error mapping and identity headers."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient
from app.database import get_db, get_session_factory
from app.main import app
from app.services.payment_gateway import PaymentIntent, get_payment_gateway
from app.services.reconciler import ReconcilerState
from conftest import space_payload

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
USER = {"X-User-Id": "user-1"}
OTHER = {"X-User-Id": "user-2"}


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.create_intent.return_value = PaymentIntent("pi_new", "requires_payment_method", client_secret="pi_new_secret")
    gw.retrieve_intent.side_effect = lambda intent_id: PaymentIntent(intent_id, "succeeded", amount=10000)
    return gw


@pytest.fixture
def client(session_factory, gateway):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.state.reconciler_state = ReconcilerState()
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_space(client, **kwargs):
    resp = client.post("/api/v1/parking/spaces", json=space_payload(**kwargs), headers=ADMIN)
    assert resp.status_code == 201, resp.text
    return resp.json()


def book(client, intent="pi_1", headers=USER, **overrides):
    body = {
        "space_id": "PS-TEST-1",
        "vehicle_type": "car",
        "booking_date": "2030-01-15",
        "start_time": "10:00",
        "end_time": "12:00",
        "payment_intent_id": intent,
        "number_plate": "KA01AB1234",
    }
    body.update(overrides)
    return client.post("/api/v1/bookings", json=body, headers=headers)


class TestParkingSpaces:
    def test_admin_creates_space(self, client):
        space = create_space(client)
        assert space["space_id"] == "PS-TEST-1"
        assert space["total_capacity"] == 15
        assert space["slot_pools"][0]["available_slots"] == 5

    def test_user_cannot_create(self, client):
        resp = client.post("/api/v1/parking/spaces", json=space_payload(), headers=USER)
        assert resp.status_code == 403

    def test_identity_required(self, client):
        assert client.post("/api/v1/parking/spaces", json=space_payload()).status_code == 401

    def test_validation_errors_listed(self, client):
        resp = client.post("/api/v1/parking/spaces", json=space_payload(name="X"), headers=ADMIN)
        assert resp.status_code == 422
        assert resp.json()["errors"] == [{"field": "name", "message": "Name must be between 2 and 100 characters"}]

    def test_duplicate_id(self, client):
        create_space(client)
        resp = client.post("/api/v1/parking/spaces", json=space_payload(), headers=ADMIN)
        assert resp.status_code == 409
        assert resp.json()["code"] == "duplicate_id"

    def test_unknown_space(self, client):
        resp = client.get("/api/v1/parking/spaces/PS-NOPE")
        assert resp.status_code == 404

    def test_resize_pool(self, client):
        create_space(client)
        resp = client.put("/api/v1/parking/spaces/PS-TEST-1/slots/Car", json={"total_slots": 8}, headers=ADMIN)
        assert resp.status_code == 200
        car = next(p for p in resp.json()["slot_pools"] if p["vehicle_type"] == "Car")
        assert car["total_slots"] == car["available_slots"] == 8

    def test_nearby(self, client):
        create_space(client)
        resp = client.get("/api/v1/parking/spaces/nearby", params={"latitude": 12.9716, "longitude": 77.5946})
        assert resp.status_code == 200
        assert [s["space_id"] for s in resp.json()] == ["PS-TEST-1"]

    def test_zero_radius_rejected(self, client):
        create_space(client)
        for path in ("/api/v1/parking/spaces/nearby", "/api/v1/parking/availability/nearby"):
            resp = client.get(path, params={"latitude": 12.9716, "longitude": 77.5946, "radius": 0})
            assert resp.status_code == 422
            assert resp.json()["errors"][0]["field"] == "radius"


class TestAvailability:
    def test_window_availability(self, client):
        create_space(client)
        book(client)
        resp = client.get("/api/v1/parking/spaces/PS-TEST-1/availability", params={
            "vehicle_type": "Car", "booking_date": "2030-01-15", "start_time": "11:00", "end_time": "11:30",
        })
        assert resp.status_code == 200
        assert resp.json()["available_slots"] == 4

    def test_partial_window_rejected(self, client):
        create_space(client)
        resp = client.get("/api/v1/parking/spaces/PS-TEST-1/availability",
                          params={"vehicle_type": "Car", "booking_date": "2030-01-15"})
        assert resp.status_code == 422

    def test_vehicle_type_not_offered(self, client):
        create_space(client)
        resp = client.get("/api/v1/parking/spaces/PS-TEST-1/availability", params={"vehicle_type": "Bus"})
        assert resp.status_code == 422
        assert resp.json()["code"] == "vehicle_type_not_offered"

    def test_nearby_availability(self, client):
        create_space(client)
        book(client)
        resp = client.get("/api/v1/parking/availability/nearby", params={
            "latitude": 12.9716, "longitude": 77.5946, "radius": 500,
            "booking_date": "2030-01-15", "start_time": "10:00", "end_time": "11:00",
        })
        car = next(p for p in resp.json()[0]["vehicle_slots"] if p["vehicle_type"] == "Car")
        assert car["available_slots"] == 4


class TestPayments:
    def test_intent_priced_from_pool(self, client, gateway):
        create_space(client)
        resp = client.post("/api/v1/payments/intent", headers=USER, json={
            "space_id": "PS-TEST-1", "vehicle_type": "Car",
            "booking_date": "2030-01-15", "start_time": "10:00", "end_time": "11:30",
        })
        assert resp.status_code == 200
        assert resp.json() == {
            "client_secret": "pi_new_secret", "payment_intent_id": "pi_new", "amount": 75.0, "currency": "inr",
        }
        assert gateway.create_intent.call_args.args[:2] == (75.0, "inr")


class TestBookings:
    def test_reserve_and_notify(self, client):
        create_space(client)
        with patch("app.routers.bookings.notify_booking", new_callable=AsyncMock) as mock_notify:
            resp = book(client, push_token="ExponentPushToken[abc]")
        assert resp.status_code == 201
        booking = resp.json()
        assert booking["status"] == "confirmed"
        assert booking["vehicle_type"] == "Car"
        mock_notify.assert_awaited_once_with("CONFIRMED", "ExponentPushToken[abc]", "Test Parking", booking["booking_id"])

    def test_same_intent_returns_same_booking(self, client):
        create_space(client)
        first = book(client).json()
        second = book(client).json()
        assert first["booking_id"] == second["booking_id"]

    def test_capacity_exhausted(self, client):
        create_space(client, car_slots=1)
        assert book(client, "pi_1").status_code == 201
        resp = book(client, "pi_2", start_time="10:30", end_time="11:30")
        assert resp.status_code == 409
        assert resp.json()["code"] == "capacity_exhausted"

    def test_unpaid_intent(self, client, gateway):
        create_space(client)
        gateway.retrieve_intent.side_effect = None
        gateway.retrieve_intent.return_value = PaymentIntent("pi_1", "processing", amount=10000)
        assert book(client).status_code == 402

    def test_bad_window(self, client):
        create_space(client)
        resp = book(client, start_time="12:00", end_time="10:00")
        assert resp.status_code == 422

    def test_cancel_is_idempotent(self, client):
        create_space(client)
        booking_id = book(client).json()["booking_id"]

        first = client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=USER)
        second = client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=USER)
        assert first.json()["released"] is True
        assert second.json()["released"] is False
        assert second.json()["booking"]["status"] == "cancelled"

        resp = client.post(f"/api/v1/bookings/{booking_id}/release", json={"reason": "completed"}, headers=USER)
        assert resp.status_code == 409

    def test_checkout(self, client):
        create_space(client)
        booking_id = book(client).json()["booking_id"]
        resp = client.post(f"/api/v1/bookings/{booking_id}/checkout", json={"overtime_charges": 20}, headers=USER)
        assert resp.status_code == 200
        body = resp.json()["booking"]
        assert (body["status"], body["parking_status"], body["total_amount"]) == ("completed", "unparked", 120.0)

    def test_bookings_are_private(self, client):
        create_space(client)
        booking_id = book(client).json()["booking_id"]
        assert client.get(f"/api/v1/bookings/{booking_id}", headers=OTHER).status_code == 404
        assert client.get(f"/api/v1/bookings/{booking_id}", headers=ADMIN).status_code == 200

    def test_history_and_active(self, client):
        create_space(client)
        book(client)
        assert len(client.get("/api/v1/bookings", headers=USER).json()) == 1
        assert client.get("/api/v1/bookings", headers=OTHER).json() == []
        active = client.get("/api/v1/bookings/active", params={"on_date": "2030-01-15"}, headers=USER)
        assert len(active.json()) == 1


class TestAdminAndHealth:
    def test_reconcile_requires_admin(self, client):
        assert client.post("/api/v1/admin/reconcile", headers=USER).status_code == 403

    def test_reconcile_pass(self, client):
        create_space(client)
        resp = client.post("/api/v1/admin/reconcile", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["state"]["runs"] == 1

    def test_bookings_for_date_any_status(self, client):
        create_space(client)
        kept = book(client, "pi_1", start_time="08:00", end_time="09:00").json()["booking_id"]
        cancelled = book(client, "pi_2", headers=OTHER).json()["booking_id"]
        client.post(f"/api/v1/bookings/{cancelled}/cancel", headers=OTHER)

        resp = client.get("/api/v1/admin/bookings", params={"on_date": "2030-01-15"}, headers=ADMIN)
        assert resp.status_code == 200
        assert [b["booking_id"] for b in resp.json()] == [kept, cancelled]

        only_cancelled = client.get("/api/v1/admin/bookings",
                                    params={"on_date": "2030-01-15", "status": "cancelled"}, headers=ADMIN)
        assert [b["booking_id"] for b in only_cancelled.json()] == [cancelled]
        assert client.get("/api/v1/admin/bookings", params={"on_date": "2030-01-16"}, headers=ADMIN).json() == []

    def test_bookings_for_date_requires_admin(self, client):
        assert client.get("/api/v1/admin/bookings", headers=USER).status_code == 403

    def test_lookup_by_user_or_email(self, client):
        create_space(client)
        mine = book(client, "pi_1", user_email="driver@example.com").json()["booking_id"]
        book(client, "pi_2", headers=OTHER)

        by_id = client.get("/api/v1/admin/bookings/lookup", params={"user_id": "user-1"}, headers=ADMIN)
        by_email = client.get("/api/v1/admin/bookings/lookup",
                              params={"user_email": "driver@example.com"}, headers=ADMIN)
        assert [b["booking_id"] for b in by_id.json()] == [mine]
        assert [b["booking_id"] for b in by_email.json()] == [mine]

    def test_lookup_needs_a_key(self, client):
        resp = client.get("/api/v1/admin/bookings/lookup", headers=ADMIN)
        assert resp.status_code == 422
        assert resp.json()["errors"][0]["field"] == "user"

    def test_lookup_requires_admin(self, client):
        resp = client.get("/api/v1/admin/bookings/lookup", params={"user_id": "user-1"}, headers=USER)
        assert resp.status_code == 403

    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "ok"
