"""
API tests through FastAPI's TestClient

Collaborators (database, clock, offer gateway, e-mail providers) are swapped
in with dependency overrides; account tokens are minted locally.
"""

import pytest

from fastapi.testclient import TestClient

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import FakeProvider

TRAVELERS = [
    {"first_name": "Aoife", "last_name": "Murphy", "date_of_birth": "1990-04-02",
     "gender": "female", "email": "aoife.murphy@tripmail.com"},
    {"first_name": "Liam", "last_name": "Byrne", "date_of_birth": "1988-11-20", "gender": "male"},
]


@pytest.fixture
def provider():
    return FakeProvider("postmark")


@pytest.fixture
def client(session_factory, clock, gateway, provider):
    from tripbook.database import get_db
    from tripbook.main import app
    from tripbook.utils.dependencies import get_clock, get_email_providers, get_offer_gateway

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_offer_gateway] = lambda: gateway
    app.dependency_overrides[get_email_providers] = lambda: [provider]
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(account_id="acct-1"):
    from tripbook.utils.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(account_id)}"}


def create_draft(client, account_id="acct-1"):
    response = client.post(
        "/api/drafts",
        json={"trip_id": "trip-1", "offer_id": "OFF1", "passengers": TRAVELERS},
        headers=auth(account_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


def ready_draft(client):
    draft = create_draft(client)
    response = client.put(
        f"/api/drafts/{draft['id']}/extras",
        json={"bags": [{"service_id": "bag_1", "passenger_id": "pas_1", "quantity": 1}]},
        headers=auth(),
    )
    assert response.status_code == 200, response.text
    client.post(f"/api/drafts/{draft['id']}/policy", json={"acknowledged": True}, headers=auth())
    response = client.post(f"/api/drafts/{draft['id']}/ready", headers=auth())
    assert response.status_code == 200, response.text
    return response.json()


def pay(client, draft_id, **extra):
    """Drive the payment webhook the way the payment provider does"""
    event = {
        "type": "payment.succeeded",
        "draft_id": draft_id,
        "amount_minor": 23000,
        "currency": "EUR",
        "upstream_order_id": "ord_0000AbCdEf",
        "booking_reference": "xk4p2q",
    }
    event.update(extra)
    response = client.post("/api/payments/webhook", json=event, headers={"X-Webhook-Secret": "whsec-test-secret"})
    assert response.status_code == 200, response.text
    return response.json()


def pending_booking(client, session_factory, clock):
    """A booking whose payment is still in flight"""
    from tripbook.services.draft_service import DraftService

    draft = ready_draft(client)
    session = session_factory()
    try:
        return DraftService(session, clock=clock).complete(draft["id"]).id
    finally:
        session.close()


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/api/bookings")

        assert response.status_code == 401

    def test_bad_token(self, client):
        response = client.get("/api/bookings", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


class TestDraftEndpoints:
    def test_create(self, client):
        draft = create_draft(client)

        assert draft["status"] == "draft"
        assert draft["total_price"] == "EUR 200.00"
        assert draft["outbound"]["flight_number"] == "EI154"
        assert [p["id"] for p in draft["passengers"]] == ["pas_1", "pas_2"]
        assert "passport_number" not in draft["passengers"][0]

    def test_invalid_body(self, client):
        response = client.post(
            "/api/drafts",
            json={"trip_id": "trip-1", "offer_id": "OFF1", "passengers": []},
            headers=auth(),
        )

        assert response.status_code == 422

    def test_other_account_cannot_read(self, client):
        draft = create_draft(client)
        response = client.get(f"/api/drafts/{draft['id']}", headers=auth("acct-2"))

        assert response.status_code == 404
        assert response.json()["code"] == "draft_not_found"

    def test_invalid_extra(self, client):
        draft = create_draft(client)
        response = client.put(
            f"/api/drafts/{draft['id']}/extras",
            json={"bags": [{"service_id": "bag_999", "passenger_id": "pas_1"}]},
            headers=auth(),
        )

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_extra"
        assert response.json()["category"] == "validation"

    def test_version_conflict(self, client):
        draft = create_draft(client)
        client.put(f"/api/drafts/{draft['id']}/extras", json={}, headers=auth())
        response = client.put(
            f"/api/drafts/{draft['id']}/extras?expected_version=1", json={}, headers=auth(),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "draft_conflict"

    def test_ready_without_policy(self, client):
        draft = create_draft(client)
        response = client.post(f"/api/drafts/{draft['id']}/ready", headers=auth())

        assert response.status_code == 422
        assert response.json()["code"] == "policy_not_acknowledged"

    def test_expired_draft(self, client, clock):
        draft = create_draft(client)
        clock.advance(hours=2)
        response = client.get(f"/api/drafts/{draft['id']}", headers=auth())

        assert response.status_code == 410
        assert response.json()["code"] == "offer_expired"

        status_response = client.get(f"/api/drafts/{draft['id']}/status", headers=auth())
        assert status_response.json()["status"] == "expired"

    def test_active_draft(self, client):
        assert client.get("/api/drafts/active?trip_id=trip-1", headers=auth()).json() is None

        draft = create_draft(client)
        response = client.get("/api/drafts/active?trip_id=trip-1", headers=auth())
        assert response.json()["id"] == draft["id"]

    def test_update_passenger(self, client):
        draft = create_draft(client)
        response = client.patch(
            f"/api/drafts/{draft['id']}/passengers/pas_2",
            json={"first_name": "William"},
            headers=auth(),
        )

        assert response.status_code == 200
        assert response.json()["passengers"][1]["first_name"] == "William"

    def test_complete_is_not_exposed(self, client):
        draft = ready_draft(client)
        response = client.post(f"/api/drafts/{draft['id']}/complete", headers=auth())

        assert response.status_code == 404
        status_response = client.get(f"/api/drafts/{draft['id']}/status", headers=auth())
        assert status_response.json()["status"] == "ready_for_payment"


class TestBookingEndpoints:
    def test_paid_booking_send_and_guest_link(self, client, provider):
        paid = pay(client, ready_draft(client)["id"])
        booking_id = paid["booking_id"]

        booking = client.get(f"/api/bookings/{booking_id}", headers=auth()).json()
        assert booking["status"] == "confirmed"
        assert booking["display_reference"] == "XK4P2Q"
        assert booking["total_amount"] == "EUR 230.00"

        again = client.post(f"/api/bookings/{booking_id}/send-confirmation", headers=auth())
        assert again.json()["already_sent"] is True
        assert len(provider.sent) == 1

        link = client.post(f"/api/bookings/{booking_id}/links", json={"ttl_days": 7}, headers=auth())
        assert link.status_code == 201
        token = link.json()["token"]
        assert link.json()["url"].endswith(f"/booking/{token}")

        guest = client.get(f"/api/public/bookings/{token}")
        assert guest.status_code == 200
        assert guest.json()["pnr"] == "XK4P2Q"
        assert guest.headers["Cache-Control"] == "no-store"

    def test_confirm_and_fail_are_not_routed(self, client, provider, session_factory, clock):
        booking_id = pending_booking(client, session_factory, clock)

        confirm = client.post(
            f"/api/bookings/{booking_id}/confirm",
            json={"upstream_order_id": "made-up"},
            headers=auth(),
        )
        fail = client.post(f"/api/bookings/{booking_id}/fail", json={"reason": "x"}, headers=auth())

        assert confirm.status_code == 404
        assert fail.status_code == 404
        booking = client.get(f"/api/bookings/{booking_id}", headers=auth()).json()
        assert booking["status"] == "pending_payment"
        assert provider.sent == []

    def test_unknown_guest_token(self, client):
        response = client.get("/api/public/bookings/doesnotexist")

        assert response.status_code == 404
        assert response.json()["code"] == "token_not_found"

    def test_expired_guest_token(self, client, clock):
        booking_id = pay(client, ready_draft(client)["id"])["booking_id"]
        link = client.post(f"/api/bookings/{booking_id}/links", json={"ttl_days": 1}, headers=auth()).json()
        clock.advance(days=2)

        response = client.get(f"/api/public/bookings/{link['token']}")
        assert response.status_code == 410

    def test_send_before_payment(self, client, session_factory, clock):
        booking_id = pending_booking(client, session_factory, clock)
        response = client.post(f"/api/bookings/{booking_id}/send-confirmation", headers=auth())

        assert response.status_code == 409

    def test_email_failure_is_retryable(self, client, provider):
        provider.succeed = False
        paid = pay(client, ready_draft(client)["id"])
        assert paid["booking_status"] == "confirmed"
        assert paid["confirmation_sent"] is False

        response = client.post(f"/api/bookings/{paid['booking_id']}/send-confirmation", headers=auth())
        assert response.status_code == 502
        assert response.headers["Retry-After"] == "5"

    def test_list_and_filter(self, client):
        booking_id = pay(client, ready_draft(client)["id"])["booking_id"]

        listed = client.get("/api/bookings", headers=auth()).json()
        assert [b["id"] for b in listed] == [booking_id]
        assert client.get("/api/bookings?status=pending_payment", headers=auth()).json() == []
        assert client.get("/api/bookings", headers=auth("acct-2")).json() == []

    def test_cancel(self, client, session_factory, clock):
        pending_id = pending_booking(client, session_factory, clock)
        cancel = client.post(f"/api/bookings/{pending_id}/cancel", headers=auth())
        assert cancel.status_code == 409
        assert cancel.json()["code"] == "invalid_transition"

        paid_id = pay(client, ready_draft(client)["id"])["booking_id"]
        cancelled = client.post(f"/api/bookings/{paid_id}/cancel", headers=auth())
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

    def test_support_reference(self, client, session_factory, clock):
        booking_id = pending_booking(client, session_factory, clock)
        url = f"/api/bookings/{booking_id}/support-reference"

        assert client.put(url, json={"support_reference": "SUP-1"}, headers=auth()).status_code == 200
        assert client.put(url, json={"support_reference": "SUP-2"}, headers=auth()).status_code == 409


class TestPaymentWebhook:
    def test_secret_required(self, client):
        response = client.post("/api/payments/webhook", json={})

        assert response.status_code == 401

    def test_succeeded_then_replay(self, client, provider):
        draft = ready_draft(client)
        event = {
            "type": "payment.succeeded",
            "draft_id": draft["id"],
            "amount_minor": 23000,
            "currency": "EUR",
            "upstream_order_id": "ord_0000AbCdEf",
        }
        headers = {"X-Webhook-Secret": "whsec-test-secret"}

        first = client.post("/api/payments/webhook", json=event, headers=headers)
        second = client.post("/api/payments/webhook", json=event, headers=headers)

        assert first.status_code == 200, first.text
        assert first.json()["status"] == "processed"
        assert second.json()["status"] == "duplicate"
        assert len(provider.sent) == 1


class TestTravelers:
    def test_create_list_delete(self, client):
        created = client.post("/api/travelers", json=TRAVELERS[0], headers=auth())
        assert created.status_code == 201
        profile_id = created.json()["id"]

        assert [p["id"] for p in client.get("/api/travelers", headers=auth()).json()] == [profile_id]
        assert client.get("/api/travelers", headers=auth("acct-2")).json() == []

        assert client.delete(f"/api/travelers/{profile_id}", headers=auth()).status_code == 204
        assert client.get("/api/travelers", headers=auth()).json() == []
        assert client.delete(f"/api/travelers/{profile_id}", headers=auth()).status_code == 404


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["database"]["status"] == "up"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
