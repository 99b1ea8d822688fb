import pytest
from fastapi.testclient import TestClient

from healthsync.flow import dispatcher
from healthsync.flow.controller import AuthController
from healthsync.main import app
from healthsync.services.api_client import BackendClient
from healthsync.services.session_service import MemoryStorage, SessionStore
from healthsync.utils import constants

from tests.helpers import PATIENT, TODAY, FakeBackend, FakeGeocoder


@pytest.fixture
def api(monkeypatch):
    backend = FakeBackend()

    def build(client_id):
        store = SessionStore(MemoryStorage())
        client = BackendClient(
            base_url="http://backend.test",
            token_provider=lambda: store.token,
            transport=backend.transport,
        )
        return AuthController(client=client, session_store=store, geocoder=FakeGeocoder(),
                              client_id=client_id, today=TODAY)

    monkeypatch.setattr(dispatcher, "build_controller", build)
    with TestClient(app) as test_client:
        yield test_client, backend


def post_event(client, client_id, event, payload=None):
    return client.post(f"/api/v1/flow/{client_id}/events", json={"event": event, "payload": payload or {}})


def test_new_client_starts_at_login(api):
    client, _ = api
    response = client.get("/api/v1/flow/tab-new")
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "LOGIN_FORM"
    assert data["step"] == "Sign In"
    assert data["role"] is None


def test_login_over_http(api):
    client, backend = api
    backend.on("POST", "/api/auth/login", body={"token": "jwt-1", "user": PATIENT})
    backend.on("GET", "/api/location/check-location-status/u1", body={"needsLocationSetup": False})

    response = post_event(client, "tab-login", "login", {"email": "a@b.com", "password": "Passw0rd!"})

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "AUTHENTICATED"
    assert data["identity_name"] == "Asha Rao"


def test_rejected_login_is_reported_in_snapshot(api):
    client, backend = api
    backend.on("POST", "/api/auth/login", status=401, body={"message": "bad"})

    response = post_event(client, "tab-bad", "login", {"email": "a@b.com", "password": "nope"})

    assert response.status_code == 200
    assert response.json()["state"] == "LOGIN_FORM"
    assert response.json()["error"] == constants.INVALID_CREDENTIALS


def test_live_validation_over_http(api):
    client, _ = api
    post_event(client, "tab-reg", "show_register")

    response = post_event(client, "tab-reg", "update_field", {"name": "phone", "value": "abc"})

    assert response.json()["field_errors"] == {"phone": constants.INVALID_PHONE}


def test_unavailable_action_is_conflict(api):
    client, _ = api
    response = post_event(client, "tab-conflict", "cancel_otp")
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


def test_bad_position_payload_rejected(api):
    client, _ = api
    response = post_event(client, "tab-geo", "detect_location", {"accuracy": 5})
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_delete_disposes_controller(api):
    client, _ = api
    client.get("/api/v1/flow/tab-gone")

    assert client.delete("/api/v1/flow/tab-gone").status_code == 200
    assert client.delete("/api/v1/flow/tab-gone").status_code == 404


def test_health(api):
    client, _ = api
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["session_storage"] == "memory"
