import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from healthsync.core.errors import add_exception_handlers, jsonable_errors
from healthsync.core.exceptions import InvalidTransitionError, ResourceNotFoundError, TransportError
from healthsync.main import app

client = TestClient(app)


class Appointment(BaseModel):
    doctor_id: str
    slot: int


@pytest.fixture
def probe():
    probe_app = FastAPI()
    add_exception_handlers(probe_app)

    @probe_app.post("/appointments")
    def book(appointment: Appointment):
        return appointment

    @probe_app.get("/patients/{patient_id}")
    def patient(patient_id: str):
        raise ResourceNotFoundError(message=f"Patient {patient_id} not found")

    @probe_app.get("/transition")
    def transition():
        raise InvalidTransitionError()

    @probe_app.get("/offline")
    def offline():
        raise TransportError()

    @probe_app.get("/crash")
    def crash():
        raise RuntimeError("boom")

    return TestClient(probe_app, raise_server_exceptions=False)


def test_unknown_route_uses_envelope():
    response = client.get("/non-existent-route")
    assert response.status_code == 404
    assert response.json()["code"] == "HTTP_ERROR"


def test_unknown_event_is_rejected():
    response = client.post("/api/v1/flow/tab-errors/events", json={"event": "teleport"})
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_ERROR"
    assert data["details"]


def test_body_validation_details(probe):
    response = probe.post("/appointments", json={"doctor_id": "d1", "slot": "noon"})
    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Input validation failed"
    assert data["details"][0]["loc"] == ["body", "slot"]


def test_domain_error_keeps_status_and_code(probe):
    response = probe.get("/patients/p9")
    assert response.status_code == 404
    assert response.json() == {"error": "Patient p9 not found", "code": "NOT_FOUND", "details": None}


def test_invalid_transition_is_conflict(probe):
    response = probe.get("/transition")
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


def test_transport_error_is_service_unavailable(probe):
    response = probe.get("/offline")
    assert response.status_code == 503
    assert response.json()["code"] == "NETWORK_ERROR"


def test_unexpected_error_is_internal(probe):
    response = probe.get("/crash")
    assert response.status_code == 500
    data = response.json()
    assert data["code"] == "INTERNAL_ERROR"
    # development settings expose the message
    assert data["error"] == "boom"


def test_jsonable_errors_drops_context():
    errors = [{"loc": ("body", "slot"), "msg": "bad", "type": "int_parsing", "ctx": {"error": ValueError()}}]
    assert jsonable_errors(errors) == [{"loc": ["body", "slot"], "msg": "bad", "type": "int_parsing"}]
