import httpx
import pytest

from healthsync.core.exceptions import AuthenticationError, BackendError, TransportError
from healthsync.schemas.auth import Credentials, LocationRecord, LocationSource, OtpPurpose
from healthsync.services.api_client import BackendClient
from healthsync.utils import constants


async def test_login_returns_identity_and_token(backend, client):
    backend.on("POST", "/api/auth/login", body={
        "success": True,
        "token": "jwt-1",
        "user": {"id": "u1", "name": "Asha", "email": "a@b.com", "role": "user"},
    })

    result = await client.login(" a@b.com ", "Passw0rd!")

    assert result.token == "jwt-1"
    assert result.user["id"] == "u1"
    assert backend.payloads("/api/auth/login") == [{"email": "a@b.com", "password": "Passw0rd!"}]


async def test_rejected_login_never_names_the_field(backend, client):
    backend.on("POST", "/api/auth/login", status=401, body={"success": False, "message": "Wrong password"})

    with pytest.raises(AuthenticationError) as exc:
        await client.login("a@b.com", "nope")

    assert exc.value.message == constants.INVALID_CREDENTIALS


async def test_server_error_maps_to_generic_retry(backend, client):
    backend.on("POST", "/api/auth/register", status=500, body={"message": "stack trace"})

    with pytest.raises(BackendError) as exc:
        await client.register(Credentials(name="Asha", email="a@b.com"))

    assert exc.value.message == constants.GENERIC_RETRY
    assert exc.value.status == 500


async def test_client_error_keeps_server_message(backend, client):
    backend.on("POST", "/api/auth/register", status=400, body={"success": False, "message": "User already exists"})

    with pytest.raises(BackendError) as exc:
        await client.register(Credentials(name="Asha", email="a@b.com"))

    assert exc.value.message == "User already exists"


async def test_register_sends_camel_case_and_verified_flag(backend, client):
    backend.on("POST", "/api/auth/register", body={"user": {"id": "u1", "name": "Asha", "email": "a@b.com"}})

    await client.register(Credentials(name="Asha", email="a@b.com", date_of_birth="1995-06-01",
                                      emergency_contact="Ravi"))

    payload = backend.payloads("/api/auth/register")[0]
    assert payload["dateOfBirth"] == "1995-06-01"
    assert payload["emergencyContact"] == "Ravi"
    assert payload["emailVerified"] is True


async def test_send_otp_drops_dev_echo(backend, client):
    backend.on("POST", "/api/otp/send-otp", body={"success": True, "message": "sent", "otp": "123456"})

    result = await client.send_otp("a@b.com", OtpPurpose.PASSWORD_RESET)

    assert not hasattr(result, "otp")
    assert backend.payloads("/api/otp/send-otp") == [{"email": "a@b.com", "type": "password_reset"}]


async def test_send_otp_unsuccessful_body_raises(backend, client):
    backend.on("POST", "/api/otp/send-otp", body={"success": False})

    with pytest.raises(BackendError) as exc:
        await client.send_otp("a@b.com", OtpPurpose.REGISTRATION)

    assert exc.value.message == constants.OTP_SEND_FAILED


async def test_bearer_token_attached(backend, store):
    seen = []

    def handler(request, payload):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"success": True, "needsLocationSetup": False})

    backend.on("GET", "/api/location/check-location-status/u1", handler=handler)
    client = BackendClient(base_url="http://backend.test", token_provider=lambda: "jwt-9",
                           transport=backend.transport)

    status = await client.check_location_status("u1")

    assert status.needs_location_setup is False
    assert seen == ["Bearer jwt-9"]
    await client.close()


async def test_update_location_sends_zero_coordinates_for_manual(backend, client):
    backend.on("POST", "/api/location/update-location", body={"success": True, "locationCaptured": True})
    record = LocationRecord(source=LocationSource.MANUAL, city="Pune", state="Maharashtra",
                            country="India", pincode="411001")

    await client.update_location("u1", record)

    payload = backend.payloads("/api/location/update-location")[0]
    assert payload["userId"] == "u1"
    assert payload["latitude"] == 0
    assert payload["longitude"] == 0
    assert payload["city"] == "Pune"


async def test_timeout_maps_to_transport_error(backend, client):
    def slow(request, payload):
        raise httpx.ReadTimeout("slow", request=request)

    backend.on("POST", "/api/auth/login", handler=slow)

    with pytest.raises(TransportError):
        await client.login("a@b.com", "Passw0rd!")


async def test_non_object_body_is_backend_error(backend, client):
    backend.on("POST", "/api/otp/verify-otp", handler=lambda request, payload: httpx.Response(200, text="ok"))

    with pytest.raises(BackendError):
        await client.verify_otp("a@b.com", "123456", OtpPurpose.REGISTRATION)
