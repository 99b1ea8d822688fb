"""
Pytest configuration and shared fixtures for all tests.
"""
import pytest

from healthsync.flow.controller import AuthController
from healthsync.services.api_client import BackendClient
from healthsync.services.otp_service import OtpService
from healthsync.services.session_service import MemoryStorage, SessionStore

from tests.helpers import TODAY, FakeBackend, FakeGeocoder, ManualClock


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return SessionStore(storage)


@pytest.fixture
async def client(backend, store):
    client = BackendClient(
        base_url="http://backend.test",
        token_provider=lambda: store.token,
        transport=backend.transport,
    )
    yield client
    await client.close()


@pytest.fixture
async def otp_service(client, clock):
    service = OtpService(client, cooldown_seconds=60, sleep=clock.sleep)
    yield service
    service.close()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
async def controller(client, store, otp_service, geocoder):
    return AuthController(
        client=client,
        session_store=store,
        otp_service=otp_service,
        geocoder=geocoder,
        client_id="tab-1",
        today=TODAY,
    )
