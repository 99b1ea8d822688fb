import asyncio

import pytest

from healthsync.core.exceptions import BackendError, InvalidTransitionError, ValidationError
from healthsync.schemas.auth import Coordinates, ManualLocationForm, ResolvedAddress, Role
from healthsync.services.location_service import (
    GeolocationFailure,
    LocationOnboarding,
    LocationStep,
    ReportedPositionProvider,
)
from healthsync.utils import constants

from tests.helpers import PATIENT, FakeGeocoder

UPDATE = "/api/location/update-location"

PUNE = ResolvedAddress(
    address="Shivajinagar", city="Pune", state="Maharashtra", country="India", pincode="411005",
    provider="bigdatacloud",
)


class HangingProvider:
    async def get_current_position(self, *, high_accuracy, timeout, maximum_age):
        await asyncio.sleep(3600)


class BrokenSensor:
    async def get_current_position(self, *, high_accuracy, timeout, maximum_age):
        raise OSError("device sensor error")


class BrokenGeocoder:
    async def reverse(self, latitude, longitude):
        raise RuntimeError("geocoder crashed")


@pytest.fixture
async def patient_store(store):
    await store.save(PATIENT, Role.PATIENT, "jwt-1", location_captured=False)
    return store


@pytest.fixture
def onboarding(patient_store, client):
    return LocationOnboarding(patient_store, client, FakeGeocoder(PUNE), timeout=0.05)


async def test_detect_then_confirm_persists_gps_location(backend, onboarding, patient_store):
    backend.on("POST", UPDATE, body={"success": True, "locationCaptured": True})

    step = await onboarding.detect(ReportedPositionProvider(Coordinates(18.53, 73.85)))
    assert step == LocationStep.DETECTED
    assert onboarding.detected.city == "Pune"
    # Nothing is saved until the user confirms
    assert backend.calls == []

    await onboarding.confirm_detected()

    assert onboarding.step == LocationStep.CONFIRMED
    assert patient_store.is_ready
    payload = backend.payloads(UPDATE)[0]
    assert payload["latitude"] == 18.53
    assert payload["userId"] == "u1"


async def test_permission_denied_routes_to_manual_entry(onboarding, backend):
    step = await onboarding.detect(ReportedPositionProvider(GeolocationFailure.PERMISSION_DENIED))

    assert step == LocationStep.MANUAL_ENTRY
    assert onboarding.reason == constants.GEOLOCATION_MESSAGES["PERMISSION_DENIED"]
    assert backend.calls == []


async def test_missing_provider_is_unsupported(onboarding):
    assert await onboarding.detect(None) == LocationStep.MANUAL_ENTRY
    assert onboarding.reason == constants.GEOLOCATION_MESSAGES["UNSUPPORTED"]


async def test_position_request_times_out(onboarding):
    assert await onboarding.detect(HangingProvider()) == LocationStep.MANUAL_ENTRY
    assert onboarding.reason == constants.GEOLOCATION_MESSAGES["TIMEOUT"]


async def test_provider_crash_routes_to_manual_entry(onboarding, backend):
    assert await onboarding.detect(BrokenSensor()) == LocationStep.MANUAL_ENTRY
    assert onboarding.reason == constants.GEOLOCATION_MESSAGES["POSITION_UNAVAILABLE"]

    # the flow is not stuck: back to GPS and try again
    assert onboarding.back_to_detection() == LocationStep.INITIAL
    assert await onboarding.detect(ReportedPositionProvider(Coordinates(18.53, 73.85))) == LocationStep.DETECTED
    assert backend.calls == []


async def test_geocoder_crash_routes_to_manual_entry(patient_store, client):
    onboarding = LocationOnboarding(patient_store, client, BrokenGeocoder(), timeout=0.05)

    assert await onboarding.detect(ReportedPositionProvider(Coordinates(18.53, 73.85))) == LocationStep.MANUAL_ENTRY
    assert onboarding.detected is None
    assert onboarding.back_to_detection() == LocationStep.INITIAL


async def test_manual_entry_requires_city_without_network(onboarding, backend, patient_store):
    onboarding.choose_manual()

    with pytest.raises(ValidationError) as exc:
        await onboarding.submit_manual(ManualLocationForm(city="", state="Maharashtra", pincode="411001"))

    assert exc.value.details == {"city": constants.LOCATION_FIELD_REQUIRED}
    assert backend.calls == []
    assert not patient_store.is_ready


async def test_manual_entry_defaults_country(onboarding, backend, patient_store):
    backend.on("POST", UPDATE, body={"success": True})
    onboarding.choose_manual()

    record = await onboarding.submit_manual(ManualLocationForm(city=" Pune ", state="Maharashtra", pincode="411001"))

    assert record.country == "India"
    assert record.city == "Pune"
    assert patient_store.is_ready
    assert backend.payloads(UPDATE)[0]["latitude"] == 0


async def test_failed_save_keeps_location_uncaptured(onboarding, backend, patient_store):
    backend.on("POST", UPDATE, status=500, body={"success": False})
    onboarding.choose_manual()

    with pytest.raises(BackendError):
        await onboarding.submit_manual(ManualLocationForm(city="Pune", state="MH", pincode="411001"))

    assert onboarding.step == LocationStep.MANUAL_ENTRY
    assert not patient_store.is_ready


async def test_operations_are_noops_once_captured(onboarding, patient_store, backend):
    await patient_store.mark_location_captured()

    assert await onboarding.detect(ReportedPositionProvider(Coordinates(1.0, 2.0))) == LocationStep.INITIAL
    assert onboarding.choose_manual() == LocationStep.INITIAL
    assert backend.calls == []


async def test_back_to_detection_only_from_manual(onboarding):
    with pytest.raises(InvalidTransitionError):
        onboarding.back_to_detection()

    onboarding.choose_manual()
    assert onboarding.back_to_detection() == LocationStep.INITIAL
