"""
healthsync/services/location_service.py

Purpose: First-time location capture

- One-shot GPS position through a pluggable geolocation provider
- Reverse geocoding of the detected position (never fatal)
- Manual entry fallback (city, state and pincode required)
- Persists the record and flips locationCaptured on the session

Steps: INITIAL -> DETECTING -> DETECTED -> CONFIRMED (GPS)
       INITIAL -> MANUAL_ENTRY -> CONFIRMED (manual)
"""

import asyncio
from enum import Enum
from typing import Optional, Protocol, Union

from healthsync.core.config import settings
from healthsync.core.exceptions import GeolocationError, InvalidTransitionError, ValidationError
from healthsync.core.logging import get_logger, LogContext
from healthsync.schemas.auth import (
    Coordinates,
    LocationRecord,
    LocationSource,
    LoggedIn,
    ManualLocationForm,
)
from healthsync.services.api_client import BackendClient
from healthsync.services.geocoding_service import ReverseGeocoder
from healthsync.services.session_service import SessionStore
from healthsync.utils import constants
from healthsync.utils.validation_utils import validate_manual_location

logger = get_logger(__name__)


class LocationStep(str, Enum):
    INITIAL = "INITIAL"
    DETECTING = "DETECTING"
    DETECTED = "DETECTED"
    MANUAL_ENTRY = "MANUAL_ENTRY"
    CONFIRMED = "CONFIRMED"


class GeolocationFailure(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED = "UNSUPPORTED"


class GeolocationProvider(Protocol):
    """Anything that can produce the device's current position once."""

    async def get_current_position(self, *, high_accuracy: bool, timeout: float, maximum_age: float) -> Coordinates:
        ...


class ReportedPositionProvider:
    """
    Replays what the device reported: either a position or a failure reason.
    Used when the position is read by the UI shell and posted to us.
    """

    def __init__(self, result: Union[Coordinates, GeolocationFailure]):
        self._result = result

    async def get_current_position(self, *, high_accuracy: bool, timeout: float, maximum_age: float) -> Coordinates:
        if isinstance(self._result, GeolocationFailure):
            raise GeolocationError(self._result.value)
        return self._result


class LocationOnboarding:
    """
    Collects a LocationRecord for a session whose location is not captured yet.

    Every operation is a no-op once the session has locationCaptured set.
    """

    def __init__(
        self,
        session_store: SessionStore,
        client: BackendClient,
        geocoder: Optional[ReverseGeocoder] = None,
        timeout: Optional[float] = None,
        default_country: Optional[str] = None,
    ):
        self._store = session_store
        self._client = client
        self._geocoder = geocoder or ReverseGeocoder()
        self._timeout = timeout if timeout is not None else settings.GEOLOCATION_TIMEOUT_SECONDS
        self.default_country = default_country or settings.DEFAULT_COUNTRY

        self.step = LocationStep.INITIAL
        self.detected: Optional[LocationRecord] = None
        self.saved: Optional[LocationRecord] = None
        self.reason: Optional[str] = None
        self.field_errors: dict = {}

    @property
    def already_captured(self) -> bool:
        session = self._store.session
        return isinstance(session, LoggedIn) and session.location_captured

    def _user_id(self) -> str:
        session = self._store.session
        if not isinstance(session, LoggedIn) or not session.user_id:
            raise InvalidTransitionError("Please sign in again")
        return session.user_id

    def _require(self, *steps: LocationStep):
        if self.step not in steps:
            raise InvalidTransitionError()

    async def detect(self, provider: Optional[GeolocationProvider]) -> LocationStep:
        """
        Requests one high-accuracy position (no cached fix) and reverse
        geocodes it. Any geolocation failure routes to manual entry.
        """
        if self.already_captured:
            return self.step
        self._require(LocationStep.INITIAL)

        self.reason = None
        self.field_errors = {}

        if provider is None:
            return self._to_manual(GeolocationFailure.UNSUPPORTED.value)

        self.step = LocationStep.DETECTING
        try:
            coords = await asyncio.wait_for(
                provider.get_current_position(high_accuracy=True, timeout=self._timeout, maximum_age=0),
                timeout=self._timeout,
            )
        except GeolocationError as e:
            return self._to_manual(e.reason)
        except asyncio.TimeoutError:
            return self._to_manual(GeolocationFailure.TIMEOUT.value)
        except Exception:
            logger.warning("Position provider failed", exc_info=True)
            return self._to_manual(GeolocationFailure.POSITION_UNAVAILABLE.value)

        try:
            address = await self._geocoder.reverse(coords.latitude, coords.longitude)
        except Exception:
            logger.warning("Reverse geocoding failed", exc_info=True)
            return self._to_manual(GeolocationFailure.POSITION_UNAVAILABLE.value)
        self.detected = LocationRecord(
            source=LocationSource.GPS,
            latitude=coords.latitude,
            longitude=coords.longitude,
            address=address.address,
            city=address.city,
            state=address.state,
            country=address.country,
            pincode=address.pincode,
        )
        self.step = LocationStep.DETECTED
        logger.info(f"Location detected via {address.provider or 'fallback'}: {address.city}")
        return self.step

    def _to_manual(self, reason: str) -> LocationStep:
        self.step = LocationStep.MANUAL_ENTRY
        self.reason = constants.GEOLOCATION_MESSAGES.get(reason, constants.GEOLOCATION_MESSAGES["POSITION_UNAVAILABLE"])
        logger.info(f"Geolocation unavailable ({reason}), switching to manual entry")
        return self.step

    async def confirm_detected(self) -> LocationRecord:
        """Persists the detected location and marks the session as captured."""
        if self.already_captured:
            return self.saved or self.detected
        self._require(LocationStep.DETECTED)
        return await self._persist(self.detected)

    def choose_manual(self) -> LocationStep:
        """Opt out of GPS, or replace a detected location with a typed one."""
        if self.already_captured:
            return self.step
        self._require(LocationStep.INITIAL, LocationStep.DETECTED)
        self.step = LocationStep.MANUAL_ENTRY
        self.detected = None
        return self.step

    def back_to_detection(self) -> LocationStep:
        if self.already_captured:
            return self.step
        self._require(LocationStep.MANUAL_ENTRY)
        self.step = LocationStep.INITIAL
        self.reason = None
        self.field_errors = {}
        return self.step

    async def submit_manual(self, form: ManualLocationForm) -> LocationRecord:
        """
        Raises:
            ValidationError: city, state or pincode missing (nothing is sent)
        """
        if self.already_captured:
            return self.saved
        self._require(LocationStep.MANUAL_ENTRY)

        self.field_errors = validate_manual_location(form.city, form.state, form.pincode)
        if self.field_errors:
            raise ValidationError(constants.LOCATION_FIELDS_REQUIRED, details=dict(self.field_errors))

        record = LocationRecord(
            source=LocationSource.MANUAL,
            address=form.address.strip() or None,
            city=form.city.strip(),
            state=form.state.strip(),
            country=form.country.strip() or self.default_country,
            pincode=form.pincode.strip(),
        )
        return await self._persist(record)

    async def _persist(self, record: LocationRecord) -> LocationRecord:
        user_id = self._user_id()
        with LogContext(user_id=user_id):
            await self._client.update_location(user_id, record)
            await self._store.mark_location_captured()
            self.saved = record
            self.step = LocationStep.CONFIRMED
            logger.info(f"Location saved ({record.source.value})")
        return record
