"""
healthsync/flow/dispatcher.py

Purpose: Central event dispatcher

- Keeps one AuthController per client (tab, device)
- Validates event payloads and routes them to controller operations
- Returns the snapshot the UI shell renders
"""

import time
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from healthsync.core.config import settings
from healthsync.core.exceptions import ValidationError
from healthsync.core.logging import get_logger, LogContext
from healthsync.flow.controller import AuthController
from healthsync.schemas.auth import Coordinates, ManualLocationForm
from healthsync.schemas.flow import (
    DetectedPositionPayload,
    FieldUpdatePayload,
    FlowEvent,
    FlowEventType,
    LoginPayload,
    NewPasswordPayload,
    OtpPayload,
    RegistrationPayload,
    ResetEmailPayload,
)
from healthsync.schemas.response import FlowSnapshot
from healthsync.services.api_client import BackendClient
from healthsync.services.geocoding_service import ReverseGeocoder
from healthsync.services.location_service import GeolocationFailure, ReportedPositionProvider
from healthsync.services.otp_service import OtpService
from healthsync.services.session_service import SessionStore, create_storage

logger = get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# client_id -> controller
_controllers: Dict[str, AuthController] = {}
# client_id -> monotonic time of the last request
_last_seen: Dict[str, float] = {}

_clock = time.monotonic


def build_controller(client_id: str) -> AuthController:
    """Wires a controller with its own storage, backend client and OTP service."""
    store = SessionStore(create_storage(client_id))
    client = BackendClient(token_provider=lambda: store.token)
    return AuthController(
        client=client,
        session_store=store,
        otp_service=OtpService(client),
        geocoder=ReverseGeocoder(),
        client_id=client_id,
    )


async def get_or_create_controller(client_id: str) -> AuthController:
    """
    Returns the client's controller, restoring its persisted session on first use.
    """
    now = _clock()
    await evict_idle(now, keep=client_id)

    controller = _controllers.get(client_id)
    if controller is None:
        controller = build_controller(client_id)
        _controllers[client_id] = controller
        _last_seen[client_id] = now
        state = await controller.restore()
        logger.info(f"Created controller for client {client_id} in state {state.value}")
    _last_seen[client_id] = now
    return controller


async def evict_idle(now: Optional[float] = None, keep: Optional[str] = None) -> int:
    """
    Disposes controllers untouched for FLOW_IDLE_TIMEOUT_SECONDS.

    Controllers with an operation in flight are left alone.
    """
    now = _clock() if now is None else now
    cutoff = now - settings.FLOW_IDLE_TIMEOUT_SECONDS
    idle = [
        client_id
        for client_id, controller in _controllers.items()
        if client_id != keep
        and _last_seen.get(client_id, now) <= cutoff
        and not controller.busy
    ]
    for client_id in idle:
        logger.info(f"Evicting idle controller for client {client_id}")
        await dispose_controller(client_id)
    return len(idle)


async def dispose_controller(client_id: str) -> bool:
    """Closes and forgets a client's controller. The persisted session survives."""
    _last_seen.pop(client_id, None)
    controller = _controllers.pop(client_id, None)
    if controller is None:
        return False
    await controller.close()
    logger.info(f"Disposed controller for client {client_id}")
    return True


async def close_all() -> int:
    client_ids = list(_controllers)
    for client_id in client_ids:
        await dispose_controller(client_id)
    return len(client_ids)


def _parse_payload(model: Type[PayloadT], payload: Dict[str, Any]) -> PayloadT:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        details = {
            ".".join(str(part) for part in error["loc"]) or "payload": error["msg"]
            for error in e.errors()
        }
        raise ValidationError("Invalid event payload", details=details)


def _position_provider(payload: DetectedPositionPayload) -> ReportedPositionProvider:
    if payload.failure:
        try:
            failure = GeolocationFailure(payload.failure.upper())
        except ValueError:
            logger.warning(f"Unknown geolocation failure '{payload.failure}', treating as unavailable")
            failure = GeolocationFailure.POSITION_UNAVAILABLE
        return ReportedPositionProvider(failure)
    return ReportedPositionProvider(
        Coordinates(latitude=payload.latitude, longitude=payload.longitude, accuracy=payload.accuracy)
    )


async def dispatch_event(client_id: str, event: FlowEvent) -> FlowSnapshot:
    """
    Main dispatcher for flow events.

    Args:
        client_id: Opaque identifier of the UI client
        event: Event name and payload

    Returns:
        Snapshot of the client's flow after the event
    """
    controller = await get_or_create_controller(client_id)
    with LogContext(client_id=client_id, state=controller.state.value):
        logger.info(f"Dispatching {event.event.value}")
        await route_event(controller, event)
        logger.info(f"Event {event.event.value} left flow in {controller.state.value}")
    return controller.snapshot()


async def route_event(controller: AuthController, event: FlowEvent):
    """
    Routes one event to the matching controller operation.

    Navigation events raise InvalidTransitionError when not allowed; the
    I/O operations record their failures on the controller instead.
    """
    kind = event.event
    payload = event.payload

    if kind == FlowEventType.SHOW_LOGIN:
        controller.show_login()
    elif kind == FlowEventType.SHOW_REGISTER:
        controller.show_register()
    elif kind == FlowEventType.START_PASSWORD_RESET:
        controller.start_password_reset()
    elif kind == FlowEventType.CHANGE_RESET_EMAIL:
        controller.change_reset_email()
    elif kind == FlowEventType.CANCEL_OTP:
        controller.cancel_otp()

    elif kind == FlowEventType.LOGIN:
        data = _parse_payload(LoginPayload, payload)
        await controller.login(data.email, data.password)
    elif kind == FlowEventType.UPDATE_FIELD:
        data = _parse_payload(FieldUpdatePayload, payload)
        controller.update_registration_field(data.name, data.value)
    elif kind == FlowEventType.SUBMIT_REGISTRATION:
        data = _parse_payload(RegistrationPayload, payload)
        await controller.submit_registration(data.credentials, data.agreed_to_terms, data.agreed_to_privacy)
    elif kind == FlowEventType.VERIFY_REGISTRATION_CODE:
        data = _parse_payload(OtpPayload, payload)
        await controller.verify_registration_code(data.otp)
    elif kind == FlowEventType.RESEND_CODE:
        await controller.resend_code()

    elif kind == FlowEventType.SUBMIT_RESET_EMAIL:
        data = _parse_payload(ResetEmailPayload, payload)
        await controller.submit_reset_email(data.email)
    elif kind == FlowEventType.VERIFY_RESET_CODE:
        data = _parse_payload(OtpPayload, payload)
        await controller.verify_reset_code(data.otp)
    elif kind == FlowEventType.SUBMIT_NEW_PASSWORD:
        data = _parse_payload(NewPasswordPayload, payload)
        await controller.submit_new_password(data.new_password, data.confirm_new_password)

    elif kind == FlowEventType.DETECT_LOCATION:
        data = _parse_payload(DetectedPositionPayload, payload)
        await controller.detect_location(_position_provider(data))
    elif kind == FlowEventType.CONFIRM_LOCATION:
        await controller.confirm_location()
    elif kind == FlowEventType.CHOOSE_MANUAL_LOCATION:
        controller.choose_manual_location()
    elif kind == FlowEventType.BACK_TO_LOCATION_DETECTION:
        controller.back_to_location_detection()
    elif kind == FlowEventType.SUBMIT_MANUAL_LOCATION:
        data = _parse_payload(ManualLocationForm, payload)
        await controller.submit_manual_location(data)
    elif kind == FlowEventType.ABANDON_LOCATION:
        await controller.abandon_location()

    elif kind == FlowEventType.LOGOUT:
        await controller.logout()
    else:
        logger.warning(f"Unhandled event: {kind}")
