"""
healthsync/schemas/flow.py

Purpose: Flow event payload schemas

- Validates events posted by the UI shell
- One payload model per event that carries data
- Keys follow the portal frontend's camelCase
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from healthsync.schemas.auth import Credentials


class FlowEventType(str, Enum):
    # Navigation
    SHOW_LOGIN = "show_login"
    SHOW_REGISTER = "show_register"
    START_PASSWORD_RESET = "start_password_reset"
    CHANGE_RESET_EMAIL = "change_reset_email"
    CANCEL_OTP = "cancel_otp"

    # Credentials
    LOGIN = "login"
    UPDATE_FIELD = "update_field"
    SUBMIT_REGISTRATION = "submit_registration"
    VERIFY_REGISTRATION_CODE = "verify_registration_code"
    RESEND_CODE = "resend_code"

    # Password reset
    SUBMIT_RESET_EMAIL = "submit_reset_email"
    VERIFY_RESET_CODE = "verify_reset_code"
    SUBMIT_NEW_PASSWORD = "submit_new_password"

    # Location
    DETECT_LOCATION = "detect_location"
    CONFIRM_LOCATION = "confirm_location"
    CHOOSE_MANUAL_LOCATION = "choose_manual_location"
    BACK_TO_LOCATION_DETECTION = "back_to_location_detection"
    SUBMIT_MANUAL_LOCATION = "submit_manual_location"
    ABANDON_LOCATION = "abandon_location"

    # Session
    LOGOUT = "logout"


class FlowEvent(BaseModel):
    event: FlowEventType
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event": "login",
                "payload": {"email": "patient@example.com", "password": "Passw0rd!"}
            }
        }
    )


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginPayload(CamelModel):
    email: str = ""
    password: str = ""


class FieldUpdatePayload(CamelModel):
    name: str
    value: str = ""


class RegistrationPayload(CamelModel):
    credentials: Optional[Credentials] = None
    agreed_to_terms: bool = False
    agreed_to_privacy: bool = False


class OtpPayload(CamelModel):
    otp: str = ""


class ResetEmailPayload(CamelModel):
    email: str = ""


class NewPasswordPayload(CamelModel):
    new_password: str = ""
    confirm_new_password: str = ""


class DetectedPositionPayload(CamelModel):
    """
    What the device's geolocation produced: a position, or a failure reason
    (PERMISSION_DENIED, POSITION_UNAVAILABLE, TIMEOUT, UNSUPPORTED).
    """
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    accuracy: Optional[float] = None
    failure: Optional[str] = None

    @model_validator(mode="after")
    def check_position_or_failure(self):
        has_position = self.latitude is not None and self.longitude is not None
        if not has_position and not self.failure:
            raise ValueError("Either latitude/longitude or a failure reason is required")
        return self

