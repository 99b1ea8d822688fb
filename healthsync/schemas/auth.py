"""
healthsync/schemas/auth.py

Purpose: Data model of the access and onboarding flow

- Credentials held by the registration form
- Identity blobs, roles and the Session tagged union
- Location records and coordinates
- Backend response shapes (extra keys ignored, so dev-only echoes never surface)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """Identity kinds. The value doubles as the persisted storage key."""
    PATIENT = "user"
    ADMIN = "admin"
    RECEPTIONIST = "receptionist"

    @property
    def requires_location(self) -> bool:
        return self is Role.PATIENT

    @classmethod
    def from_identity(cls, identity: Dict[str, Any]) -> "Role":
        role = str(identity.get("role") or "").lower()
        if role == "admin":
            return cls.ADMIN
        if role == "receptionist":
            return cls.RECEPTIONIST
        return cls.PATIENT


class OtpPurpose(str, Enum):
    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"


class Credentials(BaseModel):
    """
    Registration form contents. Serialized with the backend's camelCase keys.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    phone: str = ""
    date_of_birth: str = ""
    gender: str = ""

    # Optional profile fields, sent with create-account as entered
    emergency_contact: str = ""
    emergency_phone: str = ""
    medical_history: str = ""
    allergies: str = ""
    insurance: str = ""

    def to_register_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True)
        payload["email"] = self.email.strip()
        payload["emailVerified"] = True
        return payload


def has_identity_shape(blob: Any) -> bool:
    """Minimal trust check for a persisted identity: an object carrying name and email."""
    return isinstance(blob, dict) and "name" in blob and "email" in blob


@dataclass(frozen=True)
class LoggedOut:
    """Nobody is signed in."""


@dataclass(frozen=True)
class LoggedIn:
    role: Role
    identity: Dict[str, Any]
    token: Optional[str] = None
    location_captured: bool = False

    @property
    def user_id(self) -> Optional[str]:
        value = self.identity.get("id") or self.identity.get("_id")
        return str(value) if value is not None else None

    @property
    def name(self) -> str:
        return str(self.identity.get("name", ""))

    @property
    def is_ready(self) -> bool:
        """True once the identity may be handed to the authenticated shell."""
        return self.location_captured or not self.role.requires_location


Session = Union[LoggedOut, LoggedIn]


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class LocationSource(str, Enum):
    GPS = "gps"
    MANUAL = "manual"


class LocationRecord(BaseModel):
    source: LocationSource
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: str
    state: str
    country: str
    pincode: str

    def to_update_payload(self, user_id: str) -> Dict[str, Any]:
        return {
            "userId": user_id,
            "latitude": self.latitude if self.latitude is not None else 0,
            "longitude": self.longitude if self.longitude is not None else 0,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "pincode": self.pincode,
        }


class ManualLocationForm(BaseModel):
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    pincode: str = Field(default="", max_length=10)


@dataclass
class ResolvedAddress:
    """Reverse geocoding result; every field is filled, "Unknown" when unresolved."""
    address: str
    city: str
    state: str
    country: str
    pincode: str
    locality: Optional[str] = None
    provider: Optional[str] = None


# ============================================================
# BACKEND RESPONSES
# ============================================================

class BackendResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = True
    message: Optional[str] = None


class AuthResponse(BackendResponse):
    user: Dict[str, Any]
    token: Optional[str] = None


class VerifyOtpResponse(BackendResponse):
    verified: bool = False


class LocationStatusResponse(BackendResponse):
    needs_location_setup: bool = Field(default=True, alias="needsLocationSetup")
    location_captured: bool = Field(default=False, alias="locationCaptured")


class LocationUpdateResponse(BackendResponse):
    location: Optional[Dict[str, Any]] = None
    location_captured: bool = Field(default=False, alias="locationCaptured")
