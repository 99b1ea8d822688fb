"""
healthsync/core/config.py

Purpose: Settings for the access flow service

Everything is read from the environment or `.env`: the portal backend URL,
OTP cooldown and attempt cap, geolocation timeouts, geocoder endpoints, the
session storage backend and MongoDB.
"""

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Environment-backed settings. Names match the environment variables exactly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Booking portal backend
    BACKEND_BASE_URL: str = Field(
        default="http://localhost:5000",
        description="Base URL of the booking portal backend (auth, otp, location routes)"
    )
    BACKEND_TIMEOUT: float = Field(
        default=15.0,
        description="Backend request timeout in seconds"
    )

    # One-time passcodes
    OTP_LENGTH: int = Field(
        default=6,
        description="Number of digits in an e-mailed passcode"
    )
    OTP_RESEND_COOLDOWN_SECONDS: int = Field(
        default=60,
        description="Seconds before another passcode may be requested"
    )
    OTP_MAX_VERIFY_ATTEMPTS: Optional[int] = Field(
        default=None,
        description="Verification attempts per passcode (unset = no client-side cap)"
    )

    # Location capture
    GEOLOCATION_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for the one-shot position request"
    )
    BIGDATACLOUD_REVERSE_URL: str = Field(
        default="https://api.bigdatacloud.net/data/reverse-geocode-client",
        description="Primary reverse geocoding endpoint"
    )
    NOMINATIM_REVERSE_URL: str = Field(
        default="https://nominatim.openstreetmap.org/reverse",
        description="Fallback reverse geocoding endpoint"
    )
    GEOCODER_USER_AGENT: str = Field(
        default="HealthSync-App",
        description="User-Agent sent to Nominatim (required by its usage policy)"
    )
    GEOCODER_TIMEOUT: float = Field(
        default=10.0,
        description="Reverse geocoding timeout in seconds"
    )
    DEFAULT_COUNTRY: str = Field(
        default="India",
        description="Country prefilled on the manual location form"
    )

    # Flow registry
    FLOW_IDLE_TIMEOUT_SECONDS: float = Field(
        default=1800.0,
        description="Flow controllers untouched this long are closed (persisted sessions survive)"
    )

    # Session storage
    SESSION_STORAGE_BACKEND: Literal["memory", "file", "mongo"] = Field(
        default="memory",
        description="Where identity slots and the bearer token are persisted"
    )
    SESSION_STORAGE_PATH: Optional[str] = Field(
        default=None,
        description="Directory for the file storage backend"
    )
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (mongo storage backend)"
    )
    MONGODB_DB_NAME: str = Field(
        default="healthsync",
        description="MongoDB database name"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("BACKEND_BASE_URL")
    @classmethod
    def validate_backend_url(cls, v: str, info: ValidationInfo) -> str:
        """Ensure production does not point at a local backend."""
        if info.data.get("ENVIRONMENT") == "production" and "localhost" in v:
            raise ValueError("BACKEND_BASE_URL must not point at localhost in production environment")
        return v.rstrip("/")

    @field_validator("OTP_MAX_VERIFY_ATTEMPTS")
    @classmethod
    def validate_attempts(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("OTP_MAX_VERIFY_ATTEMPTS must be at least 1 when set")
        return v

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()


def validate_settings():
    """
    Cross-field checks that pydantic cannot express per field.

    Raises:
        ValueError: listing every problem found
    """
    errors = []

    if not settings.BACKEND_BASE_URL:
        errors.append("BACKEND_BASE_URL is required")

    if settings.OTP_RESEND_COOLDOWN_SECONDS < 0:
        errors.append("OTP_RESEND_COOLDOWN_SECONDS must not be negative")

    if settings.SESSION_STORAGE_BACKEND == "file" and not settings.SESSION_STORAGE_PATH:
        errors.append("SESSION_STORAGE_PATH is required for the file storage backend")

    if settings.SESSION_STORAGE_BACKEND == "mongo" and not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required for the mongo storage backend")

    # production only
    if settings.is_production and settings.SESSION_STORAGE_BACKEND == "memory":
        errors.append("SESSION_STORAGE_BACKEND=memory loses sessions on restart; use file or mongo in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
