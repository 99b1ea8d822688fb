"""
healthsync/services/api_client.py

Purpose: Booking portal backend client

- Auth endpoints (login, register, reset-password)
- Passcode endpoints (send-otp, verify-otp)
- Location endpoints (check-location-status, update-location)
- Attaches the bearer token of the current session to every request
- Maps transport and HTTP failures onto the flow's error taxonomy
"""

import httpx
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from healthsync.core.config import settings
from healthsync.core.exceptions import AuthenticationError, BackendError, TransportError
from healthsync.core.logging import get_logger
from healthsync.schemas.auth import (
    AuthResponse,
    BackendResponse,
    Credentials,
    LocationRecord,
    LocationStatusResponse,
    LocationUpdateResponse,
    OtpPurpose,
    VerifyOtpResponse,
)
from healthsync.utils import constants

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

LOGIN_PATH = "/api/auth/login"
REGISTER_PATH = "/api/auth/register"
RESET_PASSWORD_PATH = "/api/auth/reset-password"
SEND_OTP_PATH = "/api/otp/send-otp"
VERIFY_OTP_PATH = "/api/otp/verify-otp"
LOCATION_STATUS_PATH = "/api/location/check-location-status/{user_id}"
UPDATE_LOCATION_PATH = "/api/location/update-location"


class BackendClient:
    """
    Thin async wrapper over the backend's REST contracts.

    One instance per signed-in client: `token_provider` is asked for the
    bearer token on every request, so a token saved after login is picked up
    by the very next call.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.BACKEND_BASE_URL,
            timeout=timeout if timeout is not None else settings.BACKEND_TIMEOUT,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        credentials_check: bool = False,
    ) -> Dict[str, Any]:
        headers = {}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error(f"Backend timeout: {method} {path}")
            raise TransportError("The server is taking too long to respond. Please try again.")
        except httpx.RequestError as e:
            logger.error(f"Network error calling backend {method} {path}: {e}")
            raise TransportError()

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            server_message = data.get("message") if isinstance(data, dict) else None
            logger.warning(
                f"Backend rejected {method} {path}: {response.status_code} {server_message or ''}".rstrip()
            )
            if credentials_check and response.status_code < 500:
                # Never echo which field was wrong
                raise AuthenticationError(constants.INVALID_CREDENTIALS)
            if response.status_code >= 500:
                raise BackendError(constants.GENERIC_RETRY, status=response.status_code)
            raise BackendError(server_message or constants.GENERIC_RETRY, status=response.status_code)

        if not isinstance(data, dict):
            logger.error(f"Backend returned a non-object body for {method} {path}")
            raise BackendError(constants.GENERIC_RETRY, status=response.status_code)

        return data

    @staticmethod
    def _parse(model: Type[ModelT], data: Dict[str, Any], path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Unexpected response shape from {path}: {e.error_count()} error(s)")
            raise BackendError(constants.GENERIC_RETRY)

    async def login(self, email: str, password: str) -> AuthResponse:
        data = await self._request(
            "POST", LOGIN_PATH,
            {"email": email.strip(), "password": password},
            credentials_check=True,
        )
        return self._parse(AuthResponse, data, LOGIN_PATH)

    async def register(self, credentials: Credentials) -> AuthResponse:
        data = await self._request("POST", REGISTER_PATH, credentials.to_register_payload())
        return self._parse(AuthResponse, data, REGISTER_PATH)

    async def send_otp(self, email: str, purpose: OtpPurpose) -> BackendResponse:
        """
        Requests a passcode e-mail. Any development echo of the code in the
        response body is dropped by the response model.
        """
        data = await self._request("POST", SEND_OTP_PATH, {"email": email, "type": purpose.value})
        result = self._parse(BackendResponse, data, SEND_OTP_PATH)
        if not result.success:
            raise BackendError(result.message or constants.OTP_SEND_FAILED)
        return result

    async def verify_otp(self, email: str, otp: str, purpose: OtpPurpose) -> VerifyOtpResponse:
        data = await self._request(
            "POST", VERIFY_OTP_PATH,
            {"email": email, "otp": otp, "type": purpose.value},
        )
        return self._parse(VerifyOtpResponse, data, VERIFY_OTP_PATH)

    async def reset_password(self, email: str, otp: str, new_password: str) -> BackendResponse:
        data = await self._request(
            "POST", RESET_PASSWORD_PATH,
            {"email": email, "otp": otp, "newPassword": new_password},
        )
        result = self._parse(BackendResponse, data, RESET_PASSWORD_PATH)
        if not result.success:
            raise BackendError(result.message or constants.RESET_FAILED)
        return result

    async def check_location_status(self, user_id: str) -> LocationStatusResponse:
        path = LOCATION_STATUS_PATH.format(user_id=user_id)
        data = await self._request("GET", path)
        return self._parse(LocationStatusResponse, data, path)

    async def update_location(self, user_id: str, record: LocationRecord) -> LocationUpdateResponse:
        data = await self._request("POST", UPDATE_LOCATION_PATH, record.to_update_payload(user_id))
        result = self._parse(LocationUpdateResponse, data, UPDATE_LOCATION_PATH)
        if not result.success:
            raise BackendError(result.message or constants.LOCATION_SAVE_FAILED)
        return result

    async def close(self):
        await self._client.aclose()
