from typing import Optional, Any


class HealthSyncError(Exception):
    """
    Base exception for the access and onboarding flow.

    `message` is always safe to show to the person using the portal.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ResourceNotFoundError(HealthSyncError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ValidationError(HealthSyncError):
    """
    Raised when client-side validation fails. `details` maps field names to reasons.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)


class AuthenticationError(HealthSyncError):
    """
    Raised when the backend rejects credentials. Never names the offending field.
    """
    def __init__(self, message: str = "Invalid email or password", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class OtpVerificationError(HealthSyncError):
    """
    Raised when a passcode is malformed, wrong or expired. The challenge stays open.
    """
    def __init__(self, message: str = "Invalid or expired OTP", details: Optional[Any] = None):
        super().__init__(message, code="OTP_INVALID", status_code=400, details=details)


class BackendError(HealthSyncError):
    """
    Raised when the backend answers with an error status or an unusable body.
    """
    def __init__(self, message: str = "Request failed. Please try again.", status: Optional[int] = None, details: Optional[Any] = None):
        self.status = status
        super().__init__(message, code="BACKEND_ERROR", status_code=502, details=details)


class TransportError(HealthSyncError):
    """
    Raised when the backend cannot be reached (timeout, DNS, refused connection).
    """
    def __init__(self, message: str = "Unable to reach the server. Please check your connection and try again.", details: Optional[Any] = None):
        super().__init__(message, code="NETWORK_ERROR", status_code=503, details=details)


class GeolocationError(HealthSyncError):
    """
    Raised by a geolocation provider. `reason` is one of the GeolocationFailure values.
    """
    def __init__(self, reason: str, message: Optional[str] = None, details: Optional[Any] = None):
        self.reason = reason
        super().__init__(message or reason, code="GEOLOCATION_ERROR", status_code=400, details=details)


class InvalidTransitionError(HealthSyncError):
    """
    Raised when an operation is not allowed from the current flow state.
    """
    def __init__(self, message: str = "That action is not available right now", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_TRANSITION", status_code=409, details=details)
