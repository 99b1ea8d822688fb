from pydantic import BaseModel
from typing import Optional, Any, Dict


class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None


class FlowSnapshot(BaseModel):
    """
    What the UI shell needs to render the active step of the access flow.
    """
    client_id: str
    state: str
    step: str
    progress: str = ""
    error: Optional[str] = None
    notice: Optional[str] = None
    field_errors: Dict[str, str] = {}
    busy: bool = False
    otp_purpose: Optional[str] = None
    otp_email: Optional[str] = None
    can_resend: bool = True
    cooldown_remaining_seconds: int = 0
    attempts_remaining: Optional[int] = None
    password_strength: int = 0
    password_strength_label: Optional[str] = None
    location_step: Optional[str] = None
    detected_location: Optional[Dict[str, Any]] = None
    role: Optional[str] = None
    identity_name: Optional[str] = None
