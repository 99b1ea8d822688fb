"""
healthsync/flow/states.py

Purpose: Defines all states of the access and onboarding flow

- Enum of every step (LOGIN_FORM, OTP_PENDING, LOCATION_REQUIRED, ...)
- Single source of truth for flow stages
- State transition validation
- Metadata for each state (display name, reset progress, going back)
"""

from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass


class AuthState(str, Enum):
    """
    Every step a client can be in between "not signed in" and the dashboard.
    """

    # Credential forms
    LOGIN_FORM = "LOGIN_FORM"
    REGISTER_FORM = "REGISTER_FORM"
    SUBMITTING = "SUBMITTING"

    # Registration passcode (purpose carried by the controller)
    OTP_PENDING = "OTP_PENDING"

    # First-time location capture
    LOCATION_REQUIRED = "LOCATION_REQUIRED"

    # Signed in and handed to the application shell
    AUTHENTICATED = "AUTHENTICATED"

    # Password reset
    PASSWORD_RESET_EMAIL = "PASSWORD_RESET_EMAIL"
    PASSWORD_RESET_OTP = "PASSWORD_RESET_OTP"
    PASSWORD_RESET_NEW_PASSWORD = "PASSWORD_RESET_NEW_PASSWORD"


@dataclass
class StateMetadata:
    """
    Metadata associated with each flow state.
    """
    name: AuthState
    display_name: str
    step_number: Optional[int] = None  # For reset progress ("Step 2 of 3")
    total_steps: int = 3
    requires_user_input: bool = True
    can_go_back: bool = False
    description: str = ""


STATE_METADATA: Dict[AuthState, StateMetadata] = {
    AuthState.LOGIN_FORM: StateMetadata(
        name=AuthState.LOGIN_FORM,
        display_name="Sign In",
        description="Email and password form"
    ),
    AuthState.REGISTER_FORM: StateMetadata(
        name=AuthState.REGISTER_FORM,
        display_name="Create Patient Account",
        can_go_back=True,
        description="Registration form with live validation and consents"
    ),
    AuthState.SUBMITTING: StateMetadata(
        name=AuthState.SUBMITTING,
        display_name="Signing in...",
        requires_user_input=False,
        description="Credentials sent, waiting for the backend"
    ),
    AuthState.OTP_PENDING: StateMetadata(
        name=AuthState.OTP_PENDING,
        display_name="Verify Your Email",
        can_go_back=True,
        description="Six-digit code e-mailed, waiting for the user to enter it"
    ),
    AuthState.LOCATION_REQUIRED: StateMetadata(
        name=AuthState.LOCATION_REQUIRED,
        display_name="Set Your Location",
        can_go_back=True,
        description="First-time location capture gating the dashboard"
    ),
    AuthState.AUTHENTICATED: StateMetadata(
        name=AuthState.AUTHENTICATED,
        display_name="Dashboard",
        requires_user_input=False,
        description="Session handed to the application shell"
    ),
    AuthState.PASSWORD_RESET_EMAIL: StateMetadata(
        name=AuthState.PASSWORD_RESET_EMAIL,
        display_name="Reset Password",
        step_number=1,
        can_go_back=True,
        description="Collect the account email"
    ),
    AuthState.PASSWORD_RESET_OTP: StateMetadata(
        name=AuthState.PASSWORD_RESET_OTP,
        display_name="Reset Password",
        step_number=2,
        can_go_back=True,
        description="Verify the e-mailed code"
    ),
    AuthState.PASSWORD_RESET_NEW_PASSWORD: StateMetadata(
        name=AuthState.PASSWORD_RESET_NEW_PASSWORD,
        display_name="Reset Password",
        step_number=3,
        can_go_back=True,
        description="Choose a new password"
    ),
}


# Valid state transitions - prevents skipping steps
STATE_TRANSITIONS: Dict[AuthState, List[AuthState]] = {
    AuthState.LOGIN_FORM: [
        AuthState.SUBMITTING,
        AuthState.REGISTER_FORM,
        AuthState.PASSWORD_RESET_EMAIL,
        AuthState.LOCATION_REQUIRED,  # Restored session without location
        AuthState.AUTHENTICATED,  # Restored session
    ],
    AuthState.REGISTER_FORM: [
        AuthState.OTP_PENDING,
        AuthState.LOGIN_FORM,
    ],
    AuthState.SUBMITTING: [
        AuthState.LOCATION_REQUIRED,
        AuthState.AUTHENTICATED,
        AuthState.LOGIN_FORM,  # Rejected credentials
    ],
    AuthState.OTP_PENDING: [
        AuthState.LOCATION_REQUIRED,  # Verified and account created
        AuthState.REGISTER_FORM,  # Go back
        AuthState.LOGIN_FORM,
    ],
    AuthState.LOCATION_REQUIRED: [
        AuthState.AUTHENTICATED,
        AuthState.LOGIN_FORM,  # Abandoned, session rolled back
    ],
    AuthState.AUTHENTICATED: [
        AuthState.LOGIN_FORM,  # Logout
    ],
    AuthState.PASSWORD_RESET_EMAIL: [
        AuthState.PASSWORD_RESET_OTP,
        AuthState.LOGIN_FORM,
    ],
    AuthState.PASSWORD_RESET_OTP: [
        AuthState.PASSWORD_RESET_NEW_PASSWORD,
        AuthState.PASSWORD_RESET_EMAIL,  # Change email
        AuthState.LOGIN_FORM,
    ],
    AuthState.PASSWORD_RESET_NEW_PASSWORD: [
        AuthState.LOGIN_FORM,  # Reset done or cancelled
    ],
}


def is_valid_transition(from_state: AuthState, to_state: AuthState) -> bool:
    """
    Checks if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = STATE_TRANSITIONS.get(from_state, [])
    return to_state in allowed_transitions


def get_state_metadata(state: AuthState) -> StateMetadata:
    """
    Retrieves metadata for a given state.
    """
    return STATE_METADATA.get(state, StateMetadata(
        name=state,
        display_name=state.value,
        description="Unknown state"
    ))


def get_progress_message(state: AuthState) -> str:
    """
    Progress line for multi-step screens (e.g., "Step 2 of 3").
    """
    metadata = get_state_metadata(state)
    if metadata.step_number and metadata.step_number > 0:
        return f"Step {metadata.step_number} of {metadata.total_steps}"
    return ""
