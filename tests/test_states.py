import pytest

from healthsync.flow.states import (
    STATE_TRANSITIONS,
    AuthState,
    get_progress_message,
    get_state_metadata,
    is_valid_transition,
)


def test_every_state_has_transitions():
    assert set(STATE_TRANSITIONS) == set(AuthState)


@pytest.mark.parametrize("source", list(AuthState))
def test_authenticated_only_reached_from_login_submit_or_location(source):
    allowed = is_valid_transition(source, AuthState.AUTHENTICATED)
    assert allowed == (source in {AuthState.LOGIN_FORM, AuthState.SUBMITTING, AuthState.LOCATION_REQUIRED})


def test_registration_cannot_skip_otp():
    assert not is_valid_transition(AuthState.REGISTER_FORM, AuthState.LOCATION_REQUIRED)
    assert is_valid_transition(AuthState.OTP_PENDING, AuthState.LOCATION_REQUIRED)


def test_reset_steps_in_order():
    assert not is_valid_transition(AuthState.PASSWORD_RESET_EMAIL, AuthState.PASSWORD_RESET_NEW_PASSWORD)
    assert get_progress_message(AuthState.PASSWORD_RESET_EMAIL) == "Step 1 of 3"
    assert get_progress_message(AuthState.PASSWORD_RESET_NEW_PASSWORD) == "Step 3 of 3"
    assert get_progress_message(AuthState.LOGIN_FORM) == ""


def test_metadata_lookup():
    assert get_state_metadata(AuthState.OTP_PENDING).display_name == "Verify Your Email"
    assert not get_state_metadata(AuthState.SUBMITTING).requires_user_input
