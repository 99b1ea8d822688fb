"""
healthsync/flow/controller.py

Purpose: Orchestrates the access and onboarding journeys

- Login, registration (OTP gated) and password reset (OTP gated)
- Promotes a session to AUTHENTICATED only after location capture
- Enforces the transition table from healthsync.flow.states
- Turns every failure into a message local to the active step
- One in-flight request per operation; late results after navigation are dropped
"""

import functools
from datetime import date
from typing import Dict, Optional

from healthsync.core.exceptions import BackendError, HealthSyncError, InvalidTransitionError, ValidationError
from healthsync.core.logging import get_logger, LogContext
from healthsync.flow.states import AuthState, is_valid_transition, get_progress_message, get_state_metadata
from healthsync.schemas.auth import Credentials, LoggedIn, ManualLocationForm, OtpPurpose, Role
from healthsync.schemas.response import FlowSnapshot
from healthsync.services.api_client import BackendClient
from healthsync.services.geocoding_service import ReverseGeocoder
from healthsync.services.location_service import GeolocationProvider, LocationOnboarding
from healthsync.services.otp_service import OtpService
from healthsync.services.session_service import SessionStore
from healthsync.utils import constants
from healthsync.utils.validation_utils import (
    password_strength,
    password_strength_label,
    validate_confirm_password,
    validate_email,
    validate_password,
    validate_registration,
    validate_registration_field,
)

logger = get_logger(__name__)


class StaleResultError(Exception):
    """A response arrived after the user navigated away from the step that asked for it."""


def flow_operation(name: str):
    """
    Wraps a controller operation that suspends on I/O.

    - a second call while the first is in flight is ignored
    - errors become `error` / `field_errors` on the controller
    - results that arrive after navigation are discarded

    The wrapped coroutine always returns the resulting state.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "AuthController", *args, **kwargs) -> AuthState:
            if name in self._in_flight:
                logger.info(f"{name} already in flight, ignoring duplicate trigger")
                return self.state

            self._in_flight.add(name)
            generation = self._generation
            self.error = None

            with LogContext(client_id=self.client_id, state=self.state.value):
                try:
                    await func(self, *args, **kwargs)
                except StaleResultError:
                    logger.info(f"Discarded {name} result, user navigated away")
                except HealthSyncError as e:
                    if self._generation == generation:
                        self._fail(e)
                except Exception:
                    logger.error(f"Unexpected error during {name}", exc_info=True)
                    if self._generation == generation:
                        self.error = constants.GENERIC_RETRY
                finally:
                    self._in_flight.discard(name)
            return self.state
        return wrapper
    return decorator


class AuthController:
    """
    State machine for one client (browser tab, device or test).

    The controller is the only writer of the client's SessionStore apart from
    LocationOnboarding, which alone flips `locationCaptured`.
    """

    def __init__(
        self,
        client: BackendClient,
        session_store: SessionStore,
        otp_service: Optional[OtpService] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        client_id: str = "local",
        today: Optional[date] = None,
    ):
        self.client_id = client_id
        self._client = client
        self._store = session_store
        self._otp = otp_service or OtpService(client)
        self._geocoder = geocoder
        self._today = today

        self.state = AuthState.LOGIN_FORM
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.field_errors: Dict[str, str] = {}

        self.credentials = Credentials()
        self.otp_purpose: Optional[OtpPurpose] = None
        self.reset_email: Optional[str] = None
        self.location: Optional[LocationOnboarding] = None

        self._reset_code: Optional[str] = None
        self._registration_verified = False
        self._in_flight: set = set()
        self._generation = 0

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    @property
    def session_store(self) -> SessionStore:
        return self._store

    @property
    def otp_service(self) -> OtpService:
        return self._otp

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    def _transition(self, to_state: AuthState):
        if to_state == self.state:
            return
        if not is_valid_transition(self.state, to_state):
            logger.warning(f"Invalid transition attempted: {self.state.value} -> {to_state.value}")
            raise InvalidTransitionError()
        logger.info(f"State: {self.state.value} -> {to_state.value}")
        self.state = to_state

    def _require(self, *states: AuthState):
        if self.state not in states:
            raise InvalidTransitionError()

    def _ensure_current(self, generation: int):
        if generation != self._generation:
            raise StaleResultError()

    def _navigate(self):
        """Leaving a step: drop its messages and any response still on the way."""
        self._generation += 1
        self.error = None
        self.notice = None
        self.field_errors = {}

    def _fail(self, exc: HealthSyncError):
        self.error = exc.message
        if isinstance(exc, ValidationError) and isinstance(exc.details, dict):
            self.field_errors.update(exc.details)
        logger.info(f"Step failed: {exc.code}")

    def _clear_forms(self):
        self.credentials = Credentials()
        self.otp_purpose = None
        self.reset_email = None
        self._reset_code = None
        self._registration_verified = False
        self._otp.cancel()

    def _enter_location_required(self):
        self.location = LocationOnboarding(self._store, self._client, self._geocoder)
        self._transition(AuthState.LOCATION_REQUIRED)

    def _promote(self):
        """Hands the session to the application shell; refuses while location is missing."""
        if not self._store.is_ready:
            raise InvalidTransitionError(constants.LOCATION_PROMPT)
        self._transition(AuthState.AUTHENTICATED)
        self.location = None

    @staticmethod
    def _require_user_id(identity: Dict, role: Role):
        """A patient identity needs an id to store the location against."""
        if role.requires_location and not LoggedIn(role=role, identity=identity).user_id:
            logger.error("Backend returned a patient identity without an id")
            raise BackendError(constants.GENERIC_RETRY)

    async def _needs_location_setup(self, session: LoggedIn) -> bool:
        if not session.role.requires_location or session.location_captured:
            return False
        try:
            status = await self._client.check_location_status(session.user_id)
        except HealthSyncError as e:
            # Unknown status is treated as "not captured yet"
            logger.warning(f"Location status check failed ({e.code}), requiring setup")
            return True
        return status.needs_location_setup

    # ------------------------------------------------------------
    # Start-up and navigation
    # ------------------------------------------------------------

    async def restore(self) -> AuthState:
        """Resumes from the persisted session on application start."""
        with LogContext(client_id=self.client_id):
            session = await self._store.load()
            if self.state != AuthState.LOGIN_FORM or not isinstance(session, LoggedIn):
                return self.state
            if session.is_ready:
                self._transition(AuthState.AUTHENTICATED)
            elif not session.user_id:
                logger.warning("Stored patient identity has no id, signing out")
                await self._store.clear()
            else:
                self._enter_location_required()
            return self.state

    def show_register(self) -> AuthState:
        self._require(AuthState.LOGIN_FORM)
        self._navigate()
        self._clear_forms()
        self._transition(AuthState.REGISTER_FORM)
        return self.state

    def show_login(self) -> AuthState:
        """Back to the sign-in form from registration, OTP entry or password reset."""
        self._require(
            AuthState.LOGIN_FORM,
            AuthState.REGISTER_FORM,
            AuthState.OTP_PENDING,
            AuthState.PASSWORD_RESET_EMAIL,
            AuthState.PASSWORD_RESET_OTP,
            AuthState.PASSWORD_RESET_NEW_PASSWORD,
        )
        self._navigate()
        self._clear_forms()
        self._transition(AuthState.LOGIN_FORM)
        return self.state

    # ------------------------------------------------------------
    # Login
    # ------------------------------------------------------------

    @flow_operation("login")
    async def login(self, email: str, password: str):
        self._require(AuthState.LOGIN_FORM)
        email = (email or "").strip()
        self.field_errors = {}
        self.notice = None

        # Presence only; the backend is authoritative for login
        if not email or not password:
            if not email:
                self.field_errors["email"] = constants.LOGIN_FIELDS_REQUIRED
            if not password:
                self.field_errors["password"] = constants.LOGIN_FIELDS_REQUIRED
            raise ValidationError(constants.LOGIN_FIELDS_REQUIRED)

        generation = self._generation
        self._transition(AuthState.SUBMITTING)
        try:
            auth = await self._client.login(email, password)
            self._ensure_current(generation)
            role = Role.from_identity(auth.user)
            self._require_user_id(auth.user, role)
            session = await self._store.save(auth.user, role, auth.token)
            needs_setup = await self._needs_location_setup(session)
            self._ensure_current(generation)
        except Exception:
            if self._generation == generation and self.state == AuthState.SUBMITTING:
                self.state = AuthState.LOGIN_FORM
            raise

        if not needs_setup and not session.is_ready:
            # Backend already holds a location for this account
            session = await self._store.save(session.identity, session.role, session.token, location_captured=True)

        self.notice = constants.WELCOME_BACK.format(name=session.name)
        with LogContext(user_id=session.user_id, role=session.role.value):
            if needs_setup:
                self._enter_location_required()
            else:
                self._transition(AuthState.AUTHENTICATED)

    # ------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------

    def update_registration_field(self, name: str, value: str) -> Optional[str]:
        """
        Stores one registration field and re-validates it.

        Returns:
            The field's current error, or None
        """
        self._require(AuthState.REGISTER_FORM)
        if name not in Credentials.model_fields:
            # Accept the frontend's camelCase spelling too
            by_alias = {info.alias: field for field, info in Credentials.model_fields.items()}
            if name not in by_alias:
                raise ValidationError(f"Unknown field: {name}")
            name = by_alias[name]

        setattr(self.credentials, name, value)
        reason = validate_registration_field(name, value, self.credentials, self._today)
        if reason:
            self.field_errors[name] = reason
        else:
            self.field_errors.pop(name, None)

        # A new password can fix or break an already-typed confirmation
        if name == "password" and self.credentials.confirm_password:
            mismatch = validate_confirm_password(value, self.credentials.confirm_password)
            if mismatch:
                self.field_errors["confirm_password"] = mismatch
            else:
                self.field_errors.pop("confirm_password", None)
        return reason

    @flow_operation("register")
    async def submit_registration(self, credentials: Optional[Credentials] = None,
                                  agreed_to_terms: bool = False, agreed_to_privacy: bool = False):
        self._require(AuthState.REGISTER_FORM)
        if credentials is not None:
            self.credentials = credentials

        errors = validate_registration(self.credentials, agreed_to_terms, agreed_to_privacy, self._today)
        self.field_errors = errors
        if errors:
            raise ValidationError(constants.FIX_FORM_ERRORS, details=dict(errors))

        self.otp_purpose = OtpPurpose.REGISTRATION
        self._registration_verified = False
        self._transition(AuthState.OTP_PENDING)

        # The code is issued on entering the step; a failed send leaves the
        # user on the OTP step with resend available
        generation = self._generation
        if await self._otp.request_code(self.credentials.email, OtpPurpose.REGISTRATION):
            self._ensure_current(generation)
            self.notice = constants.OTP_SENT.format(email=self.credentials.email.strip())

    @flow_operation("verify_registration")
    async def verify_registration_code(self, code: str):
        """
        Verifies the e-mailed code, then creates the account. Create-account
        is issued only after verify-otp answered `verified: true`.
        """
        self._require(AuthState.OTP_PENDING)
        generation = self._generation

        if not self._registration_verified:
            await self._otp.verify(self.credentials.email, code, OtpPurpose.REGISTRATION)
            self._ensure_current(generation)
            # A create-account failure now retries without re-verifying
            self._registration_verified = True

        auth = await self._client.register(self.credentials)
        self._ensure_current(generation)
        self._require_user_id(auth.user, Role.PATIENT)
        session = await self._store.save(auth.user, Role.PATIENT, auth.token, location_captured=False)

        self.credentials = Credentials()
        self.otp_purpose = None
        self._registration_verified = False
        self.field_errors = {}
        self.notice = constants.WELCOME_BACK.format(name=session.name)

        with LogContext(user_id=session.user_id):
            logger.info("Account created")
            # New accounts always capture a location first
            self._enter_location_required()

    def cancel_otp(self) -> AuthState:
        """Back from OTP entry to the (still filled) registration form."""
        self._require(AuthState.OTP_PENDING)
        self._otp.cancel(OtpPurpose.REGISTRATION)
        self._navigate()
        self.otp_purpose = None
        self._registration_verified = False
        self._transition(AuthState.REGISTER_FORM)
        return self.state

    @flow_operation("resend_code")
    async def resend_code(self):
        self._require(AuthState.OTP_PENDING, AuthState.PASSWORD_RESET_OTP)
        if self.state == AuthState.OTP_PENDING:
            email, purpose = self.credentials.email, OtpPurpose.REGISTRATION
        else:
            email, purpose = self.reset_email, OtpPurpose.PASSWORD_RESET

        generation = self._generation
        if await self._otp.request_code(email, purpose):
            self._ensure_current(generation)
            self.notice = constants.OTP_RESENT

    # ------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------

    def start_password_reset(self) -> AuthState:
        self._require(AuthState.LOGIN_FORM)
        self._navigate()
        self._clear_forms()
        self._transition(AuthState.PASSWORD_RESET_EMAIL)
        return self.state

    def change_reset_email(self) -> AuthState:
        self._require(AuthState.PASSWORD_RESET_OTP)
        self._otp.cancel(OtpPurpose.PASSWORD_RESET)
        self._navigate()
        self._transition(AuthState.PASSWORD_RESET_EMAIL)
        return self.state

    @flow_operation("reset_email")
    async def submit_reset_email(self, email: str):
        self._require(AuthState.PASSWORD_RESET_EMAIL)
        email = (email or "").strip()
        self.field_errors = {}

        reason = validate_email(email)
        if reason:
            raise ValidationError(reason, details={"email": reason})

        generation = self._generation
        if not await self._otp.request_code(email, OtpPurpose.PASSWORD_RESET):
            return
        self._ensure_current(generation)

        self.reset_email = email
        self.otp_purpose = OtpPurpose.PASSWORD_RESET
        self._transition(AuthState.PASSWORD_RESET_OTP)
        self.notice = constants.RESET_OTP_SENT

    @flow_operation("verify_reset")
    async def verify_reset_code(self, code: str):
        self._require(AuthState.PASSWORD_RESET_OTP)
        generation = self._generation

        verified = await self._otp.verify(self.reset_email, code, OtpPurpose.PASSWORD_RESET)
        self._ensure_current(generation)

        self._reset_code = verified.code
        self._transition(AuthState.PASSWORD_RESET_NEW_PASSWORD)
        self.notice = constants.OTP_VERIFIED

    @flow_operation("reset_password")
    async def submit_new_password(self, new_password: str, confirm_new_password: str):
        self._require(AuthState.PASSWORD_RESET_NEW_PASSWORD)
        errors = {}
        reason = validate_password(new_password)
        if reason:
            errors["new_password"] = reason
        mismatch = validate_confirm_password(new_password, confirm_new_password)
        if mismatch:
            errors["confirm_new_password"] = mismatch
        self.field_errors = errors
        if errors:
            raise ValidationError(next(iter(errors.values())), details=dict(errors))

        generation = self._generation
        await self._client.reset_password(self.reset_email, self._reset_code, new_password)
        self._ensure_current(generation)

        self._navigate()
        self._clear_forms()
        self._transition(AuthState.LOGIN_FORM)
        self.notice = constants.RESET_SUCCESS

    # ------------------------------------------------------------
    # Location capture
    # ------------------------------------------------------------

    def _onboarding(self) -> LocationOnboarding:
        self._require(AuthState.LOCATION_REQUIRED)
        if self.location is None:
            self.location = LocationOnboarding(self._store, self._client, self._geocoder)
        return self.location

    @flow_operation("detect_location")
    async def detect_location(self, provider: Optional[GeolocationProvider]):
        onboarding = self._onboarding()
        self.notice = None
        await onboarding.detect(provider)
        if onboarding.reason:
            self.notice = onboarding.reason
        elif onboarding.detected is not None:
            self.notice = constants.LOCATION_DETECTED

    @flow_operation("confirm_location")
    async def confirm_location(self):
        onboarding = self._onboarding()
        generation = self._generation
        await onboarding.confirm_detected()
        self._ensure_current(generation)
        self._promote()
        self.notice = constants.LOCATION_SAVED

    def choose_manual_location(self) -> AuthState:
        self._onboarding().choose_manual()
        self.error = None
        return self.state

    def back_to_location_detection(self) -> AuthState:
        self._onboarding().back_to_detection()
        self.error = None
        self.field_errors = {}
        return self.state

    @flow_operation("manual_location")
    async def submit_manual_location(self, form: ManualLocationForm):
        onboarding = self._onboarding()
        self.field_errors = {}
        generation = self._generation
        await onboarding.submit_manual(form)
        self._ensure_current(generation)
        self._promote()
        self.notice = constants.LOCATION_SAVED

    @flow_operation("abandon_location")
    async def abandon_location(self):
        """The user left location setup: roll the fresh session back entirely."""
        self._require(AuthState.LOCATION_REQUIRED)
        self._navigate()
        self.location = None
        await self._store.clear()
        self._transition(AuthState.LOGIN_FORM)

    # ------------------------------------------------------------
    # Logout and disposal
    # ------------------------------------------------------------

    @flow_operation("logout")
    async def logout(self):
        self._require(AuthState.AUTHENTICATED, AuthState.LOCATION_REQUIRED, AuthState.LOGIN_FORM)
        self._navigate()
        self.location = None
        self._clear_forms()
        await self._store.clear()
        self._transition(AuthState.LOGIN_FORM)
        self.notice = constants.LOGGED_OUT

    async def close(self):
        """Cancels timers, drops any response still in flight and closes the backend client."""
        self._generation += 1
        self._otp.close()
        await self._client.close()

    # ------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------

    def snapshot(self) -> FlowSnapshot:
        purpose = self.otp_purpose
        challenge = self._otp.get_challenge(purpose) if purpose else None
        strength = password_strength(self.credentials.password) if self.state == AuthState.REGISTER_FORM else 0
        session = self._store.session
        exposed = isinstance(session, LoggedIn) and session.is_ready and self.state == AuthState.AUTHENTICATED

        location_step = None
        detected = None
        if self.location is not None:
            location_step = self.location.step.value
            if self.location.detected is not None:
                detected = self.location.detected.model_dump(mode="json")

        return FlowSnapshot(
            client_id=self.client_id,
            state=self.state.value,
            step=get_state_metadata(self.state).display_name,
            progress=get_progress_message(self.state),
            error=self.error,
            notice=self.notice,
            field_errors=dict(self.field_errors),
            busy=bool(self._in_flight),
            otp_purpose=purpose.value if purpose else None,
            otp_email=challenge.email if challenge else None,
            can_resend=self._otp.can_resend(purpose) if purpose else True,
            cooldown_remaining_seconds=challenge.cooldown_remaining_seconds if challenge else 0,
            attempts_remaining=challenge.attempts_remaining if challenge else None,
            password_strength=strength,
            password_strength_label=password_strength_label(strength) if self.credentials.password else None,
            location_step=location_step,
            detected_location=detected,
            role=session.role.value if exposed else None,
            identity_name=session.name if exposed else None,
        )
