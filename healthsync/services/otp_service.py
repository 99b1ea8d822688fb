"""
healthsync/services/otp_service.py

Purpose: E-mailed one-time passcodes

- Issues a passcode for a purpose (registration, password reset)
- Resend cooldown (one cancellable countdown per challenge)
- Verification with optional attempt accounting
- At most one open challenge per purpose; a new send replaces the old one
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from healthsync.core.config import settings
from healthsync.core.exceptions import BackendError, OtpVerificationError
from healthsync.core.logging import get_logger, LogContext
from healthsync.schemas.auth import OtpPurpose
from healthsync.services.api_client import BackendClient
from healthsync.utils import constants
from healthsync.utils.time_utils import CountdownTimer
from healthsync.utils.validation_utils import validate_otp_format

logger = get_logger(__name__)


@dataclass
class OtpChallenge:
    """One outstanding passcode for an e-mail address."""
    email: str
    purpose: OtpPurpose
    timer: CountdownTimer
    issued_at: Optional[datetime] = None
    code: Optional[str] = None
    attempts_remaining: Optional[int] = None

    @property
    def cooldown_remaining_seconds(self) -> int:
        return self.timer.remaining if self.timer.running else 0

    @property
    def can_resend(self) -> bool:
        return not self.timer.running


@dataclass
class VerifiedOtp:
    email: str
    purpose: OtpPurpose
    code: str
    verified_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class OtpService:
    """
    Owns the passcode challenges of one client.

    Challenges die on successful verification, on `cancel()` and on
    `close()`; cancelling never contacts the backend.
    """

    def __init__(
        self,
        client: BackendClient,
        cooldown_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.OTP_RESEND_COOLDOWN_SECONDS
        )
        self._max_attempts = max_attempts if max_attempts is not None else settings.OTP_MAX_VERIFY_ATTEMPTS
        self._sleep = sleep
        self._challenges: Dict[OtpPurpose, OtpChallenge] = {}
        self._sending: set = set()

    def get_challenge(self, purpose: OtpPurpose) -> Optional[OtpChallenge]:
        return self._challenges.get(purpose)

    def can_resend(self, purpose: OtpPurpose) -> bool:
        challenge = self._challenges.get(purpose)
        if purpose in self._sending:
            return False
        return challenge is None or challenge.can_resend

    def is_sending(self, purpose: OtpPurpose) -> bool:
        return purpose in self._sending

    async def request_code(self, email: str, purpose: OtpPurpose) -> bool:
        """
        Asks the backend to e-mail a passcode.

        Returns:
            True if a send was issued and accepted, False if it was suppressed
            (a send already in flight, or the cooldown still running for
            the same address)

        Raises:
            BackendError / TransportError: the send failed; no cooldown is started
        """
        email = email.strip()
        with LogContext(email=email, purpose=purpose.value):
            if purpose in self._sending:
                logger.info("Passcode send already in flight, ignoring duplicate request")
                return False

            current = self._challenges.get(purpose)
            if current is not None and current.email == email and not current.can_resend:
                logger.info(
                    f"Passcode resend suppressed, {current.cooldown_remaining_seconds}s cooldown left"
                )
                return False

            self._sending.add(purpose)
            try:
                await self._client.send_otp(email, purpose)
            finally:
                self._sending.discard(purpose)

            # A new send replaces whatever challenge was open for this purpose
            if current is not None:
                current.timer.cancel()

            challenge = OtpChallenge(
                email=email,
                purpose=purpose,
                timer=CountdownTimer(sleep=self._sleep),
                issued_at=datetime.now(timezone.utc),
                attempts_remaining=self._max_attempts,
            )
            self._challenges[purpose] = challenge
            challenge.timer.start(self._cooldown_seconds)

            logger.info(f"Passcode issued, resend available in {self._cooldown_seconds}s")
            return True

    async def verify(self, email: str, code: str, purpose: OtpPurpose) -> VerifiedOtp:
        """
        Checks a user-entered passcode with the backend.

        Raises:
            OtpVerificationError: malformed, wrong or expired code; the challenge stays open
            BackendError: server failure or unusable answer; no attempt is spent
            TransportError: the backend could not be reached; the challenge stays open
        """
        email = email.strip()
        code = (code or "").strip()

        with LogContext(email=email, purpose=purpose.value):
            if not validate_otp_format(code, settings.OTP_LENGTH):
                raise OtpVerificationError(constants.OTP_INVALID_FORMAT)

            challenge = self._challenges.get(purpose)
            if challenge is not None and challenge.email != email:
                raise OtpVerificationError(constants.OTP_NO_CHALLENGE)
            if challenge is not None and challenge.attempts_remaining == 0:
                raise OtpVerificationError(constants.OTP_ATTEMPTS_EXHAUSTED)

            if challenge is not None:
                challenge.code = code

            try:
                result = await self._client.verify_otp(email, code, purpose)
            except BackendError as e:
                # only a 4xx means the code itself was refused
                if e.status is None or not 400 <= e.status < 500:
                    logger.warning(f"Passcode check failed on the server (status={e.status})")
                    raise
                self._spend_attempt(challenge)
                logger.info(f"Passcode rejected by backend (status={e.status})")
                raise OtpVerificationError(e.message)

            if not (result.success and result.verified):
                self._spend_attempt(challenge)
                logger.info("Passcode not verified")
                raise OtpVerificationError(result.message or constants.OTP_INVALID)

            self.cancel(purpose)
            logger.info("Passcode verified")
            return VerifiedOtp(email=email, purpose=purpose, code=code)

    @staticmethod
    def _spend_attempt(challenge: Optional[OtpChallenge]):
        if challenge is not None and challenge.attempts_remaining is not None:
            challenge.attempts_remaining = max(challenge.attempts_remaining - 1, 0)

    def cancel(self, purpose: Optional[OtpPurpose] = None):
        """Discards one challenge (or all of them) and stops their timers."""
        purposes = [purpose] if purpose is not None else list(self._challenges)
        for item in purposes:
            challenge = self._challenges.pop(item, None)
            if challenge is not None:
                challenge.timer.cancel()
                logger.debug(f"Discarded {item.value} challenge")

    def close(self):
        self.cancel()
