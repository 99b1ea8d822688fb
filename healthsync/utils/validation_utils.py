"""
healthsync/utils/validation_utils.py

Purpose: Credential validation

- Email, password policy and strength meter, phone, birth date, name
- OTP format
- Aggregate registration check (fields + consents)

Every validator returns None when the value is acceptable, otherwise the
reason to show next to the field. No I/O happens here.
"""

import re
from datetime import date
from typing import Dict, Optional

from healthsync.schemas.auth import Credentials
from healthsync.utils import constants
from healthsync.utils.time_utils import age_on, parse_iso_date

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
PHONE_SEPARATORS = re.compile(r"[\s\-\(\)]")

MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2
MIN_AGE = 13
MAX_AGE = 120


def validate_email(email: str) -> Optional[str]:
    """
    Light shape check: something@domain.tld with no whitespace.
    """
    if not email or not EMAIL_PATTERN.match(email.strip()):
        return constants.INVALID_EMAIL
    return None


def validate_password(password: str) -> Optional[str]:
    """
    Minimum policy: 8 characters with upper-case, lower-case and a digit.
    """
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return constants.PASSWORD_TOO_SHORT
    if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)):
        return constants.PASSWORD_TOO_WEAK
    return None


def password_strength(password: str) -> int:
    """
    Scores 0-5, one point per criterion met. Advisory only, for the strength meter.
    """
    if not password:
        return 0
    criteria = (
        len(password) >= MIN_PASSWORD_LENGTH,
        bool(re.search(r"[a-z]", password)),
        bool(re.search(r"[A-Z]", password)),
        bool(re.search(r"[0-9]", password)),
        bool(re.search(r"[^A-Za-z0-9]", password)),
    )
    return sum(criteria)


def password_strength_label(score: int) -> str:
    if score <= 2:
        return "Weak"
    if score <= 3:
        return "Medium"
    return "Strong"


def validate_confirm_password(password: str, confirm_password: str) -> Optional[str]:
    if password != confirm_password:
        return constants.PASSWORDS_DO_NOT_MATCH
    return None


def validate_phone(phone: str) -> Optional[str]:
    """
    Strips spaces, dashes and parentheses, then expects an optional '+',
    a non-zero leading digit and at most 16 digits in total.
    """
    if not phone:
        return constants.INVALID_PHONE
    digits = PHONE_SEPARATORS.sub("", phone)
    if not PHONE_PATTERN.match(digits):
        return constants.INVALID_PHONE
    return None


def validate_date_of_birth(value: str, today: Optional[date] = None) -> Optional[str]:
    """
    Accepts an ISO date (YYYY-MM-DD) whose age lies within [13, 120].
    """
    birth_date = parse_iso_date(value)
    if birth_date is None:
        return constants.INVALID_DATE_OF_BIRTH
    age = age_on(birth_date, today or date.today())
    if age < MIN_AGE or age > MAX_AGE:
        return constants.INVALID_DATE_OF_BIRTH
    return None


def validate_name(name: str) -> Optional[str]:
    if len((name or "").strip()) < MIN_NAME_LENGTH:
        return constants.NAME_TOO_SHORT
    return None


def validate_otp_format(otp: str, length: int = 6) -> bool:
    """
    Validates OTP format (exactly `length` digits).
    """
    if not otp:
        return False
    return bool(re.fullmatch(rf"\d{{{length}}}", otp.strip()))


def validate_registration_field(name: str, value: str, credentials: Credentials,
                                today: Optional[date] = None) -> Optional[str]:
    """
    Live validation for a single registration field, run on every change.

    `credentials` must already hold the new value; it supplies the password
    when checking the confirmation.
    """
    if name == "email":
        return validate_email(value)
    if name == "password":
        return validate_password(value)
    if name == "confirm_password":
        return validate_confirm_password(credentials.password, value)
    if name == "phone":
        return validate_phone(value)
    if name == "name":
        return validate_name(value)
    if name == "date_of_birth":
        return validate_date_of_birth(value, today)
    if name == "gender":
        return None if value else constants.GENDER_REQUIRED
    return None


def validate_registration(credentials: Credentials, agreed_to_terms: bool, agreed_to_privacy: bool,
                          today: Optional[date] = None) -> Dict[str, str]:
    """
    Aggregate check run before any passcode is requested.

    Returns:
        Mapping of field name to reason; empty when the form may be submitted
    """
    errors: Dict[str, str] = {}
    for field_name in ("name", "email", "password", "confirm_password", "phone", "date_of_birth", "gender"):
        reason = validate_registration_field(
            field_name, getattr(credentials, field_name), credentials, today
        )
        if reason:
            errors[field_name] = reason

    if not agreed_to_terms:
        errors["terms"] = constants.TERMS_REQUIRED
    if not agreed_to_privacy:
        errors["privacy"] = constants.PRIVACY_REQUIRED

    return errors


def validate_manual_location(city: str, state: str, pincode: str) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for field_name, value in (("city", city), ("state", state), ("pincode", pincode)):
        if not (value or "").strip():
            errors[field_name] = constants.LOCATION_FIELD_REQUIRED
    return errors
