from datetime import date

import pytest

from healthsync.schemas.auth import Credentials
from healthsync.utils import constants
from healthsync.utils.validation_utils import (
    password_strength,
    password_strength_label,
    validate_date_of_birth,
    validate_email,
    validate_manual_location,
    validate_otp_format,
    validate_password,
    validate_phone,
    validate_registration,
)

TODAY = date(2026, 1, 15)


def valid_credentials(**overrides):
    data = dict(
        name="Asha Rao",
        email="a@b.com",
        password="Passw0rd!",
        confirm_password="Passw0rd!",
        phone="+19999999999",
        date_of_birth="1995-06-01",
        gender="female",
    )
    data.update(overrides)
    return Credentials(**data)


@pytest.mark.parametrize("email", ["a@b.com", "first.last@clinic.co.in", "  x@y.io "])
def test_email_accepts_simple_addresses(email):
    assert validate_email(email) is None


@pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@c.com", "@b.com"])
def test_email_rejects_malformed(email):
    assert validate_email(email) == constants.INVALID_EMAIL


def test_password_policy():
    assert validate_password("abc") == constants.PASSWORD_TOO_SHORT
    assert validate_password("alllowercase1") == constants.PASSWORD_TOO_WEAK
    assert validate_password("NoDigitsHere") == constants.PASSWORD_TOO_WEAK
    assert validate_password("Passw0rd") is None


def test_password_strength_scores_each_criterion():
    assert password_strength("") == 0
    assert password_strength("abc") == 1
    assert password_strength("Passw0rd") == 4
    assert password_strength("Passw0rd!") == 5
    assert password_strength_label(2) == "Weak"
    assert password_strength_label(3) == "Medium"
    assert password_strength_label(5) == "Strong"


@pytest.mark.parametrize("phone", ["+19999999999", "(555) 123-4567", "98765 43210"])
def test_phone_accepts_formatted_numbers(phone):
    assert validate_phone(phone) is None


@pytest.mark.parametrize("phone", ["", "0123456", "+0123", "12345678901234567", "phone"])
def test_phone_rejects_invalid(phone):
    assert validate_phone(phone) == constants.INVALID_PHONE


def test_date_of_birth_age_window():
    assert validate_date_of_birth("1996-01-15", TODAY) is None
    # Thirteenth birthday is today
    assert validate_date_of_birth("2013-01-15", TODAY) is None
    assert validate_date_of_birth("2013-01-16", TODAY) == constants.INVALID_DATE_OF_BIRTH
    assert validate_date_of_birth("1900-01-01", TODAY) == constants.INVALID_DATE_OF_BIRTH
    assert validate_date_of_birth("not-a-date", TODAY) == constants.INVALID_DATE_OF_BIRTH


def test_otp_format():
    assert validate_otp_format("123456")
    assert not validate_otp_format("12345")
    assert not validate_otp_format("12a456")
    assert not validate_otp_format("")


def test_registration_passes_for_complete_form():
    assert validate_registration(valid_credentials(), True, True, TODAY) == {}


def test_registration_collects_every_problem():
    errors = validate_registration(
        valid_credentials(password="abc", confirm_password="abd", phone="0"),
        agreed_to_terms=False,
        agreed_to_privacy=True,
        today=TODAY,
    )
    assert errors == {
        "password": constants.PASSWORD_TOO_SHORT,
        "confirm_password": constants.PASSWORDS_DO_NOT_MATCH,
        "phone": constants.INVALID_PHONE,
        "terms": constants.TERMS_REQUIRED,
    }


def test_manual_location_requires_city_state_pincode():
    assert validate_manual_location("Pune", "Maharashtra", "411001") == {}
    assert validate_manual_location("", " ", "411001") == {
        "city": constants.LOCATION_FIELD_REQUIRED,
        "state": constants.LOCATION_FIELD_REQUIRED,
    }
