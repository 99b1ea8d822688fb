"""
healthsync/utils/constants.py

Purpose: Centralized static content

- All user-facing messages of the access and onboarding flow
- Reusable constants

(Prevents hardcoding across the codebase)
"""

# ============================================================
# FIELD VALIDATION
# ============================================================

INVALID_EMAIL = "Please enter a valid email address"
PASSWORD_TOO_SHORT = "Password must be at least 8 characters long"
PASSWORD_TOO_WEAK = "Password must contain uppercase, lowercase, and number"
PASSWORDS_DO_NOT_MATCH = "Passwords do not match"
INVALID_PHONE = "Please enter a valid phone number"
NAME_TOO_SHORT = "Name must be at least 2 characters long"
INVALID_DATE_OF_BIRTH = "Please enter a valid date of birth"
GENDER_REQUIRED = "Please select a gender"
TERMS_REQUIRED = "You must agree to the Terms of Service"
PRIVACY_REQUIRED = "You must agree to the Privacy Policy"
FIX_FORM_ERRORS = "Please correct the highlighted fields"
LOGIN_FIELDS_REQUIRED = "Please enter your email and password"

# ============================================================
# AUTHENTICATION
# ============================================================

INVALID_CREDENTIALS = "Invalid email or password"
WELCOME_BACK = "Welcome {name}!"
LOGGED_OUT = "Logged out successfully"

# ============================================================
# OTP WORKFLOW
# ============================================================

OTP_SENT = "We've sent a 6-digit verification code to {email}. Please check your email and enter the code below."
OTP_RESENT = "New OTP sent!"
OTP_SEND_FAILED = "Failed to send OTP"
OTP_INVALID_FORMAT = "Please enter a valid 6-digit OTP"
OTP_INVALID = "Invalid or expired OTP"
OTP_ATTEMPTS_EXHAUSTED = "Too many incorrect codes. Please request a new OTP."
OTP_NO_CHALLENGE = "Please request a new OTP"
OTP_VERIFIED = "OTP verified successfully!"

# ============================================================
# PASSWORD RESET
# ============================================================

RESET_OTP_SENT = "OTP sent to your email!"
RESET_FAILED = "Failed to reset password"
RESET_SUCCESS = "Password reset successfully! Please login."

# ============================================================
# LOCATION CAPTURE
# ============================================================

LOCATION_PROMPT = "We need your location to show you nearby clinics and doctors."
LOCATION_DETECTED = "Location detected successfully!"
LOCATION_SAVED = "Location saved successfully!"
LOCATION_SAVE_FAILED = "Failed to save location. Please try again."
LOCATION_FIELD_REQUIRED = "This field is required"
LOCATION_FIELDS_REQUIRED = "Please fill in all required fields"
UNKNOWN_PLACE = "Unknown"

GEOLOCATION_MESSAGES = {
    "PERMISSION_DENIED": "Location permission denied. Please enter your location manually.",
    "POSITION_UNAVAILABLE": "Location information unavailable. Please enter your location manually.",
    "TIMEOUT": "Location request timed out. Please enter your location manually.",
    "UNSUPPORTED": "Location detection is not available on this device. Please enter your location manually.",
}

# ============================================================
# GENERIC
# ============================================================

GENERIC_RETRY = "Something went wrong. Please try again."
