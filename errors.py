"""
Exceptions for the e-Stamp backend.

Everything raised on purpose derives from EStampError and carries the HTTP
status the API should answer with. Anything else coming out of the document
store is treated as an opaque failure by the route that called it.
"""
from typing import Any, Dict, Optional


class EStampError(Exception):
    """Base exception for all e-Stamp errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class DatabaseUnavailableError(EStampError):
    status_code = 503

    def __init__(self):
        super().__init__(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.",
            code="DATABASE_UNAVAILABLE",
        )


class InvalidIdError(EStampError):
    status_code = 400

    def __init__(self, value: str):
        super().__init__("Invalid id", code="INVALID_ID", details={"id": value})


class NotFoundError(EStampError):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ValidationFailed(EStampError):
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_FAILED", details=details)


class DuplicateError(EStampError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="DUPLICATE")


class AuthenticationError(EStampError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class AuthorizationError(EStampError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Identity provider error codes
# ============================================

AUTH_ERROR_MESSAGES = {
    "auth/invalid-phone-number": "Invalid phone number format.",
    "auth/too-many-requests": "Too many requests. Please try again later.",
    "auth/captcha-check-failed": "reCAPTCHA verification failed. Please try again.",
    "auth/invalid-verification-code": "Invalid verification code.",
    "auth/code-expired": "OTP has expired. Please request a new one.",
    "auth/invalid-email": "Please enter a valid email address.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/invalid-credential": "Invalid email or password.",
    "auth/weak-password": "Password must be at least 6 characters.",
}

SEND_OTP_FAILED = "Failed to send OTP. Please try again."
VERIFY_OTP_FAILED = "Invalid OTP. Please try again."


def describe_auth_error(code: Optional[str], default: str = SEND_OTP_FAILED) -> str:
    """Map an identity provider error code to the message shown to the user."""
    if not code:
        return default
    return AUTH_ERROR_MESSAGES.get(code, default)


class AuthProviderError(EStampError):
    """Identity failure carrying a provider-style code such as auth/code-expired"""

    status_code = 400

    def __init__(self, code: str, default: str = SEND_OTP_FAILED):
        super().__init__(
            describe_auth_error(code, default),
            code=code,
            status_code=_AUTH_ERROR_STATUS.get(code),
        )


_AUTH_ERROR_STATUS = {
    "auth/too-many-requests": 429,
    "auth/invalid-credential": 401,
}
