from __future__ import annotations

from typing import Any


class OTPError(Exception):
    status_code = 400
    message = "OTP error."

    def __init__(self, message: str | None = None, *, data: Any = None):
        super().__init__(message or self.message)
        self.data = data

    @property
    def detail(self) -> str:
        return str(self.args[0]) if self.args else self.message


class NotExistError(OTPError):
    message = "the OTP does not exist"


class NotVerifiedError(OTPError):
    message = "OTP not verified."


class IncorrectOTPError(OTPError):
    message = "Incorrect OTP"


class InvalidInputError(OTPError):
    message = "Invalid input."


class UnknownProviderError(InvalidInputError):
    message = "Unknown provider."


class InvalidAddressError(OTPError):
    message = "Invalid `to` address."


class TooManyAttemptsError(OTPError):
    status_code = 429

    def __init__(self, *, ttl: float, attempts: int, max_attempts: int):
        super().__init__(
            f"Too many attempts. Please retry after {ttl:.0f} seconds.",
            data={"ttl_seconds": ttl, "attempts": attempts, "max_attempts": max_attempts},
        )
        self.ttl = ttl
        self.attempts = attempts
        self.max_attempts = max_attempts


class DeliveryError(OTPError):
    status_code = 500
    message = "Error sending OTP."


class StoreUnavailableError(OTPError):
    status_code = 503
    message = "Unable to reach store."


class UnauthorizedError(OTPError):
    status_code = 401
    message = "Invalid API credentials."
