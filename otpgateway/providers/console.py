from __future__ import annotations

import logging

from otpgateway.core.errors import InvalidAddressError
from otpgateway.models.otp import OTP

logger = logging.getLogger("uvicorn.error")

MAX_ADDRESS_LEN = 200
MAX_OTP_LEN = 6


class ConsoleProvider:
    """Development provider: writes the rendered message to the log instead of sending it."""

    def id(self) -> str:
        return "console"

    def channel_name(self) -> str:
        return "Console"

    def channel_desc(self) -> str:
        return f"A {MAX_OTP_LEN} digit code has been written to the gateway log. Enter it here to verify."

    def address_name(self) -> str:
        return "Address"

    def address_desc(self) -> str:
        return "Please enter any address"

    def validate_address(self, to: str) -> None:
        if not str(to or "").strip():
            raise InvalidAddressError("empty address")

    def push(self, otp: OTP, subject: str, body: str) -> None:
        logger.warning(
            "[OTP CONSOLE] namespace=%s id=%s to=%s subject=%s body=%s",
            otp.namespace,
            otp.id,
            otp.to,
            subject,
            body,
        )

    def max_address_len(self) -> int:
        return MAX_ADDRESS_LEN

    def max_otp_len(self) -> int:
        return MAX_OTP_LEN

    def max_body_len(self) -> int:
        return 0
