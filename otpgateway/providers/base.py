from __future__ import annotations

from typing import Protocol

from otpgateway.models.otp import OTP


class Provider(Protocol):
    """A messaging backend (e-mail, SMS, webhook) that delivers OTPs."""

    def id(self) -> str:
        ...

    def channel_name(self) -> str:
        """Name of the channel, eg: "SMS" or "E-mail". Shown on web views."""
        ...

    def channel_desc(self) -> str:
        """Help text describing how the code was delivered."""
        ...

    def address_name(self) -> str:
        """Label of the address, eg: "Phone number"."""
        ...

    def address_desc(self) -> str:
        """Help text shown when the user is asked for their address."""
        ...

    def validate_address(self, to: str) -> None:
        """Syntactic check only. Raises InvalidAddressError."""
        ...

    def push(self, otp: OTP, subject: str, body: str) -> None:
        """Delivers a rendered message once. Raises on any failure."""
        ...

    def max_address_len(self) -> int:
        ...

    def max_otp_len(self) -> int:
        ...

    def max_body_len(self) -> int:
        ...
