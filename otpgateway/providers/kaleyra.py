from __future__ import annotations

import re

import httpx

from otpgateway.core.errors import InvalidAddressError
from otpgateway.models.otp import OTP

PROVIDER_ID = "kaleyra"
ADDRESS_NAME = "Mobile number"
MAX_ADDRESS_LEN = 16
MAX_OTP_LEN = 6
MAX_BODY_LEN = 140
API_URL = "https://api.kaleyra.io/v1/{sid}/messages"

_PHONE_RE = re.compile(r"^\+?[0-9]{8,15}$")


class KaleyraDeliveryError(Exception):
    pass


class KaleyraProvider:
    """SMS delivery through the Kaleyra messaging API."""

    def __init__(
        self,
        *,
        api_key: str,
        sid: str,
        sender: str,
        default_phone_code: str = "",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        if not str(api_key or "").strip() or not str(sender or "").strip():
            raise ValueError("KALEYRA_API_KEY and KALEYRA_SENDER are required")
        self.api_key = api_key.strip()
        self.sender = sender.strip()
        self.api_url = API_URL.format(sid=str(sid or "").strip())
        self.default_phone_code = str(default_phone_code or "").strip()
        self._client = client or httpx.Client(timeout=max(float(timeout), 1.0))

    def id(self) -> str:
        return PROVIDER_ID

    def channel_name(self) -> str:
        return "SMS"

    def channel_desc(self) -> str:
        return (
            f"We've sent a {MAX_OTP_LEN} digit code in an SMS to your mobile. "
            "Enter it here to verify your mobile number."
        )

    def address_name(self) -> str:
        return ADDRESS_NAME

    def address_desc(self) -> str:
        return "Please enter your mobile number"

    def validate_address(self, to: str) -> None:
        if not _PHONE_RE.match(str(to or "").strip()):
            raise InvalidAddressError("invalid mobile number")

    def sanitize_phone(self, phone: str) -> str:
        phone = str(phone or "").strip()
        if phone.startswith("+"):
            return phone
        if phone.startswith("00"):
            return "+" + phone[2:]
        return self.default_phone_code + phone

    def push(self, otp: OTP, subject: str, body: str) -> None:
        response = self._client.post(
            self.api_url,
            data={
                "to": self.sanitize_phone(otp.to),
                "type": "OTP",
                "sender": self.sender,
                "body": body,
            },
            headers={"api-key": self.api_key},
        )
        if response.status_code not in (200, 202):
            raise KaleyraDeliveryError(f"kaleyra: HTTP {response.status_code}: {response.text}")

    def max_address_len(self) -> int:
        return MAX_ADDRESS_LEN

    def max_otp_len(self) -> int:
        return MAX_OTP_LEN

    def max_body_len(self) -> int:
        return MAX_BODY_LEN
