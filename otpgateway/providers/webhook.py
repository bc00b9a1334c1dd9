from __future__ import annotations

from typing import Any

import httpx

from otpgateway.models.otp import OTP


class WebhookProvider:
    """Posts OTP messages as JSON to an upstream URL.

    The upstream does the actual delivery, so addresses are not validated here.
    """

    def __init__(
        self,
        *,
        url: str,
        provider_id: str = "webhook",
        username: str = "",
        password: str = "",
        channel_name: str = "Webhook",
        address_name: str = "Address",
        max_address_len: int = 200,
        max_otp_len: int = 6,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        if not str(url or "").strip():
            raise ValueError("WEBHOOK_URL is not set")
        self.url = url.strip()
        self._id = provider_id or "webhook"
        self._channel_name = channel_name
        self._address_name = address_name
        self._max_address_len = int(max_address_len)
        self._max_otp_len = int(max_otp_len)
        self._auth = (username, password) if username and password else None
        self._client = client or httpx.Client(timeout=max(float(timeout), 1.0))

    def id(self) -> str:
        return self._id

    def channel_name(self) -> str:
        return self._channel_name

    def channel_desc(self) -> str:
        return (
            f"A {self._max_otp_len} digit code has been sent to your {self._channel_name}. "
            f"Enter it here to verify your {self._address_name}."
        )

    def address_name(self) -> str:
        return self._address_name

    def address_desc(self) -> str:
        return f"Please enter your {self._address_name}"

    def validate_address(self, to: str) -> None:
        return None

    def push(self, otp: OTP, subject: str, body: str) -> None:
        payload: dict[str, Any] = {"otp": otp.to_dict(), "subject": subject, "body": body}
        response = self._client.post(
            self.url,
            json=payload,
            headers={"User-Agent": "otpgateway"},
            auth=self._auth,
        )
        response.raise_for_status()

    def max_address_len(self) -> int:
        return self._max_address_len

    def max_otp_len(self) -> int:
        return self._max_otp_len

    def max_body_len(self) -> int:
        return 0
