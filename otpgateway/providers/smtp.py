from __future__ import annotations

import re
import smtplib
from email.message import EmailMessage

from otpgateway.core.errors import InvalidAddressError
from otpgateway.models.otp import OTP

PROVIDER_ID = "smtp"
CHANNEL_NAME = "E-mail"
ADDRESS_NAME = "E-mail ID"
MAX_OTP_LEN = 6
MAX_ADDRESS_LEN = 100
MAX_BODY_LEN = 100 * 1024

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


class SMTPProvider:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "otp@localhost",
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 5.0,
    ):
        if not str(host or "").strip() or not port:
            raise ValueError("SMTP_HOST/SMTP_PORT are not set")
        if use_tls and use_ssl:
            raise ValueError("SMTP_USE_TLS and SMTP_USE_SSL can't both be enabled")
        self.host = host.strip()
        self.port = int(port)
        self.username = str(username or "").strip()
        self.password = str(password or "")
        self.sender = str(sender or "").strip() or "otp@localhost"
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout

    def id(self) -> str:
        return PROVIDER_ID

    def channel_name(self) -> str:
        return CHANNEL_NAME

    def channel_desc(self) -> str:
        return (
            f"A {MAX_OTP_LEN} digit code has been e-mailed to you. "
            "Please check your e-mail and enter the code here to complete the verification."
        )

    def address_name(self) -> str:
        return ADDRESS_NAME

    def address_desc(self) -> str:
        return "Please enter the e-mail ID you want to verify"

    def validate_address(self, to: str) -> None:
        if not _EMAIL_RE.match(str(to or "")):
            raise InvalidAddressError("invalid e-mail address")

    def push(self, otp: OTP, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = otp.to
        msg["Subject"] = subject
        msg.set_content(body, subtype="html")

        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(host=self.host, port=self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout)
        with smtp as client:
            client.ehlo()
            if self.use_tls:
                client.starttls()
                client.ehlo()
            if self.username:
                client.login(self.username, self.password)
            client.send_message(msg)

    def max_address_len(self) -> int:
        return MAX_ADDRESS_LEN

    def max_otp_len(self) -> int:
        return MAX_OTP_LEN

    def max_body_len(self) -> int:
        return MAX_BODY_LEN
