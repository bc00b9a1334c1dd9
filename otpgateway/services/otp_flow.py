from __future__ import annotations

import hmac
import json
import logging
import secrets
import string
from typing import Mapping
from urllib.parse import quote

from otpgateway.core.errors import (
    DeliveryError,
    IncorrectOTPError,
    InvalidAddressError,
    InvalidInputError,
    NotVerifiedError,
    TooManyAttemptsError,
    UnknownProviderError,
)
from otpgateway.models.otp import OTP
from otpgateway.providers.base import Provider
from otpgateway.services.messages import MessageTemplates, render_message
from otpgateway.services.otp_store import OTPStore

_LOG = logging.getLogger("otpgateway.otp_flow")

ALPHANUM_CHARS = string.ascii_letters + string.digits
NUM_CHARS = string.digits
GENERATED_ID_LEN = 32
MIN_ID_LEN = 6

URI_VIEW_OTP = "/otp/{namespace}/{id}"
URI_VIEW_ADDRESS = "/otp/{namespace}/{id}/address"
URI_CHECK = "/otp/{namespace}/{id}?otp={otp}&action=check"


def generate_random_string(length: int, chars: str) -> str:
    return "".join(secrets.choice(chars) for _ in range(max(int(length), 1)))


def _too_many_attempts(otp: OTP) -> TooManyAttemptsError:
    return TooManyAttemptsError(ttl=otp.ttl, attempts=otp.attempts, max_attempts=otp.max_attempts)


def _normalize_extra(raw: str | None) -> str:
    extra = str(raw or "").strip()
    if not extra:
        return "{}"
    try:
        json.loads(extra)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid JSON in `extra`: {exc}") from exc
    return extra


def _check_id(id: str) -> None:
    if len(id) < MIN_ID_LEN:
        raise InvalidInputError(f"ID should be min {MIN_ID_LEN} chars.")


class OTPFlow:
    """Issuance, verification, locking and closing of OTPs.

    Holds no record state of its own: every decision is made on what the store
    returns, and every mutation that needs ordering (the attempt counter) is done
    by the store atomically.
    """

    def __init__(
        self,
        store: OTPStore,
        providers: Mapping[str, Provider],
        templates: Mapping[str, MessageTemplates] | None = None,
        *,
        root_url: str = "",
        default_ttl: float = 300,
        default_max_attempts: int = 5,
    ):
        self.store = store
        self.providers = dict(providers)
        self.templates = dict(templates or {})
        self.root_url = str(root_url or "").rstrip("/")
        self.default_ttl = float(default_ttl)
        self.default_max_attempts = int(default_max_attempts)

    def provider_ids(self) -> list[str]:
        return sorted(self.providers)

    def get_provider(self, provider_id: str) -> Provider:
        provider = self.providers.get(str(provider_id or ""))
        if provider is None:
            raise UnknownProviderError()
        return provider

    def view_url(self, otp: OTP) -> str:
        return self.root_url + URI_VIEW_OTP.format(namespace=otp.namespace, id=otp.id)

    def address_url(self, otp: OTP) -> str:
        return self.root_url + URI_VIEW_ADDRESS.format(namespace=otp.namespace, id=otp.id)

    def check_url(self, otp: OTP) -> str:
        return self.root_url + URI_CHECK.format(namespace=otp.namespace, id=otp.id, otp=quote(otp.otp))

    def ping(self) -> None:
        self.store.ping()

    def get(self, namespace: str, id: str) -> OTP:
        return self.store.check(namespace, id, False)

    def _validate_address(self, provider: Provider, to: str) -> None:
        limit = provider.max_address_len()
        if limit > 0 and len(to) > limit:
            raise InvalidAddressError(f"Invalid `to` address: longer than {limit} chars")
        try:
            provider.validate_address(to)
        except InvalidAddressError as exc:
            raise InvalidAddressError(f"Invalid `to` address: {exc.detail}") from exc

    def issue(
        self,
        namespace: str,
        provider: str,
        *,
        id: str | None = None,
        to: str = "",
        otp: str = "",
        ttl: float | None = None,
        max_attempts: int | None = None,
        extra: str | None = None,
        channel_description: str = "",
        address_description: str = "",
    ) -> tuple[OTP, str]:
        """Creates (or re-creates) an OTP and pushes it out if the address is known.

        Returns the record and the URL of its web view. A locked record is never
        overwritten; re-issuing it raises TooManyAttemptsError.
        """
        prov = self.get_provider(provider)
        to = str(to or "").strip()
        if to:
            self._validate_address(prov, to)

        if ttl is None:
            ttl = self.default_ttl
        if ttl < 1:
            raise InvalidInputError("Invalid `ttl` value.")
        if max_attempts is None:
            max_attempts = self.default_max_attempts
        if max_attempts < 1:
            raise InvalidInputError("Invalid `max_attempts` value.")
        extra = _normalize_extra(extra)

        id = str(id or "").strip()
        if id:
            _check_id(id)
        else:
            id = generate_random_string(GENERATED_ID_LEN, ALPHANUM_CHARS)

        otp = str(otp or "").strip()
        if otp:
            if prov.max_otp_len() > 0 and len(otp) > prov.max_otp_len():
                raise InvalidInputError(f"`otp` should be max {prov.max_otp_len()} chars.")
        else:
            otp = generate_random_string(prov.max_otp_len() or 6, NUM_CHARS)

        record = self.store.set(
            namespace,
            id,
            OTP(
                namespace=namespace,
                id=id,
                otp=otp,
                to=to,
                channel_description=str(channel_description or ""),
                address_description=str(address_description or ""),
                extra=extra,
                provider=prov.id(),
                max_attempts=int(max_attempts),
                ttl=float(ttl),
            ),
        )

        if record.to:
            self.push(record)
        return record, self.view_url(record)

    def check_status(self, namespace: str, id: str, delete: bool = False) -> OTP:
        _check_id(id)
        out = self.store.check(namespace, id, False)
        if not out.closed:
            raise NotVerifiedError()
        if delete:
            self.store.delete(namespace, id)
        return out

    def verify(self, namespace: str, id: str, otp: str, delete: bool = True) -> OTP:
        """Checks a guess. Every call, right or wrong, consumes one attempt."""
        _check_id(id)
        if not otp:
            raise InvalidInputError("`otp` is empty.")

        out = self.store.check(namespace, id, True)
        if out.locked:
            raise _too_many_attempts(out)
        if not hmac.compare_digest(out.otp.encode("utf-8"), str(otp).encode("utf-8")):
            raise IncorrectOTPError(data=out.to_dict())

        self.store.close(namespace, id)
        if delete:
            self.store.delete(namespace, id)
        out.closed = True
        return out

    def set_address(self, namespace: str, id: str, to: str) -> OTP:
        """Sets the address of an unaddressed OTP and pushes it out.

        Closed or already addressed records are returned untouched.
        """
        out = self.store.check(namespace, id, False)
        if out.closed or out.to:
            return out
        if out.locked:
            raise _too_many_attempts(out)

        prov = self.get_provider(out.provider)
        to = str(to or "").strip()
        if not to:
            raise InvalidAddressError("Invalid `to` address: empty")
        self._validate_address(prov, to)

        if not self.store.set_address(namespace, id, to):
            # Another request addressed or closed it first and did the push.
            return self.store.check(namespace, id, False)
        out.to = to
        self.push(out)
        return out

    def resend(self, namespace: str, id: str) -> OTP:
        out = self.store.check(namespace, id, True)
        if out.locked:
            raise _too_many_attempts(out)
        if out.closed or not out.to:
            return out
        self.push(out)
        return out

    def push(self, otp: OTP) -> None:
        prov = self.get_provider(otp.provider)
        subject, body = render_message(
            self.templates.get(prov.id(), MessageTemplates()),
            namespace=otp.namespace,
            to=otp.to,
            channel=prov.channel_name(),
            otp=otp.otp,
            otp_url=self.check_url(otp),
            ttl=otp.ttl,
            max_body_len=prov.max_body_len(),
        )
        _LOG.debug("sending otp to=%s provider=%s namespace=%s", otp.to, prov.id(), otp.namespace)
        try:
            prov.push(otp, subject, body)
        except Exception as exc:
            _LOG.error("error sending OTP provider=%s namespace=%s id=%s: %s", prov.id(), otp.namespace, otp.id, exc)
            raise DeliveryError() from exc
