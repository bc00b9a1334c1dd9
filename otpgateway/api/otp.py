from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request

from otpgateway.core.deps import get_flow, get_namespace
from otpgateway.core.errors import InvalidInputError
from otpgateway.core.responses import ok
from otpgateway.services.otp_flow import OTPFlow

router = APIRouter()

_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}


def _parse_positive_int(raw: str | None, field: str) -> int | None:
    value = str(raw or "").strip()
    if not value:
        return None
    try:
        number = int(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid `{field}` value.") from exc
    if number < 1:
        raise InvalidInputError(f"Invalid `{field}` value.")
    return number


def _parse_bool(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in _TRUE_VALUES


@router.put("/otp")
@router.put("/otp/{id}")
def issue_otp(
    id: str = "",
    provider: str = Form(""),
    to: str = Form(""),
    otp: str = Form(""),
    ttl: str = Form(""),
    max_attempts: str = Form(""),
    extra: str = Form(""),
    channel_description: str = Form(""),
    address_description: str = Form(""),
    namespace: str = Depends(get_namespace),
    flow: OTPFlow = Depends(get_flow),
):
    record, url = flow.issue(
        namespace,
        provider,
        id=id,
        to=to,
        otp=otp,
        ttl=_parse_positive_int(ttl, "ttl"),
        max_attempts=_parse_positive_int(max_attempts, "max_attempts"),
        extra=extra,
        channel_description=channel_description,
        address_description=address_description,
    )
    return ok({**record.to_dict(), "url": url})


@router.post("/otp/{id}")
def verify_otp(
    id: str,
    otp: str = Form(""),
    skip_delete: str = Form(""),
    namespace: str = Depends(get_namespace),
    flow: OTPFlow = Depends(get_flow),
):
    out = flow.verify(namespace, id, otp, delete=not _parse_bool(skip_delete))
    return ok(out.to_dict())


@router.post("/otp/{id}/status")
@router.delete("/otp/{id}/status")
def check_otp_status(
    id: str,
    request: Request,
    namespace: str = Depends(get_namespace),
    flow: OTPFlow = Depends(get_flow),
):
    # DELETE removes a verified OTP once its status has been read.
    out = flow.check_status(namespace, id, delete=request.method == "DELETE")
    return ok(out.to_dict())
