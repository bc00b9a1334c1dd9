from __future__ import annotations

from fastapi import APIRouter, Depends, Form
from fastapi.responses import HTMLResponse, RedirectResponse

from otpgateway.core.deps import get_flow
from otpgateway.core.errors import (
    DeliveryError,
    IncorrectOTPError,
    InvalidAddressError,
    InvalidInputError,
    NotExistError,
    StoreUnavailableError,
    TooManyAttemptsError,
    UnknownProviderError,
)
from otpgateway.core.responses import ok
from otpgateway.services.otp_flow import OTPFlow
from otpgateway.web.pages import address_page, message_page, otp_page

router = APIRouter()

ACTION_CHECK = "check"
ACTION_RESEND = "resend"

SESSION_EXPIRED = ("Session expired", "Your session has expired. Please re-initiate the verification.")
PROVIDER_MISSING = ("Internal error", "The provider for this OTP was not found.")
STORE_DOWN = ("Internal error", "Please try later.")


def _html(body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(body, status_code=status_code)


def _locked_page(exc: TooManyAttemptsError) -> HTMLResponse:
    return _html(message_page("Too many attempts", f"Please retry after {int(exc.ttl)} seconds."), 429)


def _render_otp(flow: OTPFlow, namespace: str, id: str, action: str, otp_value: str) -> HTMLResponse | RedirectResponse:
    message = ""
    try:
        if action == ACTION_RESEND:
            out = flow.resend(namespace, id)
            message = "OTP resent"
        elif action == ACTION_CHECK:
            out = flow.verify(namespace, id, otp_value, delete=False)
        else:
            out = flow.get(namespace, id)
    except NotExistError:
        return _html(message_page(*SESSION_EXPIRED), 400)
    except TooManyAttemptsError as exc:
        return _locked_page(exc)
    except (IncorrectOTPError, InvalidInputError, DeliveryError) as exc:
        message = "error resending OTP." if isinstance(exc, DeliveryError) else exc.detail
        try:
            out = flow.get(namespace, id)
        except NotExistError:
            return _html(message_page(*SESSION_EXPIRED), 400)
    except StoreUnavailableError:
        return _html(message_page(*STORE_DOWN), 503)

    if out.locked and not out.closed:
        return _html(message_page("Too many attempts", f"Please retry after {int(out.ttl)} seconds."), 429)

    try:
        provider = flow.get_provider(out.provider)
    except UnknownProviderError:
        return _html(message_page(*PROVIDER_MISSING), 500)

    if out.closed:
        return _html(
            message_page(
                f"{provider.channel_name()} verified",
                f"Your {provider.channel_name()} is verified. This page can be closed now.",
                closed_namespace=out.namespace,
                closed_id=out.id,
            )
        )

    if not out.to:
        return RedirectResponse(flow.address_url(out), status_code=302)

    return _html(
        otp_page(
            title=f"Verify {provider.channel_name()}",
            channel_desc=out.channel_description or provider.channel_desc(),
            action_url=flow.view_url(out),
            max_otp_len=provider.max_otp_len(),
            message=message,
        )
    )


@router.get("/otp/{namespace}/{id}", response_class=HTMLResponse)
def otp_view(namespace: str, id: str, action: str = "", otp: str = "", flow: OTPFlow = Depends(get_flow)):
    return _render_otp(flow, namespace, id, action, otp)


@router.post("/otp/{namespace}/{id}", response_class=HTMLResponse)
def otp_view_submit(
    namespace: str,
    id: str,
    action: str = Form(""),
    otp: str = Form(""),
    flow: OTPFlow = Depends(get_flow),
):
    return _render_otp(flow, namespace, id, action, otp)


@router.get("/otp/{namespace}/{id}/status")
def otp_closed_status(namespace: str, id: str, flow: OTPFlow = Depends(get_flow)):
    """Polled by the verification popup to find out when it can close itself."""
    try:
        out = flow.get(namespace, id)
    except NotExistError as exc:
        raise NotExistError("Session expired.") from exc
    return ok({"closed": out.closed})


def _render_address(flow: OTPFlow, namespace: str, id: str, to: str) -> HTMLResponse | RedirectResponse:
    try:
        out = flow.get(namespace, id)
    except NotExistError:
        return _html(message_page(*SESSION_EXPIRED), 400)
    except StoreUnavailableError:
        return _html(message_page(*STORE_DOWN), 503)

    if out.to or out.closed:
        return RedirectResponse(flow.view_url(out), status_code=302)

    try:
        provider = flow.get_provider(out.provider)
    except UnknownProviderError:
        return _html(message_page(*PROVIDER_MISSING), 500)

    message = ""
    to = str(to or "").strip()
    if to:
        try:
            flow.set_address(namespace, id, to)
            return RedirectResponse(flow.view_url(out), status_code=302)
        except InvalidAddressError as exc:
            message = exc.detail
        except TooManyAttemptsError as exc:
            return _locked_page(exc)
        except DeliveryError:
            message = "error sending OTP"
        except NotExistError:
            return _html(message_page(*SESSION_EXPIRED), 400)

    return _html(
        address_page(
            title=f"Verify {provider.channel_name()}",
            address_name=provider.address_name(),
            address_desc=out.address_description or provider.address_desc(),
            action_url=flow.address_url(out),
            max_address_len=provider.max_address_len(),
            message=message,
        )
    )


@router.get("/otp/{namespace}/{id}/address", response_class=HTMLResponse)
def address_view(namespace: str, id: str, to: str = "", flow: OTPFlow = Depends(get_flow)):
    return _render_address(flow, namespace, id, to)


@router.post("/otp/{namespace}/{id}/address", response_class=HTMLResponse)
def address_view_submit(namespace: str, id: str, to: str = Form(""), flow: OTPFlow = Depends(get_flow)):
    return _render_address(flow, namespace, id, to)
