from __future__ import annotations

from fastapi import APIRouter, Depends

from otpgateway.core.deps import get_flow, get_namespace
from otpgateway.core.responses import ok
from otpgateway.services.otp_flow import OTPFlow

router = APIRouter()


@router.get("/providers")
def get_providers(namespace: str = Depends(get_namespace), flow: OTPFlow = Depends(get_flow)):
    _ = namespace
    return ok(flow.provider_ids())


@router.get("/health")
def health(flow: OTPFlow = Depends(get_flow)):
    flow.ping()
    return ok("OK")
