from fastapi import APIRouter
from otpgateway.api import otp, system

router = APIRouter()
router.include_router(otp.router, tags=["OTP"])
router.include_router(system.router, tags=["System"])
