import secrets

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from otpgateway.core.errors import UnauthorizedError
from otpgateway.services.otp_flow import OTPFlow

basic = HTTPBasic(auto_error=False)

def get_flow(request: Request) -> OTPFlow:
    return request.app.state.flow

def get_namespace(request: Request, creds: HTTPBasicCredentials | None = Depends(basic)) -> str:
    if creds is None:
        raise UnauthorizedError("Missing Basic Authorization header.")
    known: dict[str, str] = request.app.state.auth_credentials
    expected = known.get(creds.username)
    if expected is None or not secrets.compare_digest(expected.encode("utf-8"), creds.password.encode("utf-8")):
        raise UnauthorizedError()
    return creds.username
