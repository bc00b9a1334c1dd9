from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otpgateway.core.errors import OTPError

_LOG = logging.getLogger("otpgateway.http")


def ok(data: Any = None) -> dict[str, Any]:
    return {"status": "success", "data": data}


def error_response(message: str, status_code: int, data: Any = None) -> JSONResponse:
    return JSONResponse(
        {"status": "error", "message": message, "data": data},
        status_code=status_code,
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(OTPError)
    async def _otp_error_handler(request: Request, exc: OTPError):
        if exc.status_code >= 500:
            _LOG.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return error_response(exc.detail, exc.status_code, exc.data)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):
        response = error_response(str(exc.detail), exc.status_code)
        for key, value in (exc.headers or {}).items():
            response.headers[key] = value
        return response

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response("Invalid input.", 400, {"errors": exc.errors()})
