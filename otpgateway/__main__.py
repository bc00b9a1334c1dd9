from __future__ import annotations

import argparse

import uvicorn

from otpgateway import __version__
from otpgateway.core.config import settings


def main() -> None:
    parser = argparse.ArgumentParser(prog="otpgateway", description="OTP issuing and verification gateway")
    parser.add_argument("--host", default=settings.HTTP_HOST, help="address to listen on")
    parser.add_argument("--port", type=int, default=settings.HTTP_PORT, help="port to listen on")
    parser.add_argument("--version", action="store_true", help="show build version")
    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    uvicorn.run(
        "otpgateway.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=str(settings.LOG_LEVEL or "info").lower(),
    )


if __name__ == "__main__":
    main()
