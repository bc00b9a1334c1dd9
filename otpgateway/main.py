from __future__ import annotations

import logging
from typing import Mapping

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from otpgateway import __version__
from otpgateway.api import web
from otpgateway.api.router import router as api_router
from otpgateway.core.config import Settings, settings as default_settings
from otpgateway.core.http_hardening import install_http_hardening
from otpgateway.core.responses import install_error_handlers
from otpgateway.providers import Provider, build_providers
from otpgateway.services.messages import MessageTemplates
from otpgateway.services.otp_flow import OTPFlow
from otpgateway.services.otp_store import OTPStore, build_store

_LOG = logging.getLogger("otpgateway")


def create_app(
    settings: Settings | None = None,
    *,
    store: OTPStore | None = None,
    providers: Mapping[str, Provider] | None = None,
    templates: Mapping[str, MessageTemplates] | None = None,
) -> FastAPI:
    """Wires the store, providers and OTP flow into a FastAPI app.

    ``store`` and ``providers`` default to what ``settings`` describes.
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=str(settings.LOG_LEVEL or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if providers is None:
        providers, built_templates = build_providers(settings)
        if templates is None:
            templates = built_templates
    if not providers:
        raise RuntimeError("no providers loaded. Set PROVIDERS to load one.")

    auth_credentials = settings.auth_credentials_map
    if not auth_credentials:
        raise RuntimeError("no auth entries found in AUTH_CREDENTIALS")

    if store is None:
        store = build_store(settings)

    app = FastAPI(title=settings.APP_NAME, version=__version__)
    app.state.flow = OTPFlow(
        store,
        providers,
        templates,
        root_url=settings.ROOT_URL,
        default_ttl=settings.OTP_TTL_SECONDS,
        default_max_attempts=settings.OTP_MAX_ATTEMPTS,
    )
    app.state.auth_credentials = auth_credentials

    install_http_hardening(app)
    install_error_handlers(app)

    app.include_router(api_router, prefix="/api")
    app.include_router(web.router, tags=["Web"])

    @app.get("/", include_in_schema=False)
    def landing():
        return PlainTextResponse(settings.APP_NAME)

    _LOG.info("otpgateway %s ready with providers: %s", __version__, ", ".join(sorted(providers)))
    return app
