from __future__ import annotations

import logging
from typing import Any

from otpgateway.providers.base import Provider
from otpgateway.providers.console import ConsoleProvider
from otpgateway.providers.kaleyra import KaleyraProvider
from otpgateway.providers.smtp import SMTPProvider
from otpgateway.providers.webhook import WebhookProvider
from otpgateway.services.messages import TEMPLATE_FIELDS, MessageTemplates, template_fields

_LOG = logging.getLogger("otpgateway.providers")


def _build_provider(name: str, settings: Any) -> Provider:
    timeout = float(settings.PUSH_TIMEOUT_SECONDS)
    if name == "console":
        return ConsoleProvider()
    if name == "smtp":
        return SMTPProvider(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            sender=settings.SMTP_FROM,
            use_tls=settings.SMTP_USE_TLS,
            use_ssl=settings.SMTP_USE_SSL,
            timeout=timeout,
        )
    if name == "webhook":
        return WebhookProvider(
            url=settings.WEBHOOK_URL,
            provider_id=settings.WEBHOOK_ID,
            username=settings.WEBHOOK_USERNAME,
            password=settings.WEBHOOK_PASSWORD,
            channel_name=settings.WEBHOOK_CHANNEL_NAME,
            address_name=settings.WEBHOOK_ADDRESS_NAME,
            max_address_len=settings.WEBHOOK_MAX_ADDRESS_LEN,
            max_otp_len=settings.WEBHOOK_MAX_OTP_LEN,
            timeout=timeout,
        )
    if name == "kaleyra":
        return KaleyraProvider(
            api_key=settings.KALEYRA_API_KEY,
            sid=settings.KALEYRA_SID,
            sender=settings.KALEYRA_SENDER,
            default_phone_code=settings.KALEYRA_DEFAULT_PHONE_CODE,
            timeout=timeout,
        )
    raise ValueError(f"unknown provider: {name}")


def build_providers(settings: Any) -> tuple[dict[str, Provider], dict[str, MessageTemplates]]:
    """Builds the provider registry and each provider's message templates from settings."""
    providers: dict[str, Provider] = {}
    templates: dict[str, MessageTemplates] = {}
    for name in settings.providers_list:
        provider = _build_provider(name, settings)
        if provider.id() in providers:
            raise ValueError(f"duplicate provider ID: {provider.id()}")
        subject, body = settings.provider_templates(name)
        unknown = (template_fields(subject) | template_fields(body)) - set(TEMPLATE_FIELDS)
        if unknown:
            raise ValueError(f"unknown fields in '{name}' templates: {', '.join(sorted(unknown))}")
        providers[provider.id()] = provider
        templates[provider.id()] = MessageTemplates(subject=subject, body=body)
        _LOG.info("loaded provider '%s'", provider.id())
    return providers, templates


__all__ = [
    "ConsoleProvider",
    "KaleyraProvider",
    "Provider",
    "SMTPProvider",
    "WebhookProvider",
    "build_providers",
]
