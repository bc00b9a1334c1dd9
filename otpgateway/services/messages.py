from __future__ import annotations

import logging
from dataclasses import dataclass
from string import Formatter
from typing import Any

_LOG = logging.getLogger("otpgateway.messages")

TEMPLATE_FIELDS = ("namespace", "to", "channel", "otp", "otp_url", "ttl")

DEFAULT_SUBJECT = "Your verification code"
DEFAULT_BODY = "Your verification code is {otp}"


@dataclass(frozen=True)
class MessageTemplates:
    subject: str = DEFAULT_SUBJECT
    body: str = DEFAULT_BODY


def template_fields(template: str) -> set[str]:
    """Returns the placeholder names used in a str.format template."""
    out: set[str] = set()
    for _, name, _, _ in Formatter().parse(template or ""):
        if name:
            out.add(name)
    return out


def _render(template: str, fallback: str, values: dict[str, Any]) -> str:
    try:
        return template.format(**values)
    except (KeyError, IndexError, ValueError) as exc:
        _LOG.warning("bad message template %r: %s", template, exc)
        return fallback.format(**values)


def render_message(
    templates: MessageTemplates,
    *,
    namespace: str,
    to: str,
    channel: str,
    otp: str,
    otp_url: str,
    ttl: float,
    max_body_len: int = 0,
) -> tuple[str, str]:
    values = {
        "namespace": namespace,
        "to": to,
        "channel": channel,
        "otp": otp,
        "otp_url": otp_url,
        "ttl": int(round(ttl)),
    }
    subject = _render(templates.subject, DEFAULT_SUBJECT, values)
    body = _render(templates.body, DEFAULT_BODY, values)
    if max_body_len > 0 and len(body) > max_body_len:
        body = body[:max_body_len]
    return subject, body
