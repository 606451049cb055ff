"""Verifier configuration and message templates."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .authority.local import CredentialAuthority
from .errors import ConfigurationError


DEFAULT_WALLET_SCHEME = "me.uport"

Template = Callable[[str], str]


class MessageKind(Enum):
    """Kinds of message the verifier sends."""

    CONFIRM = "confirm"
    RECEIVE = "receive"


@dataclass(frozen=True)
class MessageTemplate:
    subject: str
    render: Template


@dataclass(frozen=True)
class SMTPEndpoint:
    host: str
    port: int
    secure: bool


WELL_KNOWN_SERVICES: Mapping[str, SMTPEndpoint] = MappingProxyType(
    {
        "gmail": SMTPEndpoint("smtp.gmail.com", 465, True),
        "outlook": SMTPEndpoint("smtp-mail.outlook.com", 587, False),
        "hotmail": SMTPEndpoint("smtp-mail.outlook.com", 587, False),
        "yahoo": SMTPEndpoint("smtp.mail.yahoo.com", 465, True),
        "zoho": SMTPEndpoint("smtp.zoho.com", 465, True),
        "sendgrid": SMTPEndpoint("smtp.sendgrid.net", 587, False),
        "mailgun": SMTPEndpoint("smtp.mailgun.org", 587, False),
        "postmark": SMTPEndpoint("smtp.postmarkapp.com", 587, False),
    }
)


def default_confirm_template(cid_uri: str) -> str:
    return (
        "<html><body>"
        "<p>Scan the code below with your wallet to confirm this email address.</p>"
        f'<img src="{cid_uri}" alt="Email confirmation code"/>'
        "</body></html>"
    )


def default_receive_template(cid_uri: str) -> str:
    return (
        "<html><body>"
        "<p>Your email address has been verified. Scan the code below to add the attestation to your wallet.</p>"
        f'<img src="{cid_uri}" alt="Email attestation code"/>'
        "</body></html>"
    )


DEFAULT_CONFIRM_SUBJECT = "Confirm your email address"
DEFAULT_RECEIVE_SUBJECT = "Your email attestation"


@dataclass(frozen=True)
class VerifierConfig:
    """Process-wide, read-only settings shared by every flow."""

    credential_authority: CredentialAuthority
    callback_url: str
    user: str
    password: str
    smtp: SMTPEndpoint
    sender: str
    messages: Mapping[MessageKind, MessageTemplate]
    custom_request_params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    service: str | None = None
    wallet_scheme: str = DEFAULT_WALLET_SCHEME
    artifact_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    def message_for(self, kind: MessageKind) -> MessageTemplate:
        return self.messages[kind]


_REQUIRED = ("credential_authority", "callback_url", "user", "password")
_OPTIONAL = (
    "service",
    "host",
    "port",
    "secure",
    "sender",
    "confirm_subject",
    "receive_subject",
    "confirm_template",
    "receive_template",
    "custom_request_params",
    "wallet_scheme",
    "artifact_dir",
)


def _resolve_endpoint(settings: Mapping[str, Any], problems: list[str]) -> tuple[SMTPEndpoint | None, str | None]:
    service = settings.get("service")
    host = settings.get("host")
    port = settings.get("port")
    secure = settings.get("secure")

    if service is not None and (host is not None or port is not None):
        problems.append("service conflicts with host/port; supply only one of them")
        return None, None

    if service is not None:
        known = WELL_KNOWN_SERVICES.get(str(service).lower())
        if known is None:
            problems.append(f"unknown mail service: {service}")
            return None, None
        if secure is not None:
            known = SMTPEndpoint(known.host, known.port, bool(secure))
        return known, str(service).lower()

    if host is None and port is None:
        problems.append("one of service or host/port is required")
        return None, None

    endpoint_problems: list[str] = []
    if host is None:
        endpoint_problems.append("missing required setting: host")
    if port is None:
        endpoint_problems.append("missing required setting: port")
    elif isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        endpoint_problems.append("port must be an integer between 1 and 65535")
    if endpoint_problems:
        problems.extend(endpoint_problems)
        return None, None
    return SMTPEndpoint(str(host), port, bool(secure)), None


def build_config(**settings: Any) -> VerifierConfig:
    """Validate ``settings`` in one pass and build a :class:`VerifierConfig`.

    Raises:
        ConfigurationError: listing every missing, unknown or conflicting
            setting found.
    """

    problems: list[str] = []

    unknown = sorted(set(settings) - set(_REQUIRED) - set(_OPTIONAL))
    for name in unknown:
        problems.append(f"unknown setting: {name}")

    for name in _REQUIRED:
        value = settings.get(name)
        if value is None or value == "":
            problems.append(f"missing required setting: {name}")

    callback_url = settings.get("callback_url")
    if isinstance(callback_url, str) and ("?" in callback_url or "#" in callback_url):
        problems.append("callback_url must not carry a query string or fragment")

    endpoint, service = _resolve_endpoint(settings, problems)

    for name in ("confirm_template", "receive_template"):
        template = settings.get(name)
        if template is not None and not callable(template):
            problems.append(f"{name} must be callable")

    custom_params = settings.get("custom_request_params") or {}
    if not isinstance(custom_params, Mapping):
        problems.append("custom_request_params must be a mapping")

    if problems:
        raise ConfigurationError(problems)

    assert endpoint is not None
    messages = {
        MessageKind.CONFIRM: MessageTemplate(
            subject=settings.get("confirm_subject") or DEFAULT_CONFIRM_SUBJECT,
            render=settings.get("confirm_template") or default_confirm_template,
        ),
        MessageKind.RECEIVE: MessageTemplate(
            subject=settings.get("receive_subject") or DEFAULT_RECEIVE_SUBJECT,
            render=settings.get("receive_template") or default_receive_template,
        ),
    }
    artifact_dir = settings.get("artifact_dir")

    return VerifierConfig(
        credential_authority=settings["credential_authority"],
        callback_url=settings["callback_url"],
        user=settings["user"],
        password=settings["password"],
        smtp=endpoint,
        sender=settings.get("sender") or settings["user"],
        messages=MappingProxyType(messages),
        custom_request_params=MappingProxyType(dict(custom_params)),
        service=service,
        wallet_scheme=settings.get("wallet_scheme") or DEFAULT_WALLET_SCHEME,
        artifact_dir=Path(artifact_dir) if artifact_dir else Path(tempfile.gettempdir()),
    )


__all__ = [
    "DEFAULT_WALLET_SCHEME",
    "MessageKind",
    "MessageTemplate",
    "SMTPEndpoint",
    "VerifierConfig",
    "WELL_KNOWN_SERVICES",
    "build_config",
    "default_confirm_template",
    "default_receive_template",
]
