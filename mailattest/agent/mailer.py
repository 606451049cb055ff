"""Compose and send QR code emails.

Each message is an HTML body whose ``<img>`` points at ``cid:<artifact_id>``
plus the QR image itself as a related inline part with the matching
Content-ID, and a plain-text alternative carrying the raw URI.
"""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Protocol

import aiosmtplib

from ..config import MessageKind, SMTPEndpoint, VerifierConfig
from ..errors import ArtifactIOFailed, MailDeliveryFailed
from .qr_artifact import CodeArtifact


logger = logging.getLogger(__name__)


class MailTransport(Protocol):
    async def send(self, message: EmailMessage) -> dict[str, Any]:  # pragma: no cover - interface
        ...


class SMTPTransport:
    """Deliver messages over SMTP with ``aiosmtplib``.

    A new connection is opened per message so the transport can be shared by
    concurrent flows.  ``secure`` selects implicit TLS; otherwise STARTTLS is
    used when the server offers it.
    """

    def __init__(self, endpoint: SMTPEndpoint, username: str, password: str, *, timeout: float = 60):
        self.endpoint = endpoint
        self.username = username
        self.password = password
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> dict[str, Any]:
        errors, response = await aiosmtplib.send(
            message,
            hostname=self.endpoint.host,
            port=self.endpoint.port,
            username=self.username,
            password=self.password,
            use_tls=self.endpoint.secure,
            timeout=self.timeout,
        )
        return {"rejected": sorted(errors), "response": response}


def compose_message(
    *,
    sender: str,
    recipient: str,
    subject: str,
    html: str,
    artifact: CodeArtifact,
    image: bytes,
) -> EmailMessage:
    """Build the MIME message for one QR code email."""

    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message["Message-Id"] = make_msgid(domain="mailattest.local")

    message.set_content(
        "Open this message in an HTML capable mail client to scan the code,\n"
        "or open the link below on the phone that holds your wallet:\n"
        "\n"
        f"{artifact.uri}\n"
    )
    message.add_alternative(html, subtype="html")
    html_part = message.get_payload()[1]
    html_part.add_related(
        image,
        maintype="image",
        subtype="png",
        cid=f"<{artifact.artifact_id}>",
        filename=artifact.path.name,
        disposition="inline",
    )
    return message


class Mailer:
    """Send one templated QR message per call."""

    def __init__(self, config: VerifierConfig, transport: MailTransport | None = None):
        self.config = config
        self.transport = transport or SMTPTransport(config.smtp, config.user, config.password)

    async def send(self, to: str, kind: MessageKind, artifact: CodeArtifact) -> dict[str, Any]:
        """Mail ``artifact`` to ``to`` using the template registered for ``kind``.

        Raises:
            ArtifactIOFailed: if the QR image cannot be read back.
            MailDeliveryFailed: if the message cannot be rendered or the
                transport fails.
        """

        template = self.config.message_for(kind)
        try:
            image = await asyncio.to_thread(artifact.path.read_bytes)
        except OSError as exc:
            raise ArtifactIOFailed(f"Could not read QR artifact {artifact.path.name}: {exc}") from exc

        try:
            message = compose_message(
                sender=self.config.sender,
                recipient=to,
                subject=template.subject,
                html=template.render(artifact.cid_uri),
                artifact=artifact,
                image=image,
            )
        except Exception as exc:
            raise MailDeliveryFailed(f"Could not compose {kind.value} email to {to!r}: {exc}") from exc

        try:
            info = await self.transport.send(message)
        except Exception as exc:
            raise MailDeliveryFailed(f"Could not deliver {kind.value} email to {to}: {exc}") from exc

        logger.info("Sent %s email to %s", kind.value, to)
        return info


__all__ = [
    "MailTransport",
    "Mailer",
    "SMTPTransport",
    "compose_message",
]
