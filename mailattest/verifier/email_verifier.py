"""Email verification round trip.

``receive`` mails a disclosure request for an address.  ``verify`` takes the
wallet's answer, signs an attestation binding the wallet's address to that
email and delivers it by push and by a second QR email.  Once the attestation
is signed the flow succeeds; delivery failures are returned as warnings on the
result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..agent.mailer import MailTransport, Mailer
from ..agent.qr_artifact import ArtifactStore
from ..agent.request_issuer import issue_request, request_uri
from ..authority import Identity
from ..config import MessageKind, VerifierConfig, build_config
from ..errors import (
    AttestationFailed,
    DeliveryError,
    IdentityResolutionFailed,
    PushNotificationFailed,
)
from .response_resolver import ResponseResolver


logger = logging.getLogger(__name__)


class VerificationState(Enum):
    START = "start"
    EMAIL_RESOLVED = "email_resolved"
    IDENTITY_RECEIVED = "identity_received"
    ATTESTED = "attested"
    PUSHED = "pushed"
    EMAILED = "emailed"
    DONE = "done"


@dataclass
class VerificationResult:
    """Outcome of a successful ``verify`` call."""

    address: str
    push_token: str | None
    attestation: str
    email: str
    access_token: str
    warnings: list[DeliveryError] = field(default_factory=list)
    pushed: bool = False
    emailed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "push_token": self.push_token,
            "attestation": self.attestation,
            "email": self.email,
            "access_token": self.access_token,
            "pushed": self.pushed,
            "emailed": self.emailed,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


def attestation_uri(attestation: str, wallet_scheme: str) -> str:
    return f"{wallet_scheme}:add?attestations={attestation}"


class EmailVerifier:
    """Prove control of an email address and a wallet identity."""

    def __init__(
        self,
        config: VerifierConfig,
        *,
        transport: MailTransport | None = None,
        resolver: ResponseResolver | None = None,
        artifacts: ArtifactStore | None = None,
    ):
        self.config = config
        self.authority = config.credential_authority
        self.mailer = Mailer(config, transport)
        self.resolver = resolver or ResponseResolver()
        self.artifacts = artifacts or ArtifactStore(config.artifact_dir)

    @classmethod
    def from_settings(cls, *, transport: MailTransport | None = None, **settings: Any) -> "EmailVerifier":
        return cls(build_config(**settings), transport=transport)

    async def receive(self, email: str, callback_url: str | None = None) -> str:
        """Mail a disclosure request QR code to ``email``.

        Every failure is raised; the QR file is removed in all cases.

        Returns:
            The disclosure request token.
        """

        request_token = await issue_request(self.config, email, callback_url)
        uri = request_uri(request_token, self.config.wallet_scheme)
        async with self.artifacts.scoped(uri) as artifact:
            await self.mailer.send(email, MessageKind.CONFIRM, artifact)
        return request_token

    async def verify(
        self, access_token: str, *, send_push: bool = True, send_email: bool = True
    ) -> VerificationResult:
        """Attest the email bound to ``access_token`` and deliver the attestation.

        Raises:
            MalformedToken: if the bound email cannot be recovered.
            IdentityResolutionFailed: if the authority rejects the access token.
            AttestationFailed: if the authority cannot sign the attestation.
        """

        state = VerificationState.START
        resolved = self.resolver.resolve(access_token)
        email = resolved.email
        state = self._advance(state, VerificationState.EMAIL_RESOLVED)

        try:
            identity: Identity = await self.authority.receive(access_token)
        except Exception as exc:
            raise IdentityResolutionFailed(f"Credential authority rejected the access token: {exc}") from exc
        state = self._advance(state, VerificationState.IDENTITY_RECEIVED)

        try:
            attestation = await self.authority.attest({"sub": identity.address, "claim": {"email": email}})
        except Exception as exc:
            raise AttestationFailed(f"Could not attest {email} for {identity.address}: {exc}") from exc
        state = self._advance(state, VerificationState.ATTESTED)
        logger.info("Attested %s for %s", email, identity.address)

        result = VerificationResult(
            address=identity.address,
            push_token=identity.push_token,
            attestation=attestation,
            email=email,
            access_token=access_token,
        )
        uri = attestation_uri(attestation, self.config.wallet_scheme)

        if send_push:
            result.pushed = await self._push(identity, uri, result.warnings)
            if result.pushed:
                state = self._advance(state, VerificationState.PUSHED)

        if send_email:
            result.emailed = await self._email_attestation(email, uri, result.warnings)
            if result.emailed:
                state = self._advance(state, VerificationState.EMAILED)

        self._advance(state, VerificationState.DONE)
        return result

    async def _push(self, identity: Identity, uri: str, warnings: list[DeliveryError]) -> bool:
        if not identity.push_token:
            self._warn(warnings, PushNotificationFailed(f"No push token for {identity.address}"))
            return False
        try:
            await self.authority.push(identity.push_token, {"url": uri})
        except Exception as exc:
            failure = PushNotificationFailed(f"Push to {identity.address} failed: {exc}")
            failure.__cause__ = exc
            self._warn(warnings, failure)
            return False
        return True

    async def _email_attestation(self, email: str, uri: str, warnings: list[DeliveryError]) -> bool:
        try:
            artifact = await self.artifacts.create(uri)
        except DeliveryError as exc:
            self._warn(warnings, exc)
            return False

        sent = False
        try:
            await self.mailer.send(email, MessageKind.RECEIVE, artifact)
            sent = True
        except DeliveryError as exc:
            self._warn(warnings, exc)
        finally:
            cleanup_failure = await self.artifacts.delete(artifact)
            if cleanup_failure is not None:
                warnings.append(cleanup_failure)
        return sent

    @staticmethod
    def _warn(warnings: list[DeliveryError], failure: DeliveryError) -> None:
        logger.warning("Attestation delivery step %s failed: %s", failure.step, failure)
        warnings.append(failure)

    @staticmethod
    def _advance(current: VerificationState, target: VerificationState) -> VerificationState:
        logger.debug("Verification %s -> %s", current.value, target.value)
        return target


__all__ = [
    "EmailVerifier",
    "VerificationResult",
    "VerificationState",
    "attestation_uri",
]
