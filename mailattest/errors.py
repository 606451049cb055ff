"""Error taxonomy for the email verification round trip."""

from __future__ import annotations

from typing import Sequence


class EmailVerifierError(Exception):
    """Base class for every error raised by mailattest."""


class ConfigurationError(EmailVerifierError):
    """Raised when verifier settings are incomplete or contradictory.

    All problems found in one validation pass are reported together.
    """

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("Invalid verifier configuration: " + "; ".join(self.problems))


class InvalidEmailFormat(EmailVerifierError):
    """The supplied address is not a syntactically valid email."""


class RequestIssuanceFailed(EmailVerifierError):
    """The credential authority could not create a disclosure request."""


class MalformedToken(EmailVerifierError):
    """A token lacks the metadata needed to recover the bound email."""


class IdentityResolutionFailed(EmailVerifierError):
    """The credential authority rejected or could not resolve an access token."""


class AttestationFailed(EmailVerifierError):
    """The credential authority could not sign the email attestation."""


class DeliveryError(EmailVerifierError):
    """Failure of a delivery step.

    Collected as a warning by ``verify`` and raised by ``receive``.
    """

    step = "delivery"

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step, "message": str(self)}


class PushNotificationFailed(DeliveryError):
    step = "push"


class MailDeliveryFailed(DeliveryError):
    step = "mail"


class ArtifactIOFailed(DeliveryError):
    step = "artifact"


__all__ = [
    "EmailVerifierError",
    "ConfigurationError",
    "InvalidEmailFormat",
    "RequestIssuanceFailed",
    "MalformedToken",
    "IdentityResolutionFailed",
    "AttestationFailed",
    "DeliveryError",
    "PushNotificationFailed",
    "MailDeliveryFailed",
    "ArtifactIOFailed",
]
