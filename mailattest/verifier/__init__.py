"""Verifier package for the email verification round trip."""

from .email_verifier import (  # noqa: F401
    EmailVerifier,
    VerificationResult,
    VerificationState,
    attestation_uri,
)
from .response_resolver import ResolvedResponse, ResponseResolver  # noqa: F401
