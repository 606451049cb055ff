"""Credential authority abstractions."""

from .local import CredentialAuthority, Identity, LocalCredentialAuthority, PushRecord

__all__ = [
    "CredentialAuthority",
    "Identity",
    "LocalCredentialAuthority",
    "PushRecord",
]
