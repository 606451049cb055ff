"""Credential authority interface and an in-process JWT implementation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from jose import jwt
from jose.exceptions import JWTError


class CredentialAuthority(Protocol):
    """Signer and verifier of identity tokens used by the verifier."""

    async def create_request(self, params: Mapping[str, Any]) -> str:  # pragma: no cover - interface
        ...

    async def receive(self, access_token: str) -> "Identity":  # pragma: no cover - interface
        ...

    async def attest(self, claim: Mapping[str, Any]) -> str:  # pragma: no cover - interface
        ...

    async def push(self, push_token: str, payload: Mapping[str, Any]) -> None:  # pragma: no cover - interface
        ...


@dataclass(frozen=True)
class Identity:
    """Identity resolved from an access token."""

    address: str
    push_token: str | None


@dataclass(frozen=True)
class PushRecord:
    push_token: str
    payload: dict[str, Any]


class LocalCredentialAuthority:
    """HS256 authority that keeps everything in process.

    Tokens use the claim names a mobile wallet expects: request tokens carry
    ``callback``, access tokens carry ``req`` and ``pushToken``. Pushes are
    recorded in memory instead of being delivered, which makes the class
    useful for development and tests.
    """

    algorithm = "HS256"

    def __init__(self, issuer: str, secret: str, *, attestation_ttl: int = 365 * 24 * 3600):
        if not secret:
            raise ValueError("Signing secret must be a non-empty string")
        self.issuer = issuer
        self._secret = secret
        self.attestation_ttl = attestation_ttl
        self.pushes: list[PushRecord] = []

    def _sign(self, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    async def create_request(self, params: Mapping[str, Any]) -> str:
        callback = params.get("callbackUrl")
        if not callback:
            raise ValueError("Disclosure requests need a callbackUrl")
        claims: dict[str, Any] = {
            key: value for key, value in params.items() if key not in {"callbackUrl", "notifications"}
        }
        claims.update(
            {
                "iss": self.issuer,
                "iat": int(time.time()),
                "type": "shareReq",
                "callback": callback,
            }
        )
        if params.get("notifications"):
            claims["permissions"] = ["notifications"]
        return self._sign(claims)

    def issue_access_token(self, request_token: str, address: str, push_token: str | None = None) -> str:
        """Answer ``request_token`` the way a wallet would."""

        claims: dict[str, Any] = {
            "iss": address,
            "iat": int(time.time()),
            "type": "shareResp",
            "req": request_token,
        }
        if push_token:
            claims["pushToken"] = push_token
        return self._sign(claims)

    async def receive(self, access_token: str) -> Identity:
        try:
            claims = jwt.decode(access_token, self._secret, algorithms=[self.algorithm])
        except JWTError as exc:
            raise ValueError(f"Access token rejected: {exc}") from exc

        request_token = claims.get("req")
        if not isinstance(request_token, str):
            raise ValueError("Access token does not answer a disclosure request")
        try:
            request = jwt.decode(request_token, self._secret, algorithms=[self.algorithm])
        except JWTError as exc:
            raise ValueError(f"Disclosure request was not issued by {self.issuer}: {exc}") from exc
        if request.get("iss") != self.issuer:
            raise ValueError(f"Disclosure request was not issued by {self.issuer}")

        return Identity(address=str(claims["iss"]), push_token=claims.get("pushToken"))

    async def attest(self, claim: Mapping[str, Any]) -> str:
        subject = claim.get("sub")
        if not subject:
            raise ValueError("Attestations need a subject")
        issued_at = int(time.time())
        return self._sign(
            {
                "iss": self.issuer,
                "sub": subject,
                "claim": dict(claim.get("claim") or {}),
                "iat": issued_at,
                "exp": issued_at + self.attestation_ttl,
            }
        )

    async def push(self, push_token: str, payload: Mapping[str, Any]) -> None:
        if not push_token:
            raise ValueError("Push delivery needs a push token")
        self.pushes.append(PushRecord(push_token=push_token, payload=dict(payload)))


__all__ = [
    "CredentialAuthority",
    "Identity",
    "LocalCredentialAuthority",
    "PushRecord",
]
