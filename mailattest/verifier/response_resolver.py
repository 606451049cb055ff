"""Recover the email bound to a wallet response.

The access token embeds the original request token in its ``req`` claim and
the request token carries the callback URL it was issued for, whose query
string holds the email.  The claims are read without checking signatures:
this is metadata recovery only.  Whether the tokens are genuine is decided by
the credential authority when it resolves the identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.parse import parse_qs, urlsplit

from jose import jwt
from jose.exceptions import JWTError
from jsonschema import Draft202012Validator

from ..agent.request_issuer import check_email_syntax
from ..errors import InvalidEmailFormat, MalformedToken


ACCESS_TOKEN_SCHEMA = {
    "type": "object",
    "required": ["req"],
    "properties": {"req": {"type": "string", "minLength": 1}},
}

REQUEST_TOKEN_SCHEMA = {
    "type": "object",
    "required": ["callback"],
    "properties": {"callback": {"type": "string", "minLength": 1}},
}

_ACCESS_VALIDATOR = Draft202012Validator(ACCESS_TOKEN_SCHEMA)
_REQUEST_VALIDATOR = Draft202012Validator(REQUEST_TOKEN_SCHEMA)

ClaimsDecoder = Callable[[str], Mapping[str, Any]]


@dataclass(frozen=True)
class ResolvedResponse:
    request_token: str
    email: str


def decode_unverified_claims(token: str) -> Mapping[str, Any]:
    try:
        return jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedToken(f"Token could not be decoded: {exc}") from exc


def _check(validator: Draft202012Validator, claims: Any, label: str) -> None:
    errors = sorted(validator.iter_errors(claims), key=lambda err: list(err.path))
    if errors:
        details = "; ".join(f"{list(error.path)}: {error.message}" for error in errors)
        raise MalformedToken(f"{label} is missing required metadata: {details}")


def email_from_callback(callback: str) -> str:
    query = parse_qs(urlsplit(callback).query)
    values = query.get("email")
    if not values:
        raise MalformedToken("Request callback does not carry an email parameter")
    if len(values) > 1:
        raise MalformedToken("Request callback carries more than one email parameter")
    email = values[0]
    try:
        check_email_syntax(email)
    except InvalidEmailFormat as exc:
        raise MalformedToken(f"Request callback carries an invalid email: {exc}") from exc
    return email


class ResponseResolver:
    """Resolve the request token and email behind an access token."""

    def __init__(self, decode: ClaimsDecoder = decode_unverified_claims):
        self._decode = decode

    def _claims(self, token: str) -> Mapping[str, Any]:
        try:
            return self._decode(token)
        except MalformedToken:
            raise
        except Exception as exc:
            raise MalformedToken(f"Token could not be decoded: {exc}") from exc

    def resolve(self, access_token: str) -> ResolvedResponse:
        access_claims = self._claims(access_token)
        _check(_ACCESS_VALIDATOR, access_claims, "Access token")
        request_token = access_claims["req"]

        request_claims = self._claims(request_token)
        _check(_REQUEST_VALIDATOR, request_claims, "Request token")

        email = email_from_callback(request_claims["callback"])
        return ResolvedResponse(request_token=request_token, email=email)


__all__ = [
    "ACCESS_TOKEN_SCHEMA",
    "REQUEST_TOKEN_SCHEMA",
    "ResolvedResponse",
    "ResponseResolver",
    "decode_unverified_claims",
    "email_from_callback",
]
