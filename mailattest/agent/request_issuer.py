"""Disclosure request issuance bound to an email address."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from email_validator import EmailNotValidError, validate_email

from ..config import VerifierConfig
from ..errors import InvalidEmailFormat, RequestIssuanceFailed


logger = logging.getLogger(__name__)


def check_email_syntax(email: str) -> None:
    """Raise :class:`InvalidEmailFormat` unless ``email`` is well formed.

    Only syntax is checked; no DNS lookups are made.
    """

    if not isinstance(email, str) or not email:
        raise InvalidEmailFormat("Email address must be a non-empty string")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidEmailFormat(f"{email!r} is not a valid email address: {exc}") from exc


def callback_with_email(callback_url: str, email: str) -> str:
    return f"{callback_url}?email={quote(email, safe='@')}"


def request_uri(request_token: str, wallet_scheme: str) -> str:
    return f"{wallet_scheme}:me?requestToken={request_token}"


async def issue_request(config: VerifierConfig, email: str, callback_url: str | None = None) -> str:
    """Ask the credential authority for a disclosure request bound to ``email``.

    Args:
        config: Verifier configuration holding the authority handle.
        email: Address the request is bound to.
        callback_url: Endpoint the wallet answers; defaults to the configured one.

    Returns:
        The signed disclosure request token.

    Raises:
        InvalidEmailFormat: before any authority call is made.
        RequestIssuanceFailed: if the authority fails or the callback URL
            already carries a query string.
    """

    check_email_syntax(email)
    callback_url = callback_url or config.callback_url
    if "?" in callback_url or "#" in callback_url:
        raise RequestIssuanceFailed(f"Callback URL {callback_url!r} must not carry a query string or fragment")

    params: dict[str, Any] = dict(config.custom_request_params)
    params["callbackUrl"] = callback_with_email(callback_url, email)
    params["notifications"] = True

    try:
        token = await config.credential_authority.create_request(params)
    except Exception as exc:
        raise RequestIssuanceFailed(f"Credential authority could not create a request: {exc}") from exc

    logger.info("Issued disclosure request for %s", email)
    return token


__all__ = [
    "callback_with_email",
    "check_email_syntax",
    "issue_request",
    "request_uri",
]
