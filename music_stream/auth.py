"""
Bearer token validation against the external login service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import requests

BEARER_PREFIX = "Bearer "


class AuthError(Exception):
    """Raised when a token cannot be validated."""


class AuthHeaderError(ValueError):
    """Raised when the Authorization header is missing or malformed."""


class TokenValidator(Protocol):
    """Checks a bearer token; raises AuthError on rejection."""

    def validate_token(self, token: str) -> None:
        ...


def parse_bearer_token(header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        raise AuthHeaderError("no authorization header found")
    parts = header.split(" ")
    if not header.startswith(BEARER_PREFIX) or len(parts) != 2 or not parts[1]:
        raise AuthHeaderError(
            "authorization header must be in format 'Bearer <token>'"
        )
    return parts[1]


@dataclass
class HttpTokenValidator:
    """
    Forwards the token to ``POST http://<login_url>/token``.

    Only a 200 response is accepted. There is no caching and no retry; the
    session is shared across requests and owned by the caller.
    """

    login_url: Optional[str]
    session: requests.Session

    def validate_token(self, token: str) -> None:
        if not self.login_url:
            raise AuthError("login service url cannot be empty")

        try:
            response = self.session.post(
                f"http://{self.login_url}/token",
                headers={"Authorization": f"{BEARER_PREFIX}{token}"},
            )
        except requests.RequestException as exc:
            raise AuthError(str(exc)) from exc

        if response.status_code != 200:
            raise AuthError(f"non-200 status code received: {response.status_code}")


@dataclass
class InMemoryTokenValidator:
    """Test double; accepts every token unless a token set is given."""

    tokens: Optional[set[str]] = None

    def validate_token(self, token: str) -> None:
        if self.tokens is not None and token not in self.tokens:
            raise AuthError("token rejected")
