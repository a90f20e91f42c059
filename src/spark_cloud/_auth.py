"""Access token lookup for the Spark Cloud API."""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_ACCESS_TOKEN = "SPARK_ACCESS_TOKEN"

_MISSING_TOKEN = (
    f"Access token missing. Pass access_token or set {ENV_ACCESS_TOKEN}; "
    "a token can be created with `particle token create` or in the Particle console"
)


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Bearer token sent with every cloud request."""

    access_token: str

    @staticmethod
    def from_env_or_value(access_token: str | None) -> AuthConfig:
        """
        Resolve the token from the argument, then from ``SPARK_ACCESS_TOKEN``.

        Surrounding whitespace is stripped, so a token pasted from a shell or a
        ``.env`` file with a trailing newline still works. A blank value counts
        as missing and falls through to the environment.

        Raises:
            ValueError: If neither source holds a token, or the token contains
                whitespace and so cannot be used in an Authorization header.
        """
        token = (access_token or "").strip() or (os.getenv(ENV_ACCESS_TOKEN) or "").strip()

        if not token:
            raise ValueError(_MISSING_TOKEN)
        if any(ch.isspace() for ch in token):
            raise ValueError("Access token must not contain whitespace")
        return AuthConfig(access_token=token)
