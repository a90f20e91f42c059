from __future__ import annotations
from dataclasses import dataclass
from typing import Any


class SparkError(RuntimeError):
    """Base error of the library."""


class UnsupportedSourceError(SparkError):
    """Raised by a strict stream processor when asked to watch an unknown source."""


@dataclass(slots=True)
class SparkAPIError(SparkError):
    """
    Spark Cloud API error with support for structured responses.

    When the backend returns a JSON error envelope such as:
    {
        "ok": false,
        "error": "invalid_token" | "Permission Denied" | "Variable not found" | ...,
        "error_description": "The access token provided is invalid.",
        "info": "..."
    }

    the structured fields are parsed automatically to ease debugging.
    """
    status_code: int
    message: str
    body: str | None = None

    error_code: str | None = None
    error_description: str | None = None
    info: Any | None = None

    def __str__(self) -> str:
        parts = [f"SparkAPIError(status_code={self.status_code}"]
        if self.error_code:
            parts.append(f", code={self.error_code!r}")
        parts.append(f", message={self.message!r}")
        if self.body:
            parts.append(f", body={len(self.body)} chars")
        parts.append(")")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"SparkAPIError("
            f"status_code={self.status_code}, "
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"error_description={self.error_description!r}, "
            f"info={self.info!r}, "
            f"body={'...' if self.body else None})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dict for structured logging."""
        return {
            "status_code": self.status_code,
            "message": self.message,
            "error_code": self.error_code,
            "error_description": self.error_description,
            "info": self.info,
            "body": self.body,
        }

    @property
    def is_client_error(self) -> bool:
        """True for 4xx responses."""
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        """True for 5xx responses."""
        return 500 <= self.status_code < 600

    @property
    def is_auth_error(self) -> bool:
        """True for authentication (401) or authorization (403) failures."""
        return self.status_code in (401, 403)

    @property
    def is_not_found(self) -> bool:
        """True when the device, variable or function does not exist (404)."""
        return self.status_code == 404
