"""
Error types.

Every failure that reaches the CLI becomes one JSON payload, so each error
knows how to describe itself via ``to_payload``.
"""

from typing import Optional


class MoonError(Exception):
    """Base class for errors reported to the caller as JSON."""

    def to_payload(self) -> dict:
        return {"error": True, "message": str(self)}


class PreconditionError(MoonError):
    """A required environment variable is missing."""

    def __init__(self, variable: str, reason: str = ""):
        self.variable = variable
        self.reason = reason
        message = f"Missing required env var {variable}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["missing"] = self.variable
        return payload


class UpstreamError(MoonError):
    """A data or trading provider returned an error or garbage."""

    def __init__(self, provider: str, status: Optional[int], body: str = ""):
        self.provider = provider
        self.status = status
        self.body = body
        if status is None:
            message = f"{provider} error: {body}"
        else:
            message = f"{provider} error ({status}): {body}"
        super().__init__(message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status in (401, 403)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["provider"] = self.provider
        payload["status"] = self.status
        return payload


class InvalidInputError(MoonError):
    """Arguments that parse fine but make no sense (closed market, bad outcome)."""
