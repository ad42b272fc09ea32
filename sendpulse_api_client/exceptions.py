"""
Custom exception types for the SendPulse API client.

These exceptions allow callers to distinguish between a request that
was rejected before it left the process, a failed token exchange, an
error status returned by the API and a network failure.  The
endpoint methods of :class:`~sendpulse_api_client.SendPulseClient`
do not raise them; they are carried on the returned
:class:`~sendpulse_api_client.ApiResult` instead.
"""

from __future__ import annotations

from typing import Any, Optional


class SendPulseError(Exception):
    """Base exception for all SendPulse client errors.

    ``post_data`` holds the body of the request that failed, when
    there was one, so the failure can be diagnosed without replaying it.
    """

    def __init__(self, message: str, *, post_data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.post_data = post_data

    def to_dict(self) -> dict:
        data: dict = {"is_error": 1}
        if self.message:
            data["message"] = self.message
        if self.post_data:
            data["post_data"] = self.post_data
        return data


class ValidationError(SendPulseError):
    """Raised when a required argument is missing or empty."""


class AuthError(SendPulseError):
    """Raised when authentication or token retrieval fails."""


class RemoteError(SendPulseError):
    """Raised when an HTTP request to the SendPulse API returns an error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: Any = None,
        post_data: Any = None,
    ) -> None:
        super().__init__(message, post_data=post_data)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        if self.body is not None:
            data["body"] = self.body
        return data


class TransportError(SendPulseError):
    """Raised when the request could not be delivered at all (DNS, connection, timeout)."""
