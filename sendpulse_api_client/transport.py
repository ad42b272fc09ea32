"""
HTTP transport used by the SendPulse client.

:class:`RequestsTransport` performs a single HTTP exchange with the
``requests`` library and reports the status code and decoded body.  It
knows nothing about tokens or retries; that is the job of
:class:`~sendpulse_api_client.gatekeeper.TokenGatekeeper`.  Any object
with a compatible ``send`` method can be passed to the client instead,
which is how the test suite replaces the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class RequestsTransport:
    """Send requests with :func:`requests.request`.

    Parameters
    ----------
    timeout : float, optional
        Timeout in seconds for each underlying HTTP request.  ``None``
        waits indefinitely.
    """

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def send(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Any = None,
    ) -> TransportResponse:
        """Perform one HTTP request.

        ``GET`` bodies are sent as query parameters; every other verb
        sends ``body`` as JSON.

        Raises
        ------
        TransportError
            If the request could not be completed (DNS failure, refused
            connection, timeout and the like).
        """
        method = method.upper()
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if method == "GET":
            kwargs["params"] = body or None
        else:
            kwargs["json"] = body
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(
                f"Failed to connect to {url}: {exc}", post_data=body
            ) from exc

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return TransportResponse(response.status_code, _decode_body(response))


def _decode_body(response: requests.Response) -> Any:
    # Try JSON first, fall back to text
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
