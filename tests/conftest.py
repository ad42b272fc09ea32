import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest

from sendpulse_api_client import SendPulseClient, TransportResponse

BASE_URL = "https://api.test"


@dataclass
class Call:
    path: str
    method: str
    headers: Dict[str, str]
    body: Any

    @property
    def token(self) -> Optional[str]:
        auth = self.headers.get("authorization")
        return auth[len("Bearer "):] if auth else None


class FakeTransport:
    """In-memory stand-in for RequestsTransport.

    ``routes`` maps a path to the responses it returns, in order; the
    last one keeps being returned.  Entries may be exceptions, which are
    raised instead, or callables, whose return value is used.  The token
    endpoint hands out ``tok-1``, ``tok-2``, ... unless a route for it is
    set, and always waits for ``token_gate`` when one is given.
    """

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.routes: Dict[str, List[Any]] = {}
        self.token_gate: Optional[threading.Event] = None
        self.issued_tokens = 0
        self._lock = threading.Lock()

    def route(self, path: str, *responses: Any) -> None:
        self.routes[path] = list(responses)

    def token_calls(self) -> List[Call]:
        return [c for c in self.calls if c.path == "oauth/access_token"]

    def api_calls(self) -> List[Call]:
        return [c for c in self.calls if c.path != "oauth/access_token"]

    def send(self, url, method, headers, body=None):
        assert url.startswith(BASE_URL + "/")
        path = url[len(BASE_URL) + 1:]
        with self._lock:
            self.calls.append(Call(path, method, dict(headers), body))

        if path == "oauth/access_token" and self.token_gate is not None:
            assert self.token_gate.wait(5), "token gate never opened"

        if path == "oauth/access_token" and path not in self.routes:
            with self._lock:
                self.issued_tokens += 1
                token = f"tok-{self.issued_tokens}"
            return TransportResponse(200, {"access_token": token, "token_type": "Bearer"})

        with self._lock:
            responses = self.routes.get(path)
            if not responses:
                return TransportResponse(200, {"result": True})
            response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    return SendPulseClient(
        client_id="user-id",
        client_secret="secret",
        base_url=BASE_URL,
        transport=transport,
    )
