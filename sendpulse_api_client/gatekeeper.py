"""
Token lifecycle and request admission for the SendPulse API.

:class:`TokenGatekeeper` owns the OAuth2 access token of one client and
decides, for every outgoing request, whether it can be sent right away,
has to wait for a token exchange already in flight, or has to start
one.  Only one token exchange runs at a time; requests that arrive in
the meantime are queued and sent in arrival order once the token is
known.  A request answered with ``401 Unauthorized`` invalidates the
token and is resubmitted once with a fresh one.

Failures never escape :meth:`TokenGatekeeper.dispatch` as exceptions:
they come back as an :class:`ApiResult` carrying one of the errors from
:mod:`sendpulse_api_client.exceptions`.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from .exceptions import AuthError, RemoteError, SendPulseError, TransportError
from .transport import TransportResponse

logger = logging.getLogger(__name__)


class TokenState(enum.Enum):
    ABSENT = "absent"
    FETCHING = "fetching"
    PRESENT = "present"


@dataclass(frozen=True)
class Credentials:
    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, client_secret='***')"


@dataclass(frozen=True)
class RequestEnvelope:
    """One API call: where it goes, how, with what, and whether it needs a token."""

    path: str
    method: str = "POST"
    body: Any = None
    use_token: bool = True


@dataclass(frozen=True)
class ApiResult:
    """Outcome of an API call.

    Exactly one of ``data`` and ``error`` is meaningful: ``error`` is
    ``None`` on success, in which case ``data`` holds the decoded
    response body.
    """

    data: Any = None
    error: Optional[SendPulseError] = None

    @classmethod
    def failure(cls, error: SendPulseError) -> "ApiResult":
        return cls(error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> Any:
        """Raise the carried error, or return ``data`` if there is none."""
        if self.error is not None:
            raise self.error
        return self.data

    def to_dict(self) -> Any:
        """Return ``data``, or the ``{"is_error": 1, ...}`` form of the error."""
        if self.error is not None:
            return self.error.to_dict()
        return self.data


@dataclass
class _PendingRequest:
    # envelope is None for callers that only wait for the token itself
    envelope: Optional[RequestEnvelope]
    retry_on_auth_failure: bool = True
    # resolves to the token on admission, or to a failed ApiResult
    future: "Future[Any]" = field(default_factory=Future)
    successor: Optional["_PendingRequest"] = None


class TokenGatekeeper:
    """Attach bearer tokens to requests, fetching the token at most once at a time.

    Parameters
    ----------
    credentials : Credentials
        The OAuth client id and secret.
    transport
        Object with a ``send(url, method, headers, body)`` method
        returning a :class:`~sendpulse_api_client.transport.TransportResponse`
        or raising :class:`~sendpulse_api_client.exceptions.TransportError`.
    base_url : str
        Scheme and host every request path is resolved against.
    token_path : str, optional
        Path of the OAuth token endpoint.

    Notes
    -----
    The token state and the pending queue are only touched while
    holding an internal lock; no network call is made with the lock
    held.  Once a token exchange succeeds the queued callers are woken
    one by one in the order they were queued, and each sends its own
    request from its own thread.  A slow response therefore holds up
    only the caller waiting for it.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport: Any,
        *,
        base_url: str,
        token_path: str = "oauth/access_token",
    ) -> None:
        self.credentials = credentials
        self.transport = transport
        self.base_url = base_url
        self.token_path = token_path

        self._lock = threading.Lock()
        self._state = TokenState.ABSENT
        self._token: Optional[str] = None
        self._pending: Deque[_PendingRequest] = deque()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def dispatch(self, envelope: RequestEnvelope) -> ApiResult:
        """Send ``envelope`` and return its outcome.

        Unauthenticated envelopes are sent immediately.  Authenticated
        ones are sent with the current token if there is one, and
        otherwise queued until a token exchange completes; if no
        exchange is running the calling thread starts one.  Blocks
        until the request has been answered.
        """
        return self._dispatch(envelope, retry_on_auth_failure=True)

    def refresh(self) -> ApiResult:
        """Acquire a new token now.

        The current token is discarded.  If an exchange is already in
        flight this waits for it instead of starting another.  On
        success ``data`` is ``{"access_token": <token>}``.
        """
        waiter = _PendingRequest(envelope=None)
        with self._lock:
            self._pending.append(waiter)
            start_fetch = self._state is not TokenState.FETCHING
            if start_fetch:
                self._state = TokenState.FETCHING
                self._token = None
        if start_fetch:
            self._fetch_and_drain()
        outcome = waiter.future.result()
        if isinstance(outcome, ApiResult):
            return outcome
        return ApiResult(data={"access_token": outcome})

    def on_auth_failure(self, envelope: RequestEnvelope, token: Optional[str] = None) -> ApiResult:
        """Invalidate the rejected token and resubmit ``envelope`` once.

        ``token`` is the token the rejected request carried.  When
        another caller has already replaced it, the newer token is kept
        and used for the resubmission.  A second rejection is returned
        as a :class:`RemoteError` rather than retried.
        """
        with self._lock:
            if self._state is TokenState.PRESENT and (token is None or token == self._token):
                logger.warning("Access token rejected by %s; discarding it", envelope.path)
                self._state = TokenState.ABSENT
                self._token = None
        return self._dispatch(envelope, retry_on_auth_failure=False)

    def _dispatch(self, envelope: RequestEnvelope, *, retry_on_auth_failure: bool) -> ApiResult:
        logger.debug("send request: %s %s (token=%s)", envelope.method, envelope.path, envelope.use_token)
        if not envelope.use_token:
            return self._send(envelope, {}, token=None, retry_on_auth_failure=False)

        with self._lock:
            if self._state is TokenState.PRESENT:
                token = self._token
                pending = None
                start_fetch = False
            else:
                pending = _PendingRequest(envelope, retry_on_auth_failure)
                self._pending.append(pending)
                start_fetch = self._state is TokenState.ABSENT
                if start_fetch:
                    self._state = TokenState.FETCHING

        if pending is None:
            return self._send(
                envelope,
                {"authorization": f"Bearer {token}"},
                token=token,
                retry_on_auth_failure=retry_on_auth_failure,
            )

        logger.debug("no token yet, queueing %s %s", envelope.method, envelope.path)
        if start_fetch:
            self._fetch_and_drain()
        outcome = pending.future.result()
        if isinstance(outcome, ApiResult):
            return outcome

        # Admitted with a token; let the next queued caller go before sending
        token = outcome
        self._admit(pending.successor, token)
        return self._send(
            envelope,
            {"authorization": f"Bearer {token}"},
            token=token,
            retry_on_auth_failure=retry_on_auth_failure,
        )

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------
    def _fetch_and_drain(self) -> None:
        try:
            token = self._request_token()
        except Exception as exc:
            message = exc.message if isinstance(exc, AuthError) else f"Token request failed: {exc}"
            logger.warning("%s", message)
            with self._lock:
                self._state = TokenState.ABSENT
                self._token = None
                pending = self._take_pending()
            # Every queued caller learns about the failure; nothing stays queued
            for request in pending:
                body = request.envelope.body if request.envelope is not None else None
                request.future.set_result(ApiResult.failure(AuthError(message, post_data=body)))
            return

        with self._lock:
            self._state = TokenState.PRESENT
            self._token = token
            pending = self._take_pending()
        logger.info("Access token acquired; releasing %d queued request(s)", len(pending))

        for request, successor in zip(pending, pending[1:]):
            request.successor = successor
        if pending:
            self._admit(pending[0], token)

    def _admit(self, request: Optional[_PendingRequest], token: str) -> None:
        """Hand ``token`` to ``request``, the next caller in the released queue.

        Each admitted caller admits its successor right before its own
        send, so sends start in queue order without any caller waiting
        for an earlier caller's response.  Token-only waiters hold no
        send and pass the token straight on.
        """
        while request is not None and request.envelope is None:
            request.future.set_result(token)
            request = request.successor
        if request is not None:
            request.future.set_result(token)

    def _take_pending(self) -> List[_PendingRequest]:
        pending = list(self._pending)
        self._pending.clear()
        return pending

    def _request_token(self) -> str:
        """Run the client-credentials exchange and return the access token.

        Raises
        ------
        AuthError
            If the token endpoint cannot be reached, answers with a
            non-success status, or omits ``access_token``.
        """
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
        }
        url = self._prepare_url(self.token_path)
        logger.info("Requesting access token from %s", url)
        try:
            response = self.transport.send(url, "POST", {}, payload)
        except TransportError as exc:
            raise AuthError(f"Failed to connect to auth server: {exc.message}") from exc

        if not response.ok:
            raise AuthError(
                f"Authentication failed with status {response.status_code}: {response.body}"
            )
        token = response.body.get("access_token") if isinstance(response.body, dict) else None
        if not token:
            raise AuthError("Authentication response did not contain an access_token")
        return token

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------
    def _prepare_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _send(
        self,
        envelope: RequestEnvelope,
        headers: Dict[str, str],
        *,
        token: Optional[str],
        retry_on_auth_failure: bool,
    ) -> ApiResult:
        url = self._prepare_url(envelope.path)
        try:
            response: TransportResponse = self.transport.send(url, envelope.method, headers, envelope.body)
        except TransportError as exc:
            logger.debug("transport failure for %s: %s", url, exc)
            if exc.post_data is None:
                exc.post_data = envelope.body
            return ApiResult.failure(exc)

        if response.status_code == 401 and envelope.use_token:
            if retry_on_auth_failure:
                return self.on_auth_failure(envelope, token)
            logger.warning("Access token rejected again by %s; giving up", envelope.path)
            return ApiResult.failure(
                RemoteError(
                    f"401 Error for {url}: token rejected after refresh",
                    status_code=401,
                    body=response.body,
                    post_data=envelope.body,
                )
            )

        if response.ok:
            return ApiResult(data=response.body)

        logger.debug("%s %s failed: %s %s", envelope.method, url, response.status_code, response.body)
        return ApiResult.failure(
            RemoteError(
                f"{response.status_code} Error for {url}: {response.body}",
                status_code=response.status_code,
                body=response.body,
                post_data=envelope.body,
            )
        )
