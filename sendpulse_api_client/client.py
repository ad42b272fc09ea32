"""
Client implementation for the SendPulse REST API.

This module defines the :class:`SendPulseClient` class which
authenticates against the SendPulse OAuth endpoint using the OAuth2
client credentials grant and exposes one method per API endpoint
(address books, campaigns, senders, emails, blacklist, balance and
the SMTP relay).  The access token is requested lazily on the first
call that needs it and replaced automatically when the API rejects it.

Usage
-----

.. code-block:: python

    from sendpulse_api_client import SendPulseClient

    client = SendPulseClient(client_id="abc123", client_secret="shhsecret")

    result = client.create_address_book("Newsletter")
    if result.is_error:
        print(result.error.message)
    else:
        print(result.data["id"])

Every endpoint method returns an :class:`~sendpulse_api_client.ApiResult`.
Failures (missing arguments, failed authentication, error statuses and
network problems) are reported on the result rather than raised; call
:meth:`ApiResult.raise_for_error` to turn them into exceptions.
"""

from __future__ import annotations

import base64
import logging
import os
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Optional, Union
from urllib.parse import quote

from dotenv import load_dotenv

from .exceptions import ValidationError
from .gatekeeper import ApiResult, Credentials, RequestEnvelope, TokenGatekeeper, TokenState
from .serializer import serialize
from .transport import RequestsTransport

logger = logging.getLogger(__name__)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _segment(value: Any) -> str:
    return quote(str(value), safe="@")


def _base64(value: Union[str, Iterable[str]]) -> str:
    if not isinstance(value, str):
        value = ",".join(value)
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class SendPulseClient:
    """A client for the SendPulse REST API.

    Parameters
    ----------
    client_id : str
        Your SendPulse API user id.
    client_secret : str
        Your SendPulse API secret.
    base_url : str, optional
        Override the API base URL.  Defaults to
        ``https://api.sendpulse.com``.
    token_path : str, optional
        Path of the OAuth token endpoint relative to ``base_url``.
    timeout : float, optional
        Timeout in seconds for each HTTP request made by the default
        transport.
    transport : object, optional
        Replacement for :class:`~sendpulse_api_client.transport.RequestsTransport`.
        Anything with the same ``send`` method will do.

    Notes
    -----
    The client may be shared between threads.  Calls made before a
    token exists wait for a single token request and are then sent in
    the order they were made.  A call rejected with ``401`` causes the
    token to be discarded and the call to be repeated once with a new
    token.
    """

    DEFAULT_BASE_URL = "https://api.sendpulse.com"
    DEFAULT_TOKEN_PATH = "oauth/access_token"

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        base_url: Optional[str] = None,
        token_path: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Any = None,
    ) -> None:
        if not client_id:
            raise ValueError("client_id must be provided")
        if not client_secret:
            raise ValueError("client_secret must be provided")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive, got %r" % timeout)

        self.credentials = Credentials(client_id, client_secret)
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.timeout = timeout
        self.transport = transport or RequestsTransport(timeout=timeout)
        self.gatekeeper = TokenGatekeeper(
            self.credentials,
            self.transport,
            base_url=self.base_url,
            token_path=token_path or self.DEFAULT_TOKEN_PATH,
        )

    @classmethod
    def from_env(cls, *, dotenv_path: Optional[str] = None, **kwargs: Any) -> "SendPulseClient":
        """Build a client from environment variables.

        Reads ``SENDPULSE_CLIENT_ID``, ``SENDPULSE_CLIENT_SECRET`` and,
        when set, ``SENDPULSE_API_URL`` and ``SENDPULSE_TIMEOUT``, after
        loading a ``.env`` file if one is found.  Keyword arguments
        take precedence over the environment.
        """
        load_dotenv(dotenv_path)
        timeout = os.getenv("SENDPULSE_TIMEOUT")
        kwargs.setdefault("client_id", os.getenv("SENDPULSE_CLIENT_ID", ""))
        kwargs.setdefault("client_secret", os.getenv("SENDPULSE_CLIENT_SECRET", ""))
        kwargs.setdefault("base_url", os.getenv("SENDPULSE_API_URL") or None)
        kwargs.setdefault("timeout", float(timeout) if timeout else None)
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @property
    def token_state(self) -> TokenState:
        """Where the access token currently stands."""
        return self.gatekeeper.state

    def refresh_token(self) -> ApiResult:
        """Discard the current access token and request a new one."""
        return self.gatekeeper.refresh()

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        use_token: bool = True,
    ) -> ApiResult:
        """Perform a request against the SendPulse API.

        Parameters
        ----------
        method : str
            The HTTP verb, such as ``"GET"``, ``"POST"``, ``"PUT"`` or ``"DELETE"``.
        path : str
            The endpoint path relative to the base URL, e.g. ``"addressbooks"``.
        body : object, optional
            JSON-serialisable request data.  Sent as query parameters
            for ``GET`` requests and as a JSON body otherwise.
        use_token : bool, optional
            Whether to attach the bearer token.  Defaults to ``True``.

        Returns
        -------
        ApiResult
            The decoded response body on success, otherwise the error.
        """
        envelope = RequestEnvelope(path=path, method=method.upper(), body=body, use_token=use_token)
        return self.gatekeeper.dispatch(envelope)

    def get(self, path: str, body: Any = None) -> ApiResult:
        """Perform a GET request.

        See :meth:`request` for full parameter documentation.
        """
        return self.request("GET", path, body)

    def post(self, path: str, body: Any = None) -> ApiResult:
        """Perform a POST request.

        See :meth:`request` for full parameter documentation.
        """
        return self.request("POST", path, body)

    def put(self, path: str, body: Any = None) -> ApiResult:
        """Perform a PUT request.

        See :meth:`request` for full parameter documentation.
        """
        return self.request("PUT", path, body)

    def delete(self, path: str, body: Any = None) -> ApiResult:
        """Perform a DELETE request.

        See :meth:`request` for full parameter documentation.
        """
        return self.request("DELETE", path, body)

    @staticmethod
    def _invalid(message: str) -> ApiResult:
        logger.debug("rejected call without contacting the API: %s", message)
        return ApiResult.failure(ValidationError(message))

    @staticmethod
    def _paging(limit: Optional[int], offset: Optional[int]) -> Dict[str, int]:
        data = {}
        if limit:
            data["limit"] = limit
        if offset:
            data["offset"] = offset
        return data

    # ------------------------------------------------------------------
    # Address books
    # ------------------------------------------------------------------
    def list_address_books(self, limit: Optional[int] = None, offset: Optional[int] = None) -> ApiResult:
        """List address books, optionally paged with ``limit`` and ``offset``."""
        return self.get("addressbooks", self._paging(limit, offset))

    def create_address_book(self, book_name: str) -> ApiResult:
        """Create an address book called ``book_name``."""
        if _is_blank(book_name):
            return self._invalid("Empty book name")
        return self.post("addressbooks", {"bookName": book_name})

    def edit_address_book(self, book_id: Any, book_name: str) -> ApiResult:
        """Rename an address book."""
        if _is_blank(book_id) or _is_blank(book_name):
            return self._invalid("Empty book name or book id")
        return self.put(f"addressbooks/{_segment(book_id)}", {"name": book_name})

    def remove_address_book(self, book_id: Any) -> ApiResult:
        """Delete an address book."""
        if _is_blank(book_id):
            return self._invalid("Empty book id")
        return self.delete(f"addressbooks/{_segment(book_id)}", {})

    def get_book_info(self, book_id: Any) -> ApiResult:
        """Get the details of an address book."""
        if _is_blank(book_id):
            return self._invalid("Empty book id")
        return self.get(f"addressbooks/{_segment(book_id)}", {})

    def get_emails_from_book(self, book_id: Any) -> ApiResult:
        """List the emails stored in an address book."""
        if _is_blank(book_id):
            return self._invalid("Empty book id")
        return self.get(f"addressbooks/{_segment(book_id)}/emails", {})

    def add_emails(self, book_id: Any, emails: Any) -> ApiResult:
        """Add emails to an address book.

        ``emails`` is a list of addresses, or of mappings with an
        ``email`` key and a ``variables`` mapping, and is sent in PHP
        serialized form.
        """
        if _is_blank(book_id) or _is_blank(emails):
            return self._invalid("Empty email or book id")
        return self.post(f"addressbooks/{_segment(book_id)}/emails", {"emails": serialize(emails)})

    def remove_emails(self, book_id: Any, emails: Any) -> ApiResult:
        """Remove emails from an address book; ``emails`` is sent PHP serialized."""
        if _is_blank(book_id) or _is_blank(emails):
            return self._invalid("Empty email or book id")
        return self.delete(f"addressbooks/{_segment(book_id)}/emails", {"emails": serialize(emails)})

    def get_email_info(self, book_id: Any, email: str) -> ApiResult:
        """Get the details of one email in an address book."""
        if _is_blank(book_id) or _is_blank(email):
            return self._invalid("Empty email or book id")
        return self.get(f"addressbooks/{_segment(book_id)}/emails/{_segment(email)}", {})

    def campaign_cost(self, book_id: Any) -> ApiResult:
        """Get the cost of sending a campaign to an address book."""
        if _is_blank(book_id):
            return self._invalid("Empty book id")
        return self.get(f"addressbooks/{_segment(book_id)}/cost", {})

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    def list_campaigns(self, limit: Optional[int] = None, offset: Optional[int] = None) -> ApiResult:
        """List campaigns, optionally paged with ``limit`` and ``offset``."""
        return self.get("campaigns", self._paging(limit, offset))

    def get_campaign_info(self, campaign_id: Any) -> ApiResult:
        """Get the details of a campaign."""
        if _is_blank(campaign_id):
            return self._invalid("Empty campaign id")
        return self.get(f"campaigns/{_segment(campaign_id)}", {})

    def campaign_stat_by_countries(self, campaign_id: Any) -> ApiResult:
        """Get campaign statistics grouped by country."""
        if _is_blank(campaign_id):
            return self._invalid("Empty campaign id")
        return self.get(f"campaigns/{_segment(campaign_id)}/countries", {})

    def campaign_stat_by_referrals(self, campaign_id: Any) -> ApiResult:
        """Get campaign statistics grouped by referral link."""
        if _is_blank(campaign_id):
            return self._invalid("Empty campaign id")
        return self.get(f"campaigns/{_segment(campaign_id)}/referrals", {})

    def create_campaign(
        self,
        sender_name: str,
        sender_email: str,
        subject: str,
        body: str,
        book_id: Any,
        name: str = "",
        attachments: Any = None,
    ) -> ApiResult:
        """Create a campaign sent to an address book.

        Parameters
        ----------
        sender_name, sender_email : str
            An activated sender.
        subject : str
            Subject line.
        body : str
            HTML content; sent base64-encoded.
        book_id : int or str
            Address book the campaign goes to.
        name : str, optional
            Internal campaign name.
        attachments : mapping, optional
            File name to file content; sent PHP serialized.
        """
        if any(_is_blank(value) for value in (sender_name, sender_email, subject, body)) or not book_id:
            return self._invalid("Not all data.")
        data = {
            "sender_name": sender_name,
            "sender_email": sender_email,
            "subject": subject,
            "body": _base64(body),
            "list_id": book_id,
            "name": name or "",
            "attachments": "" if _is_blank(attachments) else serialize(attachments),
        }
        return self.post("campaigns", data)

    def cancel_campaign(self, campaign_id: Any) -> ApiResult:
        """Cancel a scheduled campaign."""
        if _is_blank(campaign_id):
            return self._invalid("Empty campaign id")
        return self.delete(f"campaigns/{_segment(campaign_id)}", {})

    # ------------------------------------------------------------------
    # Senders
    # ------------------------------------------------------------------
    def list_senders(self) -> ApiResult:
        """List the senders on the account."""
        return self.get("senders", {})

    def add_sender(self, sender_name: str, sender_email: str) -> ApiResult:
        """Add a sender; SendPulse mails it an activation code."""
        if _is_blank(sender_name) or _is_blank(sender_email):
            return self._invalid("Empty sender name or email")
        return self.post("senders", {"email": sender_email, "name": sender_name})

    def remove_sender(self, sender_email: str) -> ApiResult:
        """Delete a sender."""
        if _is_blank(sender_email):
            return self._invalid("Empty email")
        return self.delete("senders", {"email": sender_email})

    def activate_sender(self, sender_email: str, code: str) -> ApiResult:
        """Activate a sender with the code it was mailed."""
        if _is_blank(sender_email) or _is_blank(code):
            return self._invalid("Empty email or activation code")
        return self.post(f"senders/{_segment(sender_email)}/code", {"code": code})

    def get_sender_activation_mail(self, sender_email: str) -> ApiResult:
        """Ask SendPulse to mail the activation code to a sender."""
        if _is_blank(sender_email):
            return self._invalid("Empty email")
        return self.get(f"senders/{_segment(sender_email)}/code", {})

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------
    def get_email_global_info(self, email: str) -> ApiResult:
        """Get what SendPulse knows about an email across all address books."""
        if _is_blank(email):
            return self._invalid("Empty email")
        return self.get(f"emails/{_segment(email)}", {})

    def remove_email_from_all_books(self, email: str) -> ApiResult:
        """Remove an email from every address book."""
        if _is_blank(email):
            return self._invalid("Empty email")
        return self.delete(f"emails/{_segment(email)}", {})

    def email_stat_by_campaigns(self, email: str) -> ApiResult:
        """Get an email's statistics for every campaign it received."""
        if _is_blank(email):
            return self._invalid("Empty email")
        return self.get(f"emails/{_segment(email)}/campaigns", {})

    # ------------------------------------------------------------------
    # Blacklist
    # ------------------------------------------------------------------
    def get_blacklist(self) -> ApiResult:
        """List the blacklisted emails."""
        return self.get("blacklist", {})

    def add_to_blacklist(self, emails: Union[str, Iterable[str]], comment: str = "") -> ApiResult:
        """Blacklist one or more addresses.

        ``emails`` is a comma-separated string or a list of addresses.
        """
        if _is_blank(emails):
            return self._invalid("Empty email")
        return self.post("blacklist", {"emails": _base64(emails), "comment": comment or ""})

    def remove_from_blacklist(self, emails: Union[str, Iterable[str]]) -> ApiResult:
        """Take addresses off the blacklist; ``emails`` as for :meth:`add_to_blacklist`."""
        if _is_blank(emails):
            return self._invalid("Empty emails")
        return self.delete("blacklist", {"emails": _base64(emails)})

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------
    def get_balance(self, currency: Optional[str] = None) -> ApiResult:
        """Get the account balance, in ``currency`` when one is given."""
        path = "balance" if not currency else f"balance/{_segment(currency.upper())}"
        return self.get(path, {})

    # ------------------------------------------------------------------
    # SMTP
    # ------------------------------------------------------------------
    def smtp_list_emails(
        self,
        limit: int = 0,
        offset: int = 0,
        from_date: str = "",
        to_date: str = "",
        sender: str = "",
        recipient: str = "",
    ) -> ApiResult:
        """List emails sent through the SMTP relay.

        Parameters
        ----------
        limit, offset : int, optional
            Paging; ``0`` leaves the choice to the server.
        from_date, to_date : str, optional
            Date range as ``YYYY-MM-DD``.
        sender, recipient : str, optional
            Filter by address.
        """
        data = {
            "limit": limit or 0,
            "offset": offset or 0,
            "from": from_date or "",
            "to": to_date or "",
            "sender": sender or "",
            "recipient": recipient or "",
        }
        return self.get("smtp/emails", data)

    def smtp_get_email_info_by_id(self, email_id: str) -> ApiResult:
        """Get the details of one email sent through the SMTP relay."""
        if _is_blank(email_id):
            return self._invalid("Empty id")
        return self.get(f"smtp/emails/{_segment(email_id)}", {})

    def smtp_unsubscribe_emails(self, emails: Any) -> ApiResult:
        """Add addresses to the SMTP unsubscribe list.

        ``emails`` is a list of mappings with ``email`` and ``comment``
        keys and is sent PHP serialized.
        """
        if _is_blank(emails):
            return self._invalid("Empty emails")
        return self.post("smtp/unsubscribe", {"emails": serialize(emails)})

    def smtp_remove_from_unsubscribe(self, emails: Any) -> ApiResult:
        """Remove addresses from the SMTP unsubscribe list; sent PHP serialized."""
        if _is_blank(emails):
            return self._invalid("Empty emails")
        return self.delete("smtp/unsubscribe", {"emails": serialize(emails)})

    def smtp_list_ip(self) -> ApiResult:
        """List the IP addresses of the SMTP relay."""
        return self.get("smtp/ips", {})

    def smtp_list_allowed_domains(self) -> ApiResult:
        """List the sender domains allowed on the SMTP relay."""
        return self.get("smtp/domains", {})

    def smtp_add_domain(self, email: str) -> ApiResult:
        """Register a sender domain by one of its addresses."""
        if _is_blank(email):
            return self._invalid("Empty email")
        return self.post("smtp/domains", {"email": email})

    def smtp_verify_domain(self, email: str) -> ApiResult:
        """Ask SendPulse to verify the domain of ``email``."""
        if _is_blank(email):
            return self._invalid("Empty email")
        return self.get(f"smtp/domains/{_segment(email)}", {})

    def smtp_send_mail(self, email: Mapping) -> ApiResult:
        """Send a message through the SMTP relay.

        ``email`` holds ``html``, ``text``, ``subject``, ``from`` and
        ``to`` as documented by SendPulse.  ``html`` is base64-encoded
        on a copy of the mapping; the caller's mapping is left alone.
        The whole message is sent PHP serialized.
        """
        if _is_blank(email) or not isinstance(email, Mapping):
            return self._invalid("Empty email data")
        message = dict(email)
        if message.get("html") is not None:
            message["html"] = _base64(message["html"])
        return self.post("smtp/emails", {"email": serialize(message)})
