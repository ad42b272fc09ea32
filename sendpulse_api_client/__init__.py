"""
Python client for interacting with the SendPulse REST API.

This package provides a `SendPulseClient` class that handles OAuth2
client-credentials authentication against the SendPulse API and
exposes one method per endpoint: address books, campaigns, senders,
emails, the blacklist, the account balance and the SMTP relay.

The access token is requested on the first call that needs one.
Calls made while it is being fetched wait for that single request and
are then sent in the order they were made.  When the API rejects the
token the client fetches a new one and repeats the call once.

Examples
--------

```python
from sendpulse_api_client import SendPulseClient

client = SendPulseClient(
    client_id="YOUR_CLIENT_ID",
    client_secret="YOUR_CLIENT_SECRET",
)

result = client.add_emails(
    1234,
    [{"email": "jane@example.com", "variables": {"name": "Jane"}}],
)
if result.is_error:
    print(result.to_dict())
```

See Also
--------
The SendPulse REST API documentation at https://sendpulse.com/api
describes every endpoint and the fields it accepts.  Fields that carry
lists or nested data are sent in PHP's ``serialize()`` format; see
:func:`sendpulse_api_client.serializer.serialize`.
"""

import logging

from .client import SendPulseClient
from .exceptions import (
    AuthError,
    RemoteError,
    SendPulseError,
    TransportError,
    ValidationError,
)
from .gatekeeper import ApiResult, Credentials, RequestEnvelope, TokenGatekeeper, TokenState
from .serializer import serialize
from .transport import RequestsTransport, TransportResponse

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SendPulseClient",
    "ApiResult",
    "Credentials",
    "RequestEnvelope",
    "TokenGatekeeper",
    "TokenState",
    "RequestsTransport",
    "TransportResponse",
    "serialize",
    "SendPulseError",
    "ValidationError",
    "AuthError",
    "RemoteError",
    "TransportError",
]
