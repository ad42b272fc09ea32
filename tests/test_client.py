import base64

import pytest

from sendpulse_api_client import RemoteError, SendPulseClient, TokenState, TransportResponse, ValidationError


def _decode(value):
    return base64.b64decode(value).decode("utf-8")


def test_constructor_requires_credentials():
    with pytest.raises(ValueError):
        SendPulseClient(client_id="", client_secret="secret")
    with pytest.raises(ValueError):
        SendPulseClient(client_id="id", client_secret="")


def test_constructor_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        SendPulseClient(client_id="id", client_secret="secret", timeout=0)


def test_credentials_repr_hides_secret(client):
    assert "'secret'" not in repr(client.credentials)


def test_token_is_not_requested_at_construction(client, transport):
    assert transport.calls == []
    assert client.token_state is TokenState.ABSENT


@pytest.mark.parametrize(
    "call",
    [
        lambda c: c.create_address_book(""),
        lambda c: c.create_address_book(None),
        lambda c: c.edit_address_book(None, "name"),
        lambda c: c.edit_address_book(1, ""),
        lambda c: c.remove_address_book(None),
        lambda c: c.get_book_info(None),
        lambda c: c.get_emails_from_book(None),
        lambda c: c.add_emails(1, []),
        lambda c: c.remove_emails(None, ["a@b.c"]),
        lambda c: c.get_email_info(1, ""),
        lambda c: c.campaign_cost(None),
        lambda c: c.get_campaign_info(None),
        lambda c: c.campaign_stat_by_countries(None),
        lambda c: c.campaign_stat_by_referrals(None),
        lambda c: c.create_campaign("Me", "me@x.io", "Hi", "", 1),
        lambda c: c.create_campaign("Me", "me@x.io", "Hi", "<p/>", None),
        lambda c: c.cancel_campaign(None),
        lambda c: c.add_sender("Me", ""),
        lambda c: c.remove_sender(""),
        lambda c: c.activate_sender("me@x.io", ""),
        lambda c: c.get_sender_activation_mail(""),
        lambda c: c.get_email_global_info(""),
        lambda c: c.remove_email_from_all_books(None),
        lambda c: c.email_stat_by_campaigns(""),
        lambda c: c.add_to_blacklist(""),
        lambda c: c.remove_from_blacklist([]),
        lambda c: c.smtp_get_email_info_by_id(""),
        lambda c: c.smtp_unsubscribe_emails(None),
        lambda c: c.smtp_remove_from_unsubscribe(None),
        lambda c: c.smtp_add_domain(""),
        lambda c: c.smtp_verify_domain(""),
        lambda c: c.smtp_send_mail(None),
    ],
)
def test_missing_arguments_fail_without_network(client, transport, call):
    result = call(client)

    assert isinstance(result.error, ValidationError)
    assert result.to_dict()["is_error"] == 1
    assert transport.calls == []


def test_create_address_book(client, transport):
    transport.route("addressbooks", TransportResponse(200, {"id": 99}))

    result = client.create_address_book("Newsletter")

    assert result.data == {"id": 99}
    call = transport.api_calls()[0]
    assert (call.method, call.body, call.token) == ("POST", {"bookName": "Newsletter"}, "tok-1")


def test_edit_address_book(client, transport):
    client.edit_address_book(12, "Renamed")

    call = transport.api_calls()[0]
    assert (call.path, call.method, call.body) == ("addressbooks/12", "PUT", {"name": "Renamed"})


def test_list_address_books_only_sends_given_paging(client, transport):
    client.list_address_books()
    client.list_address_books(limit=10, offset=20)

    first, second = transport.api_calls()
    assert (first.method, first.body) == ("GET", {})
    assert second.body == {"limit": 10, "offset": 20}


def test_add_emails_serializes_list(client, transport):
    client.add_emails(5, ["a@b.c"])

    call = transport.api_calls()[0]
    assert call.path == "addressbooks/5/emails"
    assert call.body == {"emails": 'a:1:{i:0;s:5:"a@b.c";}'}


def test_remove_emails_uses_delete(client, transport):
    client.remove_emails(5, ["a@b.c"])

    assert transport.api_calls()[0].method == "DELETE"


def test_email_in_path_is_quoted(client, transport):
    client.get_email_info(5, "john doe@example.com")

    assert transport.api_calls()[0].path == "addressbooks/5/emails/john%20doe@example.com"


def test_create_campaign_encodes_body_and_attachments(client, transport):
    client.create_campaign(
        "Me",
        "me@x.io",
        "Hello",
        "<h1>Héllo</h1>",
        7,
        name="launch",
        attachments={"a.txt": "hi"},
    )

    body = transport.api_calls()[0].body
    assert _decode(body["body"]) == "<h1>Héllo</h1>"
    assert body["attachments"] == 'a:1:{s:5:"a.txt";s:2:"hi";}'
    assert body["list_id"] == 7
    assert body["name"] == "launch"
    assert body["sender_name"] == "Me"


def test_create_campaign_without_attachments(client, transport):
    client.create_campaign("Me", "me@x.io", "Hello", "<p/>", 7)

    body = transport.api_calls()[0].body
    assert body["attachments"] == ""
    assert body["name"] == ""


def test_sender_endpoints(client, transport):
    client.add_sender("Me", "me@x.io")
    client.activate_sender("me@x.io", "12345")
    client.remove_sender("me@x.io")

    add, activate, remove = transport.api_calls()
    assert add.body == {"email": "me@x.io", "name": "Me"}
    assert (activate.path, activate.body) == ("senders/me@x.io/code", {"code": "12345"})
    assert (remove.method, remove.body) == ("DELETE", {"email": "me@x.io"})


def test_blacklist_base64_encodes_emails(client, transport):
    client.add_to_blacklist(["a@b.c", "d@e.f"], comment="spam")
    client.remove_from_blacklist("a@b.c")

    add, remove = transport.api_calls()
    assert _decode(add.body["emails"]) == "a@b.c,d@e.f"
    assert add.body["comment"] == "spam"
    assert _decode(remove.body["emails"]) == "a@b.c"


def test_get_balance_upper_cases_currency(client, transport):
    client.get_balance()
    client.get_balance("usd")

    assert [c.path for c in transport.api_calls()] == ["balance", "balance/USD"]


def test_smtp_list_emails_defaults(client, transport):
    client.smtp_list_emails(limit=5, sender="me@x.io")

    assert transport.api_calls()[0].body == {
        "limit": 5,
        "offset": 0,
        "from": "",
        "to": "",
        "sender": "me@x.io",
        "recipient": "",
    }


def test_smtp_unsubscribe_serializes(client, transport):
    client.smtp_unsubscribe_emails([{"email": "a@b.c", "comment": "x"}])

    call = transport.api_calls()[0]
    assert (call.path, call.method) == ("smtp/unsubscribe", "POST")
    assert call.body["emails"] == 'a:1:{i:0;a:2:{s:5:"email";s:5:"a@b.c";s:7:"comment";s:1:"x";}}'


def test_smtp_send_mail_encodes_html_on_a_copy(client, transport):
    email = {"html": "<p>Hi</p>", "subject": "Hi"}

    client.smtp_send_mail(email)

    assert email == {"html": "<p>Hi</p>", "subject": "Hi"}
    encoded = base64.b64encode(b"<p>Hi</p>").decode("ascii")
    expected = 'a:2:{s:4:"html";s:%d:"%s";s:7:"subject";s:2:"Hi";}' % (len(encoded), encoded)
    assert transport.api_calls()[0].body == {"email": expected}


def test_remote_error_is_returned_not_raised(client, transport):
    transport.route("senders", TransportResponse(422, {"message": "Sender exists"}))

    result = client.add_sender("Me", "me@x.io")

    assert isinstance(result.error, RemoteError)
    assert result.error.body == {"message": "Sender exists"}
    assert result.to_dict()["post_data"] == {"email": "me@x.io", "name": "Me"}
    assert len(transport.api_calls()) == 1


def test_generic_request_helpers(client, transport):
    client.get("smtp/ips")
    client.request("post", "custom/path", {"a": 1}, use_token=False)

    ips, custom = transport.calls[1], transport.calls[2]
    assert (ips.path, ips.method) == ("smtp/ips", "GET")
    assert (custom.method, custom.token) == ("POST", None)


def test_refresh_token(client, transport):
    assert client.refresh_token().data == {"access_token": "tok-1"}
    assert client.token_state is TokenState.PRESENT


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SENDPULSE_CLIENT_ID", "env-id")
    monkeypatch.setenv("SENDPULSE_CLIENT_SECRET", "env-secret")
    monkeypatch.setenv("SENDPULSE_API_URL", "https://api.example")
    monkeypatch.setenv("SENDPULSE_TIMEOUT", "2.5")

    client = SendPulseClient.from_env(dotenv_path=tmp_path / "missing.env")

    assert client.credentials.client_id == "env-id"
    assert client.credentials.client_secret == "env-secret"
    assert client.base_url == "https://api.example"
    assert client.transport.timeout == 2.5
