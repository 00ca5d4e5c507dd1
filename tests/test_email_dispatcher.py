import json

import httpx
import pytest

from compliance.errors import ConfigurationError, DispatchError
from compliance.notifications.services.email_dispatcher import (
    LoggingEmailDispatcher, ResendEmailDispatcher,
)
from compliance.notifications.services.email_templates import build_email

API_URL = "https://api.resend.test/emails"
VERIFICATION_DATA = {
    "verification_code": "VER-ABC-12345-0",
    "verification_link": "http://testserver/confirm?code=VER-ABC-12345-0",
    "documents": ["Privacy"],
    "collaborator_id": "c-1",
}


def resend_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResendEmailDispatcher("re_test", "Compliance <noreply@example.com>", API_URL, client=client)


async def test_resend_posts_rendered_email():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-123"})

    delivery_id = await resend_with(handler).send("verification", "mario@example.com", "Mario", VERIFICATION_DATA)

    assert delivery_id == "email-123"
    assert captured["auth"] == "Bearer re_test"
    assert captured["body"]["to"] == ["mario@example.com"]
    assert "VER-ABC-12345-0" in captured["body"]["html"]
    assert {"name": "collaborator_id", "value": "c-1"} in captured["body"]["tags"]


async def test_resend_error_status_is_dispatch_error():
    dispatcher = resend_with(lambda request: httpx.Response(422, json={"message": "invalid"}))
    with pytest.raises(DispatchError):
        await dispatcher.send("verification", "mario@example.com", "Mario", VERIFICATION_DATA)


async def test_resend_transport_error_is_dispatch_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(DispatchError):
        await resend_with(handler).send("verification", "mario@example.com", "Mario", VERIFICATION_DATA)


async def test_resend_without_api_key_is_dispatch_error():
    dispatcher = ResendEmailDispatcher("", "noreply@example.com", API_URL)
    with pytest.raises(DispatchError):
        await dispatcher.send("verification", "mario@example.com", "Mario", VERIFICATION_DATA)


async def test_logging_dispatcher_returns_local_id():
    delivery_id = await LoggingEmailDispatcher().send(
        "documents_ready", "mario@example.com", "Mario",
        {"portal_link": "http://testserver/portal/c-1", "documents": ["Privacy"]},
    )
    assert delivery_id.startswith("local-")


def test_unknown_template_is_configuration_error():
    with pytest.raises(ConfigurationError):
        build_email("newsletter", "Mario", {})


def test_templates_escape_recipient_name():
    email = build_email("documents_completed", "<b>Mario</b>", {"download_link": "http://x", "documents": []})
    assert "<b>Mario</b>" not in email.html
    assert "&lt;b&gt;Mario&lt;/b&gt;" in email.html
