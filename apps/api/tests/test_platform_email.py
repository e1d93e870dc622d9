"""Tests for the Resend sender and the shared retry helper."""
import json

import httpx
import pytest

from app.core.config import settings
from app.services import platform_email_service
from app.services.http_service import request_with_retries

# Bound before the autouse sent_emails fixture swaps the module attribute
from app.services.platform_email_service import _send_resend_email as send_via_resend


class ResendStub:
    """Replays canned responses and records the requests it saw."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def resend_settings(monkeypatch):
    monkeypatch.setattr(settings, "PLATFORM_RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(settings, "PLATFORM_EMAIL_FROM", "Community <hello@portal.test>")
    monkeypatch.setattr(platform_email_service, "RESEND_RETRY_BASE_DELAY", 0)


async def _send(stub: ResendStub, idempotency_key: str | None = "claim:abc:v1") -> dict:
    return await send_via_resend(
        to_email="ada@example.com",
        subject="Claim your profile",
        html="<p>Hello</p>",
        text="Hello",
        idempotency_key=idempotency_key,
        transport=stub.transport,
    )


async def test_successful_send_returns_message_id():
    stub = ResendStub(httpx.Response(200, json={"id": "msg_123"}))

    result = await _send(stub)

    assert result == {"success": True, "message_id": "msg_123"}
    request = stub.requests[0]
    assert str(request.url) == platform_email_service.RESEND_SEND_URL
    assert request.headers["Authorization"] == "Bearer re_test_key"
    assert request.headers["Idempotency-Key"] == "claim:abc:v1"
    assert json.loads(request.content) == {
        "from": "Community <hello@portal.test>",
        "to": ["ada@example.com"],
        "subject": "Claim your profile",
        "html": "<p>Hello</p>",
        "text": "Hello",
    }


async def test_no_idempotency_header_without_key():
    stub = ResendStub(httpx.Response(200, json={"id": "msg_1"}))

    await _send(stub, idempotency_key=None)

    assert "Idempotency-Key" not in stub.requests[0].headers


async def test_idempotency_conflict_counts_as_sent():
    stub = ResendStub(httpx.Response(409, json={"message": "Idempotent request already processed"}))

    result = await _send(stub)

    assert result == {"success": True, "message_id": None}
    assert len(stub.requests) == 1


async def test_success_without_message_id_is_a_failure():
    stub = ResendStub(httpx.Response(200, json={}))

    result = await _send(stub)

    assert result["success"] is False
    assert "without message id" in result["error"]


async def test_server_error_is_retried():
    stub = ResendStub(
        httpx.Response(503, json={"message": "unavailable"}),
        httpx.Response(200, json={"id": "msg_after_retry"}),
    )

    result = await _send(stub)

    assert result == {"success": True, "message_id": "msg_after_retry"}
    assert len(stub.requests) == 2
    assert {r.headers["Idempotency-Key"] for r in stub.requests} == {"claim:abc:v1"}


async def test_client_error_reports_detail_without_retry():
    stub = ResendStub(httpx.Response(400, json={"message": "Invalid `to` field"}))

    result = await _send(stub)

    assert result == {"success": False, "error": "Resend API error: 400 (Invalid `to` field)"}
    assert len(stub.requests) == 1


async def test_missing_api_key_outside_dev_fails(monkeypatch):
    monkeypatch.setattr(settings, "PLATFORM_RESEND_API_KEY", "")
    monkeypatch.setattr(settings, "ENV", "test")
    stub = ResendStub()

    result = await _send(stub)

    assert result["success"] is False
    assert "PLATFORM_RESEND_API_KEY" in result["error"]
    assert stub.requests == []


# =============================================================================
# request_with_retries
# =============================================================================

async def test_retries_give_up_with_last_response():
    calls = []

    async def request_fn():
        calls.append(1)
        return httpx.Response(503)

    response = await request_with_retries(request_fn, max_attempts=3, base_delay=0)

    assert response.status_code == 503
    assert len(calls) == 3


async def test_transport_errors_are_retried_then_raised():
    calls = []

    async def request_fn():
        calls.append(1)
        raise httpx.ConnectError("connection refused")

    with pytest.raises(httpx.ConnectError):
        await request_with_retries(request_fn, max_attempts=2, base_delay=0)
    assert len(calls) == 2


async def test_transport_error_then_success():
    outcomes = [httpx.ReadTimeout("slow"), httpx.Response(200, json={"ok": True})]

    async def request_fn():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    response = await request_with_retries(request_fn, base_delay=0)

    assert response.status_code == 200
    assert outcomes == []
