"""
Tests for ComposioGateway against an in-process httpx.MockTransport.
"""
import json

import httpx
import pytest

from switchyard_service.core.errors import IntegrationError
from switchyard_service.integrations.composio_gateway import ComposioGateway


def make_gateway(handler, api_key="ck_test", max_retries=2):
    gateway = ComposioGateway(api_key=api_key, transport=httpx.MockTransport(handler), max_retries=max_retries)
    gateway.http.backoff_base = 0
    return gateway


class TestConnections:
    @pytest.mark.asyncio
    async def test_active_account_is_connected(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"items": [{"id": "ca_1", "status": "ACTIVE"}]})

        assert await make_gateway(handler).is_connected("user-1", "gmail") is True
        request = seen[0]
        assert request.url.path.endswith("/connected_accounts")
        assert request.url.params["user_ids"] == "user-1"
        assert request.url.params["toolkit_slugs"] == "gmail"
        assert request.headers["x-api-key"] == "ck_test"

    @pytest.mark.asyncio
    async def test_no_accounts_is_not_connected(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"items": []}))
        assert await gateway.is_connected("user-1", "spotify") is False

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            if len(calls) == 2:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json={"items": [{"status": "ACTIVE"}]})

        assert await make_gateway(handler).is_connected("user-1", "gmail")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_persistent_failure_raises_integration_error(self):
        gateway = make_gateway(lambda request: httpx.Response(500), max_retries=1)
        with pytest.raises(IntegrationError) as exc_info:
            await gateway.is_connected("user-1", "gmail")
        assert exc_info.value.status == 500
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={}), api_key="")
        assert not gateway.is_configured()
        with pytest.raises(IntegrationError):
            await gateway.is_connected("user-1", "gmail")


class TestToolCatalog:
    @pytest.mark.asyncio
    async def test_builds_function_schemas_for_requested_tools(self):
        def handler(request):
            assert request.url.params["toolkit_slug"] == "gmail"
            return httpx.Response(200, json={"items": [
                {
                    "slug": "GMAIL_SEND_EMAIL",
                    "description": "Send an email",
                    "input_parameters": {"type": "object", "properties": {"recipient_email": {"type": "string"}},
                                         "required": ["recipient_email"]},
                },
                {"slug": "GMAIL_DELETE_EVERYTHING", "description": "Not requested"},
            ]})

        entries = await make_gateway(handler).list_tools("user-1", "gmail", ["GMAIL_SEND_EMAIL"])
        assert [e.identifier for e in entries] == ["GMAIL_SEND_EMAIL"]
        fn = entries[0].schema["function"]
        assert fn["name"] == "GMAIL_SEND_EMAIL"
        assert fn["parameters"]["required"] == ["recipient_email"]
        assert entries[0].integration == "gmail"


class TestExecute:
    @pytest.mark.asyncio
    async def test_successful_execution(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"successful": True, "data": {"id": "msg_1"}, "error": None})

        outcome = await make_gateway(handler).execute("GMAIL_SEND_EMAIL", "user-1", {"recipient_email": "bob@example.com"})
        assert outcome == {"success": True, "output": {"id": "msg_1"}}
        assert seen[0].method == "POST"
        assert seen[0].url.path.endswith("/tools/execute/GMAIL_SEND_EMAIL")
        assert json.loads(seen[0].content) == {"user_id": "user-1", "arguments": {"recipient_email": "bob@example.com"}}

    @pytest.mark.asyncio
    async def test_reported_failure(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"successful": False, "error": "Invalid recipient"}))
        outcome = await gateway.execute("GMAIL_SEND_EMAIL", "user-1", {})
        assert outcome == {"success": False, "output": {"error": "Invalid recipient"}}

    @pytest.mark.asyncio
    async def test_execution_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(IntegrationError):
            await make_gateway(handler).execute("GMAIL_SEND_EMAIL", "user-1", {})
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        gateway = make_gateway(lambda request: httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(IntegrationError, match="invalid JSON"):
            await gateway.execute("GMAIL_SEND_EMAIL", "user-1", {})
