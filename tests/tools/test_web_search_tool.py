"""
Tests for WebSearchTool.

Tests tool behavior including:
- Schema generation from the run() signature
- Parameter validation (empty query, invalid values)
- Count clamping
- Error dicts instead of exceptions
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from switchyard_service.tools.base import BaseTool
from switchyard_service.tools.brave_client import BraveAuthError
from switchyard_service.tools.web_search_tool import WebSearchTool


def tool_with_client(result=None, side_effect=None):
    client = MagicMock()
    client.search = AsyncMock(return_value=result, side_effect=side_effect)
    return WebSearchTool(client=client), client


class TestWebSearchToolSchema:
    """Test schema generation and tool metadata."""

    def test_tool_inherits_from_base(self):
        assert isinstance(WebSearchTool(), BaseTool)

    def test_schema_has_correct_parameters(self):
        schema = WebSearchTool().auto_schema
        params = schema["function"]["parameters"]
        assert set(params["properties"]) == {"query", "count", "country", "search_lang", "freshness"}
        assert params["required"] == ["query"]
        assert params["properties"]["count"]["type"] == "integer"
        assert params["properties"]["freshness"]["type"] == "string"
        assert params["properties"]["query"]["description"] == "Search query."

    def test_registry_name_injection(self):
        tool = WebSearchTool()
        assert tool.name == "WebSearchTool"
        tool._registry_name = "web_search"
        assert tool.schema["function"]["name"] == "web_search"
        assert tool.schema["function"]["description"].startswith("Search the web")


class TestWebSearchToolValidation:
    @pytest.mark.asyncio
    async def test_empty_query_fails(self):
        tool, client = tool_with_client()
        result = await tool.run(query="   ")
        assert "error" in result
        client.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_count_below_one_fails(self):
        tool, _ = tool_with_client()
        assert "error" in await tool.run(query="q", count=0)

    @pytest.mark.asyncio
    async def test_invalid_country_and_freshness(self):
        tool, _ = tool_with_client()
        assert "error" in await tool.run(query="q", country="usa")
        assert "error" in await tool.run(query="q", search_lang="english")
        assert "error" in await tool.run(query="q", freshness="forever")

    @pytest.mark.asyncio
    async def test_count_clamping_to_max(self):
        tool, client = tool_with_client(result={"results": [], "meta": {}})
        await tool.run(query="q", count=100)
        assert client.search.await_args.kwargs["count"] == 20


class TestWebSearchToolExecution:
    @pytest.mark.asyncio
    async def test_successful_search_passes_through(self):
        payload = {"results": [{"url": "u", "title": "t", "snippet": "s", "rank": 1}], "meta": {"engine": "brave"}}
        tool, client = tool_with_client(result=payload)
        assert await tool.run(query="weather in Oslo", freshness="pd") == payload
        client.search.assert_awaited_once_with(
            q="weather in Oslo", count=5, country="us", search_lang="en", freshness="pd",
        )

    @pytest.mark.asyncio
    async def test_auth_error_becomes_error_dict(self):
        tool, _ = tool_with_client(side_effect=BraveAuthError("bad token"))
        assert await tool.run(query="q") == {"error": "bad token"}

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_error_dict(self):
        tool, _ = tool_with_client(side_effect=RuntimeError("network down"))
        result = await tool.run(query="q")
        assert result["error"].startswith("Search failed")

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("BRAVE_API_KEY", raising=False)
        result = await WebSearchTool().run(query="q")
        assert "BRAVE_API_KEY" in result["error"]
