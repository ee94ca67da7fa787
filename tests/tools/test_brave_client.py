"""
Unit tests for BraveSearchClient.

Tests HTTP client behavior including:
- Successful searches with normalized results/meta
- Parameter mapping (country->cc, search_lang->hl)
- Snippet cleanup and truncation at 360 chars
- Authentication failures (403/422)
- Retry on 429 and 5xx, no retry on other 4xx
"""
import httpx
import pytest

from switchyard_service.tools.brave_client import BraveAuthError, BraveSearchClient


def make_client(handler, **kwargs):
    kwargs.setdefault("backoff_base", 0)
    return BraveSearchClient(api_key="test_key", transport=httpx.MockTransport(handler), **kwargs)


def results_payload(*descriptions):
    return {"web": {"results": [
        {"url": f"https://example.com/{i}", "title": f"Result {i}", "description": d}
        for i, d in enumerate(descriptions, start=1)
    ]}}


class TestBraveSearchClientInit:
    """Test client initialization and configuration."""

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            BraveSearchClient(api_key="")

    def test_defaults(self):
        client = BraveSearchClient(api_key="test_key")
        assert client.http.connect_timeout == 2.0
        assert client.http.read_timeout == 6.0
        assert client.http.total_timeout == 15.0
        assert client.http.max_retries == 2
        assert client.http.headers["X-Subscription-Token"] == "test_key"


class TestBraveSearchClientSuccess:
    """Test successful search scenarios."""

    @pytest.mark.asyncio
    async def test_successful_search_with_results(self):
        client = make_client(lambda request: httpx.Response(200, json=results_payload("first", "second")))
        result = await client.search("python asyncio")

        assert [r["rank"] for r in result["results"]] == [1, 2]
        assert result["results"][0] == {
            "url": "https://example.com/1",
            "title": "Result 1",
            "snippet": "first",
            "rank": 1,
        }
        assert result["meta"]["engine"] == "brave"
        assert result["meta"]["query"] == "python asyncio"
        assert isinstance(result["meta"]["took_ms"], int)

    @pytest.mark.asyncio
    async def test_param_mapping(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"web": {"results": []}})

        await make_client(handler).search("q", count=50, country="de", search_lang="fr", freshness="pw")
        params = seen[0].url.params
        assert seen[0].url.path == "/res/v1/web/search"
        assert params["q"] == "q"
        assert params["count"] == "20"
        assert params["cc"] == "de"
        assert params["hl"] == "fr"
        assert params["freshness"] == "pw"

    @pytest.mark.asyncio
    async def test_snippet_cleanup_and_truncation(self):
        long_text = "<strong>bold</strong> " + "x" * 400
        client = make_client(lambda request: httpx.Response(200, json=results_payload(long_text)))
        snippet = (await client.search("q"))["results"][0]["snippet"]
        assert snippet.startswith("bold ")
        assert "<strong>" not in snippet
        assert len(snippet) == 363
        assert snippet.endswith("...")

    @pytest.mark.asyncio
    async def test_empty_results_handling(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        assert (await client.search("nothing"))["results"] == []


class TestBraveSearchClientErrors:
    """Test error and retry behavior."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 422])
    async def test_auth_failure(self, status):
        client = make_client(lambda request: httpx.Response(status))
        with pytest.raises(BraveAuthError):
            await client.search("q")

    @pytest.mark.asyncio
    async def test_rate_limit_429_with_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json=results_payload("ok"))

        result = await make_client(handler).search("q")
        assert len(calls) == 2
        assert result["results"][0]["snippet"] == "ok"

    @pytest.mark.asyncio
    async def test_server_error_5xx_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(httpx.HTTPStatusError):
            await make_client(handler, max_retries=2).search("q")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_no_retry_on_4xx_except_429(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        with pytest.raises(httpx.HTTPStatusError):
            await make_client(handler).search("q")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_retried_then_raised(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(httpx.TimeoutException):
            await make_client(handler, max_retries=1).search("q")
        assert len(calls) == 2
