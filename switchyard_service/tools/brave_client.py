"""
brave_client.py - Brave Search API client.

Uses the shared RetryingHttpClient for timeouts and 429/5xx backoff and
normalizes results to {"results", "meta"}.
"""
import re
import time
from typing import Any, Dict, Optional

import httpx

from switchyard_service.core.logging import logger
from switchyard_service.integrations.http import RetryingHttpClient


_TAG = re.compile(r"<[^>]+>")
SNIPPET_CHARS = 360


class BraveAuthError(ValueError):
    """Brave rejected the subscription token (403/422)."""


class BraveSearchClient:
    BASE_URL = "https://api.search.brave.com/res/v1"

    def __init__(
        self,
        api_key: str,
        connect_timeout: float = 2.0,
        read_timeout: float = 6.0,
        total_timeout: float = 15.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("API key cannot be empty")
        self.api_key = api_key
        self.http = RetryingHttpClient(
            base_url=self.BASE_URL,
            headers={
                "Accept": "application/json",
                "Accept-Encoding": "gzip",
                "X-Subscription-Token": api_key,
            },
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            total_timeout=total_timeout,
            max_retries=max_retries,
            backoff_base=backoff_base,
            transport=transport,
        )

    async def search(
        self,
        q: str,
        count: int = 10,
        country: str = "us",
        search_lang: str = "en",
        freshness: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Run a web search.

        Args:
            q: Query string.
            count: Number of results, capped at 20.
            country: 2-letter country code (Brave's `cc`).
            search_lang: Language code (Brave's `hl`).
            freshness: pd, pw, pm, py or None.

        Raises:
            BraveAuthError: token rejected.
            httpx.HTTPStatusError: any other non-2xx after retries.
        """
        start = time.monotonic()
        params: Dict[str, Any] = {"q": q, "count": min(count, 20), "cc": country, "hl": search_lang}
        if freshness:
            params["freshness"] = freshness

        response = await self.http.get("/web/search", params=params)
        logger.info(f"Brave API response: status={response.status_code}, latency={int((time.monotonic() - start) * 1000)}ms")

        if response.status_code in (403, 422):
            logger.error(f"Brave authentication failed ({response.status_code}), check BRAVE_API_KEY")
            raise BraveAuthError(
                "Brave API authentication failed. Please verify your BRAVE_API_KEY "
                "is correct and active at https://api-dashboard.search.brave.com/"
            )
        response.raise_for_status()
        return self._normalize(response.json(), q, time.monotonic() - start)

    @staticmethod
    def _normalize(data: Dict[str, Any], query: str, elapsed_sec: float) -> Dict[str, Any]:
        results = []
        for rank, item in enumerate((data.get("web") or {}).get("results") or [], start=1):
            snippet = _TAG.sub("", item.get("description", ""))
            if len(snippet) > SNIPPET_CHARS:
                snippet = snippet[:SNIPPET_CHARS] + "..."
            results.append({
                "url": item.get("url", ""),
                "title": item.get("title", ""),
                "snippet": snippet,
                "rank": rank,
            })
        logger.info(f"Normalized {len(results)} results for query='{query}'")
        return {
            "results": results,
            "meta": {"took_ms": int(elapsed_sec * 1000), "engine": "brave", "query": query},
        }
