"""
web_search_tool.py - Brave-backed web search for deployments that do not use
the provider's hosted web search.
"""
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from switchyard_service.core.logging import logger
from switchyard_service.tools.base import BaseTool
from switchyard_service.tools.brave_client import BraveAuthError, BraveSearchClient


load_dotenv()

FRESHNESS = {"pd", "pw", "pm", "py"}
MAX_COUNT = 20


class WebSearchTool(BaseTool):
    """Search the web for current information. Returns ranked results with url, title and snippet."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[BraveSearchClient] = None):
        super().__init__()
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> BraveSearchClient:
        if self._client is None:
            api_key = self._api_key or os.getenv("BRAVE_API_KEY")
            if not api_key:
                raise ValueError(
                    "Environment variable BRAVE_API_KEY not set. "
                    "Get your free API key at https://api-dashboard.search.brave.com/"
                )
            self._client = BraveSearchClient(api_key=api_key)
        return self._client

    async def run(
        self,
        query: str,
        count: int = 5,
        country: str = "us",
        search_lang: str = "en",
        freshness: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Search the web using Brave Search.

        Args:
            query: Search query.
            count: Number of results to return (1-20, default 5).
            country: 2-letter country code (default "us").
            search_lang: 2-letter language code (default "en").
            freshness: Recency filter: pd (day), pw (week), pm (month), py (year), or omit.
        """
        query = (query or "").strip()
        if not query:
            return {"error": "query must be a non-empty string"}
        if not isinstance(count, int) or count < 1:
            return {"error": "count must be a positive integer"}
        count = min(count, MAX_COUNT)
        if not isinstance(country, str) or len(country) != 2:
            return {"error": "country must be a 2-letter ISO code"}
        if not isinstance(search_lang, str) or len(search_lang) != 2:
            return {"error": "search_lang must be a 2-letter ISO code"}
        if freshness is not None and freshness not in FRESHNESS:
            return {"error": f"freshness must be one of {sorted(FRESHNESS)} or omitted"}

        try:
            return await self._get_client().search(
                q=query,
                count=count,
                country=country,
                search_lang=search_lang,
                freshness=freshness,
            )
        except (ValueError, BraveAuthError) as e:
            return {"error": str(e)}
        except Exception as e:
            logger.error(f"web_search error: {type(e).__name__}: {e}")
            return {"error": f"Search failed: {e}"}
