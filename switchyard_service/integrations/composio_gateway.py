"""
composio_gateway.py - IntegrationGateway backed by the Composio REST API.

Connection lookups and tool catalog fetches are idempotent and retried on
transient failures. Tool execution is sent once.
"""
import os
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv

from switchyard_service.core.errors import IntegrationError
from switchyard_service.core.interfaces import IntegrationGateway
from switchyard_service.core.logging import logger
from switchyard_service.core.types import ToolManifestEntry
from switchyard_service.integrations.catalog import get_integration, integration_for_tool
from switchyard_service.integrations.http import RetryingHttpClient


load_dotenv()

DEFAULT_BASE_URL = "https://backend.composio.dev/api/v3"


class ComposioGateway(IntegrationGateway):
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        connect_timeout: float = 2.0,
        read_timeout: float = 15.0,
        total_timeout: float = 30.0,
        max_retries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("COMPOSIO_API_KEY", "")
        self.http = RetryingHttpClient(
            base_url=base_url,
            headers={"x-api-key": self.api_key, "Accept": "application/json"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            total_timeout=total_timeout,
            max_retries=max_retries,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_configured(self) -> None:
        if not self.api_key:
            raise IntegrationError("COMPOSIO_API_KEY is not set")

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Dict[str, Any]:
        if response.status_code >= 400:
            retryable = response.status_code == 429 or response.status_code >= 500
            raise IntegrationError(
                f"{what} failed with status {response.status_code}",
                status=response.status_code,
                retryable=retryable,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise IntegrationError(f"{what} returned invalid JSON") from e
        return data if isinstance(data, dict) else {"items": data}

    async def is_connected(self, user_id: str, integration: str) -> bool:
        self._require_configured()
        spec = get_integration(integration)
        toolkit = spec.id if spec else integration
        response = await self.http.get(
            "/connected_accounts",
            params={"user_ids": user_id, "toolkit_slugs": toolkit, "statuses": "ACTIVE"},
        )
        items = self._json(response, f"Connection lookup for {integration}").get("items") or []
        connected = any(str(item.get("status", "ACTIVE")).upper() == "ACTIVE" for item in items)
        logger.debug(f"Connection lookup: user={user_id}, integration={integration}, connected={connected}")
        return connected

    async def list_tools(self, user_id: str, integration: str, tool_ids: List[str]) -> List[ToolManifestEntry]:
        self._require_configured()
        spec = get_integration(integration)
        toolkit = spec.id if spec else integration
        response = await self.http.get(
            "/tools",
            params={"toolkit_slug": toolkit, "tool_slugs": ",".join(tool_ids), "limit": max(len(tool_ids), 1)},
        )
        items = self._json(response, f"Tool catalog for {integration}").get("items") or []

        wanted = set(tool_ids)
        entries: List[ToolManifestEntry] = []
        for item in items:
            slug = item.get("slug") or item.get("name")
            if not slug or (wanted and slug not in wanted):
                continue
            parameters = item.get("input_parameters") or {"type": "object", "properties": {}}
            schema = {
                "type": "function",
                "function": {
                    "name": slug,
                    "description": item.get("description", ""),
                    "parameters": parameters,
                },
            }
            entries.append(ToolManifestEntry(identifier=slug, schema=schema, integration=integration))
        logger.info(f"Loaded {len(entries)} tools for integration={integration}")
        return entries

    async def execute(self, tool_name: str, user_id: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        self._require_configured()
        response = await self.http.post(
            f"/tools/execute/{tool_name}",
            json={"user_id": user_id, "arguments": arguments},
        )
        data = self._json(response, f"Execution of {tool_name}")
        successful = bool(data.get("successful", data.get("error") is None))
        if not successful:
            return {"success": False, "output": {"error": data.get("error") or "Tool execution failed"}}
        logger.debug(f"Executed {tool_name} for integration={integration_for_tool(tool_name)}")
        return {"success": True, "output": data.get("data")}
