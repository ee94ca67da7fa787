import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from switchyard_service.core.factory import load
from switchyard_service.core.interfaces import IntegrationGateway, Tool
from switchyard_service.core.logging import logger
from switchyard_service.core.types import WEB_SEARCH, CallerIdentity, ClassificationResult, Mode, ToolManifestEntry
from switchyard_service.integrations.catalog import get_integration

HOSTED_WEB_SEARCH = ToolManifestEntry(identifier=WEB_SEARCH, schema={"type": WEB_SEARCH}, hosted=True)


class ToolRegistry:
    """Local (in-process) tools loaded from the `tools` config section."""

    def __init__(self, registry_cfg: List[Dict[str, Any]], enabled: List[str]):
        self.tools: Dict[str, Tool] = {}
        for tcfg in registry_cfg or []:
            name = tcfg.get("name")
            if name not in (enabled or []):
                continue
            try:
                tool = load(tcfg.get("impl", ""), **(tcfg.get("args") or {}))
            except Exception as e:
                logger.warning(f"Skipping tool '{name}': {type(e).__name__}: {e}")
                continue
            if hasattr(tool, "_registry_name"):
                tool._registry_name = name
            self.tools[name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    def all(self) -> Dict[str, Tool]:
        return self.tools


@dataclass(frozen=True)
class ConnectedIntegrations:
    """Integrations the caller has authorized for this request, with their tools."""
    tools: Mapping[str, Tuple[ToolManifestEntry, ...]] = field(default_factory=dict)

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(self.tools)

    def __contains__(self, integration: str) -> bool:
        return integration in self.tools


class ToolResolver:
    def __init__(
        self,
        gateway: IntegrationGateway,
        local_tools: Optional[ToolRegistry] = None,
        web_search_backend: str = "hosted",
    ):
        self.gateway = gateway
        self.local_tools = local_tools
        self.web_search_backend = web_search_backend

    async def load_integrations(self, identity: CallerIdentity, selected_ids: Iterable[str]) -> ConnectedIntegrations:
        if not identity.is_authenticated:
            return ConnectedIntegrations()

        wanted: List[str] = []
        for integration in selected_ids or ():
            if integration in wanted:
                continue
            if get_integration(integration) is None:
                logger.warning(f"Unknown integration '{integration}' skipped")
                continue
            wanted.append(integration)
        if not wanted:
            return ConnectedIntegrations()

        results = await asyncio.gather(
            *(self._load_one(identity.user_id, integration) for integration in wanted),
            return_exceptions=True,
        )

        loaded: Dict[str, Tuple[ToolManifestEntry, ...]] = {}
        for integration, result in zip(wanted, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Integration '{integration}' unavailable, omitting its tools: {type(result).__name__}: {result}")
                continue
            if result is not None:
                loaded[integration] = result
        return ConnectedIntegrations(tools=loaded)

    async def _load_one(self, user_id: str, integration: str) -> Optional[Tuple[ToolManifestEntry, ...]]:
        if not await self.gateway.is_connected(user_id, integration):
            logger.info(f"Integration '{integration}' not connected for user={user_id}")
            return None
        spec = get_integration(integration)
        entries = await self.gateway.list_tools(user_id, integration, list(spec.default_tools))
        # the gateway cannot widen what the integration is allowed to expose
        return tuple(
            ToolManifestEntry(identifier=e.identifier, schema=e.schema, integration=integration)
            for e in entries
            if e.identifier in spec.default_tools
        )

    def web_search_entry(self) -> Optional[ToolManifestEntry]:
        if self.web_search_backend == "hosted":
            return HOSTED_WEB_SEARCH
        tool = self.local_tools.get(WEB_SEARCH) if self.local_tools else None
        if tool is None:
            logger.warning("Local web search requested but no 'web_search' tool is enabled")
            return None
        return ToolManifestEntry(identifier=WEB_SEARCH, schema=tool.schema)

    def resolve_tools(
        self,
        mode: Mode,
        classification: ClassificationResult,
        connected: ConnectedIntegrations,
    ) -> List[ToolManifestEntry]:
        recommended = set(classification.tools_recommended)
        manifest: List[ToolManifestEntry] = []

        if mode == Mode.AGENT or WEB_SEARCH in recommended:
            entry = self.web_search_entry()
            if entry is not None:
                manifest.append(entry)

        for integration, entries in connected.tools.items():
            if mode == Mode.AGENT or integration in recommended:
                manifest.extend(entries)

        seen = set()
        unique = []
        for entry in manifest:
            if entry.identifier not in seen:
                seen.add(entry.identifier)
                unique.append(entry)
        return unique
