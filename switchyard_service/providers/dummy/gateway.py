from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from switchyard_service.core.errors import IntegrationError
from switchyard_service.core.interfaces import IntegrationGateway
from switchyard_service.core.types import ToolManifestEntry

Outcome = Union[Dict[str, Any], Exception]


class StaticGateway(IntegrationGateway):
    """
    Offline integration gateway.

    Every user is connected to `connected` integrations; tools get a permissive
    schema and answer with canned `results` (an Exception is raised instead).
    Executions are recorded in `executed`.
    """

    def __init__(
        self,
        connected: Iterable[str] = (),
        results: Optional[Dict[str, Outcome]] = None,
        unavailable: Iterable[str] = (),
    ):
        self.connected = set(connected)
        self.results: Dict[str, Outcome] = dict(results or {})
        self.unavailable = set(unavailable)
        self.executed: List[Tuple[str, str, Dict[str, Any]]] = []

    async def is_connected(self, user_id: str, integration: str) -> bool:
        if integration in self.unavailable:
            raise IntegrationError(f"{integration} catalog unreachable", status=503, retryable=True)
        return integration in self.connected

    async def list_tools(self, user_id: str, integration: str, tool_ids: List[str]) -> List[ToolManifestEntry]:
        return [
            ToolManifestEntry(
                identifier=tool_id,
                schema={
                    "type": "function",
                    "function": {
                        "name": tool_id,
                        "description": f"{tool_id} (offline)",
                        "parameters": {"type": "object", "properties": {}, "additionalProperties": True},
                    },
                },
                integration=integration,
            )
            for tool_id in tool_ids
        ]

    async def execute(self, tool_name: str, user_id: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        self.executed.append((tool_name, user_id, arguments))
        outcome = self.results.get(tool_name, {"success": True, "output": {"ok": True, "tool": tool_name}})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
