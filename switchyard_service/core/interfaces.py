from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

from switchyard_service.core.types import ReasoningEffort, ServiceTier, ToolManifestEntry


@dataclass
class CompletionRequest:
    """One call to the completion provider."""
    model: str
    instructions: str
    input: List[Dict[str, Any]]
    tools: List[Dict[str, Any]] = field(default_factory=list)
    reasoning_effort: ReasoningEffort = ReasoningEffort.LOW
    service_tier: ServiceTier = ServiceTier.AUTO
    previous_response_id: Optional[str] = None
    parallel_tool_calls: bool = True
    store: bool = True

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "instructions": self.instructions,
            "input": self.input,
            "reasoning": {"effort": str(self.reasoning_effort)},
            "store": self.store,
        }
        if self.tools:
            params["tools"] = self.tools
            params["parallel_tool_calls"] = self.parallel_tool_calls
        # 'auto' means let the provider decide
        if self.service_tier != ServiceTier.AUTO:
            params["service_tier"] = str(self.service_tier)
        if self.previous_response_id:
            params["previous_response_id"] = self.previous_response_id
        return params


@dataclass(frozen=True)
class Admission:
    allowed: bool
    wait_ms: int = 0
    remaining: float = 0.0


class CompletionProvider(ABC):
    @property
    def supports_continuation(self) -> bool:
        """True when the provider threads turns server-side via previous_response_id."""
        return False

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncGenerator[Dict[str, Any], None]:
        """Stream raw provider events (Responses API shaped dicts) for one call."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials/config needed to call the provider are present."""
        ...


class IntegrationGateway(ABC):
    @abstractmethod
    async def is_connected(self, user_id: str, integration: str) -> bool:
        """Whether the user has an active, authorized connection to the integration."""
        ...

    @abstractmethod
    async def list_tools(self, user_id: str, integration: str, tool_ids: List[str]) -> List[ToolManifestEntry]:
        """Fetch invocation schemas for the given tools of a connected integration."""
        ...

    @abstractmethod
    async def execute(self, tool_name: str, user_id: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run one tool; returns {"success": bool, "output": Any}."""
        ...

    def is_configured(self) -> bool:
        return True


class RateLimiter(ABC):
    @abstractmethod
    def admit(self, key: str) -> Admission:
        """Try to take one request token for `key`."""
        ...


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        ...
