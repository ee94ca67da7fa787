from importlib import import_module
from typing import Any, Dict, Optional, cast
import inspect

from switchyard_service.core.config import load_settings
from switchyard_service.core.interfaces import CompletionProvider, IntegrationGateway, RateLimiter


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate the class if callable.
    Filters kwargs to match the constructor signature (unless **kwargs is accepted)."""
    module, cls = dotted.rsplit(".", 1)
    obj = getattr(import_module(module), cls)

    if not isinstance(obj, type):
        return obj

    params = list(inspect.signature(obj.__init__).parameters.values())
    if any(p.kind == p.VAR_KEYWORD for p in params):
        return obj(**kwargs)
    allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
    return obj(**{k: v for k, v in kwargs.items() if k in allowed})


class ServiceFactory:
    """Builds and caches the service graph from settings."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_settings()
        self._provider: Optional[CompletionProvider] = None
        self._gateway: Optional[IntegrationGateway] = None
        self._limiter: Optional[RateLimiter] = None
        self._tools = None

    def _section(self, *path: str) -> Dict[str, Any]:
        node: Any = self.config
        for key in path:
            node = (node or {}).get(key) if isinstance(node, dict) else None
        return node or {}

    def _load_impl(self, *path: str) -> Any:
        cfg = self._section(*path)
        impl = cfg.get("impl")
        if not impl:
            raise ValueError(f"No impl configured at {'.'.join(path)}")
        return load(impl, **(cfg.get("args") or {}))

    def get_provider(self) -> CompletionProvider:
        if not self._provider:
            self._provider = cast(CompletionProvider, self._load_impl("providers", "completion"))
        return self._provider

    def get_gateway(self) -> IntegrationGateway:
        if not self._gateway:
            self._gateway = cast(IntegrationGateway, self._load_impl("providers", "integrations"))
        return self._gateway

    def get_tool_registry(self):
        from switchyard_service.core.tool_registry import ToolRegistry

        if self._tools is None:
            tools_cfg = self._section("tools")
            self._tools = ToolRegistry(tools_cfg.get("registry") or [], tools_cfg.get("enabled") or [])
        return self._tools

    def get_rate_limiter(self) -> RateLimiter:
        from switchyard_service.protocol.admission.rate_limiter import TokenBucketRateLimiter

        if not self._limiter:
            cfg = self._section("rate_limit")
            self._limiter = TokenBucketRateLimiter(
                capacity=cfg.get("capacity", 10),
                refill_rate=cfg.get("refill_per_sec", 1),
            )
        return self._limiter

    def get_tier_selector(self):
        return load("switchyard_service.protocol.admission.service_tier.ServiceTierSelector", **self._section("service_tier"))

    def get_classifier(self):
        return load("switchyard_service.protocol.classifier.ModeClassifier", **self._section("classifier"))

    def get_resolver(self):
        from switchyard_service.core.tool_registry import ToolResolver

        backend = self._section("tools", "web_search").get("backend", "hosted")
        return ToolResolver(self.get_gateway(), self.get_tool_registry(), web_search_backend=backend)

    def get_agent_service(self):
        from switchyard_service.protocol.orchestration.driver import CompletionDriver
        from switchyard_service.protocol.orchestration.orchestrator import Orchestrator
        from switchyard_service.protocol.service.agent_service import AgentService

        stream_cfg = self._section("stream")
        limits = self._section("limits")
        driver = CompletionDriver(
            self.get_provider(),
            parallel_tool_calls=stream_cfg.get("parallel_tool_calls", True),
            store=stream_cfg.get("store", True),
            filter_tool_json=stream_cfg.get("filter_tool_json", True),
        )
        orchestrator = Orchestrator(
            driver=driver,
            classifier=self.get_classifier(),
            resolver=self.get_resolver(),
            tier_selector=self.get_tier_selector(),
            gateway=self.get_gateway(),
            local_tools=self.get_tool_registry().all(),
            models=self._section("models"),
            max_iterations=limits.get("max_iterations"),
            base_instruction=self._section("system").get("prompt", ""),
            tool_timeout=limits.get("tool_timeout_sec", 30),
        )
        return AgentService(
            orchestrator,
            self.get_rate_limiter(),
            max_messages=limits.get("max_messages", 100),
            max_message_chars=limits.get("max_message_chars", 100_000),
        )
