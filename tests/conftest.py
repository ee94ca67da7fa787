import pytest

from switchyard_service.core.tool_registry import ToolResolver
from switchyard_service.core.types import CallerIdentity, ConversationMessage
from switchyard_service.protocol.admission.service_tier import ServiceTierSelector
from switchyard_service.protocol.classifier import ModeClassifier
from switchyard_service.protocol.orchestration.driver import CompletionDriver
from switchyard_service.protocol.orchestration.emitter import EventChannel
from switchyard_service.protocol.orchestration.orchestrator import OrchestrationRequest, Orchestrator
from switchyard_service.providers.dummy.gateway import StaticGateway


@pytest.fixture
def make_orchestrator():
    """Build an Orchestrator around a provider and (optionally) a gateway with test defaults."""
    def _make(provider, gateway=None, **overrides):
        gateway = gateway if gateway is not None else StaticGateway()
        kwargs = dict(
            driver=CompletionDriver(provider),
            classifier=ModeClassifier(),
            resolver=ToolResolver(gateway),
            tier_selector=ServiceTierSelector(),
            gateway=gateway,
            models={"chat": "chat-model", "agent": "agent-model"},
            max_iterations={"chat": 3, "agent": 10},
            base_instruction="You are a test assistant.",
            tool_timeout=2,
        )
        kwargs.update(overrides)
        return Orchestrator(**kwargs)
    return _make


@pytest.fixture
def make_request():
    def _make(*texts, user_id="user-1", integrations=(), is_user_facing=True):
        messages = tuple(ConversationMessage.create("user", t) for t in texts)
        return OrchestrationRequest(
            messages=messages,
            identity=CallerIdentity(user_id=user_id, network_origin="10.0.0.1"),
            selected_integrations=tuple(integrations),
            is_user_facing=is_user_facing,
        )
    return _make


@pytest.fixture
def run_collect():
    """Run an orchestrator to completion and return (state, events)."""
    async def _run(orchestrator, request):
        channel = EventChannel()
        state = await orchestrator.run(request, channel)
        events = [event async for event in channel]
        return state, events
    return _run
