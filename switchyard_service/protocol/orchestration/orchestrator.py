import asyncio
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from switchyard_service.core.interfaces import IntegrationGateway, Tool
from switchyard_service.core.logging import logger
from switchyard_service.core.tool_registry import ConnectedIntegrations, ToolResolver
from switchyard_service.core.types import (
    CallerIdentity,
    ClassificationResult,
    ConversationMessage,
    Done,
    ErrorEvent,
    ErrorKind,
    HostedToolStatus,
    LoopState,
    Mode,
    ModeAnnouncement,
    OrchestrationState,
    OutputEvent,
    PendingToolCall,
    ProviderError,
    ReasoningDelta,
    ResponseCompleted,
    TextDelta,
    ToolCallAnnounced,
    ToolCallArgumentsReady,
    ToolPhase,
    ToolResult,
    ToolResultEvent,
    ToolUseStatus,
)
from switchyard_service.integrations.catalog import format_tool_name
from switchyard_service.protocol.admission.service_tier import ServiceTierSelector
from switchyard_service.protocol.classifier import ModeClassifier
from switchyard_service.protocol.messages import to_provider_input
from switchyard_service.protocol.orchestration.driver import CompletionDriver, Continuation
from switchyard_service.protocol.orchestration.emitter import EventChannel
from switchyard_service.protocol.orchestration.tool_runner import ToolRunner
from switchyard_service.protocol.prompts import build_system_prompt

# output item types replayed to a stateless provider alongside tool outputs
REPLAYED_ITEM_TYPES = {"function_call", "reasoning", "message"}

DEFAULT_MAX_ITERATIONS = {Mode.CHAT: 3, Mode.AGENT: 10}


@dataclass(frozen=True)
class OrchestrationRequest:
    messages: Tuple[ConversationMessage, ...]
    identity: CallerIdentity
    selected_integrations: Tuple[str, ...] = ()
    is_user_facing: bool = True
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class _Cancelled(Exception):
    """The consumer closed the output channel."""


class Orchestrator:
    """
    Per-request state machine:
    CLASSIFYING -> ITERATING(n) -> [EXECUTING_TOOLS -> ITERATING(n+1)] -> COMPLETED | EXHAUSTED | FAILED.
    Every event goes to a single EventChannel; every terminal path sends at most
    one ErrorEvent, then Done, then closes the channel.
    """

    def __init__(
        self,
        driver: CompletionDriver,
        classifier: ModeClassifier,
        resolver: ToolResolver,
        tier_selector: ServiceTierSelector,
        gateway: Optional[IntegrationGateway],
        local_tools: Optional[Dict[str, Tool]] = None,
        models: Optional[Mapping[str, str]] = None,
        max_iterations: Optional[Mapping[str, int]] = None,
        base_instruction: str = "You are a helpful assistant.",
        tool_timeout: float = 30,
    ):
        self.driver = driver
        self.classifier = classifier
        self.resolver = resolver
        self.tier_selector = tier_selector
        self.gateway = gateway
        self.local_tools = local_tools or {}
        self.models = {Mode(k): v for k, v in (models or {}).items()}
        caps = dict(DEFAULT_MAX_ITERATIONS)
        caps.update({Mode(k): int(v) for k, v in (max_iterations or {}).items()})
        self.max_iterations = caps
        self.base_instruction = base_instruction
        self.tool_timeout = tool_timeout

    async def run(self, request: OrchestrationRequest, channel: EventChannel) -> OrchestrationState:
        state = OrchestrationState()
        started = time.monotonic()
        logger.info(
            f"Orchestration started: request_id={request.request_id}, messages={len(request.messages)}, "
            f"integrations={list(request.selected_integrations)}"
        )
        try:
            await self._run(request, channel, state)
        except asyncio.CancelledError:
            state.phase = LoopState.CANCELLED
            raise
        except _Cancelled:
            state.phase = LoopState.CANCELLED
            logger.info(f"Consumer disconnected, aborting: request_id={request.request_id}, iteration={state.iteration_count}")
        except Exception as e:
            logger.exception(f"Exception in orchestration: request_id={request.request_id}, error={e}")
            self._fail(state, channel, ErrorEvent(ErrorKind.INTERNAL, "An unexpected error occurred. Please try again.", retryable=True))
        finally:
            if state.phase != LoopState.CANCELLED:
                channel.send(Done())
            channel.close()
            state.closed = True
            self._log_summary(request, state, started)
        return state

    # --- phases ---

    async def _run(self, request: OrchestrationRequest, channel: EventChannel, state: OrchestrationState) -> None:
        state.phase = LoopState.CLASSIFYING
        connected = await self._load_integrations(request)
        classification = self._classify(request, connected)
        mode = classification.mode
        tools = self.resolver.resolve_tools(mode, classification, connected)
        tier = self.tier_selector.select_tier(request.identity, request.is_user_facing)
        state.mode, state.service_tier = mode, tier.tier

        model = self.models.get(mode, "")
        instructions = build_system_prompt(self.base_instruction, mode, connected.ids, tools)
        conversation = to_provider_input(request.messages)
        cap = self.max_iterations[mode]
        runner = ToolRunner(self.gateway, self.local_tools, tools, timeout=self.tool_timeout, request_id=request.request_id)

        logger.info(
            f"Classified: request_id={request.request_id}, mode={mode}, effort={classification.reasoning_effort}, "
            f"tier={tier.tier} ({tier.reason}), tools={[t.identifier for t in tools]}"
        )
        self._send(channel, ModeAnnouncement(
            mode=mode,
            reason=classification.reason,
            confidence=classification.confidence,
            reasoning_effort=classification.reasoning_effort,
            service_tier=tier.tier,
            tools=tuple(t.identifier for t in tools),
        ))

        continuation: Optional[Continuation] = None
        while True:
            state.iteration_count += 1
            state.phase = LoopState.ITERATING
            state.pending_tool_calls = {}
            logger.info(f"Iteration {state.iteration_count}/{cap}: request_id={request.request_id}")

            text_seen = False
            completed: Optional[ResponseCompleted] = None
            failure: Optional[ProviderError] = None
            names: Dict[str, str] = {}

            async with aclosing(self.driver.invoke(
                conversation,
                tools,
                classification.reasoning_effort,
                tier.tier,
                continuation,
                model=model,
                instructions=instructions,
            )) as events:
                async for event in events:
                    if channel.closed:
                        raise _Cancelled()
                    if isinstance(event, (TextDelta, ReasoningDelta)):
                        text_seen = text_seen or isinstance(event, TextDelta)
                        self._send(channel, event)
                    elif isinstance(event, HostedToolStatus):
                        self._send(channel, ToolUseStatus(event.tool, event.phase, details=format_tool_name(event.tool)))
                    elif isinstance(event, ToolCallAnnounced):
                        names[event.call_id] = event.name
                        state.pending_tool_calls[event.call_id] = PendingToolCall(event.call_id, event.name)
                    elif isinstance(event, ToolCallArgumentsReady):
                        name = names.get(event.call_id, "unknown")
                        state.pending_tool_calls[event.call_id] = PendingToolCall(event.call_id, name, event.arguments)
                    elif isinstance(event, ResponseCompleted):
                        completed = event
                    elif isinstance(event, ProviderError):
                        failure = event

            if failure is not None or completed is None:
                message = failure.user_message if failure else "The response stream ended unexpectedly."
                retryable = failure.retryable if failure else True
                self._fail(state, channel, ErrorEvent(ErrorKind.PROVIDER_ERROR, message, retryable))
                return

            state.last_response_id = completed.response_id
            pending = list(state.pending_tool_calls.values())

            if not pending:
                if text_seen:
                    state.phase = LoopState.COMPLETED
                    return
                self._fail(state, channel, ErrorEvent(ErrorKind.EMPTY_RESPONSE, "The model returned an empty response. Please try again.", retryable=True))
                return

            if state.iteration_count >= cap:
                logger.warning(
                    f"Iteration budget exhausted: request_id={request.request_id}, cap={cap}, pending_calls={len(pending)}"
                )
                self._fail(
                    state,
                    channel,
                    ErrorEvent(ErrorKind.ITERATION_BUDGET_EXHAUSTED, f"Stopped after {cap} steps without finishing the task.", retryable=False),
                    terminal=LoopState.EXHAUSTED,
                )
                return

            state.phase = LoopState.EXECUTING_TOOLS
            results = await self._execute_tools(runner, pending, request.identity, channel)

            new_outputs = [result.to_input_item() for result in results]
            state.accumulated_output_items.extend(
                item for item in completed.output_items if item.get("type") in REPLAYED_ITEM_TYPES
            )
            state.accumulated_output_items.extend(new_outputs)
            continuation = Continuation(
                response_id=completed.response_id,
                replay_items=list(state.accumulated_output_items),
                new_outputs=new_outputs,
            )
            state.pending_tool_calls = {}

    async def _load_integrations(self, request: OrchestrationRequest) -> ConnectedIntegrations:
        try:
            return await self.resolver.load_integrations(request.identity, request.selected_integrations)
        except Exception as e:
            logger.warning(f"Integration loading failed, continuing without integrations: {type(e).__name__}: {e}")
            return ConnectedIntegrations()

    def _classify(self, request: OrchestrationRequest, connected: ConnectedIntegrations) -> ClassificationResult:
        try:
            return self.classifier.classify(request.messages, connected.ids)
        except Exception as e:
            logger.warning(f"ClassificationDegraded: request_id={request.request_id}, {type(e).__name__}: {e}")
            return ClassificationResult.degraded()

    async def _execute_tools(
        self,
        runner: ToolRunner,
        calls: Sequence[PendingToolCall],
        identity: CallerIdentity,
        channel: EventChannel,
    ) -> List[ToolResult]:
        for call in calls:
            self._send(channel, ToolUseStatus(call.tool_name, ToolPhase.EXECUTING, call.call_id, format_tool_name(call.tool_name)))

        results: List[Optional[ToolResult]] = [None] * len(calls)
        async with aclosing(runner.execute_as_completed(calls, identity)) as stream:
            async for idx, result in stream:
                if channel.closed:
                    raise _Cancelled()
                results[idx] = result
                phase = ToolPhase.COMPLETED if result.success else ToolPhase.FAILED
                self._send(channel, ToolUseStatus(result.tool_name, phase, result.call_id, format_tool_name(result.tool_name)))
                self._send(channel, ToolResultEvent(result.tool_name, result.success, result.output, result.call_id))
        return results  # type: ignore[return-value]

    # --- helpers ---

    @staticmethod
    def _send(channel: EventChannel, event: OutputEvent) -> None:
        if not channel.send(event):
            raise _Cancelled()

    @staticmethod
    def _fail(
        state: OrchestrationState,
        channel: EventChannel,
        error: ErrorEvent,
        terminal: LoopState = LoopState.FAILED,
    ) -> None:
        state.phase = terminal
        state.error = error.kind
        channel.send(error)

    def _log_summary(self, request: OrchestrationRequest, state: OrchestrationState, started: float) -> None:
        model = self.models.get(state.mode, "") if state.mode else ""
        outcome = "ok" if state.phase == LoopState.COMPLETED else (state.error or state.phase)
        logger.info(
            f"Request summary: request_id={request.request_id}, model={model}, tier={state.service_tier}, "
            f"mode={state.mode}, iterations={state.iteration_count}, state={state.phase}, outcome={outcome}, "
            f"duration_ms={int((time.monotonic() - started) * 1000)}"
        )
