import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from switchyard_service.core.errors import ProviderCallError
from switchyard_service.core.interfaces import CompletionProvider, CompletionRequest
from switchyard_service.core.logging import logger
from switchyard_service.core.types import (
    NormalizedEvent,
    ReasoningEffort,
    ServiceTier,
    ToolManifestEntry,
)
from switchyard_service.protocol.parsers.responses import ResponsesEventParser


@dataclass
class Continuation:
    """What a follow-up iteration needs to see of the earlier ones."""
    response_id: Optional[str] = None
    # every output item and tool output so far, in order (stateless replay)
    replay_items: List[Dict[str, Any]] = field(default_factory=list)
    # tool outputs from the latest batch only (stateful continuation)
    new_outputs: List[Dict[str, Any]] = field(default_factory=list)


class CompletionDriver:
    """One provider call per invoke(); raw events are decoded here and nowhere else."""

    def __init__(
        self,
        provider: CompletionProvider,
        parallel_tool_calls: bool = True,
        store: bool = True,
        filter_tool_json: bool = True,
    ):
        self.provider = provider
        self.parallel_tool_calls = parallel_tool_calls
        self.store = store
        self.filter_tool_json = filter_tool_json

    def build_request(
        self,
        conversation: Sequence[Dict[str, Any]],
        tools: Sequence[ToolManifestEntry],
        effort: ReasoningEffort,
        service_tier: ServiceTier,
        continuation: Optional[Continuation],
        model: str,
        instructions: str,
    ) -> CompletionRequest:
        previous_response_id = None
        if continuation is None:
            input_items = list(conversation)
        elif self.provider.supports_continuation and continuation.response_id:
            previous_response_id = continuation.response_id
            input_items = list(continuation.new_outputs)
        else:
            input_items = list(conversation) + list(continuation.replay_items)

        return CompletionRequest(
            model=model,
            instructions=instructions,
            input=input_items,
            tools=[entry.to_provider_tool() for entry in tools],
            reasoning_effort=effort,
            service_tier=service_tier,
            previous_response_id=previous_response_id,
            parallel_tool_calls=self.parallel_tool_calls,
            store=self.store,
        )

    async def invoke(
        self,
        conversation: Sequence[Dict[str, Any]],
        tools: Sequence[ToolManifestEntry],
        effort: ReasoningEffort,
        service_tier: ServiceTier,
        continuation: Optional[Continuation] = None,
        *,
        model: str,
        instructions: str,
    ) -> AsyncIterator[NormalizedEvent]:
        request = self.build_request(conversation, tools, effort, service_tier, continuation, model, instructions)
        parser = ResponsesEventParser(filter_tool_json=self.filter_tool_json)
        logger.debug(
            f"Provider call: model={model}, tier={service_tier}, effort={effort}, "
            f"tools={len(request.tools)}, input_items={len(request.input)}, "
            f"previous_response_id={request.previous_response_id}"
        )

        try:
            async with aclosing(self.provider.stream(request)) as raw_events:
                async for raw in raw_events:
                    for event in parser.feed(raw):
                        yield event
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = ProviderCallError.from_exception(e)
            logger.warning(f"Provider stream raised {type(e).__name__}: code={err.code}")
            for event in parser.fail(err):
                yield event
            return

        for event in parser.finalize():
            yield event
