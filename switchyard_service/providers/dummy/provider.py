import asyncio
import json
import uuid
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Sequence

from switchyard_service.core.interfaces import CompletionProvider, CompletionRequest

Turn = List[Dict[str, Any]]


def _response(events: List[Dict[str, Any]], output: List[Dict[str, Any]], response_id: str) -> Turn:
    return (
        [{"type": "response.created", "response": {"id": response_id, "status": "in_progress"}}]
        + events
        + [{"type": "response.completed", "response": {"id": response_id, "status": "completed", "output": output}}]
    )


def text_turn(text: str, chunks: int = 3, reasoning: Optional[str] = None, response_id: Optional[str] = None) -> Turn:
    """A provider turn that streams `text` in a few deltas and completes."""
    response_id = response_id or f"resp_{uuid.uuid4().hex[:12]}"
    events: List[Dict[str, Any]] = []
    output: List[Dict[str, Any]] = []
    if reasoning:
        events.append({"type": "response.reasoning_summary_text.delta", "delta": reasoning})
        output.append({"type": "reasoning", "id": f"rs_{response_id}", "summary": [{"type": "summary_text", "text": reasoning}]})
    size = max(1, -(-len(text) // max(chunks, 1)))
    for i in range(0, len(text), size):
        events.append({"type": "response.output_text.delta", "delta": text[i:i + size]})
    output.append({
        "type": "message",
        "id": f"msg_{response_id}",
        "role": "assistant",
        "content": [{"type": "output_text", "text": text}],
    })
    return _response(events, output, response_id)


def tool_call_turn(calls: Sequence[Dict[str, Any]], text: str = "", response_id: Optional[str] = None) -> Turn:
    """
    A provider turn requesting tool calls.

    Each call is {"name": ..., "arguments": {...}} with optional "call_id".
    """
    response_id = response_id or f"resp_{uuid.uuid4().hex[:12]}"
    events: List[Dict[str, Any]] = []
    output: List[Dict[str, Any]] = []
    if text:
        events.append({"type": "response.output_text.delta", "delta": text})
        output.append({"type": "message", "id": f"msg_{response_id}", "role": "assistant",
                       "content": [{"type": "output_text", "text": text}]})
    for i, call in enumerate(calls):
        item_id = f"fc_{response_id}_{i}"
        call_id = call.get("call_id") or f"call_{response_id}_{i}"
        arguments = call.get("arguments", {})
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        item = {"type": "function_call", "id": item_id, "call_id": call_id, "name": call["name"], "arguments": arguments}
        events.append({"type": "response.output_item.added", "item": {**item, "arguments": ""}})
        events.append({"type": "response.function_call_arguments.done", "item_id": item_id, "arguments": arguments})
        output.append(item)
    return _response(events, output, response_id)


class ScriptedProvider(CompletionProvider):
    """
    Offline provider that replays canned Responses-style turns, one per call.
    Records every request it receives; repeats the last turn when the script runs out.
    """

    def __init__(
        self,
        turns: Optional[Iterable[Turn]] = None,
        delay: float = 0.0,
        stateful: bool = False,
        text: str = "This is a scripted response.",
    ):
        self.turns: List[Turn] = list(turns) if turns else [text_turn(text)]
        self.delay = delay
        self.stateful = stateful
        self.requests: List[CompletionRequest] = []

    @property
    def supports_continuation(self) -> bool:
        return self.stateful

    def is_configured(self) -> bool:
        return True

    async def stream(self, request: CompletionRequest) -> AsyncGenerator[Dict[str, Any], None]:
        index = min(len(self.requests), len(self.turns) - 1)
        self.requests.append(request)
        for event in self.turns[index]:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield event
