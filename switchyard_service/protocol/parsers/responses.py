import json
from typing import Any, Dict, List, Optional, Set

from switchyard_service.core.errors import ProviderCallError
from switchyard_service.core.logging import logger
from switchyard_service.core.types import (
    WEB_SEARCH,
    HostedToolStatus,
    NormalizedEvent,
    ProviderError,
    ReasoningDelta,
    ResponseCompleted,
    TextDelta,
    ToolCallAnnounced,
    ToolCallArgumentsReady,
    ToolPhase,
)

_WEB_SEARCH_PHASES = {
    "response.web_search_call.in_progress": ToolPhase.IN_PROGRESS,
    "response.web_search_call.searching": ToolPhase.SEARCHING,
    "response.web_search_call.completed": ToolPhase.COMPLETED,
}

_REASONING_DELTAS = {"response.reasoning_summary_text.delta", "response.reasoning_text.delta"}

_TOOL_JSON_KEYS = ({"name", "arguments"}, {"tool", "arguments"}, {"tool_name", "tool_args"}, {"recipient_name", "parameters"})


def looks_like_tool_json(text: str) -> bool:
    """True for text deltas that are a leaked tool-call payload rather than prose."""
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return False
    try:
        payload = json.loads(stripped)
    except ValueError:
        return False
    return isinstance(payload, dict) and any(keys <= payload.keys() for keys in _TOOL_JSON_KEYS)


def to_provider_error(err: ProviderCallError) -> ProviderError:
    return ProviderError(code=err.code, message=err.message, retryable=err.retryable, user_message=err.user_message)


class ResponsesEventParser:
    """
    Stateful translator from raw Responses API stream events to normalized events.
    - Captures the response id as soon as the provider reports it
    - Emits ToolCallAnnounced before ToolCallArgumentsReady for every call id,
      synthesizing the announcement when arguments arrive for an unseen item
    - Reconciles function_call output items whose arguments never streamed
    - Ends with exactly one ResponseCompleted or ProviderError
    """

    def __init__(self, filter_tool_json: bool = True):
        self.filter_tool_json = filter_tool_json
        self.response_id: Optional[str] = None
        self._item_calls: Dict[str, str] = {}  # output item id -> call id
        self._announced: Dict[str, str] = {}  # call id -> tool name
        self._ready: Set[str] = set()
        self.finished = False

    def feed(self, event: Dict[str, Any]) -> List[NormalizedEvent]:
        if self.finished or not isinstance(event, dict):
            return []
        etype = event.get("type", "")
        logger.debug(f"Provider event: {etype}")

        if etype in ("response.created", "response.in_progress"):
            self._capture_id(event.get("response"))
            return []

        if etype == "response.output_text.delta":
            delta = event.get("delta") or ""
            if not delta:
                return []
            if self.filter_tool_json and looks_like_tool_json(delta):
                logger.debug("Dropped tool-call JSON from text stream")
                return []
            return [TextDelta(delta)]

        if etype in _REASONING_DELTAS:
            delta = event.get("delta") or ""
            return [ReasoningDelta(delta)] if delta else []

        if etype == "response.output_item.added":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                return self._announce(item.get("call_id") or item.get("id"), item.get("name"), item.get("id"))
            return []

        if etype == "response.function_call_arguments.done":
            item_id = event.get("item_id")
            call_id = event.get("call_id") or self._item_calls.get(item_id) or item_id
            return self._arguments(call_id, event.get("name"), event.get("arguments"), item_id)

        if etype == "response.output_item.done":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                return self._arguments(item.get("call_id") or item.get("id"), item.get("name"), item.get("arguments"), item.get("id"))
            return []

        if etype in _WEB_SEARCH_PHASES:
            return [HostedToolStatus(tool=WEB_SEARCH, phase=_WEB_SEARCH_PHASES[etype])]

        if etype == "response.completed":
            return self._complete(event.get("response") or {})

        if etype == "response.failed":
            response = event.get("response") or {}
            self._capture_id(response)
            error = response.get("error") or {}
            return self._fail(ProviderCallError.from_details(error.get("code") or "response_failed", error.get("message")))

        if etype == "response.incomplete":
            response = event.get("response") or {}
            reason = (response.get("incomplete_details") or {}).get("reason") or "unknown"
            return self._fail(ProviderCallError.from_details("response_incomplete", f"Response incomplete: {reason}"))

        if etype == "error":
            error = event.get("error") if isinstance(event.get("error"), dict) else event
            return self._fail(ProviderCallError.from_details(error.get("code"), error.get("message")))

        return []

    def finalize(self) -> List[NormalizedEvent]:
        """Close the stream; a stream that never completed is a retryable provider fault."""
        if self.finished:
            return []
        logger.warning(f"Provider stream ended without completion: response_id={self.response_id}")
        return self._fail(ProviderCallError.from_details("incomplete_stream", "Provider stream ended before completion"))

    def fail(self, err: ProviderCallError) -> List[NormalizedEvent]:
        if self.finished:
            return []
        return self._fail(err)

    def _capture_id(self, response: Optional[Dict[str, Any]]) -> None:
        if isinstance(response, dict) and response.get("id"):
            self.response_id = response["id"]

    def _announce(self, call_id: Optional[str], name: Optional[str], item_id: Optional[str] = None) -> List[NormalizedEvent]:
        if not call_id:
            return []
        if item_id:
            self._item_calls[item_id] = call_id
        if call_id in self._announced:
            return []
        self._announced[call_id] = name or "unknown"
        return [ToolCallAnnounced(call_id=call_id, name=self._announced[call_id])]

    def _arguments(
        self,
        call_id: Optional[str],
        name: Optional[str],
        arguments: Optional[str],
        item_id: Optional[str] = None,
    ) -> List[NormalizedEvent]:
        if not call_id or call_id in self._ready:
            return []
        events = self._announce(call_id, name, item_id)
        self._ready.add(call_id)
        events.append(ToolCallArgumentsReady(call_id=call_id, arguments=arguments or "{}"))
        return events

    def _complete(self, response: Dict[str, Any]) -> List[NormalizedEvent]:
        self._capture_id(response)
        output = [item for item in response.get("output") or [] if isinstance(item, dict)]
        events: List[NormalizedEvent] = []
        for item in output:
            if item.get("type") == "function_call":
                events.extend(self._arguments(item.get("call_id") or item.get("id"), item.get("name"), item.get("arguments"), item.get("id")))
        self.finished = True
        events.append(ResponseCompleted(output_items=tuple(output), response_id=self.response_id))
        return events

    def _fail(self, err: ProviderCallError) -> List[NormalizedEvent]:
        self.finished = True
        logger.warning(f"Provider error: code={err.code}, retryable={err.retryable}, message={err.message}")
        return [to_provider_error(err)]
