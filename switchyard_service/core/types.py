import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union


class Mode(StrEnum):
    CHAT = "chat"
    AGENT = "agent"


class ReasoningEffort(StrEnum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ServiceTier(StrEnum):
    AUTO = "auto"
    DEFAULT = "default"
    FLEX = "flex"
    PRIORITY = "priority"


class StreamEvent(StrEnum):
    MODE = "mode"
    TEXT = "text"
    THINK = "think"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    DONE = "done"


class ToolPhase(StrEnum):
    IN_PROGRESS = "in_progress"
    SEARCHING = "searching"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    ITERATION_BUDGET_EXHAUSTED = "iteration_budget_exhausted"
    EMPTY_RESPONSE = "empty_response"
    INTERNAL = "internal_error"


class LoopState(StrEnum):
    CLASSIFYING = "classifying"
    ITERATING = "iterating"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({LoopState.COMPLETED, LoopState.EXHAUSTED, LoopState.FAILED, LoopState.CANCELLED})


# --- Request data ---

Segment = Dict[str, Any]

MEDIA_SEGMENT_TYPES = frozenset({"image_url", "url_image", "file", "url_document"})

# identifier of the web-search capability, hosted or local
WEB_SEARCH = "web_search"


@dataclass(frozen=True)
class ConversationMessage:
    role: str
    content: Union[str, Tuple[Segment, ...]]

    @classmethod
    def create(cls, role: str, content: Union[str, List[Segment], Tuple[Segment, ...]]) -> "ConversationMessage":
        if isinstance(content, (list, tuple)):
            return cls(role=role, content=tuple(dict(seg) for seg in content))
        return cls(role=role, content=content if isinstance(content, str) else "")

    @property
    def segments(self) -> Tuple[Segment, ...]:
        if isinstance(self.content, str):
            return ({"type": "text", "text": self.content},)
        return self.content

    def text(self) -> str:
        """Concatenated text of all text segments."""
        if isinstance(self.content, str):
            return self.content
        return " ".join(
            seg.get("text", "") for seg in self.content
            if seg.get("type") == "text" and isinstance(seg.get("text"), str)
        )


@dataclass(frozen=True)
class CallerIdentity:
    user_id: Optional[str] = None
    network_origin: Optional[str] = None

    ANONYMOUS_KEY: ClassVar[str] = "anonymous"

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def rate_limit_key(self) -> str:
        return self.user_id or self.network_origin or self.ANONYMOUS_KEY


@dataclass(frozen=True)
class ClassificationResult:
    mode: Mode
    reason: str
    confidence: float
    reasoning_effort: ReasoningEffort
    tools_recommended: Tuple[str, ...] = ()

    @classmethod
    def degraded(cls, reason: str = "Classification unavailable, defaulting to chat") -> "ClassificationResult":
        return cls(
            mode=Mode.CHAT,
            reason=reason,
            confidence=0.0,
            reasoning_effort=ReasoningEffort.MINIMAL,
        )


@dataclass(frozen=True)
class ToolManifestEntry:
    identifier: str
    schema: Dict[str, Any]
    integration: Optional[str] = None
    hosted: bool = False

    def to_provider_tool(self) -> Dict[str, Any]:
        """Render in the Responses API tool shape (flat function definition)."""
        if self.hosted:
            return dict(self.schema)
        fn = self.schema.get("function", self.schema)
        return {
            "type": "function",
            "name": fn.get("name", self.identifier),
            "description": fn.get("description", ""),
            "parameters": fn.get("parameters") or {"type": "object", "properties": {}},
        }


@dataclass(frozen=True)
class PendingToolCall:
    call_id: str
    tool_name: str
    arguments: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    tool_name: str
    success: bool
    output: Any

    def output_text(self) -> str:
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str)

    def to_input_item(self) -> Dict[str, Any]:
        return {"type": "function_call_output", "call_id": self.call_id, "output": self.output_text()}


# --- Normalized provider events (decoded once at the driver boundary) ---

@dataclass(frozen=True)
class TextDelta:
    text: str
    type: ClassVar[StreamEvent] = StreamEvent.TEXT

    def data(self) -> Dict[str, Any]:
        return {"delta": self.text}


@dataclass(frozen=True)
class ReasoningDelta:
    text: str
    type: ClassVar[StreamEvent] = StreamEvent.THINK

    def data(self) -> Dict[str, Any]:
        return {"delta": self.text}


@dataclass(frozen=True)
class ToolCallAnnounced:
    call_id: str
    name: str


@dataclass(frozen=True)
class ToolCallArgumentsReady:
    call_id: str
    arguments: str


@dataclass(frozen=True)
class HostedToolStatus:
    tool: str
    phase: ToolPhase


@dataclass(frozen=True)
class ResponseCompleted:
    output_items: Tuple[Dict[str, Any], ...]
    response_id: Optional[str]


@dataclass(frozen=True)
class ProviderError:
    code: str
    message: str
    retryable: bool
    user_message: str


NormalizedEvent = Union[
    TextDelta,
    ReasoningDelta,
    ToolCallAnnounced,
    ToolCallArgumentsReady,
    HostedToolStatus,
    ResponseCompleted,
    ProviderError,
]


# --- Output events (the wire contract) ---

@dataclass(frozen=True)
class ModeAnnouncement:
    mode: Mode
    reason: str
    confidence: float
    reasoning_effort: ReasoningEffort
    service_tier: ServiceTier
    tools: Tuple[str, ...] = ()
    type: ClassVar[StreamEvent] = StreamEvent.MODE

    def data(self) -> Dict[str, Any]:
        return {
            "mode": str(self.mode),
            "reason": self.reason,
            "confidence": self.confidence,
            "reasoning_effort": str(self.reasoning_effort),
            "service_tier": str(self.service_tier),
            "tools": list(self.tools),
        }


@dataclass(frozen=True)
class ToolUseStatus:
    tool: str
    phase: ToolPhase
    call_id: Optional[str] = None
    details: str = ""
    type: ClassVar[StreamEvent] = StreamEvent.TOOL_USE

    def data(self) -> Dict[str, Any]:
        return {"tool": self.tool, "phase": str(self.phase), "call_id": self.call_id, "details": self.details}


@dataclass(frozen=True)
class ToolResultEvent:
    tool: str
    success: bool
    output: Any
    call_id: Optional[str] = None
    type: ClassVar[StreamEvent] = StreamEvent.TOOL_RESULT

    def data(self) -> Dict[str, Any]:
        return {"tool": self.tool, "success": self.success, "output": self.output, "call_id": self.call_id}


@dataclass(frozen=True)
class ErrorEvent:
    kind: ErrorKind
    message: str
    retryable: bool
    wait_ms: Optional[int] = None
    type: ClassVar[StreamEvent] = StreamEvent.ERROR

    def data(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": str(self.kind), "message": self.message, "retryable": self.retryable}
        if self.wait_ms is not None:
            out["wait_ms"] = self.wait_ms
        return out


@dataclass(frozen=True)
class Done:
    type: ClassVar[StreamEvent] = StreamEvent.DONE

    def data(self) -> Dict[str, Any]:
        return {}


OutputEvent = Union[ModeAnnouncement, TextDelta, ReasoningDelta, ToolUseStatus, ToolResultEvent, ErrorEvent, Done]


# --- Per-request loop state ---

@dataclass
class OrchestrationState:
    iteration_count: int = 0
    accumulated_output_items: List[Dict[str, Any]] = field(default_factory=list)
    pending_tool_calls: Dict[str, PendingToolCall] = field(default_factory=dict)
    last_response_id: Optional[str] = None
    closed: bool = False
    phase: LoopState = LoopState.CLASSIFYING
    error: Optional[ErrorKind] = None
    mode: Optional[Mode] = None
    service_tier: Optional[ServiceTier] = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_STATES
