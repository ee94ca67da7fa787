"""
Request classifier: choose chat vs agent mode, reasoning effort and tool hints.

Signals are counted from regex families over the recent user turns. The
classifier is pure; it performs no I/O and keeps no state between calls, so
identical inputs always give identical results.
"""
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from switchyard_service.core.types import (
    MEDIA_SEGMENT_TYPES,
    WEB_SEARCH,
    ClassificationResult,
    ConversationMessage,
    Mode,
    ReasoningEffort,
)


WEB_SEARCH_PATTERNS = [
    re.compile(r"\b(search|google|look up|find out|what('s| is) (the )?(latest|current|recent|new))\b", re.I),
    re.compile(r"\b(news|today|yesterday|this (week|month|year))\b", re.I),
    re.compile(r"\b(weather|forecast|stock|price|score|result)\b", re.I),
    re.compile(r"\b(who won|what happened|when (is|was|did))\b", re.I),
    re.compile(r"\b(trending|popular|best \d{4})\b", re.I),
    re.compile(r"\b(how much (does|is)|where (can i|to) buy)\b", re.I),
    re.compile(r"\b(reviews?|ratings?|compare|vs\.?|versus)\b", re.I),
]

EMAIL_PATTERNS = [
    re.compile(r"\b(send|compose|write|draft|reply).{0,20}(email|mail|message)\b", re.I),
    re.compile(r"\b(email|mail|inbox|unread|messages?)\b", re.I),
    re.compile(r"\b(check.{0,10}(my )?(email|inbox|mail))\b", re.I),
    re.compile(r"\bto\s+[\w.-]+@[\w.-]+\b", re.I),
]

MUSIC_PATTERNS = [
    re.compile(r"\b(play|pause|skip|next|previous|stop|resume)\b.{0,15}\b(song|music|track|album|playlist)\b", re.I),
    re.compile(r"\b(spotify|music|song|track|artist|album|playlist)\b", re.I),
    re.compile(r"\b(what('s| is) playing|currently playing|now playing)\b", re.I),
    re.compile(r"\b(volume|louder|quieter|mute)\b", re.I),
    re.compile(r"\b(queue|add to queue)\b", re.I),
    re.compile(r"\b(shuffle|repeat|loop)\b", re.I),
]

REPOSITORY_PATTERNS = [
    re.compile(r"\b(github|repo|repos|repository|repositories)\b", re.I),
    re.compile(r"\b(pull requests?|prs?|issues?|commits?)\b", re.I),
    re.compile(r"\b(open|create|file|list).{0,20}(issue|pull request|pr)\b", re.I),
]

COMPLEX_TASK_PATTERNS = [
    re.compile(r"\b(and then|after that|next|also|additionally)\b", re.I),
    re.compile(r"\b(step by step|steps?|process|guide me|walk me through)\b", re.I),
    re.compile(r"\b(create|build|develop|implement|set up|configure)\b", re.I),
    re.compile(r"\b(analyze|research|investigate|compare|evaluate)\b", re.I),
    re.compile(r"\b(schedule|plan|organize|coordinate)\b", re.I),
    re.compile(r"\b(summarize|compile|aggregate|gather)\b", re.I),
]

CASUAL_CHAT_PATTERNS = [
    re.compile(r"^(hi|hey|hello|yo|sup|what's up|how are you|good (morning|afternoon|evening))", re.I),
    re.compile(r"^(thanks|thank you|thx|ty|appreciate it)", re.I),
    re.compile(r"^(ok|okay|sure|got it|cool|nice|great|awesome)", re.I),
    re.compile(r"^(bye|goodbye|see you|later|gotta go)", re.I),
    re.compile(r"\?(?: |$)"),
]

EXPLANATION_PATTERNS = [
    re.compile(r"^(what is|what's|what are|define|explain|describe|tell me about)\b", re.I),
    re.compile(r"^(how does|how do|how can|why does|why do|why is)\b", re.I),
    re.compile(r"^(can you (explain|tell|describe|help me understand))\b", re.I),
    re.compile(r"\b(meaning of|definition of)\b", re.I),
]

# integration id -> patterns that reference its capabilities
INTEGRATION_PATTERNS = {
    "gmail": EMAIL_PATTERNS,
    "spotify": MUSIC_PATTERNS,
    "github": REPOSITORY_PATTERNS,
}

TOOL_SEGMENT_TYPES = {"tool_use", "tool_result"}

CONFIDENCE_SCORES = {"high": 0.9, "medium": 0.6, "low": 0.3}


def _count(text: str, patterns: Sequence[re.Pattern]) -> int:
    return sum(1 for p in patterns if p.search(text))


def _any(text: str, patterns: Sequence[re.Pattern]) -> bool:
    return any(p.search(text) for p in patterns)


class ModeClassifier:
    def __init__(
        self,
        agent_margin: int = 2,
        chat_margin: int = 1,
        short_message_chars: int = 50,
        long_message_chars: int = 200,
        recent_turns: int = 3,
    ):
        self.agent_margin = agent_margin
        self.chat_margin = chat_margin
        self.short_message_chars = short_message_chars
        self.long_message_chars = long_message_chars
        self.recent_turns = recent_turns

    def classify(
        self,
        messages: Sequence[ConversationMessage],
        available_integrations: Iterable[str] = (),
    ) -> ClassificationResult:
        available = set(available_integrations or ())
        user_messages = [m for m in messages if m.role == "user"]
        recent_text = " ".join(m.text() for m in user_messages[-self.recent_turns:]).strip()
        last: Optional[ConversationMessage] = user_messages[-1] if user_messages else None
        last_text = last.text().strip() if last else ""

        if not recent_text and not self._has_media(last):
            return ClassificationResult(
                mode=Mode.CHAT,
                reason="Empty request",
                confidence=CONFIDENCE_SCORES["high"],
                reasoning_effort=ReasoningEffort.MINIMAL,
            )

        agent_signals = 0
        chat_signals = 0
        recommended: List[str] = []

        web_matches = _count(recent_text, WEB_SEARCH_PATTERNS)
        if web_matches:
            agent_signals += web_matches * 2
            recommended.append(WEB_SEARCH)

        # only connected integrations count; the tie-break recommends them
        # whatever the rest of the phrasing says
        for integration, patterns in INTEGRATION_PATTERNS.items():
            if integration not in available:
                continue
            matches = _count(recent_text, patterns)
            if matches:
                agent_signals += matches * 2
                recommended.append(integration)

        complex_matches = _count(recent_text, COMPLEX_TASK_PATTERNS)
        agent_signals += complex_matches

        if _any(last_text, CASUAL_CHAT_PATTERNS):
            chat_signals += 2

        if _any(last_text, EXPLANATION_PATTERNS) and not web_matches:
            chat_signals += 1

        if len(last_text) < self.short_message_chars:
            chat_signals += 1
        elif len(last_text) > self.long_message_chars:
            agent_signals += 1

        if self._has_media(last):
            agent_signals += 1

        tool_followup = self._after_tool_use(messages)
        if tool_followup:
            agent_signals += 3

        mode, confidence, reason = self._decide(agent_signals, chat_signals, recommended)

        if mode == Mode.CHAT:
            effort = ReasoningEffort.LOW if complex_matches or len(last_text) > 150 else ReasoningEffort.MINIMAL
        elif tool_followup or agent_signals >= 5 or complex_matches >= 2:
            effort = ReasoningEffort.HIGH
        elif agent_signals >= 3:
            effort = ReasoningEffort.MEDIUM
        else:
            effort = ReasoningEffort.LOW

        return ClassificationResult(
            mode=mode,
            reason=reason,
            confidence=CONFIDENCE_SCORES[confidence],
            reasoning_effort=effort,
            tools_recommended=tuple(recommended),
        )

    def _decide(self, agent: int, chat: int, recommended: List[str]) -> Tuple[Mode, str, str]:
        if agent > chat + self.agent_margin:
            reason = f"Task requires tools: {', '.join(recommended)}" if recommended else "Complex task detected"
            return Mode.AGENT, "high" if agent >= 4 else "medium", reason
        if chat > agent + self.chat_margin:
            return Mode.CHAT, "high" if chat >= 3 else "medium", "Simple conversational query"
        # ambiguous: agent keeps tools available, unless nothing fired at all
        mode = Mode.CHAT if agent + chat == 0 else Mode.AGENT
        return mode, "low", f"Ambiguous request, defaulting to {mode} mode"

    @staticmethod
    def _has_media(message: Optional[ConversationMessage]) -> bool:
        if message is None or isinstance(message.content, str):
            return False
        return any(seg.get("type") in MEDIA_SEGMENT_TYPES for seg in message.content)

    @staticmethod
    def _after_tool_use(messages: Sequence[ConversationMessage]) -> bool:
        """True when an earlier assistant turn used a tool and the user followed up."""
        seen_tool = False
        for message in messages:
            if message.role == "assistant" and not isinstance(message.content, str):
                if any(seg.get("type") in TOOL_SEGMENT_TYPES for seg in message.content):
                    seen_tool = True
            elif message.role == "user" and seen_tool:
                return True
        return False
