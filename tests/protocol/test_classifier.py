"""
Tests for ModeClassifier.

The classifier is pure: the same history and integration set always map to
the same mode, effort and tool hints.
"""
from switchyard_service.core.types import ConversationMessage, Mode, ReasoningEffort
from switchyard_service.protocol.classifier import ModeClassifier


def user(text):
    return ConversationMessage.create("user", text)


class TestChatRequests:
    def test_simple_question_is_chat_with_minimal_effort(self):
        result = ModeClassifier().classify([user("What's 2+2?")], [])
        assert result.mode == Mode.CHAT
        assert result.reasoning_effort == ReasoningEffort.MINIMAL
        assert result.tools_recommended == ()
        assert result.confidence == 0.9

    def test_empty_history_is_chat(self):
        result = ModeClassifier().classify([], [])
        assert result.mode == Mode.CHAT
        assert result.reason == "Empty request"
        assert result.reasoning_effort == ReasoningEffort.MINIMAL

    def test_whitespace_only_is_empty(self):
        result = ModeClassifier().classify([user("   ")], ["gmail"])
        assert result.reason == "Empty request"

    def test_greeting_is_chat(self):
        result = ModeClassifier().classify([user("hey there")], [])
        assert result.mode == Mode.CHAT


class TestAgentRequests:
    def test_email_request_with_connected_gmail(self):
        result = ModeClassifier().classify([user("send an email to Bob")], ["gmail"])
        assert result.mode == Mode.AGENT
        assert result.tools_recommended == ("gmail",)
        assert "gmail" in result.reason
        assert result.reasoning_effort in (ReasoningEffort.MEDIUM, ReasoningEffort.HIGH)

    def test_unconnected_integration_is_never_recommended(self):
        result = ModeClassifier().classify([user("send an email to Bob")], [])
        assert "gmail" not in result.tools_recommended

    def test_current_events_recommend_web_search(self):
        result = ModeClassifier().classify([user("What is the latest news about the election today?")], [])
        assert result.mode == Mode.AGENT
        assert result.tools_recommended[0] == "web_search"

    def test_multi_step_task_gets_high_effort(self):
        text = (
            "Research the top three project management tools, compare their pricing, "
            "and then build a step by step plan to configure the best one for my team"
        )
        result = ModeClassifier().classify([user(text)], [])
        assert result.mode == Mode.AGENT
        assert result.reasoning_effort == ReasoningEffort.HIGH

    def test_follow_up_after_tool_use_prefers_agent_with_high_effort(self):
        history = [
            user("search for flights to Lisbon"),
            ConversationMessage.create("assistant", [
                {"type": "text", "text": "Here are some options."},
                {"type": "tool_use", "name": "web_search"},
            ]),
            user("ok and the second one?"),
        ]
        result = ModeClassifier().classify(history, [])
        assert result.mode == Mode.AGENT
        assert result.reasoning_effort == ReasoningEffort.HIGH

    def test_media_only_message_is_not_empty(self):
        message = ConversationMessage.create("user", [
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
        ])
        result = ModeClassifier().classify([message], [])
        assert result.reason != "Empty request"


class TestPurity:
    def test_identical_inputs_give_identical_results(self):
        classifier = ModeClassifier()
        history = [user("play my workout playlist on spotify")]
        first = classifier.classify(history, ["spotify", "gmail"])
        second = classifier.classify(list(history), ("gmail", "spotify"))
        assert first == second
        assert first.tools_recommended == ("spotify",)

    def test_only_recent_user_turns_are_scanned(self):
        history = [user("check my inbox")] + [user("thanks") for _ in range(3)]
        result = ModeClassifier().classify(history, ["gmail"])
        assert "gmail" not in result.tools_recommended
