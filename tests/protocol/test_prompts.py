from switchyard_service.core.tool_registry import HOSTED_WEB_SEARCH
from switchyard_service.core.types import Mode, ToolManifestEntry
from switchyard_service.protocol.prompts import SESSION_BOUNDARY, build_system_prompt

SEND_EMAIL = ToolManifestEntry(
    identifier="GMAIL_SEND_EMAIL",
    integration="gmail",
    schema={
        "type": "function",
        "function": {
            "name": "GMAIL_SEND_EMAIL",
            "description": "Send an email.",
            "parameters": {
                "type": "object",
                "properties": {
                    "to": {"type": "string", "description": "Recipient address"},
                    "body": {"type": "string"},
                },
                "required": ["to"],
            },
        },
    },
)


class TestBuildSystemPrompt:
    def test_base_instruction_is_the_stable_prefix(self):
        chat = build_system_prompt("Base.", Mode.CHAT)
        agent = build_system_prompt("Base.", Mode.AGENT, ["gmail"], [SEND_EMAIL])
        prefix = f"Base.\n\n{SESSION_BOUNDARY}"
        assert chat.startswith(prefix)
        assert agent.startswith(prefix)

    def test_tool_catalog_lists_parameters_sorted(self):
        prompt = build_system_prompt("Base.", Mode.AGENT, ["gmail"], [SEND_EMAIL])
        assert "• Send email (GMAIL_SEND_EMAIL): Send an email." in prompt
        body_at = prompt.index("- body (string, optional)")
        to_at = prompt.index("- to (string, required): Recipient address")
        assert body_at < to_at

    def test_connected_capabilities_are_described(self):
        prompt = build_system_prompt("Base.", Mode.AGENT, ["gmail", "unknown"], [SEND_EMAIL])
        assert "Connected services for this user:" in prompt
        assert "- Gmail:" in prompt
        assert "unknown" not in prompt

    def test_hosted_search_is_rendered_as_builtin(self):
        prompt = build_system_prompt("Base.", Mode.CHAT, (), [HOSTED_WEB_SEARCH])
        assert "• Web search: built-in" in prompt

    def test_no_tools_notice(self):
        prompt = build_system_prompt("Base.", Mode.CHAT)
        assert "No tools are available" in prompt
        assert "Mode: chat." in prompt
