# switchyard_service/protocol/prompts.py
"""
System prompt construction.

The static base instruction comes first so providers can cache the prompt
prefix; everything request-specific (mode, connected capabilities, tool
catalog) follows a session boundary marker.
"""
from typing import Iterable, List, Sequence

from switchyard_service.core.types import Mode, ToolManifestEntry
from switchyard_service.integrations.catalog import format_tool_name, get_integration

SESSION_BOUNDARY = "--- session context ---"

_MODE_GUIDANCE = {
    Mode.CHAT: "Respond conversationally and keep the answer short. Only use a tool if the question cannot be answered without it.",
    Mode.AGENT: (
        "Work through the task step by step. Call tools whenever they help; "
        "independent tool calls may be issued together. After tools return, "
        "summarize what was done and what was found."
    ),
}


def _render_tool_catalog(tools: Sequence[ToolManifestEntry]) -> str:
    """
    One bullet per tool, with parameters sorted for a stable prompt:
      • Send email (GMAIL_SEND_EMAIL): description
        - to (string, required): recipient
    """
    lines: List[str] = []
    for entry in tools:
        if entry.hosted:
            lines.append(f"• {format_tool_name(entry.identifier)}: built-in, results are cited automatically.")
            continue
        fn = entry.schema.get("function", entry.schema)
        desc = (fn.get("description") or "No description provided.").strip()
        params = fn.get("parameters") or {}
        props = params.get("properties") or {}
        required = set(params.get("required") or [])

        lines.append(f"• {format_tool_name(entry.identifier)} ({entry.identifier}): {desc}")
        for pname in sorted(props):
            pinfo = props.get(pname) or {}
            req = "required" if pname in required else "optional"
            pdesc = (pinfo.get("description") or "").strip()
            suffix = f": {pdesc}" if pdesc else ""
            lines.append(f"  - {pname} ({pinfo.get('type', 'string')}, {req}){suffix}")
    return "\n".join(lines)


def _render_capabilities(enabled_capabilities: Iterable[str]) -> str:
    blocks = []
    for integration in enabled_capabilities:
        spec = get_integration(integration)
        if spec is not None:
            blocks.append(f"- {spec.name}: {spec.description}")
    return "\n".join(blocks)


def build_system_prompt(
    base_instruction: str,
    mode: Mode,
    enabled_capabilities: Iterable[str] = (),
    tools: Sequence[ToolManifestEntry] = (),
) -> str:
    sections = [base_instruction.strip(), SESSION_BOUNDARY, f"Mode: {mode}. {_MODE_GUIDANCE[mode]}"]

    capabilities = _render_capabilities(enabled_capabilities)
    if capabilities:
        sections.append(f"Connected services for this user:\n{capabilities}")

    if tools:
        sections.append(f"Available tools:\n{_render_tool_catalog(tools)}")
    else:
        sections.append("No tools are available for this request. Answer from your own knowledge.")

    return "\n\n".join(sections)
