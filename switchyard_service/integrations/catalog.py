"""Known integrations and the default tool set each one exposes to the model."""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class IntegrationSpec:
    id: str
    name: str
    toolkit: str
    description: str
    default_tools: Tuple[str, ...]


INTEGRATIONS: Dict[str, IntegrationSpec] = {
    "gmail": IntegrationSpec(
        id="gmail",
        name="Gmail",
        toolkit="GMAIL",
        description="Read, search and send email from the user's mailbox.",
        default_tools=(
            "GMAIL_SEND_EMAIL",
            "GMAIL_FETCH_EMAILS",
            "GMAIL_CREATE_EMAIL_DRAFT",
        ),
    ),
    "spotify": IntegrationSpec(
        id="spotify",
        name="Spotify",
        toolkit="SPOTIFY",
        description="Control playback, search music and manage the user's queue and playlists.",
        default_tools=(
            "SPOTIFY_GET_CURRENTLY_PLAYING_TRACK",
            "SPOTIFY_SEARCH_FOR_ITEM",
            "SPOTIFY_START_RESUME_PLAYBACK",
            "SPOTIFY_PAUSE_PLAYBACK",
            "SPOTIFY_SKIP_TO_NEXT",
            "SPOTIFY_SKIP_TO_PREVIOUS",
            "SPOTIFY_ADD_ITEM_TO_PLAYBACK_QUEUE",
            "SPOTIFY_GET_CURRENT_USER_S_PLAYLISTS",
        ),
    ),
    "github": IntegrationSpec(
        id="github",
        name="GitHub",
        toolkit="GITHUB",
        description="Browse the user's repositories, issues and pull requests.",
        default_tools=(
            "GITHUB_LIST_REPOSITORIES_FOR_THE_AUTHENTICATED_USER",
            "GITHUB_GET_A_REPOSITORY",
            "GITHUB_SEARCH_REPOSITORIES",
            "GITHUB_LIST_REPOSITORY_ISSUES",
            "GITHUB_CREATE_AN_ISSUE",
            "GITHUB_LIST_PULL_REQUESTS",
        ),
    ),
}

_PREFIXES = tuple(f"{spec.toolkit}_" for spec in INTEGRATIONS.values())


def get_integration(integration_id: str) -> Optional[IntegrationSpec]:
    return INTEGRATIONS.get(integration_id)


def integration_for_tool(tool_name: str) -> Optional[str]:
    """Map a tool slug like GMAIL_SEND_EMAIL back to its integration id."""
    for spec in INTEGRATIONS.values():
        if tool_name.startswith(f"{spec.toolkit}_"):
            return spec.id
    return None


def format_tool_name(tool_name: str) -> str:
    """Human label for a tool, e.g. GMAIL_SEND_EMAIL -> 'Send email'."""
    if tool_name == "web_search":
        return "Web search"
    name = tool_name
    for prefix in _PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    name = name.lower().replace("_", " ").strip()
    return name[:1].upper() + name[1:]
