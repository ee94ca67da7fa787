"""
A terminal client for the Switchyard agent service.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
import typer
from prompt_toolkit import prompt as ptk_prompt
from prompt_toolkit.formatted_text import FormattedText
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

# --- Configuration ---
API_BASE_URL = "http://127.0.0.1:8080/api/v1"


console = Console()
app = typer.Typer(
    name="switchyard-cli",
    help="Chat with the Switchyard agent service from the terminal.",
    add_completion=False,
)


@dataclass
class RenderState:
    """What the renderer has printed so far for the current turn."""
    text: str = ""
    text_started: bool = False
    thinking_started: bool = False
    show_thinking: bool = True
    debug: bool = False
    done: bool = False

    def newline_if_streaming(self, out: Console) -> None:
        if self.text_started or self.thinking_started:
            out.print()


def render_event(event: Dict[str, Any], state: RenderState, out: Console = console) -> None:
    """Render one NDJSON envelope from /agent/stream."""
    evt_type = event.get("type")
    data = event.get("data") or {}

    if state.debug:
        out.print(f"[dim]Received event: {event}[/dim]")

    if evt_type == "mode":
        tools = ", ".join(data.get("tools") or []) or "none"
        out.print(
            f"[dim]mode=[bold]{data.get('mode')}[/bold] effort={data.get('reasoning_effort')} "
            f"tier={data.get('service_tier')} tools={tools}[/dim]"
        )

    elif evt_type == "text":
        delta = data.get("delta", "")
        state.text += delta
        if not state.text_started:
            state.newline_if_streaming(out)
            out.print("[bold green]Assistant:[/bold green]")
            state.text_started = True
        out.print(delta, end="", style="green")

    elif evt_type == "think":
        if state.show_thinking:
            if not state.thinking_started:
                out.print("[dim italic]Thinking:[/dim italic]")
                state.thinking_started = True
            out.print(data.get("delta", ""), end="", style="dim italic")

    elif evt_type == "tool_use":
        label = data.get("details") or data.get("tool")
        phase = data.get("phase")
        style = {"failed": "red", "completed": "green"}.get(phase, "yellow")
        state.newline_if_streaming(out)
        out.print(f"[{style}]⚙ {label}: {phase}[/{style}]")

    elif evt_type == "tool_result":
        output = json.dumps(data.get("output"), default=str)
        title = "Tool Output" if data.get("success") else "Tool Error"
        border = "dim yellow" if data.get("success") else "red"
        out.print(Panel(f"[bold]{data.get('tool')}[/bold]: {output[:150]}", title=title, expand=False, border_style=border))

    elif evt_type == "error":
        state.newline_if_streaming(out)
        hint = " (retryable)" if data.get("retryable") else ""
        out.print(Panel(f"{data.get('message')}{hint}", title=f"Error: {data.get('kind')}", border_style="bold red"))

    elif evt_type == "done":
        state.newline_if_streaming(out)
        state.done = True
        if state.debug:
            out.print("[dim][Generation complete][/dim]")


def send_turn(
    messages: List[Dict[str, Any]],
    user: Optional[str],
    integrations: List[str],
    state: RenderState,
    base_url: str = API_BASE_URL,
) -> None:
    headers = {"X-User-Id": user} if user else {}
    with requests.post(
        f"{base_url}/agent/stream",
        json={"messages": messages, "selected_integrations": integrations},
        headers=headers,
        stream=True,
    ) as response:
        if response.status_code == 429:
            body = response.json()
            render_event(body, state)
            return
        response.raise_for_status()

        spinner_active = True
        with Live(Spinner("dots", text="[dim]Waiting for response...[/dim]"), console=console, refresh_per_second=10) as live:
            for line in response.iter_lines():
                if spinner_active:
                    live.stop()
                    spinner_active = False
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    if state.debug:
                        console.print(f"[red]Error parsing JSON: {line.decode('utf-8', errors='replace')}[/red]")
                    continue
                render_event(event, state)


@app.command()
def main(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id sent as X-User-Id. Integrations need one."),
    integration: List[str] = typer.Option([], "--integration", "-i", help="Integration to enable (repeatable), e.g. gmail."),
    url: str = typer.Option(API_BASE_URL, "--url", help="Base URL of the service API."),
    debug: bool = typer.Option(False, "--debug", help="Show raw events."),
    show_thinking: bool = typer.Option(True, "--show-thinking/--hide-thinking", help="Show reasoning summaries."),
):
    """
    Main entry point for the Switchyard CLI.
    """
    info = Table.grid(padding=1, expand=True)
    info.add_column()
    info.add_column(justify="right")
    info.add_row(f"User: [bold]{user or 'anonymous'}[/bold]", "Type [bold cyan]\\reset[/bold cyan] to clear history")
    info.add_row(f"Integrations: {', '.join(integration) or 'none'}", "Type [bold cyan]\\exit[/bold cyan] to quit")
    console.print(Panel(info, title="Switchyard", border_style="blue"))

    history: List[Dict[str, Any]] = []
    while True:
        try:
            user_prompt = ptk_prompt(FormattedText([("bold cyan", "You "), ("", "(Alt+Enter for newline)\n")]), multiline=True)
            command = user_prompt.strip().lower()
            if command in ("\\exit", "\\quit"):
                console.print("Goodbye!")
                break
            if command == "\\reset":
                history.clear()
                console.print("[dim]History cleared.[/dim]")
                continue
            if not command:
                continue

            history.append({"role": "user", "content": user_prompt})
            state = RenderState(show_thinking=show_thinking, debug=debug)
            send_turn(history, user, integration, state, base_url=url)
            if state.text:
                history.append({"role": "assistant", "content": state.text})

        except requests.RequestException as e:
            console.print(f"\n[bold red]Error:[/bold red] Could not get response from server. {e}")
        except (KeyboardInterrupt, EOFError):
            console.print("Goodbye!")
            break
        finally:
            console.rule()


if __name__ == "__main__":
    app()
