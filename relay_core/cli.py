"""
Command line front end for relay-core.
"""
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from relay_core.core.config import get_setting, load_settings
from relay_core.core.factory import AgentFactory
from relay_core.core.logging import setup_logging
from relay_core.core.types import AgentEventType, ChatOptions, ResponseFormat
from relay_core.protocol.orchestration.emitter import AgentEventEmitter
from relay_core.providers.dummy.provider import ScriptedModel

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(
    name="relay-core",
    help="Run the relay-core tool-use loop against the configured model.",
    add_completion=False,
)


def _load_script(path: Path) -> List[str]:
    """Canned model replies: a YAML or JSON list of strings."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, list) or not data:
        raise typer.BadParameter(f"{path} must contain a non-empty list of replies")
    return [r if isinstance(r, str) else json.dumps(r) for r in data]


def _event_printer(ndjson: bool):
    def on_event(event_type: AgentEventType, payload: Dict[str, Any]) -> None:
        if ndjson:
            err_console.out(AgentEventEmitter.to_ndjson(event_type, payload).decode("utf-8"), end="")
            return
        if event_type == AgentEventType.FUNCTION_CALL_START:
            for call in payload["function_calls"]:
                err_console.print(f"[cyan]-> {call.name}[/cyan] {json.dumps(call.arguments)}", highlight=False)
        elif event_type == AgentEventType.FUNCTION_CALL_END:
            for call in payload["function_calls"]:
                err_console.print(f"[green]<- {call.name}[/green] {json.dumps(call.result, default=str)}", highlight=False)
        elif event_type == AgentEventType.ERROR:
            err_console.print(f"[bold red]error:[/bold red] {payload.get('error')}", highlight=False)

    return on_event


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User prompt"),
    stream: bool = typer.Option(False, "--stream", help="Stream the answer"),
    json_output: bool = typer.Option(False, "--json", help="Ask for a JSON answer"),
    system: Optional[str] = typer.Option(None, "--system", help="System message"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Max model/tool round trips"),
    script: Optional[Path] = typer.Option(None, "--script", exists=True, dir_okay=False, help="Replay canned replies"),
    events: bool = typer.Option(False, "--events", help="Print every event as NDJSON on stderr"),
):
    """Send PROMPT through the agent and print the answer."""
    settings = load_settings()
    setup_logging(get_setting(settings, "logging.level", "INFO"), rich=bool(get_setting(settings, "logging.rich", True)))

    factory = AgentFactory(settings)
    provider = ScriptedModel(_load_script(script), chunk_size=8) if script else None
    agent = factory.get_agent(provider=provider, max_recursion_depth=max_depth)
    options = ChatOptions(
        system_message=system,
        response_format=ResponseFormat.JSON if json_output else None,
    )
    callback = _event_printer(events)

    async def _run() -> None:
        if stream:
            async for chunk in agent.chat_stream(prompt, options, callback):
                if chunk.is_last and chunk.is_json_response:
                    console.print()
                    console.print_json(data=chunk.content)
                elif chunk.content:
                    console.out(str(chunk.content), end="", highlight=False)
            console.out("")
            return
        response = await agent.chat(prompt, options, callback)
        if response.is_json_response:
            console.print_json(data=response.content)
        else:
            console.out(str(response.content), highlight=False)

    try:
        asyncio.run(_run())
    except Exception as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1)


@app.command()
def tools():
    """List the enabled tools and their parameters."""
    factory = AgentFactory()
    table = Table(title="Available tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Parameters")
    for fn in factory.get_tools():
        params = fn.json_parameters()
        required = set(params.get("required") or [])
        rendered = ", ".join(
            f"{name}{'*' if name in required else ''}: {spec.get('type', 'any')}"
            for name, spec in (params.get("properties") or {}).items()
        )
        table.add_row(fn.name, fn.description, rendered or "-")
    console.print(table)


if __name__ == "__main__":
    app()
