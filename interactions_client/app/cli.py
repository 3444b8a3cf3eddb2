"""
Command-line front end: stream one conversation with automatic function calling.
"""
import asyncio
import json
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from interactions_client.core.errors import InteractionsError, LoopExceededError
from interactions_client.core.factory import ClientFactory
from interactions_client.protocol.content import Text as TextContent, Thought
from interactions_client.protocol.conversation import ConversationLink
from interactions_client.protocol.orchestration.orchestrator import (
    DeltaReceived,
    ExecutingFunctions,
    FunctionResultsReady,
    OrchestrationComplete,
)

# INTERACTIONS__API__API_KEY may live in .env
load_dotenv()

console = Console()
app = typer.Typer(
    name="interactions",
    help="Stream interactions with automatic function calling.",
    add_completion=False,
)


async def _chat(
    factory: ClientFactory,
    prompt: str,
    model: str,
    status_timeout: float,
    system_instruction: Optional[str],
    previous_interaction_id: Optional[str],
    show_thinking: bool,
    debug: bool,
) -> None:
    orchestrator = factory.get_orchestrator()
    link = ConversationLink(previous_interaction_id) if previous_interaction_id else None
    text_started = False
    try:
        with Live(Spinner("dots", text="[dim]Waiting for response...[/dim]"), console=console, transient=True) as live:
            async for event in orchestrator.stream(
                prompt,
                status_timeout=status_timeout,
                system_instruction=system_instruction,
                link=link,
                model=model,
            ):
                live.stop()
                if debug:
                    console.print(f"[dim]Event: {event}[/dim]")

                if isinstance(event, DeltaReceived):
                    item = event.item
                    if isinstance(item, TextContent) and item.text:
                        if not text_started:
                            console.print("\n[bold green]Model:[/bold green]")
                            text_started = True
                        console.print(item.text, end="", style="green")
                    elif isinstance(item, Thought) and item.text and show_thinking:
                        console.print(item.text, end="", style="dim italic")

                elif isinstance(event, ExecutingFunctions):
                    names = ", ".join(c.name for c in event.calls)
                    console.print(f"\n[yellow]Executing {len(event.calls)} function(s): {names}[/yellow]")
                    text_started = False

                elif isinstance(event, FunctionResultsReady):
                    for ex in event.executions:
                        body = Text(json.dumps(ex.result, ensure_ascii=False, default=str), style="red" if ex.is_error else "yellow")
                        title = f"{ex.name} ({ex.call_id}) {ex.duration * 1000:.0f}ms"
                        console.print(Panel(body, title=title, title_align="left", border_style="yellow"))

                elif isinstance(event, OrchestrationComplete):
                    result = event.result
                    table = Table.grid(padding=1)
                    table.add_column()
                    table.add_column()
                    table.add_row("Interaction", f"[cyan]{result.transcript.interaction_id}[/cyan]")
                    table.add_row("Status", str(result.transcript.status))
                    table.add_row("Iterations", str(result.iterations))
                    if result.transcript.usage is not None:
                        table.add_row("Tokens", str(result.transcript.usage.total_tokens))
                    console.print()
                    console.print(Panel(table, title="Done", border_style="dim"))
    except LoopExceededError as e:
        console.print(f"\n[bold red]Stopped:[/bold red] {e}")
        raise typer.Exit(2)
    except InteractionsError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        await factory.aclose()


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="The user prompt."),
    model: str = typer.Option(..., "--model", "-m", help="Model name, e.g. gemini-3-flash-preview."),
    status_timeout: float = typer.Option(
        ..., "--status-timeout", help="Seconds to keep waiting on a non-terminal interaction status."
    ),
    system_instruction: Optional[str] = typer.Option(None, "--system", help="System instruction for a new conversation."),
    previous_interaction_id: Optional[str] = typer.Option(
        None, "--previous", help="Continue the conversation after this interaction id."
    ),
    show_thinking: bool = typer.Option(False, "--show-thinking", help="Print thought summaries."),
    debug: bool = typer.Option(False, "--debug", help="Print every orchestration event."),
):
    """Send PROMPT and stream the reply, executing requested functions automatically."""
    factory = ClientFactory()
    asyncio.run(
        _chat(factory, prompt, model, status_timeout, system_instruction, previous_interaction_id, show_thinking, debug)
    )


@app.command()
def functions():
    """Show the function declarations sent to the model."""
    factory = ClientFactory()
    registry = factory.get_registry()
    if not len(registry):
        console.print("[yellow]No functions enabled.[/yellow]")
        return
    for decl in registry.declarations():
        console.print(Panel(json.dumps(decl, indent=2), title=decl["name"], title_align="left", border_style="blue"))


if __name__ == "__main__":
    app()
